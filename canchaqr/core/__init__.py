from canchaqr.core.config import settings
from canchaqr.core.database import get_db, Base, get_db_session
