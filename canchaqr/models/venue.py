"""
Venue and court models
"""
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from canchaqr.core.database import Base


class Venue(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    address = Column(String(255))

    courts = relationship("Court", back_populates="venue")


class Court(Base):
    __tablename__ = "courts"
    __table_args__ = (
        CheckConstraint("hourly_rate >= 0", name="ck_court_hourly_rate_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    hourly_rate = Column(Numeric(12, 2), nullable=False)
    capacity = Column(Integer)

    venue = relationship("Venue", back_populates="courts")
