"""
Tests for invitation code generation.
"""
import re
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from canchaqr.core.exceptions import UniqueCodeExhaustedError
from canchaqr.services import invitation_codes

CODES = "canchaqr.services.invitation_codes"


def test_code_shape():
    assert re.fullmatch(r"INV[0-9A-F]{16}", invitation_codes.new_invitation_code())


@pytest.mark.asyncio
async def test_code_in_use_checks_both_tables(mock_db):
    result = MagicMock()
    result.first.return_value = None
    mock_db.execute.return_value = result

    assert await invitation_codes.code_in_use(mock_db, "INVABC") is False
    mock_db.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_collision_retries(mock_db):
    with patch(f"{CODES}.new_invitation_code", side_effect=["INVTAKEN", "INVFREE"]), \
         patch(f"{CODES}.code_in_use", AsyncMock(side_effect=[True, False])):
        assert await invitation_codes.generate_unique_code(mock_db) == "INVFREE"


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(mock_db):
    with patch(f"{CODES}.code_in_use", AsyncMock(return_value=True)) as in_use:
        with pytest.raises(UniqueCodeExhaustedError) as exc_info:
            await invitation_codes.generate_unique_code(mock_db, max_attempts=3)

    assert in_use.await_count == 3
    assert exc_info.value.details["attempts"] == 3
    assert exc_info.value.code == "UNIQUE_CODE_EXHAUSTED"
