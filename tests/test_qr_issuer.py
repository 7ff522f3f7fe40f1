"""
Tests for QR issuance and verification.
"""
import base64
import json
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import unquote

from sqlalchemy.dialects import postgresql

from canchaqr.core.exceptions import (
    NoActiveControllerError,
    PermissionDeniedError,
    ReferenceNotFoundError,
    ValidationError,
)
from canchaqr.models import Controller, Payment, PaymentMethod, QRIssuance
from canchaqr.services import qr_issuer
from canchaqr.services.reservation_context import ReservationContext

ISSUER = "canchaqr.services.qr_issuer"


def result_of(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def context(make_slot):
    return ReservationContext(
        reservation_id=1,
        reservation_date=date(2026, 11, 2),
        court_name="Cancha 1",
        venue_name="Club Norte",
        host_alias="mati",
        host_name="Matias Lopez",
        slots=[make_slot(8, 9), make_slot(9, 10)],
    )


class TestPayloads:

    def test_tracking_code_format(self):
        now = datetime(2026, 11, 2, 12, 0, tzinfo=timezone.utc)
        assert qr_issuer.make_tracking_code(7, 42, now) == f"RES_7_P42_{int(now.timestamp() * 1000)}"

    def test_verification_url(self):
        from canchaqr.core.config import settings

        url = qr_issuer.verification_url("RES_7_P42_1")
        assert url == f"{settings.PUBLIC_APP_URL.rstrip('/')}/verificar/qr/RES_7_P42_1"

    def test_invitation_link_carries_base64_payload(self, context):
        payload = qr_issuer.invitation_payload(context, "INVABC")
        link = qr_issuer.invitation_link("INVABC", payload)

        assert "/invitado/reserva/INVABC?data=" in link
        encoded = unquote(link.split("?data=", 1)[1])
        decoded = json.loads(base64.b64decode(encoded))
        assert decoded["type"] == "reservation_invitation"
        assert decoded["reservation"]["slots"] == ["08:00 - 09:00", "09:00 - 10:00"]
        assert decoded["reservation"]["date"] == "2026-11-02"

    def test_context_end_is_last_slot_end(self, context):
        assert context.ends_at == datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)
        assert context.place == "Club Norte - Cancha 1"


class TestIssueForPayment:

    @pytest.mark.asyncio
    async def test_existing_issuance_is_not_duplicated(self, mock_db, make_reservation):
        with patch(f"{ISSUER}.get_for_reservation", AsyncMock(return_value=MagicMock())), \
             patch(f"{ISSUER}.pick_controller", AsyncMock()) as pick:
            issued = await qr_issuer.issue_for_payment(mock_db, make_reservation(), MagicMock(id=5))

        assert issued is None
        pick.assert_not_called()
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_issues_both_artifacts(self, mock_db, make_reservation, context):
        reservation = make_reservation()
        payment = Payment(id=5, reservation_id=1, amount=Decimal("60.00"), method=PaymentMethod.CASH)
        render = MagicMock(side_effect=["/uploads/qr_pagos/qr_reserva_5.png", "/uploads/qr_pagos/qr_invitacion_5.png"])

        with patch(f"{ISSUER}.get_for_reservation", AsyncMock(return_value=None)), \
             patch(f"{ISSUER}.pick_controller", AsyncMock(return_value=Controller(person_id=99, active=True))), \
             patch(f"{ISSUER}.load_reservation_context", AsyncMock(return_value=context)), \
             patch(f"{ISSUER}.generate_unique_code", AsyncMock(return_value="INV0123456789ABCDEF")), \
             patch(f"{ISSUER}.render_to_file", render):
            issued = await qr_issuer.issue_for_payment(mock_db, reservation, payment)

        assert isinstance(issued, QRIssuance)
        assert issued.controller_id == 99
        assert issued.invitation_code == "INV0123456789ABCDEF"
        assert issued.tracking_code.startswith("RES_1_P5_")
        assert issued.verified is False
        assert issued.expires_at == context.ends_at
        assert issued.artifact_paths == [
            "/uploads/qr_pagos/qr_reserva_5.png",
            "/uploads/qr_pagos/qr_invitacion_5.png",
        ]
        filenames = [call.args[3] for call in render.call_args_list]
        assert filenames == ["qr_reserva_5.png", "qr_invitacion_5.png"]
        mock_db.add.assert_called_once_with(issued)

    @pytest.mark.asyncio
    async def test_render_failure_removes_first_artifact(self, mock_db, make_reservation, context):
        payment = Payment(id=5, reservation_id=1, amount=Decimal("60.00"), method=PaymentMethod.CASH)
        render = MagicMock(side_effect=["/uploads/qr_pagos/qr_reserva_5.png", OSError("disk full")])

        with patch(f"{ISSUER}.get_for_reservation", AsyncMock(return_value=None)), \
             patch(f"{ISSUER}.pick_controller", AsyncMock(return_value=Controller(person_id=99))), \
             patch(f"{ISSUER}.load_reservation_context", AsyncMock(return_value=context)), \
             patch(f"{ISSUER}.generate_unique_code", AsyncMock(return_value="INVX")), \
             patch(f"{ISSUER}.render_to_file", render), \
             patch(f"{ISSUER}.remove_artifacts") as remove:
            with pytest.raises(OSError):
                await qr_issuer.issue_for_payment(mock_db, make_reservation(), payment)

        remove.assert_called_once_with(["/uploads/qr_pagos/qr_reserva_5.png"])
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_reservation_without_slots_rejected(self, mock_db, make_reservation, context):
        context.slots = []

        with patch(f"{ISSUER}.get_for_reservation", AsyncMock(return_value=None)), \
             patch(f"{ISSUER}.pick_controller", AsyncMock(return_value=Controller(person_id=99))), \
             patch(f"{ISSUER}.load_reservation_context", AsyncMock(return_value=context)):
            with pytest.raises(ValidationError) as exc_info:
                await qr_issuer.issue_for_payment(mock_db, make_reservation(), MagicMock(id=5))

        assert exc_info.value.code == "RESERVATION_WITHOUT_SLOTS"

    @pytest.mark.asyncio
    async def test_no_active_controller(self, mock_db):
        mock_db.execute.return_value = result_of(None)

        with pytest.raises(NoActiveControllerError) as exc_info:
            await qr_issuer.pick_controller(mock_db)

        assert exc_info.value.code == "NO_ACTIVE_CONTROLLER"
        assert exc_info.value.status_code == 503


class TestVerification:

    @pytest.mark.asyncio
    async def test_assigned_controller_verifies(self, mock_db):
        issuance = QRIssuance(tracking_code="RES_1_P5_1", controller_id=99, verified=False)
        mock_db.execute.return_value = result_of(issuance)

        verified = await qr_issuer.mark_verified(mock_db, "RES_1_P5_1", 99)

        assert verified.verified is True
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_controller_is_denied(self, mock_db):
        issuance = QRIssuance(tracking_code="RES_1_P5_1", controller_id=99, verified=False)
        mock_db.execute.return_value = result_of(issuance)

        with pytest.raises(PermissionDeniedError):
            await qr_issuer.mark_verified(mock_db, "RES_1_P5_1", 7)

        assert issuance.verified is False

    @pytest.mark.asyncio
    async def test_unknown_tracking_code(self, mock_db):
        mock_db.execute.return_value = result_of(None)

        with pytest.raises(ReferenceNotFoundError):
            await qr_issuer.get_by_tracking_code(mock_db, "RES_0_P0_0")


class TestListForController:

    @pytest.mark.asyncio
    async def test_controller_page_with_total(self, mock_db):
        issuances = [QRIssuance(tracking_code="RES_2_P7_1", controller_id=99, verified=False)]
        mock_db.scalar = AsyncMock(return_value=3)
        result = MagicMock()
        result.scalars.return_value.all.return_value = issuances
        mock_db.execute.return_value = result

        page, total = await qr_issuer.list_for_controller(mock_db, 99, verified=False, limit=1, offset=2)

        assert page == issuances
        assert total == 3
        sql = mock_db.execute.await_args.args[0].compile(dialect=postgresql.dialect())
        assert "qr_issuances.verified = false" in str(sql)
        assert "ORDER BY qr_issuances.generated_at DESC" in str(sql)
        assert {99, 1, 2} <= set(sql.params.values())

    @pytest.mark.asyncio
    async def test_verified_filter_is_optional(self, mock_db):
        mock_db.scalar = AsyncMock(return_value=0)
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db.execute.return_value = result

        assert await qr_issuer.list_for_controller(mock_db, 99) == ([], 0)
        count_sql = str(mock_db.scalar.await_args.args[0].compile(dialect=postgresql.dialect()))
        assert "verified" not in count_sql
