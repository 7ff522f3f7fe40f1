"""
Tests for the HTTP surface: envelope, error mapping and payment endpoints.
"""
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from httpx import ASGITransport, AsyncClient

from canchaqr.core.database import get_db
from canchaqr.core.exceptions import PermissionDeniedError, ReferenceNotFoundError
from canchaqr.main import app
from canchaqr.models import (
    AttendanceStatus,
    Court,
    GuestInvitation,
    Payment,
    PaymentMethod,
    QRIssuance,
    ReservationStatus,
)
from canchaqr.services.payment_service import PaymentOutcome


@pytest.fixture
def client_db(mock_db):
    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    yield mock_db
    app.dependency_overrides.clear()


def client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.anyio
async def test_root_endpoint_basic_response():
    async with client() as c:
        resp = await c.get("/")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "CanchaQR API"
    assert body["data"]["status"] == "operational"


@pytest.mark.anyio
async def test_missing_reservation_uses_error_envelope(client_db):
    missing = ReferenceNotFoundError("Reservation 77 not found", entity="reservation", entity_id=77)

    with patch("canchaqr.services.reservation_service.get_by_id", AsyncMock(side_effect=missing)):
        async with client() as c:
            resp = await c.get("/api/reservations/77")

    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Reservation 77 not found"
    assert body["data"]["error"]["code"] == "NOT_FOUND"
    assert body["data"]["error"]["details"] == {"entity": "reservation", "entity_id": 77}
    assert "severity" not in body["data"]["error"]


@pytest.mark.anyio
async def test_reservation_without_slots_fails_validation(client_db):
    async with client() as c:
        resp = await c.post("/api/reservations", json={
            "date": "2026-11-02", "host_id": 10, "court_id": 3, "slots": [],
        })

    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Request validation failed"
    assert body["data"]["errors"]


@pytest.mark.anyio
async def test_record_payment_returns_reservation_state(client_db, make_reservation):
    reservation = make_reservation(amount_paid="60.00", status=ReservationStatus.PARTIALLY_PAID)
    payment = Payment(
        id=9,
        reservation_id=1,
        amount=Decimal("60.00"),
        method=PaymentMethod.CASH,
        paid_at=datetime(2026, 11, 1, 15, 0, tzinfo=timezone.utc),
    )
    outcome = PaymentOutcome(
        reservation=reservation,
        payment=payment,
        message="Payment recorded. QR codes already issued; outstanding balance 140.00.",
    )

    with patch("canchaqr.services.payment_service.record_payment", AsyncMock(return_value=outcome)) as record:
        async with client() as c:
            resp = await c.post("/api/payments", json={"reservation_id": 1, "amount": "60", "method": "cash"})

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == outcome.message
    assert body["data"]["payment"]["id"] == 9
    assert body["data"]["payment"]["method"] == "cash"
    assert body["data"]["reservation"]["status"] == "partially_paid"
    assert Decimal(body["data"]["reservation"]["outstanding_balance"]) == Decimal("140.00")
    assert body["data"]["qr"] is None
    assert record.await_args.kwargs["amount"] == Decimal("60")
    client_db.commit.assert_awaited()


@pytest.mark.anyio
async def test_unknown_payment_method_rejected(client_db):
    async with client() as c:
        resp = await c.post("/api/payments", json={"reservation_id": 1, "amount": "10", "method": "bitcoin"})

    assert resp.status_code == 422


@pytest.mark.anyio
async def test_wrong_controller_is_forbidden(client_db):
    denied = PermissionDeniedError("Controller 7 is not assigned to QR RES_1_P5_1")

    with patch("canchaqr.services.qr_issuer.mark_verified", AsyncMock(side_effect=denied)):
        async with client() as c:
            resp = await c.post("/api/qr-issuances/RES_1_P5_1/verify", json={"controller_id": 7})

    assert resp.status_code == 403
    assert resp.json()["data"]["error"]["code"] == "PERMISSION_DENIED"


class TestDeleteReleasesFilesAfterCommit:

    @pytest.mark.anyio
    async def test_payment_delete_removes_qr_after_commit(self, client_db, make_reservation):
        paths = ["/uploads/qr_pagos/qr_reserva_1.png", "/uploads/qr_pagos/qr_invitacion_1.png"]
        outcome = PaymentOutcome(
            reservation=make_reservation(amount_paid="140.00", status=ReservationStatus.PARTIALLY_PAID),
            message="Payment deleted and its QR codes revoked.",
            removed_payment_id=5,
            released_artifacts=paths,
        )
        commits_seen = []
        remove = MagicMock(side_effect=lambda released: commits_seen.append(client_db.commit.await_count))

        with patch("canchaqr.services.payment_service.delete_payment", AsyncMock(return_value=outcome)), \
             patch("canchaqr.api.routes.payments.remove_artifacts", remove):
            async with client() as c:
                resp = await c.delete("/api/payments/5")

        assert resp.status_code == 200
        assert resp.json()["data"]["deleted_payment_id"] == 5
        remove.assert_called_once_with(paths)
        assert commits_seen == [1]

    @pytest.mark.anyio
    async def test_failed_commit_keeps_qr_files(self, client_db, make_reservation):
        outcome = PaymentOutcome(
            reservation=make_reservation(),
            removed_payment_id=5,
            released_artifacts=["/uploads/qr_pagos/qr_reserva_1.png"],
        )
        client_db.commit.side_effect = RuntimeError("could not serialize access")

        with patch("canchaqr.services.payment_service.delete_payment", AsyncMock(return_value=outcome)), \
             patch("canchaqr.api.routes.payments.remove_artifacts") as remove:
            async with client() as c:
                resp = await c.delete("/api/payments/5")

        assert resp.status_code == 500
        assert resp.json()["success"] is False
        remove.assert_not_called()

    @pytest.mark.anyio
    async def test_reservation_delete_removes_all_qr_files(self, client_db):
        paths = ["/uploads/qr_pagos/qr_reserva_1.png", "/uploads/guest_invitations/qr_a.png"]
        commits_seen = []
        remove = MagicMock(side_effect=lambda released: commits_seen.append(client_db.commit.await_count))

        with patch("canchaqr.services.reservation_service.delete_reservation", AsyncMock(return_value=paths)), \
             patch("canchaqr.api.routes.reservations.remove_artifacts", remove):
            async with client() as c:
                resp = await c.delete("/api/reservations/1")

        assert resp.status_code == 200
        assert resp.json()["data"] == {"id": 1}
        remove.assert_called_once_with(paths)
        assert commits_seen == [1]

    @pytest.mark.anyio
    async def test_invitation_delete_removes_qr_after_commit(self, client_db):
        commits_seen = []
        remove = MagicMock(side_effect=lambda released: commits_seen.append(client_db.commit.await_count))

        with patch(
            "canchaqr.services.guest_invitation_service.delete_invitation",
            AsyncMock(return_value=["/uploads/guest_invitations/x.png"]),
        ), patch("canchaqr.api.routes.guest_invitations.remove_artifacts", remove):
            async with client() as c:
                resp = await c.delete("/api/guest-invitations/3")

        assert resp.status_code == 200
        assert resp.json()["data"] == {"id": 3}
        remove.assert_called_once_with(["/uploads/guest_invitations/x.png"])
        assert commits_seen == [1]


class TestPaginatedListings:

    @pytest.mark.anyio
    async def test_controller_issuances_page(self, client_db):
        now = datetime(2026, 11, 1, 15, 0, tzinfo=timezone.utc)
        issuance = QRIssuance(
            id=4,
            reservation_id=1,
            payment_id=9,
            controller_id=99,
            tracking_code="RES_1_P9_1",
            invitation_code="INVAAAA",
            invitation_link="http://localhost:5173/invitacion/x",
            reservation_qr_path="/uploads/qr_pagos/qr_reserva_1.png",
            invitation_qr_path="/uploads/qr_pagos/qr_invitacion_1.png",
            verified=False,
            generated_at=now,
            expires_at=now,
        )

        with patch("canchaqr.services.qr_issuer.list_for_controller", AsyncMock(return_value=([issuance], 11))) as listing:
            async with client() as c:
                resp = await c.get("/api/qr-issuances/controller/99", params={"verified": "false", "offset": 10})

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["items"][0]["tracking_code"] == "RES_1_P9_1"
        assert data["pagination"] == {"limit": 10, "offset": 10, "total": 11}
        listing.assert_awaited_once_with(client_db, 99, verified=False, limit=10, offset=10)

    @pytest.mark.anyio
    async def test_person_invitations_page_includes_court(self, client_db, make_reservation):
        reservation = make_reservation()
        reservation.court = Court(id=3, venue_id=1, name="Cancha 1", hourly_rate=Decimal("100.00"))
        invitation = GuestInvitation(
            id=3,
            reservation_id=1,
            person_id=20,
            invitation_code="INVBBBB",
            qr_path="/uploads/guest_invitations/x.png",
            attendance=AttendanceStatus.PENDING,
            confirmed_at=datetime(2026, 11, 1, 15, 0, tzinfo=timezone.utc),
            expires_at=datetime(2026, 11, 2, 21, 0, tzinfo=timezone.utc),
        )
        invitation.reservation = reservation

        with patch(
            "canchaqr.services.guest_invitation_service.list_for_person",
            AsyncMock(return_value=([invitation], 1)),
        ) as listing:
            async with client() as c:
                resp = await c.get("/api/guest-invitations/person/20", params={"limit": 5})

        assert resp.status_code == 200
        item = resp.json()["data"]["items"][0]
        assert item["court_name"] == "Cancha 1"
        assert item["reservation_date"] == "2026-11-02"
        assert resp.json()["data"]["pagination"]["total"] == 1
        listing.assert_awaited_once_with(client_db, 20, limit=5, offset=0)

    @pytest.mark.anyio
    async def test_limit_above_maximum_rejected(self, client_db):
        async with client() as c:
            resp = await c.get("/api/guest-invitations/person/20", params={"limit": 500})

        assert resp.status_code == 422


class TestSchemas:

    def test_reservation_create_accepts_date_alias(self):
        from canchaqr.schemas import ReservationCreate

        body = ReservationCreate(date="2026-11-02", host_id=1, court_id=2, slots=[{"start": "08:00", "end": "09:00"}])
        assert body.reservation_date == date(2026, 11, 2)

    def test_reservation_update_keeps_only_sent_fields(self):
        from canchaqr.schemas import ReservationUpdate

        changes = ReservationUpdate(capacity=None, court_id=4).model_dump(exclude_unset=True)
        assert changes == {"capacity": None, "court_id": 4}
