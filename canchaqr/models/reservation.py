"""
Reservation and reservation slot models

A reservation is created pending with nothing paid. Payments move it to
partially_paid / fully_paid; the expiry sweeper forces a terminal status on
reservations still pending after RESERVATION_TTL_MINUTES.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, Date, Time, DateTime, Numeric, ForeignKey,
    CheckConstraint, Index, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
import enum

from canchaqr.core.database import Base


class ReservationStatus(str, enum.Enum):
    """Reservation lifecycle status"""
    PENDING = "pending"  # Nothing paid yet
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"
    CANCELLED = "cancelled"  # Terminal, no more payments


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("amount_paid >= 0", name="ck_reservation_amount_paid_non_negative"),
        CheckConstraint("amount_paid <= total_amount", name="ck_reservation_paid_within_total"),
        Index("ix_reservations_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    host_id = Column(Integer, ForeignKey("hosts.person_id"), nullable=False, index=True)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=False, index=True)
    reservation_date = Column(Date, nullable=False)
    capacity = Column(Integer, nullable=True)

    status = Column(
        SQLEnum(
            ReservationStatus,
            name="reservation_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=ReservationStatus.PENDING,
        nullable=False,
    )
    total_amount = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    amount_paid = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    host = relationship("Host")
    court = relationship("Court")
    slots = relationship(
        "ReservationSlot",
        back_populates="reservation",
        order_by=lambda: [ReservationSlot.slot_date, ReservationSlot.start_time],
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    payments = relationship(
        "Payment",
        back_populates="reservation",
        order_by="Payment.paid_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    qr_issuance = relationship(
        "QRIssuance",
        back_populates="reservation",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    guest_invitations = relationship(
        "GuestInvitation",
        back_populates="reservation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def outstanding_balance(self) -> Decimal:
        return Decimal(self.total_amount or 0) - Decimal(self.amount_paid or 0)

    @property
    def is_cancelled(self) -> bool:
        return self.status == ReservationStatus.CANCELLED

    @classmethod
    def create_expiry(cls, ttl_minutes: int, now: datetime = None) -> datetime:
        """Calculate expiry timestamp from now."""
        return (now or datetime.now(timezone.utc)) + timedelta(minutes=ttl_minutes)


class ReservationSlot(Base):
    """One whole-hour block of a reservation."""
    __tablename__ = "reservation_slots"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_slot_end_after_start"),
        CheckConstraint("amount >= 0", name="ck_slot_amount_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    reservation = relationship("Reservation", back_populates="slots")

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.slot_date, self.end_time, tzinfo=timezone.utc)

    @property
    def label(self) -> str:
        return f"{self.start_time.strftime('%H:%M')} - {self.end_time.strftime('%H:%M')}"
