"""
People and role capability models

A person gains capabilities (client, host, guest, controller) through one row
per role table keyed by the person's id. Host and guest rows are created on
first use through role_service.ensure_capability.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from canchaqr.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Person(Base):
    __tablename__ = "people"

    id = Column(Integer, primary_key=True, index=True)
    alias = Column(String(60), unique=True, nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255), unique=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    client = relationship("Client", back_populates="person", uselist=False)
    host = relationship("Host", back_populates="person", uselist=False)
    guest = relationship("Guest", back_populates="person", uselist=False)
    controller = relationship("Controller", back_populates="person", uselist=False)

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.alias


class Client(Base):
    __tablename__ = "clients"

    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), primary_key=True)

    person = relationship("Person", back_populates="client")


class Host(Base):
    __tablename__ = "hosts"

    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), primary_key=True)
    registered_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)

    person = relationship("Person", back_populates="host")


class Guest(Base):
    __tablename__ = "guests"

    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), primary_key=True)
    last_invited_at = Column(DateTime(timezone=True), default=_utcnow)
    active = Column(Boolean, default=True, nullable=False)

    person = relationship("Person", back_populates="guest")


class Controller(Base):
    """Venue staff allowed to verify QR codes at the door."""
    __tablename__ = "controllers"

    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), primary_key=True)
    active = Column(Boolean, default=True, nullable=False, index=True)

    person = relationship("Person", back_populates="controller")
