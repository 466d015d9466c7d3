from __future__ import annotations

import datetime
import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import false, func

Base = declarative_base()

STEP_SETUP = 1
STEP_EXCLUSIONS = 2
STEP_DRAW = 3


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _new_session_id() -> str:
    return uuid.uuid4().hex


class Organizer(Base):
    __tablename__ = "organizers"

    id = Column(Integer, primary_key=True)
    telegram_id = Column(BigInteger, unique=True, nullable=False, index=True)
    telegram_username = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    active_session_id = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sessions = relationship("DrawSession", back_populates="organizer", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return "<Organizer(id={0}, telegram_id={1}, username={2})>".format(
            self.id, self.telegram_id, self.telegram_username
        )


class DrawSession(Base):
    __tablename__ = "draw_sessions"

    id = Column(String(32), primary_key=True, default=_new_session_id)
    organizer_id = Column(Integer, ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False, index=True)
    event_name = Column(String, nullable=False, default="", server_default="")
    event_date = Column(Date, nullable=True)
    budget_amount = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="EUR", server_default="EUR")
    step = Column(Integer, nullable=False, default=STEP_SETUP, server_default=str(STEP_SETUP))
    message_template = Column(Text, nullable=True)
    is_saved = Column(Boolean, nullable=False, default=False, server_default=false())
    last_assignment_seed = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    organizer = relationship("Organizer", back_populates="sessions")
    members = relationship(
        "Member",
        back_populates="session",
        order_by="Member.position",
    )

    def __repr__(self) -> str:
        return f"<DrawSession(id={self.id}, event_name={self.event_name!r}, step={self.step})>"


class Member(Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(32), ForeignKey("draw_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    session = relationship("DrawSession", back_populates="members")

    __table_args__ = (UniqueConstraint("session_id", "email", name="uq_members_session_email"),)

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, name={self.name!r}, email={self.email!r})>"


class MemberExclusion(Base):
    __tablename__ = "member_exclusions"

    id = Column(Integer, primary_key=True)
    giver_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("giver_id", "receiver_id", name="uq_member_exclusions_pair"),
    )


class Pairing(Base):
    __tablename__ = "pairings"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(32), ForeignKey("draw_sessions.id", ondelete="CASCADE"), nullable=False)
    giver_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "giver_id", name="uq_pairings_session_giver"),
    )
