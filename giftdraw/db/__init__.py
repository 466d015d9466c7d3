from giftdraw.db.models import (
    STEP_DRAW,
    STEP_EXCLUSIONS,
    STEP_SETUP,
    Base,
    DrawSession,
    Member,
    MemberExclusion,
    Organizer,
    Pairing,
)
from giftdraw.db.session import SessionLocal, get_session, init_engine

__all__ = [
    "STEP_DRAW",
    "STEP_EXCLUSIONS",
    "STEP_SETUP",
    "Base",
    "DrawSession",
    "Member",
    "MemberExclusion",
    "Organizer",
    "Pairing",
    "SessionLocal",
    "get_session",
    "init_engine",
]
