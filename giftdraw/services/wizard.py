from __future__ import annotations

import datetime
import html
import random
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from loguru import logger

from giftdraw.db import STEP_DRAW, STEP_EXCLUSIONS, STEP_SETUP, DrawSession, Member, Organizer, repo
from giftdraw.services.matching import (
    DEFAULT_ATTEMPT_BUDGET,
    InsufficientParticipants,
    Participant,
    match,
)
from giftdraw.services.notifications import DEFAULT_TEMPLATE, MessageContext

MIN_PARTICIPANTS = 3
DEFAULT_HISTORY_LIMIT = 20
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


class WizardError(RuntimeError):
    pass


@dataclass(frozen=True)
class EventDetails:
    name: str
    date: Optional[datetime.date]
    budget_amount: Optional[int]
    currency: str


@dataclass(frozen=True)
class DrawResult:
    assignments: Dict[int, int]
    participants: List[Participant]
    draw_session: DrawSession
    seed: Optional[int]


def default_event_date(today: Optional[datetime.date] = None) -> datetime.date:
    today = today or datetime.date.today()
    return datetime.date(today.year, 12, 25)


def format_organizer(organizer: Organizer) -> str:
    if organizer.display_name:
        return html.escape(organizer.display_name)
    if organizer.telegram_username:
        return f"@{html.escape(organizer.telegram_username)}"
    return f"user-{organizer.telegram_id}"


def ensure_organizer(
    session,
    telegram_id: int,
    telegram_username: Optional[str],
    first_name: Optional[str],
    last_name: Optional[str],
) -> Organizer:
    display_name = " ".join(filter(None, [first_name, last_name])) or None
    return repo.upsert_organizer(session, telegram_id, telegram_username, display_name)


def _active_session(session, organizer: Organizer) -> Optional[DrawSession]:
    if not organizer.active_session_id:
        return None
    draw_session = repo.get_draw_session(session, organizer.active_session_id)
    if draw_session is None or draw_session.organizer_id != organizer.id:
        return None
    return draw_session


def _open_session(session, organizer: Organizer, today: Optional[datetime.date]) -> DrawSession:
    draw_session = repo.create_draw_session(session, organizer, default_event_date(today))
    organizer.active_session_id = draw_session.id
    logger.bind(organizer_id=organizer.id, session_id=draw_session.id).info("Draw session started")
    return draw_session


def current_session(session, organizer: Organizer, today: Optional[datetime.date] = None) -> DrawSession:
    return _active_session(session, organizer) or _open_session(session, organizer, today)


def start_new_session(
    session,
    organizer: Organizer,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
    today: Optional[datetime.date] = None,
) -> DrawSession:
    previous = _active_session(session, organizer)
    if previous is not None:
        if repo.count_members(session, previous.id) > 0:
            save_session(session, organizer, previous, history_limit)
        elif not previous.is_saved:
            repo.delete_draw_session(session, previous)
    return _open_session(session, organizer, today)


def event_details(draw_session: DrawSession) -> EventDetails:
    return EventDetails(
        name=draw_session.event_name or "",
        date=draw_session.event_date,
        budget_amount=draw_session.budget_amount,
        currency=draw_session.currency or "EUR",
    )


def update_event_details(
    session,
    draw_session: DrawSession,
    name: Optional[str] = None,
    event_date: Optional[datetime.date] = None,
    budget_amount: Optional[int] = None,
    currency: Optional[str] = None,
) -> EventDetails:
    """Apply the given fields; ``None`` leaves a field unchanged."""
    if name is not None:
        name = name.strip()
        if not name:
            raise WizardError("Event name cannot be empty.")
        draw_session.event_name = name
    if event_date is not None:
        draw_session.event_date = event_date
    if budget_amount is not None:
        if budget_amount <= 0:
            raise WizardError("Budget should be a positive whole number.")
        draw_session.budget_amount = budget_amount
    if currency is not None:
        currency = currency.strip().upper()
        if not CURRENCY_PATTERN.match(currency):
            raise WizardError("Currency should be a 3-letter code, e.g. EUR.")
        draw_session.currency = currency
    repo.touch_draw_session(draw_session)
    return event_details(draw_session)


def list_participants(session, draw_session: DrawSession) -> List[Member]:
    return repo.list_members(session, draw_session.id)


def can_proceed(session, draw_session: DrawSession) -> bool:
    return (
        repo.count_members(session, draw_session.id) >= MIN_PARTICIPANTS
        and bool(draw_session.event_name)
        and draw_session.event_date is not None
        and draw_session.budget_amount is not None
    )


def _invalidate_assignments(session, draw_session: DrawSession) -> None:
    if repo.clear_pairings(session, draw_session.id):
        logger.bind(session_id=draw_session.id).info("Assignments cleared")
    repo.touch_draw_session(draw_session)


def add_participant(session, draw_session: DrawSession, name: str, email: str) -> Member:
    name = (name or "").strip()
    email = (email or "").strip()
    if not name or not email:
        raise WizardError("Please fill in both the name and the email.")
    if not EMAIL_PATTERN.match(email):
        raise WizardError("Please enter a valid email address.")
    if repo.find_member_by_email(session, draw_session.id, email):
        raise WizardError(f"{email} is already taking part in this draw.")

    member = repo.add_member(session, draw_session.id, name, email)
    _invalidate_assignments(session, draw_session)
    return member


def remove_participant(session, draw_session: DrawSession, member_id: int) -> str:
    member = repo.get_member(session, draw_session.id, member_id)
    if member is None:
        raise WizardError("This participant is not part of the draw.")
    name = member.name
    repo.delete_member(session, member)
    _invalidate_assignments(session, draw_session)
    return name


def toggle_exclusion(session, draw_session: DrawSession, giver_id: int, receiver_id: int) -> bool:
    """Flip the giver -> receiver exclusion. Returns True when it is now excluded."""
    if giver_id == receiver_id:
        raise WizardError("A participant can never draw themselves.")
    if repo.count_members(session, draw_session.id) < MIN_PARTICIPANTS:
        raise WizardError(f"Add at least {MIN_PARTICIPANTS} participants before setting exclusions.")
    giver = repo.get_member(session, draw_session.id, giver_id)
    receiver = repo.get_member(session, draw_session.id, receiver_id)
    if giver is None or receiver is None:
        raise WizardError("This participant is not part of the draw.")

    exclusion = repo.get_exclusion(session, giver_id, receiver_id)
    if exclusion:
        repo.remove_exclusion(session, exclusion)
        excluded = False
    else:
        repo.add_exclusion(session, giver_id, receiver_id)
        excluded = True
    _invalidate_assignments(session, draw_session)
    return excluded


def set_step(session, draw_session: DrawSession, step: int) -> None:
    if step not in {STEP_SETUP, STEP_EXCLUSIONS, STEP_DRAW}:
        raise WizardError(f"Unknown step {step}.")
    if step > STEP_SETUP and not can_proceed(session, draw_session):
        raise WizardError(
            f"Set the event name, date and budget and add at least {MIN_PARTICIPANTS} participants first."
        )
    draw_session.step = step
    repo.touch_draw_session(draw_session)


def participants_for_draw(session, draw_session: DrawSession) -> List[Participant]:
    members = repo.list_members(session, draw_session.id)
    exclusions = repo.exclusion_map(session, [member.id for member in members])
    return [
        Participant(
            id=member.id,
            name=member.name,
            email=member.email,
            exclusions=frozenset(exclusions[member.id] - {member.id}),
        )
        for member in members
    ]


def assignment_map(session, draw_session: DrawSession) -> Dict[int, int]:
    return {
        pairing.giver_id: pairing.receiver_id
        for pairing in repo.list_pairings(session, draw_session.id)
    }


def has_complete_assignment(assignments: Dict[int, int], participants: List[Participant]) -> bool:
    ids = {participant.id for participant in participants}
    if not ids or len(assignments) != len(ids):
        return False
    return set(assignments) == ids and Counter(assignments.values()) == Counter(ids)


def draw(
    session,
    organizer: Organizer,
    draw_session: DrawSession,
    attempt_budget: int = DEFAULT_ATTEMPT_BUDGET,
    seed: Optional[int] = None,
    rng=None,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> DrawResult:
    participants = participants_for_draw(session, draw_session)
    if len(participants) < MIN_PARTICIPANTS:
        raise InsufficientParticipants(f"At least {MIN_PARTICIPANTS} participants are needed for a draw.")

    if seed is None and rng is None:
        seed = random.randint(1, 2**31 - 1)

    assignments = match(participants, attempt_budget, seed=seed, rng=rng)

    repo.replace_pairings(session, draw_session.id, assignments)
    draw_session.last_assignment_seed = seed
    draw_session.step = STEP_DRAW
    save_session(session, organizer, draw_session, history_limit)
    logger.bind(session_id=draw_session.id, seed=seed, participants=len(participants)).info(
        "Assignments drawn"
    )
    return DrawResult(assignments=assignments, participants=participants, draw_session=draw_session, seed=seed)


def _prune_history(session, organizer: Organizer, history_limit: int) -> int:
    saved = repo.list_saved_sessions(session, organizer.id)
    stale = [item for item in saved[history_limit:] if item.id != organizer.active_session_id]
    stale_ids = [item.id for item in stale]
    for item in stale:
        repo.delete_draw_session(session, item)
    if stale_ids:
        logger.bind(organizer_id=organizer.id, pruned=stale_ids).info("History pruned")
    return len(stale_ids)


def save_session(
    session,
    organizer: Organizer,
    draw_session: DrawSession,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> None:
    draw_session.is_saved = True
    repo.touch_draw_session(draw_session)
    session.flush()
    _prune_history(session, organizer, history_limit)


def list_history(session, organizer: Organizer, history_limit: int = DEFAULT_HISTORY_LIMIT) -> List[DrawSession]:
    return repo.list_saved_sessions(session, organizer.id, limit=history_limit)


def _owned_session(session, organizer: Organizer, session_id: str) -> DrawSession:
    draw_session = repo.get_draw_session(session, session_id)
    if draw_session is None or draw_session.organizer_id != organizer.id:
        raise WizardError("This draw could not be found.")
    return draw_session


def load_session(session, organizer: Organizer, session_id: str) -> DrawSession:
    draw_session = _owned_session(session, organizer, session_id)
    organizer.active_session_id = draw_session.id
    return draw_session


def delete_session(
    session,
    organizer: Organizer,
    session_id: str,
    today: Optional[datetime.date] = None,
) -> Optional[DrawSession]:
    """Delete a draw. Returns the fresh session opened when the active one was deleted."""
    draw_session = _owned_session(session, organizer, session_id)
    was_active = organizer.active_session_id == draw_session.id
    repo.delete_draw_session(session, draw_session)
    logger.bind(organizer_id=organizer.id, session_id=session_id).info("Draw session deleted")
    if was_active:
        return _open_session(session, organizer, today)
    return None


def set_message_template(session, draw_session: DrawSession, template: Optional[str]) -> None:
    template = (template or "").strip()
    draw_session.message_template = template or None
    repo.touch_draw_session(draw_session)


def format_budget(draw_session: DrawSession) -> Optional[str]:
    if draw_session.budget_amount is None:
        return None
    currency = (draw_session.currency or "EUR").upper()
    return f"{draw_session.budget_amount} {currency}"


def message_template(draw_session: DrawSession) -> str:
    return draw_session.message_template or DEFAULT_TEMPLATE


def message_context(draw_session: DrawSession) -> MessageContext:
    return MessageContext(
        event_name=draw_session.event_name or "",
        event_date=draw_session.event_date,
        budget=format_budget(draw_session) or "",
    )
