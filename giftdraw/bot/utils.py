from __future__ import annotations

import html
from typing import Tuple

from aiogram import types
from loguru import logger

from giftdraw.db import STEP_DRAW, STEP_EXCLUSIONS, STEP_SETUP, DrawSession, Organizer, repo
from giftdraw.services import wizard
from giftdraw.services.notifications import format_date
from giftdraw.services.rate_limit import throttle

SLOW_DOWN = "You're doing that too often. Please slow down."
SOMETHING_WRONG = "Something went wrong. Please try again later."

STEP_LABELS = {
    STEP_SETUP: "1/3 setup",
    STEP_EXCLUSIONS: "2/3 exclusions",
    STEP_DRAW: "3/3 draw",
}


def check_rate_limit(user_id: int, action: str) -> bool:
    return throttle.hit(user_id, action) is None


def log_handler_exception(action: str, user_id: int | None, chat_id: int | None, error: Exception) -> None:
    logger.bind(action=action, user_id=user_id, chat_id=chat_id).exception(
        "Handler error: {error}", error=str(error)
    )


def load_current(session, user: types.User) -> Tuple[Organizer, DrawSession]:
    organizer = wizard.ensure_organizer(session, user.id, user.username, user.first_name, user.last_name)
    return organizer, wizard.current_session(session, organizer)


def command_args(message: types.Message) -> str:
    parts = (message.text or "").split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def describe_session(session, draw_session: DrawSession) -> str:
    details = wizard.event_details(draw_session)
    members = wizard.list_participants(session, draw_session)
    assignments = wizard.assignment_map(session, draw_session)
    drawn = wizard.has_complete_assignment(
        assignments, wizard.participants_for_draw(session, draw_session)
    )

    lines = [
        f"<b>{html.escape(details.name) or 'Untitled draw'}</b> ({STEP_LABELS.get(draw_session.step, '?')})",
        f"Date: {format_date(details.date) or 'not set'}",
        f"Budget: {html.escape(wizard.format_budget(draw_session) or 'not set')}",
        f"Participants: {len(members)}",
        f"Draw: {'done' if drawn else 'not done yet'}",
    ]
    return "\n".join(lines)


def describe_participants(session, draw_session: DrawSession) -> str:
    members = wizard.list_participants(session, draw_session)
    if not members:
        return "No participants yet. Add one with /add Name email@example.com"

    exclusions = repo.exclusion_map(session, [member.id for member in members])
    names = {member.id: member.name for member in members}
    lines = ["Participants:"]
    for index, member in enumerate(members, start=1):
        line = f"{index}. {html.escape(member.name)} &lt;{html.escape(member.email)}&gt;"
        excluded = sorted(names[receiver_id] for receiver_id in exclusions[member.id])
        if excluded:
            line += ", never gives to " + ", ".join(html.escape(name) for name in excluded)
        lines.append(line)
    return "\n".join(lines)
