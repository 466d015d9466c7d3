from __future__ import annotations

import datetime
import html
from decimal import Decimal, InvalidOperation

from aiogram import F, Router, types
from aiogram.filters import Command

from giftdraw.bot.utils import (
    SLOW_DOWN,
    SOMETHING_WRONG,
    check_rate_limit,
    command_args,
    describe_participants,
    describe_session,
    load_current,
    log_handler_exception,
)
from giftdraw.db import get_session
from giftdraw.services import wizard
from giftdraw.services.wizard import MIN_PARTICIPANTS, WizardError

router = Router()
router.message.filter(F.chat.type == "private")


async def _update_details(message: types.Message, action: str, **fields) -> None:
    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            wizard.update_event_details(session, draw_session, **fields)
            summary = describe_session(session, draw_session)
        await message.answer(f"Updated.\n\n{summary}")
    except WizardError as exc:
        await message.answer(html.escape(str(exc)))
    except Exception as exc:
        log_handler_exception(action, message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("event", "name"))
async def event_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "event"):
        await message.answer(SLOW_DOWN)
        return

    name = command_args(message)
    if not name:
        await message.answer("Usage: /event Family Christmas")
        return
    await _update_details(message, "event", name=name)


@router.message(Command("date"))
async def date_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "date"):
        await message.answer(SLOW_DOWN)
        return

    try:
        event_date = datetime.date.fromisoformat(command_args(message))
    except ValueError:
        await message.answer("Date should be in YYYY-MM-DD format, e.g. /date 2026-12-25")
        return
    await _update_details(message, "date", event_date=event_date)


@router.message(Command("budget"))
async def budget_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "budget"):
        await message.answer(SLOW_DOWN)
        return

    parts = command_args(message).split()
    if not parts:
        await message.answer("Usage: /budget 30 EUR")
        return

    try:
        amount = Decimal(parts[0])
        if amount <= 0 or amount != amount.to_integral_value():
            raise InvalidOperation
        budget_amount = int(amount)
    except (InvalidOperation, ValueError):
        await message.answer("Budget should be a positive whole number, e.g. 30")
        return

    currency = parts[1] if len(parts) > 1 else None
    await _update_details(message, "budget", budget_amount=budget_amount, currency=currency)


@router.message(Command("add"))
async def add_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "add"):
        await message.answer(SLOW_DOWN)
        return

    parts = command_args(message).rsplit(maxsplit=1)
    if len(parts) < 2:
        await message.answer("Usage: /add Alice Smith alice@example.com")
        return
    name, email = parts

    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            member = wizard.add_participant(session, draw_session, name, email)
            count = len(wizard.list_participants(session, draw_session))
            added = html.escape(member.name)

        reply = f"{added} joined the draw ({count} participants)."
        if count < MIN_PARTICIPANTS:
            reply += f"\nAdd at least {MIN_PARTICIPANTS - count} more."
        await message.answer(reply)
    except WizardError as exc:
        await message.answer(html.escape(str(exc)))
    except Exception as exc:
        log_handler_exception("add", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("remove"))
async def remove_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "remove"):
        await message.answer(SLOW_DOWN)
        return

    try:
        index = int(command_args(message))
    except ValueError:
        await message.answer("Usage: /remove 2 (the number shown by /list)")
        return

    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            members = wizard.list_participants(session, draw_session)
            if not 1 <= index <= len(members):
                await message.answer("There is no participant with that number. See /list.")
                return
            name = wizard.remove_participant(session, draw_session, members[index - 1].id)
        await message.answer(f"{html.escape(name)} was removed. Any previous draw was cleared.")
    except WizardError as exc:
        await message.answer(html.escape(str(exc)))
    except Exception as exc:
        log_handler_exception("remove", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("list"))
async def list_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "list"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            text = describe_session(session, draw_session) + "\n\n" + describe_participants(session, draw_session)
        await message.answer(text)
    except Exception as exc:
        log_handler_exception("list", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)
