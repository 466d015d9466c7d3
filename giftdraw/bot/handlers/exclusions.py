from __future__ import annotations

import html
from typing import Optional

from aiogram import F, Router, types
from aiogram.filters import Command

from giftdraw.bot.keyboards import exclusion_keyboard
from giftdraw.bot.utils import (
    SLOW_DOWN,
    SOMETHING_WRONG,
    check_rate_limit,
    load_current,
    log_handler_exception,
)
from giftdraw.db import STEP_EXCLUSIONS, DrawSession, get_session, repo
from giftdraw.services import wizard
from giftdraw.services.wizard import WizardError

router = Router()


def _giver_view(session, draw_session: DrawSession, giver_id: Optional[int] = None):
    members = wizard.list_participants(session, draw_session)
    giver = next((member for member in members if member.id == giver_id), members[0])
    excluded = repo.exclusion_map(session, [member.id for member in members])[giver.id]
    text = (
        f"Who may <b>{html.escape(giver.name)}</b> give a gift to?\n"
        "Tap a name to forbid or allow that pair. 🚫 means never."
    )
    return text, exclusion_keyboard(giver, members, excluded)


@router.message(Command("exclusions"), F.chat.type == "private")
async def exclusions_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "exclusions"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            wizard.set_step(session, draw_session, STEP_EXCLUSIONS)
            text, keyboard = _giver_view(session, draw_session)
        await message.answer(text, reply_markup=keyboard)
    except WizardError as exc:
        await message.answer(html.escape(str(exc)))
    except Exception as exc:
        log_handler_exception("exclusions", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.callback_query(F.data.startswith("excl:"))
async def toggle_exclusion_callback_handler(query: types.CallbackQuery) -> None:
    if not check_rate_limit(query.from_user.id, "toggle_exclusion"):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    try:
        _, giver_id, receiver_id = query.data.split(":")
        with get_session() as session:
            _, draw_session = load_current(session, query.from_user)
            excluded = wizard.toggle_exclusion(session, draw_session, int(giver_id), int(receiver_id))
            text, keyboard = _giver_view(session, draw_session, int(giver_id))
        await query.answer("Pair forbidden." if excluded else "Pair allowed.")
        await query.message.edit_text(text, reply_markup=keyboard)
    except WizardError as exc:
        await query.answer(str(exc), show_alert=True)
    except Exception as exc:
        log_handler_exception("toggle_exclusion", query.from_user.id, query.message.chat.id, exc)
        await query.answer(SOMETHING_WRONG, show_alert=True)


@router.callback_query(F.data.startswith("exgiver:"))
async def switch_giver_callback_handler(query: types.CallbackQuery) -> None:
    try:
        giver_id = int(query.data.split(":", 1)[1])
        with get_session() as session:
            _, draw_session = load_current(session, query.from_user)
            if not wizard.list_participants(session, draw_session):
                await query.answer("This draw has no participants.", show_alert=True)
                return
            text, keyboard = _giver_view(session, draw_session, giver_id)
        await query.answer()
        await query.message.edit_text(text, reply_markup=keyboard)
    except Exception as exc:
        log_handler_exception("switch_giver", query.from_user.id, query.message.chat.id, exc)
        await query.answer(SOMETHING_WRONG, show_alert=True)
