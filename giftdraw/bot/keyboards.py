from __future__ import annotations

from typing import Iterable, List, Set

from aiogram.types import InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from giftdraw.db import DrawSession, Member


def confirm_new_keyboard():
    keyboard = InlineKeyboardBuilder()
    keyboard.button(text="Yes, start a new draw", callback_data="confirm_new")
    return keyboard.as_markup()


def retry_draw_keyboard():
    keyboard = InlineKeyboardBuilder()
    keyboard.button(text="Try again", callback_data="draw")
    return keyboard.as_markup()


def confirm_send_keyboard():
    keyboard = InlineKeyboardBuilder()
    keyboard.button(text="Yes, send the emails", callback_data="confirm_send")
    return keyboard.as_markup()


def exclusion_keyboard(giver: Member, members: List[Member], excluded_ids: Set[int]):
    """One toggle per possible receiver, then arrows to the previous and next giver."""
    keyboard = InlineKeyboardBuilder()
    for member in members:
        if member.id == giver.id:
            continue
        mark = "🚫" if member.id in excluded_ids else "✅"
        keyboard.button(text=f"{mark} {member.name}", callback_data=f"excl:{giver.id}:{member.id}")
    keyboard.adjust(2)

    index = [member.id for member in members].index(giver.id)
    previous_giver = members[index - 1]
    next_giver = members[(index + 1) % len(members)]
    keyboard.row(
        InlineKeyboardButton(text=f"⬅️ {previous_giver.name}", callback_data=f"exgiver:{previous_giver.id}"),
        InlineKeyboardButton(text=f"{next_giver.name} ➡️", callback_data=f"exgiver:{next_giver.id}"),
    )
    return keyboard.as_markup()


def sessions_keyboard(sessions: Iterable[DrawSession]):
    keyboard = InlineKeyboardBuilder()
    for draw_session in sessions:
        label = draw_session.event_name or "Untitled draw"
        keyboard.button(text=f"📂 {label}", callback_data=f"load:{draw_session.id}")
        keyboard.button(text="🗑", callback_data=f"delete:{draw_session.id}")
    keyboard.adjust(2)
    return keyboard.as_markup()
