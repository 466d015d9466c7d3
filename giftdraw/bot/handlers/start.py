from aiogram import F, Router, types
from aiogram.filters import Command, CommandStart

from giftdraw.bot.keyboards import confirm_new_keyboard, sessions_keyboard
from giftdraw.bot.utils import (
    SLOW_DOWN,
    SOMETHING_WRONG,
    check_rate_limit,
    describe_session,
    load_current,
    log_handler_exception,
)
from giftdraw.core.config import get_settings
from giftdraw.db import get_session
from giftdraw.services import wizard
from giftdraw.services.wizard import WizardError

router = Router()
router.message.filter(F.chat.type == "private")

HELP_TEXT = (
    "I organise Secret Santa draws.\n\n"
    "<b>1. Setup</b>\n"
    "/event Family Christmas - name the event\n"
    "/date 2026-12-25 - event date\n"
    "/budget 30 EUR - budget per gift\n"
    "/add Alice alice@example.com - add a participant\n"
    "/remove 2 - remove participant number 2\n"
    "/list - show participants\n\n"
    "<b>2. Exclusions</b>\n"
    "/exclusions - choose who must not give to whom\n\n"
    "<b>3. Draw</b>\n"
    "/draw - draw the pairs\n"
    "/reveal - show the result\n"
    "/template - show or change the email text\n"
    "/preview - preview the email\n"
    "/send - email every giver their recipient\n\n"
    "<b>Sessions</b>\n"
    "/new - start a new draw\n"
    "/save - keep this draw in your history\n"
    "/sessions - open or delete a saved draw"
)


@router.message(CommandStart())
@router.message(Command("help"))
async def command_start_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "start"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            organizer, draw_session = load_current(session, message.from_user)
            greeting = f"Hello {wizard.format_organizer(organizer)}!"
            summary = describe_session(session, draw_session)
        await message.answer(f"{greeting} {HELP_TEXT}\n\n<b>Current draw</b>\n{summary}")
    except Exception as exc:
        log_handler_exception("start", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("new"))
async def new_command_handler(message: types.Message) -> None:
    await message.answer(
        "Start a new draw? The current one will be kept in your history.",
        reply_markup=confirm_new_keyboard(),
    )


@router.callback_query(F.data == "confirm_new")
async def confirm_new_callback_handler(query: types.CallbackQuery) -> None:
    if not check_rate_limit(query.from_user.id, "new"):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    try:
        with get_session() as session:
            organizer = wizard.ensure_organizer(
                session,
                query.from_user.id,
                query.from_user.username,
                query.from_user.first_name,
                query.from_user.last_name,
            )
            draw_session = wizard.start_new_session(session, organizer, get_settings().history_limit)
            summary = describe_session(session, draw_session)
        await query.answer("New draw started.")
        await query.message.answer(f"New draw started.\n\n{summary}\n\nName it with /event.")
    except Exception as exc:
        log_handler_exception("confirm_new", query.from_user.id, query.message.chat.id, exc)
        await query.answer(SOMETHING_WRONG, show_alert=True)


@router.message(Command("save"))
async def save_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "save"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            organizer, draw_session = load_current(session, message.from_user)
            wizard.save_session(session, organizer, draw_session, get_settings().history_limit)
        await message.answer("Draw saved. Find it again with /sessions.")
    except Exception as exc:
        log_handler_exception("save", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("sessions"))
async def sessions_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "sessions"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            organizer, _ = load_current(session, message.from_user)
            history = wizard.list_history(session, organizer, get_settings().history_limit)
            if not history:
                await message.answer("No saved draws yet.")
                return
            keyboard = sessions_keyboard(history)
        await message.answer("Your saved draws, most recent first:", reply_markup=keyboard)
    except Exception as exc:
        log_handler_exception("sessions", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.callback_query(F.data.startswith("load:"))
async def load_callback_handler(query: types.CallbackQuery) -> None:
    session_id = query.data.split(":", 1)[1]
    try:
        with get_session() as session:
            organizer, _ = load_current(session, query.from_user)
            draw_session = wizard.load_session(session, organizer, session_id)
            summary = describe_session(session, draw_session)
        await query.answer("Draw opened.")
        await query.message.answer(f"Draw opened.\n\n{summary}")
    except WizardError as exc:
        await query.answer(str(exc), show_alert=True)
    except Exception as exc:
        log_handler_exception("load", query.from_user.id, query.message.chat.id, exc)
        await query.answer(SOMETHING_WRONG, show_alert=True)


@router.callback_query(F.data.startswith("delete:"))
async def delete_callback_handler(query: types.CallbackQuery) -> None:
    session_id = query.data.split(":", 1)[1]
    try:
        with get_session() as session:
            organizer, _ = load_current(session, query.from_user)
            replacement = wizard.delete_session(session, organizer, session_id)
            history = wizard.list_history(session, organizer, get_settings().history_limit)
            keyboard = sessions_keyboard(history) if history else None
        await query.answer("Draw deleted.")
        if replacement is not None:
            await query.message.answer("That was your current draw, so a new one was started.")
        await query.message.edit_reply_markup(reply_markup=keyboard)
    except WizardError as exc:
        await query.answer(str(exc), show_alert=True)
    except Exception as exc:
        log_handler_exception("delete", query.from_user.id, query.message.chat.id, exc)
        await query.answer(SOMETHING_WRONG, show_alert=True)
