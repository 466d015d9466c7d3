from __future__ import annotations

import html

from aiogram import F, Router, types
from aiogram.filters import Command
from loguru import logger

from giftdraw.bot.keyboards import confirm_send_keyboard, retry_draw_keyboard
from giftdraw.bot.utils import (
    SLOW_DOWN,
    SOMETHING_WRONG,
    check_rate_limit,
    command_args,
    load_current,
    log_handler_exception,
)
from giftdraw.core.config import get_settings
from giftdraw.db import get_session
from giftdraw.services import notifications, wizard
from giftdraw.services.matching import Infeasible, InsufficientParticipants
from giftdraw.services.notifications import DispatchError
from giftdraw.services.wizard import WizardError

router = Router()

NO_DRAW_YET = "There is no complete draw yet. Run /draw first."


async def _run_draw(user: types.User, reply) -> None:
    settings = get_settings()
    try:
        with get_session() as session:
            organizer, draw_session = load_current(session, user)
            if not wizard.can_proceed(session, draw_session):
                await reply(
                    "Set the event name, date and budget and add at least "
                    f"{wizard.MIN_PARTICIPANTS} participants first. See /list."
                )
                return
            result = wizard.draw(
                session,
                organizer,
                draw_session,
                attempt_budget=settings.draw_attempts,
                history_limit=settings.history_limit,
            )
        await reply(
            f"🎁 Draw done for {len(result.assignments)} participants!\n"
            "Use /reveal to see the pairs or /send to email every giver."
        )
    except InsufficientParticipants as exc:
        await reply(html.escape(str(exc)))
    except Infeasible:
        await reply(
            "No draw respecting the exclusions was found. "
            "Try again, or relax some exclusions with /exclusions.",
            reply_markup=retry_draw_keyboard(),
        )


@router.message(Command("draw"), F.chat.type == "private")
async def draw_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "draw"):
        await message.answer(SLOW_DOWN)
        return

    try:
        await _run_draw(message.from_user, message.answer)
    except Exception as exc:
        log_handler_exception("draw", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.callback_query(F.data == "draw")
async def draw_callback_handler(query: types.CallbackQuery) -> None:
    if not check_rate_limit(query.from_user.id, "draw"):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    try:
        await query.answer()
        await _run_draw(query.from_user, query.message.answer)
    except Exception as exc:
        log_handler_exception("draw", query.from_user.id, query.message.chat.id, exc)
        await query.message.answer(SOMETHING_WRONG)


@router.message(Command("reveal"), F.chat.type == "private")
async def reveal_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "reveal"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            participants = wizard.participants_for_draw(session, draw_session)
            assignments = wizard.assignment_map(session, draw_session)
            if not wizard.has_complete_assignment(assignments, participants):
                await message.answer(NO_DRAW_YET)
                return

        names = {participant.id: participant.name for participant in participants}
        lines = ["Pairs (tap to reveal):"]
        for participant in participants:
            receiver = names[assignments[participant.id]]
            lines.append(
                f"{html.escape(participant.name)} → <tg-spoiler>{html.escape(receiver)}</tg-spoiler>"
            )
        await message.answer("\n".join(lines))
    except Exception as exc:
        log_handler_exception("reveal", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("template"), F.chat.type == "private")
async def template_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "template"):
        await message.answer(SLOW_DOWN)
        return

    text = command_args(message)
    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            if text:
                wizard.set_message_template(session, draw_session, None if text == "reset" else text)
            template = wizard.message_template(draw_session)

        header = "Email template updated." if text else "Current email template:"
        await message.answer(
            f"{header}\n\n<pre>{html.escape(template)}</pre>\n\n"
            "Placeholders: {giver}, {receiver}, {date}, {budget}, {event}.\n"
            "Change it with /template your text, or /template reset."
        )
    except Exception as exc:
        log_handler_exception("template", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("preview"), F.chat.type == "private")
async def preview_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "preview"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            members = wizard.list_participants(session, draw_session)
            if not members:
                await message.answer("Add a participant first to preview the email.")
                return
            preview = notifications.render_preview(
                wizard.message_template(draw_session),
                wizard.message_context(draw_session),
                members[0].name,
            )
        await message.answer(f"<pre>{html.escape(preview)}</pre>")
    except Exception as exc:
        log_handler_exception("preview", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.message(Command("send"), F.chat.type == "private")
async def send_command_handler(message: types.Message) -> None:
    if not check_rate_limit(message.from_user.id, "send"):
        await message.answer(SLOW_DOWN)
        return

    try:
        with get_session() as session:
            _, draw_session = load_current(session, message.from_user)
            participants = wizard.participants_for_draw(session, draw_session)
            assignments = wizard.assignment_map(session, draw_session)
            ready = wizard.has_complete_assignment(assignments, participants)

        if not ready:
            await message.answer(NO_DRAW_YET)
            return
        await message.answer(
            f"Send {len(participants)} emails, one to each giver?",
            reply_markup=confirm_send_keyboard(),
        )
    except Exception as exc:
        log_handler_exception("send", message.from_user.id, message.chat.id, exc)
        await message.answer(SOMETHING_WRONG)


@router.callback_query(F.data == "confirm_send")
async def confirm_send_callback_handler(query: types.CallbackQuery) -> None:
    if not check_rate_limit(query.from_user.id, "confirm_send"):
        await query.answer(SLOW_DOWN, show_alert=True)
        return

    settings = get_settings()
    try:
        with get_session() as session:
            _, draw_session = load_current(session, query.from_user)
            participants = wizard.participants_for_draw(session, draw_session)
            assignments = wizard.assignment_map(session, draw_session)
            context = wizard.message_context(draw_session)
            template = wizard.message_template(draw_session)
            session_id = draw_session.id

        await query.answer()
        progress = await query.message.answer(f"Sending… 0/{len(participants)}")

        async def report_progress(done: int, total: int) -> None:
            await progress.edit_text(f"Sending… {done}/{total}")

        sender = notifications.build_sender(settings)
        report = await notifications.dispatch(
            assignments,
            participants,
            context,
            template,
            sender,
            settings.mail_from,
            on_progress=report_progress,
        )
        logger.bind(session_id=session_id, sent=report.sent, total=report.total).info("Send finished")

        if isinstance(sender, notifications.LogSender):
            await progress.edit_text(
                f"Demo mode: {report.sent}/{report.total} emails were logged, not sent (no SMTP server configured)."
            )
        elif report.complete:
            await progress.edit_text(f"✅ All {report.total} emails sent.")
        else:
            failed = ", ".join(html.escape(address) for address in report.failures)
            await progress.edit_text(f"Sent {report.sent}/{report.total} emails. Failed: {failed}")
    except (DispatchError, WizardError) as exc:
        await query.message.answer(html.escape(str(exc)))
    except Exception as exc:
        log_handler_exception("confirm_send", query.from_user.id, query.message.chat.id, exc)
        await query.message.answer(SOMETHING_WRONG)
