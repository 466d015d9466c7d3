from __future__ import annotations

import asyncio
import datetime
import html
import re
import smtplib
from collections import Counter
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Callable, Dict, Hashable, List, Optional, Sequence

from loguru import logger

from giftdraw.core.config import Settings
from giftdraw.services.matching import Participant

SAMPLE_RECEIVER = "Example recipient"
DEFAULT_SUBJECT = "Your Secret Santa draw"
PLACEHOLDER_PATTERN = re.compile(r"\{(giver|receiver|date|budget|event)\}")
HTML_PATTERN = re.compile(r"<(?:html|body|p|br|div|b|strong|i|em|h[1-6]|table|span|a)\b[^>]*>", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<[^>]+>")

DEFAULT_TEMPLATE = """Hello {giver}!

The Secret Santa draw for {event} is done.
This year you are giving a gift to:

    {receiver}

Date: {date}
Budget: {budget}

Keep it secret until the big day!"""


class DispatchError(RuntimeError):
    pass


@dataclass(frozen=True)
class MessageContext:
    event_name: str
    event_date: Optional[datetime.date]
    budget: str


@dataclass
class DispatchReport:
    sent: int = 0
    total: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.sent == self.total


def format_date(value: Optional[datetime.date]) -> str:
    return value.strftime("%d/%m/%Y") if value else ""


def render_message(
    template: str,
    giver: str,
    receiver: str,
    event_date: Optional[datetime.date],
    budget: str,
    event_name: str = "",
) -> str:
    """Substitute every placeholder occurrence; other braces are left as they are."""
    values = {
        "giver": giver,
        "receiver": receiver,
        "date": format_date(event_date),
        "budget": budget,
        "event": event_name,
    }
    return PLACEHOLDER_PATTERN.sub(lambda found: values[found.group(1)], template)


def render_preview(template: str, context: MessageContext, giver_name: str) -> str:
    return render_message(
        template,
        giver=giver_name,
        receiver=SAMPLE_RECEIVER,
        event_date=context.event_date,
        budget=context.budget,
        event_name=context.event_name,
    )


class LogSender:
    """Demo-mode sender used when no SMTP server is configured."""

    def __init__(self) -> None:
        self.outbox: List[EmailMessage] = []

    async def __call__(self, message: EmailMessage) -> None:
        self.outbox.append(message)
        logger.bind(to=message["To"]).info("Demo mode: message not sent")


class SmtpSender:
    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password or "")
            server.send_message(message)

    async def __call__(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._send, message)


def build_sender(settings: Settings):
    if not settings.smtp_host:
        return LogSender()
    return SmtpSender(
        settings.smtp_host,
        settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )


def html_to_text(body: str) -> str:
    """Plain-text fallback for an HTML body."""
    text = re.sub(r"<\s*br\s*/?>|<\s*/\s*(p|div|h[1-6]|tr)\s*>", "\n", body, flags=re.IGNORECASE)
    text = html.unescape(TAG_PATTERN.sub("", text))
    lines = [line.strip() for line in text.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def build_email(sender_address: str, to_address: str, subject: str, body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender_address
    message["To"] = to_address
    message["Subject"] = subject
    if HTML_PATTERN.search(body):
        message.set_content(html_to_text(body))
        message.add_alternative(body, subtype="html")
    else:
        message.set_content(body)
    return message


async def dispatch(
    assignments: Dict[Hashable, Hashable],
    participants: Sequence[Participant],
    context: MessageContext,
    template: str,
    sender,
    sender_address: str,
    subject: str = DEFAULT_SUBJECT,
    on_progress: Optional[Callable[[int, int], object]] = None,
) -> DispatchReport:
    """Send one rendered message per giver, one after the other.

    A failed send is logged and counted, never retried. ``on_progress`` is
    called with ``(done, total)`` after each giver and may be a coroutine;
    an error raised by it is logged and the remaining givers are still sent.
    """
    by_id = {participant.id: participant for participant in participants}
    if not by_id or set(assignments) != set(by_id) or Counter(assignments.values()) != Counter(by_id.keys()):
        raise DispatchError("There is no complete draw to send yet.")

    report = DispatchReport(total=len(participants))
    for done, giver in enumerate(participants, start=1):
        receiver = by_id[assignments[giver.id]]
        body = render_message(
            template,
            giver=giver.name,
            receiver=receiver.name,
            event_date=context.event_date,
            budget=context.budget,
            event_name=context.event_name,
        )
        try:
            await sender(build_email(sender_address, giver.email, subject, body))
            report.sent += 1
        except Exception as exc:
            report.failures.append(giver.email)
            logger.bind(to=giver.email).warning("Failed to send draw result: {error}", error=str(exc))

        if on_progress is not None:
            try:
                result = on_progress(done, report.total)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                logger.bind(done=done, total=report.total).warning(
                    "Progress update failed: {error}", error=str(exc)
                )

    logger.bind(sent=report.sent, total=report.total).info("Draw results dispatched")
    return report
