from __future__ import annotations

import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, delete, func, or_, select

from giftdraw.db.models import (
    DrawSession,
    Member,
    MemberExclusion,
    Organizer,
    Pairing,
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def get_organizer_by_telegram_id(session, telegram_id: int) -> Optional[Organizer]:
    return session.scalar(select(Organizer).where(Organizer.telegram_id == telegram_id))


def upsert_organizer(
    session,
    telegram_id: int,
    telegram_username: Optional[str],
    display_name: Optional[str],
) -> Organizer:
    organizer = get_organizer_by_telegram_id(session, telegram_id)
    if organizer:
        organizer.telegram_username = telegram_username
        organizer.display_name = display_name
        return organizer

    organizer = Organizer(
        telegram_id=telegram_id,
        telegram_username=telegram_username,
        display_name=display_name,
    )
    session.add(organizer)
    session.flush()
    return organizer


def get_draw_session(session, session_id: str) -> Optional[DrawSession]:
    return session.scalar(select(DrawSession).where(DrawSession.id == session_id))


def create_draw_session(session, organizer: Organizer, event_date: Optional[datetime.date]) -> DrawSession:
    draw_session = DrawSession(organizer_id=organizer.id, event_name="", event_date=event_date)
    session.add(draw_session)
    session.flush()
    return draw_session


def delete_draw_session(session, draw_session: DrawSession) -> None:
    session.flush()
    member_ids = select(Member.id).where(Member.session_id == draw_session.id)
    session.execute(
        delete(MemberExclusion).where(
            or_(MemberExclusion.giver_id.in_(member_ids), MemberExclusion.receiver_id.in_(member_ids))
        ).execution_options(synchronize_session=False)
    )
    clear_pairings(session, draw_session.id)
    session.execute(delete(Member).where(Member.session_id == draw_session.id))
    session.execute(delete(DrawSession).where(DrawSession.id == draw_session.id))
    session.expire_all()


def touch_draw_session(draw_session: DrawSession) -> None:
    draw_session.updated_at = _utcnow()


def list_saved_sessions(session, organizer_id: int, limit: Optional[int] = None) -> List[DrawSession]:
    query = (
        select(DrawSession)
        .where(and_(DrawSession.organizer_id == organizer_id, DrawSession.is_saved.is_(True)))
        .order_by(DrawSession.updated_at.desc(), DrawSession.created_at.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    return list(session.scalars(query).all())


def list_members(session, session_id: str) -> List[Member]:
    return list(
        session.scalars(
            select(Member).where(Member.session_id == session_id).order_by(Member.position, Member.id)
        ).all()
    )


def count_members(session, session_id: str) -> int:
    return session.scalar(select(func.count()).select_from(Member).where(Member.session_id == session_id))


def get_member(session, session_id: str, member_id: int) -> Optional[Member]:
    return session.scalar(
        select(Member).where(and_(Member.session_id == session_id, Member.id == member_id))
    )


def find_member_by_email(session, session_id: str, email: str) -> Optional[Member]:
    return session.scalar(
        select(Member).where(
            and_(Member.session_id == session_id, func.lower(Member.email) == email.lower())
        )
    )


def add_member(session, session_id: str, name: str, email: str) -> Member:
    next_position = session.scalar(
        select(func.coalesce(func.max(Member.position), -1) + 1).where(Member.session_id == session_id)
    )
    member = Member(session_id=session_id, name=name, email=email, position=next_position)
    session.add(member)
    session.flush()
    return member


def delete_member(session, member: Member) -> None:
    session.flush()
    session.execute(
        delete(MemberExclusion).where(
            or_(MemberExclusion.giver_id == member.id, MemberExclusion.receiver_id == member.id)
        )
    )
    session.execute(
        delete(Pairing).where(or_(Pairing.giver_id == member.id, Pairing.receiver_id == member.id))
    )
    session.execute(delete(Member).where(Member.id == member.id))
    session.expire_all()


def get_exclusion(session, giver_id: int, receiver_id: int) -> Optional[MemberExclusion]:
    return session.scalar(
        select(MemberExclusion).where(
            and_(MemberExclusion.giver_id == giver_id, MemberExclusion.receiver_id == receiver_id)
        )
    )


def add_exclusion(session, giver_id: int, receiver_id: int) -> MemberExclusion:
    exclusion = MemberExclusion(giver_id=giver_id, receiver_id=receiver_id)
    session.add(exclusion)
    session.flush()
    return exclusion


def remove_exclusion(session, exclusion: MemberExclusion) -> None:
    session.execute(delete(MemberExclusion).where(MemberExclusion.id == exclusion.id))


def exclusion_map(session, member_ids: Iterable[int]) -> Dict[int, set]:
    ids = list(member_ids)
    result: Dict[int, set] = {member_id: set() for member_id in ids}
    if not ids:
        return result
    rows = session.execute(
        select(MemberExclusion.giver_id, MemberExclusion.receiver_id).where(
            MemberExclusion.giver_id.in_(ids)
        )
    ).all()
    for giver_id, receiver_id in rows:
        if receiver_id in result:
            result[giver_id].add(receiver_id)
    return result


def replace_pairings(session, session_id: str, assignments: Dict[int, int]) -> None:
    clear_pairings(session, session_id)
    session.add_all(
        [
            Pairing(session_id=session_id, giver_id=giver_id, receiver_id=receiver_id)
            for giver_id, receiver_id in assignments.items()
        ]
    )
    session.flush()


def list_pairings(session, session_id: str) -> List[Pairing]:
    return list(session.scalars(select(Pairing).where(Pairing.session_id == session_id)).all())


def clear_pairings(session, session_id: str) -> int:
    result = session.execute(delete(Pairing).where(Pairing.session_id == session_id))
    return result.rowcount or 0
