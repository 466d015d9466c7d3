import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from giftdraw.db import STEP_DRAW, STEP_EXCLUSIONS, Base, repo
from giftdraw.services import wizard
from giftdraw.services.matching import Infeasible, InsufficientParticipants
from giftdraw.services.notifications import DEFAULT_TEMPLATE
from giftdraw.services.wizard import WizardError


class ScriptedRandom:
    def __init__(self, *orders):
        self.orders = list(orders)

    def shuffle(self, items):
        order = self.orders.pop(0)
        items[:] = [items[index] for index in order]


def create_session():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)()


def create_organizer(session, telegram_id=100):
    return wizard.ensure_organizer(session, telegram_id, "santa", "Kris", "Kringle")


def ready_session(session, organizer, names=("Alice", "Bob", "Carol")):
    draw_session = wizard.current_session(session, organizer)
    wizard.update_event_details(
        session,
        draw_session,
        name="Family Christmas",
        event_date=datetime.date(2026, 12, 24),
        budget_amount=30,
    )
    members = [
        wizard.add_participant(session, draw_session, name, f"{name.lower()}@example.com")
        for name in names
    ]
    return draw_session, members


def test_new_session_defaults_to_christmas():
    session = create_session()
    organizer = create_organizer(session)
    draw_session = wizard.current_session(session, organizer, today=datetime.date(2026, 3, 1))
    assert draw_session.event_date == datetime.date(2026, 12, 25)
    assert organizer.active_session_id == draw_session.id
    assert wizard.current_session(session, organizer).id == draw_session.id


def test_organizer_display_name():
    session = create_session()
    organizer = create_organizer(session)
    assert organizer.display_name == "Kris Kringle"
    assert wizard.format_organizer(organizer) == "Kris Kringle"


def test_update_event_details_is_partial():
    session = create_session()
    organizer = create_organizer(session)
    draw_session = wizard.current_session(session, organizer)
    wizard.update_event_details(session, draw_session, name="Office party", budget_amount=20, currency="usd")
    details = wizard.update_event_details(session, draw_session, event_date=datetime.date(2026, 12, 18))
    assert details.name == "Office party"
    assert details.budget_amount == 20
    assert details.currency == "USD"
    assert details.date == datetime.date(2026, 12, 18)
    assert wizard.format_budget(draw_session) == "20 USD"


@pytest.mark.parametrize(
    "fields",
    [{"name": "  "}, {"budget_amount": 0}, {"currency": "EURO"}],
)
def test_update_event_details_rejects_bad_values(fields):
    session = create_session()
    draw_session = wizard.current_session(session, create_organizer(session))
    with pytest.raises(WizardError):
        wizard.update_event_details(session, draw_session, **fields)


@pytest.mark.parametrize(
    "name,email",
    [("", "alice@example.com"), ("Alice", ""), ("Alice", "not-an-email"), ("Alice", "a b@example.com")],
)
def test_add_participant_validates_input(name, email):
    session = create_session()
    draw_session = wizard.current_session(session, create_organizer(session))
    with pytest.raises(WizardError):
        wizard.add_participant(session, draw_session, name, email)


def test_add_participant_rejects_duplicate_email():
    session = create_session()
    draw_session = wizard.current_session(session, create_organizer(session))
    wizard.add_participant(session, draw_session, "Alice", "alice@example.com")
    with pytest.raises(WizardError):
        wizard.add_participant(session, draw_session, "Alice again", "ALICE@example.com")


def test_can_proceed_needs_details_and_three_participants():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer, names=("Alice", "Bob"))
    assert not wizard.can_proceed(session, draw_session)
    with pytest.raises(WizardError):
        wizard.set_step(session, draw_session, STEP_EXCLUSIONS)

    wizard.add_participant(session, draw_session, "Carol", "carol@example.com")
    assert wizard.can_proceed(session, draw_session)
    wizard.set_step(session, draw_session, STEP_EXCLUSIONS)
    assert draw_session.step == STEP_EXCLUSIONS


def test_toggle_exclusion_round_trip():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, (alice, bob, carol) = ready_session(session, organizer)

    assert wizard.toggle_exclusion(session, draw_session, alice.id, bob.id) is True
    participants = {p.id: p for p in wizard.participants_for_draw(session, draw_session)}
    assert participants[alice.id].exclusions == frozenset({bob.id})
    assert participants[bob.id].exclusions == frozenset()

    assert wizard.toggle_exclusion(session, draw_session, alice.id, bob.id) is False
    participants = {p.id: p for p in wizard.participants_for_draw(session, draw_session)}
    assert participants[alice.id].exclusions == frozenset()


def test_toggle_exclusion_clears_assignment():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, (alice, bob, carol) = ready_session(session, organizer)
    wizard.draw(session, organizer, draw_session, rng=ScriptedRandom([1, 2, 0]))
    assert wizard.assignment_map(session, draw_session) == {alice.id: bob.id, bob.id: carol.id, carol.id: alice.id}

    wizard.toggle_exclusion(session, draw_session, alice.id, bob.id)

    assert wizard.assignment_map(session, draw_session) == {}
    assert repo.list_pairings(session, draw_session.id) == []


def test_toggle_exclusion_rejects_self_and_small_groups():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, (alice, bob) = ready_session(session, organizer, names=("Alice", "Bob"))
    with pytest.raises(WizardError):
        wizard.toggle_exclusion(session, draw_session, alice.id, alice.id)
    with pytest.raises(WizardError):
        wizard.toggle_exclusion(session, draw_session, alice.id, bob.id)


def test_draw_persists_complete_assignment():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, (alice, bob, carol) = ready_session(session, organizer)
    wizard.toggle_exclusion(session, draw_session, alice.id, bob.id)

    result = wizard.draw(session, organizer, draw_session, seed=42)

    stored = wizard.assignment_map(session, draw_session)
    assert stored == result.assignments
    assert stored[alice.id] == carol.id
    assert wizard.has_complete_assignment(stored, result.participants)
    assert draw_session.step == STEP_DRAW
    assert draw_session.is_saved
    assert draw_session.last_assignment_seed == 42


def test_redraw_replaces_assignment_wholesale():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, (alice, bob, carol) = ready_session(session, organizer)

    wizard.draw(session, organizer, draw_session, rng=ScriptedRandom([1, 2, 0]))
    assert wizard.assignment_map(session, draw_session) == {alice.id: bob.id, bob.id: carol.id, carol.id: alice.id}

    wizard.draw(session, organizer, draw_session, rng=ScriptedRandom([2, 0, 1]))
    assert wizard.assignment_map(session, draw_session) == {alice.id: carol.id, bob.id: alice.id, carol.id: bob.id}
    assert len(repo.list_pairings(session, draw_session.id)) == 3


def test_failed_draw_keeps_previous_assignment():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer)
    first = wizard.draw(session, organizer, draw_session, seed=5)

    with pytest.raises(Infeasible):
        wizard.draw(session, organizer, draw_session, attempt_budget=1, rng=ScriptedRandom([0, 1, 2]))
    assert wizard.assignment_map(session, draw_session) == first.assignments


def test_draw_needs_three_participants():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer, names=("Alice", "Bob"))
    with pytest.raises(InsufficientParticipants):
        wizard.draw(session, organizer, draw_session, seed=1)
    assert wizard.assignment_map(session, draw_session) == {}


def test_removing_participant_clears_assignment_and_exclusions():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, (alice, bob, carol, dave) = ready_session(
        session, organizer, names=("Alice", "Bob", "Carol", "Dave")
    )
    wizard.toggle_exclusion(session, draw_session, alice.id, dave.id)
    wizard.toggle_exclusion(session, draw_session, dave.id, bob.id)
    wizard.draw(session, organizer, draw_session, seed=3)

    assert wizard.remove_participant(session, draw_session, dave.id) == "Dave"

    assert wizard.assignment_map(session, draw_session) == {}
    remaining = wizard.participants_for_draw(session, draw_session)
    assert [p.id for p in remaining] == [alice.id, bob.id, carol.id]
    assert all(not p.exclusions for p in remaining)
    assert repo.get_exclusion(session, dave.id, bob.id) is None


def test_adding_participant_clears_assignment():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer)
    wizard.draw(session, organizer, draw_session, seed=3)

    wizard.add_participant(session, draw_session, "Dave", "dave@example.com")
    assert wizard.assignment_map(session, draw_session) == {}


def test_remove_unknown_participant():
    session = create_session()
    draw_session = wizard.current_session(session, create_organizer(session))
    with pytest.raises(WizardError):
        wizard.remove_participant(session, draw_session, 999)


def test_partial_assignment_is_not_complete():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, (alice, bob, carol) = ready_session(session, organizer)
    participants = wizard.participants_for_draw(session, draw_session)
    assert not wizard.has_complete_assignment({}, participants)
    assert not wizard.has_complete_assignment({alice.id: bob.id, bob.id: alice.id}, participants)
    assert not wizard.has_complete_assignment(
        {alice.id: bob.id, bob.id: bob.id, carol.id: alice.id}, participants
    )
    assert wizard.has_complete_assignment(
        {alice.id: bob.id, bob.id: carol.id, carol.id: alice.id}, participants
    )


def test_start_new_session_saves_previous_with_participants():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer)
    previous_id = draw_session.id

    fresh = wizard.start_new_session(session, organizer)

    assert fresh.id != previous_id
    assert organizer.active_session_id == fresh.id
    assert [item.id for item in wizard.list_history(session, organizer)] == [previous_id]


def test_start_new_session_discards_empty_unsaved_session():
    session = create_session()
    organizer = create_organizer(session)
    empty_id = wizard.current_session(session, organizer).id

    wizard.start_new_session(session, organizer)

    assert repo.get_draw_session(session, empty_id) is None
    assert wizard.list_history(session, organizer) == []


def test_history_is_most_recent_first_and_bounded():
    session = create_session()
    organizer = create_organizer(session)
    old = repo.create_draw_session(session, organizer, None)
    old.is_saved = True
    old.updated_at = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    middle = repo.create_draw_session(session, organizer, None)
    middle.is_saved = True
    middle.updated_at = datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)
    session.flush()
    old_id, middle_id = old.id, middle.id

    current = wizard.current_session(session, organizer)
    current_id = current.id
    wizard.save_session(session, organizer, current, history_limit=2)

    assert [item.id for item in wizard.list_history(session, organizer)] == [current_id, middle_id]
    assert repo.get_draw_session(session, old_id) is None


def test_load_session_switches_active_session():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer)
    first_id = draw_session.id
    wizard.start_new_session(session, organizer)

    loaded = wizard.load_session(session, organizer, first_id)

    assert loaded.id == first_id
    assert wizard.current_session(session, organizer).id == first_id
    assert len(wizard.list_participants(session, loaded)) == 3


def test_load_session_of_another_organizer_is_refused():
    session = create_session()
    owner = create_organizer(session, telegram_id=1)
    stranger = create_organizer(session, telegram_id=2)
    draw_session = wizard.current_session(session, owner)
    with pytest.raises(WizardError):
        wizard.load_session(session, stranger, draw_session.id)


def test_deleting_active_session_opens_a_new_one():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer)
    wizard.draw(session, organizer, draw_session, seed=9)
    deleted_id = draw_session.id

    replacement = wizard.delete_session(session, organizer, deleted_id)

    assert replacement is not None
    assert organizer.active_session_id == replacement.id
    assert repo.get_draw_session(session, deleted_id) is None
    assert repo.list_pairings(session, deleted_id) == []
    assert repo.list_members(session, deleted_id) == []


def test_deleting_saved_session_keeps_active_one():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer)
    saved_id = draw_session.id
    active = wizard.start_new_session(session, organizer)
    active_id = active.id

    assert wizard.delete_session(session, organizer, saved_id) is None
    assert organizer.active_session_id == active_id
    assert wizard.list_history(session, organizer) == []


def test_message_template_defaults_and_resets():
    session = create_session()
    organizer = create_organizer(session)
    draw_session, _ = ready_session(session, organizer)
    assert wizard.message_template(draw_session) == DEFAULT_TEMPLATE

    wizard.set_message_template(session, draw_session, "Hi {giver}, buy for {receiver}")
    assert wizard.message_template(draw_session) == "Hi {giver}, buy for {receiver}"

    wizard.set_message_template(session, draw_session, None)
    assert wizard.message_template(draw_session) == DEFAULT_TEMPLATE

    context = wizard.message_context(draw_session)
    assert context.event_name == "Family Christmas"
    assert context.budget == "30 EUR"
