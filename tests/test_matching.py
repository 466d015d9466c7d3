import random

import pytest

from giftdraw.services.matching import (
    DEFAULT_ATTEMPT_BUDGET,
    Infeasible,
    InsufficientParticipants,
    MatchError,
    Participant,
    match,
)


class ScriptedRandom:
    """Applies the given index orders, one per shuffle call."""

    def __init__(self, *orders):
        self.orders = list(orders)
        self.calls = 0

    def shuffle(self, items):
        self.calls += 1
        order = self.orders.pop(0)
        items[:] = [items[index] for index in order]


class CountingRandom(random.Random):
    def __init__(self, seed=None):
        super().__init__(seed)
        self.calls = 0

    def shuffle(self, items):
        self.calls += 1
        super().shuffle(items)


class ForbiddenRandom:
    def shuffle(self, items):
        raise AssertionError("shuffle must not be called")


def people(*ids, exclusions=None):
    exclusions = exclusions or {}
    return [Participant(id=pid, exclusions=frozenset(exclusions.get(pid, ()))) for pid in ids]


def assert_valid(assignments, participants):
    ids = {participant.id for participant in participants}
    by_id = {participant.id: participant for participant in participants}
    assert set(assignments) == ids
    assert sorted(assignments.values()) == sorted(ids)
    for giver, receiver in assignments.items():
        assert giver != receiver
        assert receiver not in by_id[giver].exclusions


def test_three_people_without_exclusions():
    participants = people("A", "B", "C")
    assignments = match(participants, 100)
    assert_valid(assignments, participants)


def test_result_is_a_bijection_respecting_exclusions():
    participants = people(
        "A", "B", "C", "D", "E", "F",
        exclusions={"A": {"B"}, "B": {"A"}, "C": {"D", "E"}, "F": {"A"}},
    )
    for seed in range(200):
        assert_valid(match(participants, seed=seed), participants)


def test_couples_never_draw_each_other():
    participants = people("A", "B", "C", "D", exclusions={"A": {"B"}, "B": {"A"}, "C": {"D"}, "D": {"C"}})
    for seed in range(200):
        assignments = match(participants, seed=seed)
        assert assignments["A"] in {"C", "D"}
        assert assignments["C"] in {"A", "B"}


def test_self_pair_rejects_candidate_and_next_attempt_is_used():
    participants = people("A", "B", "C")
    rng = ScriptedRandom([0, 1, 2], [1, 2, 0])
    assignments = match(participants, 5, rng=rng)
    assert assignments == {"A": "B", "B": "C", "C": "A"}
    assert rng.calls == 2


def test_excluded_pair_rejects_candidate():
    participants = people("A", "B", "C", exclusions={"A": {"B"}})
    rng = ScriptedRandom([1, 2, 0], [2, 0, 1])
    assignments = match(participants, 5, rng=rng)
    assert assignments == {"A": "C", "B": "A", "C": "B"}
    assert rng.calls == 2


def test_first_valid_candidate_stops_the_search():
    participants = people("A", "B", "C")
    rng = ScriptedRandom([2, 0, 1], [1, 2, 0])
    match(participants, 5, rng=rng)
    assert rng.calls == 1
    assert len(rng.orders) == 1


def test_mutual_exclusion_of_two_is_infeasible():
    participants = people("A", "B", exclusions={"A": {"B"}, "B": {"A"}})
    with pytest.raises(Infeasible):
        match(participants, 100, seed=7)


def test_complete_exclusion_graph_exhausts_budget():
    ids = ["A", "B", "C", "D"]
    participants = people(*ids, exclusions={pid: set(ids) - {pid} for pid in ids})
    rng = CountingRandom(3)
    with pytest.raises(Infeasible):
        match(participants, 25, rng=rng)
    assert rng.calls == 25


def test_default_budget_is_one_hundred_attempts():
    participants = people("A", "B", exclusions={"A": {"B"}})
    rng = CountingRandom(1)
    with pytest.raises(Infeasible):
        match(participants, rng=rng)
    assert rng.calls == DEFAULT_ATTEMPT_BUDGET == 100


@pytest.mark.parametrize("count", [0, 1])
def test_too_few_participants_fail_before_shuffling(count):
    participants = people(*["A", "B"][:count])
    with pytest.raises(InsufficientParticipants):
        match(participants, rng=ForbiddenRandom())


def test_errors_share_a_base_class():
    assert issubclass(Infeasible, MatchError)
    assert issubclass(InsufficientParticipants, MatchError)


def test_input_is_not_mutated():
    participants = people("A", "B", "C", "D", exclusions={"A": {"B"}, "C": {"A"}})
    snapshot = list(participants)
    exclusions = [set(participant.exclusions) for participant in participants]
    match(participants, seed=11)
    assert participants == snapshot
    assert [set(participant.exclusions) for participant in participants] == exclusions


def test_two_people_can_only_swap():
    assignments = match(people(10, 20), seed=1)
    assert assignments == {10: 20, 20: 10}


def test_same_seed_same_assignment():
    participants = people(1, 2, 3, 4, 5)
    assert match(participants, seed=123) == match(participants, seed=123)


@pytest.mark.parametrize("size", range(3, 11))
def test_no_exclusions_always_succeeds(size):
    participants = people(*range(size))
    rng = random.Random(size)
    for _ in range(1000):
        assert_valid(match(participants, rng=rng), participants)


def test_zero_budget_makes_no_attempt():
    with pytest.raises(Infeasible):
        match(people("A", "B", "C"), 0, rng=ForbiddenRandom())


def test_negative_budget_is_rejected():
    with pytest.raises(ValueError):
        match(people("A", "B", "C"), -1)


def test_participant_cannot_exclude_itself():
    with pytest.raises(ValueError):
        Participant(id="A", exclusions=frozenset({"A"}))
