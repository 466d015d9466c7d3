from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Hashable, Optional, Sequence

DEFAULT_ATTEMPT_BUDGET = 100


class MatchError(RuntimeError):
    pass


class InsufficientParticipants(MatchError):
    pass


class Infeasible(MatchError):
    pass


@dataclass(frozen=True)
class Participant:
    """A draw entrant and the receivers it may not give to.

    Exclusions are directional: ``A.exclusions == {B}`` forbids A -> B only.
    Giving to oneself is always forbidden and is never stored here.
    """

    id: Hashable
    name: str = ""
    email: str = ""
    exclusions: FrozenSet[Hashable] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.id in self.exclusions:
            raise ValueError(f"Participant {self.id!r} cannot exclude itself.")


def is_allowed(giver: Participant, receiver: Participant) -> bool:
    return giver.id != receiver.id and receiver.id not in giver.exclusions


def match(
    participants: Sequence[Participant],
    attempt_budget: int = DEFAULT_ATTEMPT_BUDGET,
    *,
    seed: Optional[int] = None,
    rng=None,
) -> Dict[Hashable, Hashable]:
    """Draw a random giver -> receiver bijection respecting every exclusion.

    Each attempt shuffles a private copy of the participants and pairs it
    positionally with the original order; the first candidate with no
    self-pair and no excluded pair is returned. When every attempt is
    rejected ``Infeasible`` is raised, which only means nothing was found
    within ``attempt_budget`` tries; a budget of 0 makes no attempt at all.

    ``rng`` may be any object with a ``shuffle`` method; otherwise a
    ``random.Random(seed)`` is used.
    """
    if len(participants) < 2:
        raise InsufficientParticipants("At least 2 participants are required.")
    if attempt_budget < 0:
        raise ValueError("attempt_budget must not be negative.")

    rng = rng if rng is not None else random.Random(seed)
    givers = list(participants)

    for _ in range(attempt_budget):
        receivers = list(givers)
        rng.shuffle(receivers)
        if all(is_allowed(giver, receiver) for giver, receiver in zip(givers, receivers)):
            return {giver.id: receiver.id for giver, receiver in zip(givers, receivers)}

    raise Infeasible(
        f"No valid assignment found in {attempt_budget} attempts. Try again or relax the exclusions."
    )
