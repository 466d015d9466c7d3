from giftdraw.services.matching import Infeasible, InsufficientParticipants, MatchError, match
from giftdraw.services.notifications import DispatchError
from giftdraw.services.wizard import WizardError

__all__ = [
    "DispatchError",
    "Infeasible",
    "InsufficientParticipants",
    "MatchError",
    "WizardError",
    "match",
]
