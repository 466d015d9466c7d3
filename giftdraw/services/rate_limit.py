from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional, Tuple


class ActionThrottle:
    """Sliding-window limit of ``max_calls`` per ``period_seconds`` for each (user, action)."""

    def __init__(
        self,
        max_calls: int,
        period_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_calls = max_calls
        self.period_seconds = period_seconds
        self._clock = clock
        self._hits: Dict[Tuple[int, str], Deque[float]] = defaultdict(deque)

    def hit(self, user_id: int, action: str) -> Optional[float]:
        """Record a call. Returns ``None`` when allowed, else seconds until the next free slot."""
        now = self._clock()
        window = self._hits[(user_id, action)]
        while window and now - window[0] >= self.period_seconds:
            window.popleft()
        if len(window) >= self.max_calls:
            return max(self.period_seconds - (now - window[0]), 0.0)
        window.append(now)
        return None


throttle = ActionThrottle(max_calls=5, period_seconds=10)
