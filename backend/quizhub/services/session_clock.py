import time
from typing import Callable, Optional

from .session_engine import ADVANCE_DELAY_SECONDS, QuizSessionEngine, SessionStatus

RUNNING_STATES = (SessionStatus.in_progress, SessionStatus.answer_locked)


class SessionClock:
    """Replays wall-clock time onto a :class:`QuizSessionEngine`.

    One repeating one-second tick plus a single pending "advance" deadline
    after each locked answer. ``sync`` applies every event that is due, oldest
    first, so the engine sees the same sequence an interval timer would have
    produced even when the caller only polls now and then.
    """

    def __init__(
        self,
        engine: QuizSessionEngine,
        advance_delay: float = ADVANCE_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if advance_delay <= 0:
            raise ValueError("advance_delay must be positive")
        self.engine = engine
        self.advance_delay = advance_delay
        self._clock = clock
        self._next_tick_at: Optional[float] = None
        self._advance_at: Optional[float] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._next_tick_at is not None and not self._stopped

    def start(self) -> None:
        if self._stopped or self.engine.status not in RUNNING_STATES:
            return
        self._next_tick_at = self._clock() + 1.0

    def stop(self) -> None:
        self._stopped = True
        self._next_tick_at = None
        self._advance_at = None

    def sync(self) -> int:
        """Apply due events; return how many were applied."""
        if not self.running:
            return 0
        now = self._clock()
        applied = 0
        while self.running:
            if self.engine.status not in RUNNING_STATES:
                self.stop()
                break
            due_at = self._next_tick_at
            is_advance = self._advance_at is not None and self._advance_at <= due_at
            if is_advance:
                due_at = self._advance_at
            if due_at > now:
                break
            if is_advance:
                self._advance_at = None
                self.engine.advance()
            else:
                self._next_tick_at += 1.0
                self.engine.tick()
                if self.engine.status == SessionStatus.answer_locked and self._advance_at is None:
                    self._advance_at = due_at + self.advance_delay
            applied += 1
        if self.engine.status not in RUNNING_STATES:
            self.stop()
        return applied

    def select_answer(self, option_id: str) -> bool:
        self.sync()
        if not self.running:
            return False
        accepted = self.engine.select_answer(option_id)
        if accepted:
            self._advance_at = self._clock() + self.advance_delay
        return accepted
