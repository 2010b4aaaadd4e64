"""
Upload progress state machine.

States:
    IDLE -> STARTING -> TRANSFERRING -> [VERIFYING] -> SUCCEEDED
                                  \\-> FAILED (from any non-terminal state)

Percentages never decrease within an attempt except on failure, which
resets to 0. 100 is only reported on confirmed success.

Transports that expose byte counts report real progress through
report_bytes(); otherwise EstimatedProgress advances the bar on a timer
up to a ceiling of 90.
"""
import asyncio
import enum
import logging
import random
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ProgressListener = Callable[[int, "ProgressState"], None]


class ProgressState(str, enum.Enum):
    """Upload progress state."""
    IDLE = "idle"
    STARTING = "starting"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS = {
    ProgressState.IDLE: {ProgressState.STARTING, ProgressState.FAILED},
    ProgressState.STARTING: {
        ProgressState.TRANSFERRING, ProgressState.VERIFYING, ProgressState.SUCCEEDED, ProgressState.FAILED,
    },
    ProgressState.TRANSFERRING: {ProgressState.VERIFYING, ProgressState.SUCCEEDED, ProgressState.FAILED},
    ProgressState.VERIFYING: {ProgressState.SUCCEEDED, ProgressState.FAILED},
    ProgressState.SUCCEEDED: set(),
    ProgressState.FAILED: set(),
}

TERMINAL_STATES = {ProgressState.SUCCEEDED, ProgressState.FAILED}


class UploadProgress:
    """
    Progress of a single upload.

    Each upload owns its instance; the listener (if any) is called on every
    change with (percent, state).
    """

    INITIAL = 5
    CEILING = 90

    def __init__(self, listener: Optional[ProgressListener] = None) -> None:
        self._listener = listener
        self.percent = 0
        self.state = ProgressState.IDLE
        self.has_real_signal = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _transition(self, state: ProgressState) -> None:
        if state == self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid progress transition: {self.state.value} -> {state.value}")
        self.state = state

    def _emit(self) -> None:
        if self._listener is None:
            return
        try:
            self._listener(self.percent, self.state)
        except Exception as e:
            logger.warning(f"Progress listener failed: {e}")

    def start(self) -> None:
        self._transition(ProgressState.STARTING)
        self.percent = self.INITIAL
        self._emit()

    def report(self, percent: float) -> None:
        """Report transfer progress. Values are clamped and never go backwards."""
        if self.is_terminal or self.state == ProgressState.VERIFYING:
            return
        self._transition(ProgressState.TRANSFERRING)
        value = int(min(max(percent, 0), self.CEILING))
        if value > self.percent:
            self.percent = value
            self._emit()

    def report_bytes(self, sent: int, total: int) -> None:
        """Report real transfer progress from the transport."""
        self.has_real_signal = True
        if total <= 0:
            return
        self.report(self.INITIAL + (self.CEILING - self.INITIAL) * sent / total)

    def release_real_signal(self) -> None:
        """Hand the bar back to the timer estimator, e.g. before a fallback transport."""
        self.has_real_signal = False

    def verifying(self) -> None:
        if self.is_terminal:
            return
        self._transition(ProgressState.VERIFYING)
        self.percent = max(self.percent, self.CEILING)
        self._emit()

    def succeed(self) -> None:
        self._transition(ProgressState.SUCCEEDED)
        self.percent = 100
        self._emit()

    def fail(self) -> None:
        if self.state == ProgressState.FAILED:
            return
        self._transition(ProgressState.FAILED)
        self.percent = 0
        self._emit()


class EstimatedProgress:
    """
    Timer-driven progress for transports without byte counts.

    Every `interval` seconds the bar advances by a random step of up to
    `max_step` percent, capped at the ceiling. Ticking pauses while the
    transport reports real byte progress and resumes once that signal is
    released.

    Usage:
        async with EstimatedProgress(progress, interval=0.3):
            await transfer()
    """

    def __init__(
        self,
        progress: UploadProgress,
        interval: float = 0.3,
        max_step: float = 5,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._progress = progress
        self._interval = interval
        self._max_step = max_step
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None
        self._estimate = float(progress.percent)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self._progress.is_terminal or self._progress.state == ProgressState.VERIFYING:
                return
            if self._progress.has_real_signal:
                continue
            self._estimate = min(
                max(self._estimate, self._progress.percent) + self._rng.random() * self._max_step,
                UploadProgress.CEILING,
            )
            self._progress.report(self._estimate)

    async def __aenter__(self) -> "EstimatedProgress":
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
