"""Retry loop that shrinks font sizes until the layout engine places every word."""
from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from cloudlayout_core import Options, PlacedWord, Word, format_words
from cloudlayout_engine import EngineConfig, LayoutEngine, LayoutHandle

logger = logging.getLogger(__name__)

MAX_LAYOUT_ATTEMPTS = 10
SHRINK_FACTOR = 0.95
MIN_FONT_SIZE = 1.0


class LayoutState(enum.Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({LayoutState.ACCEPTED, LayoutState.EXHAUSTED, LayoutState.CANCELLED})


@dataclass(frozen=True)
class AttemptState:
    font_sizes: Tuple[float, float]
    attempt: int


def shrink_font_sizes(font_sizes: Sequence[float]) -> Tuple[float, float]:
    min_size = max(font_sizes[0] * SHRINK_FACTOR, MIN_FONT_SIZE)
    max_size = max(font_sizes[1] * SHRINK_FACTOR, min_size)
    return min_size, max_size


def unplaced_warning(missing: int, attempts: int) -> str:
    return (
        f"Unable to layout {missing} word(s) after {attempts} attempts.  Consider: "
        "(1) Increasing the container/component size. "
        "(2) Lowering the max font size. "
        "(3) Limiting the rotation angles."
    )


class LayoutRetryController:
    """Drives the layout engine for one selection of words.

    Each attempt formats the words with the current font-size bounds and
    hands them to the engine. A complete placement is accepted; otherwise
    the bounds shrink by ``SHRINK_FACTOR`` and the engine runs again, up to
    ``MAX_LAYOUT_ATTEMPTS`` times. The last attempt is accepted whatever it
    placed, with a single warning. ``on_accept`` receives the placed words
    exactly once unless the controller is cancelled first.
    """

    def __init__(
        self,
        engine: LayoutEngine,
        words: Sequence[Word],
        rotations: Sequence[float],
        *,
        options: Options,
        size: Tuple[float, float],
        rng: random.Random,
        on_accept: Callable[[List[PlacedWord]], None],
        max_attempts: int = MAX_LAYOUT_ATTEMPTS,
    ) -> None:
        self.engine = engine
        self.words = list(words)
        self.rotations = list(rotations)
        self.options = options
        self.size = size
        self.rng = rng
        self.on_accept = on_accept
        self.max_attempts = max_attempts
        self.state = LayoutState.IDLE
        self.attempt_state: Optional[AttemptState] = None
        self.placed: List[PlacedWord] = []
        self._handle: Optional[LayoutHandle] = None
        self._starting = False
        self._early: Optional[List[PlacedWord]] = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def start(self) -> None:
        if self.state is not LayoutState.IDLE:
            raise RuntimeError(f"Layout already started (state={self.state.value})")
        self._draw(self.options.font_sizes, 1)

    def cancel(self) -> None:
        if self.done:
            return
        self.state = LayoutState.CANCELLED
        self._release()
        logger.debug("Layout cancelled during attempt %s", self.attempt_state and self.attempt_state.attempt)

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.stop()

    def _draw(self, font_sizes: Optional[Sequence[float]], attempt: int) -> None:
        self._release()
        while font_sizes is not None:
            current = AttemptState(font_sizes=(float(font_sizes[0]), float(font_sizes[1])), attempt=attempt)
            self.attempt_state = current
            self.state = LayoutState.ATTEMPTING
            logger.debug("Layout attempt %d with font sizes %.2f-%.2f", attempt, *current.font_sizes)

            formatted = format_words(self.words, self.rotations, current.font_sizes, self.options)
            self._starting = True
            try:
                handle = self.engine.start(
                    EngineConfig(
                        random=self.rng,
                        spiral=self.options.spiral,
                        size=self.size,
                        batch_size=self.options.batch_size,
                        words=formatted,
                        on_done=lambda computed, current=current: self._on_done(current, computed),
                    )
                )
            finally:
                self._starting = False

            early, self._early = self._early, None
            if self.attempt_state is not current or self.state is not LayoutState.ATTEMPTING:
                handle.stop()
                return
            if early is None:
                self._handle = handle
                return

            # The engine finished inside start(); its handle is stopped before
            # the result is settled so the next attempt never overlaps it.
            handle.stop()
            font_sizes = self._settle(current, early)
            attempt += 1

    def _on_done(self, attempt_state: AttemptState, computed: List[PlacedWord]) -> None:
        if self.state is not LayoutState.ATTEMPTING or attempt_state is not self.attempt_state:
            return
        if self._starting:
            self._early = list(computed)
            return
        shrunk = self._settle(attempt_state, computed)
        if shrunk is not None:
            self._draw(shrunk, attempt_state.attempt + 1)

    def _settle(self, attempt_state: AttemptState, computed: List[PlacedWord]) -> Optional[Tuple[float, float]]:
        """Accept the attempt or return the font sizes for the next one."""
        self.placed = list(computed)
        attempt = attempt_state.attempt
        if len(computed) == len(self.words):
            self._accept(LayoutState.ACCEPTED)
            return None
        if attempt >= self.max_attempts:
            logger.warning(unplaced_warning(len(self.words) - len(computed), attempt))
            self._accept(LayoutState.EXHAUSTED)
            return None

        self.state = LayoutState.RETRYING
        shrunk = shrink_font_sizes(attempt_state.font_sizes)
        logger.debug("Placed %d of %d words; shrinking fonts to %.2f-%.2f", len(computed), len(self.words), *shrunk)
        return shrunk

    def _accept(self, state: LayoutState) -> None:
        self.state = state
        self._release()
        self.on_accept(list(self.placed))
