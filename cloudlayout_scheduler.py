"""Debounced, cancellable scheduling of the word cloud layout pipeline."""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from cloudlayout_core import (
    DEFAULT_CALLBACKS,
    DEFAULT_MAX_WORDS,
    DEFAULT_OPTIONS,
    Callbacks,
    Options,
    PlacedWord,
    Word,
    assign_rotations,
    make_random,
    make_rotation_selector,
    select_words,
)
from cloudlayout_engine import LayoutEngine, SpiralLayoutEngine
from cloudlayout_retry import LayoutRetryController, LayoutState

logger = logging.getLogger(__name__)

Renderer = Callable[[Any, List[PlacedWord], Options, Callbacks, random.Random], None]


@dataclass(frozen=True)
class LayoutInputs:
    words: Sequence[Word]
    size: Tuple[float, float]
    target: Any = None
    max_words: int = DEFAULT_MAX_WORDS
    options: Options = DEFAULT_OPTIONS
    callbacks: Callbacks = DEFAULT_CALLBACKS


@dataclass
class LayoutResult:
    words: List[PlacedWord]
    requested: int
    attempts: int
    font_sizes: Tuple[float, float]
    state: LayoutState
    target: Any = None

    @property
    def unplaced(self) -> int:
        return self.requested - len(self.words)


def start_pipeline(inputs: LayoutInputs, engine: LayoutEngine, renderer: Renderer) -> LayoutRetryController:
    options = inputs.options
    rng = make_random(options.deterministic)
    selected = select_words(inputs.words, inputs.max_words)
    rotations = assign_rotations(selected, make_rotation_selector(options, rng))

    def render(placed: List[PlacedWord]) -> None:
        renderer(inputs.target, placed, options, inputs.callbacks, rng)

    controller = LayoutRetryController(
        engine,
        selected,
        rotations,
        options=options,
        size=inputs.size,
        rng=rng,
        on_accept=render,
    )
    controller.start()
    return controller


class RenderScheduler:
    """Coalesces input changes and runs the pipeline once things go quiet.

    Only the most recent inputs passed to :meth:`schedule` within the
    debounce window are used. Starting a run cancels the previous one.
    """

    def __init__(
        self,
        engine: LayoutEngine,
        renderer: Renderer,
        *,
        debounce_ms: float = DEFAULT_OPTIONS.render_debounce,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.engine = engine
        self.renderer = renderer
        self.debounce_ms = debounce_ms
        self._loop = loop
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[LayoutInputs] = None
        self._active: Optional[LayoutRetryController] = None

    @classmethod
    def from_options(
        cls,
        engine: LayoutEngine,
        renderer: Renderer,
        options: Options = DEFAULT_OPTIONS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> "RenderScheduler":
        return cls(engine, renderer, debounce_ms=options.render_debounce, loop=loop)

    @property
    def pending(self) -> Optional[LayoutInputs]:
        return self._pending

    @property
    def active(self) -> Optional[LayoutRetryController]:
        return self._active

    def schedule(self, inputs: LayoutInputs) -> Callable[[], None]:
        loop = self._loop or asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._pending = inputs
        self._timer = loop.call_later(self.debounce_ms / 1000.0, self._fire)
        return self.cancel

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Cancelled pending layout")
        self._pending = None
        active, self._active = self._active, None
        if active is not None:
            active.cancel()

    def _fire(self) -> None:
        self._timer = None
        inputs, self._pending = self._pending, None
        if inputs is None:
            return
        if self._active is not None:
            self._active.cancel()
        logger.debug("Running layout for %d words", len(inputs.words))
        self._active = start_pipeline(inputs, self.engine, self.renderer)


async def compute_layout(
    words: Sequence[Word],
    *,
    size: Tuple[float, float],
    max_words: int = DEFAULT_MAX_WORDS,
    options: Options = DEFAULT_OPTIONS,
    callbacks: Callbacks = DEFAULT_CALLBACKS,
    engine: Optional[LayoutEngine] = None,
    renderer: Optional[Renderer] = None,
    target: Any = None,
) -> LayoutResult:
    loop = asyncio.get_running_loop()
    finished: asyncio.Future[List[PlacedWord]] = loop.create_future()

    def deliver(render_target: Any, placed: List[PlacedWord], opts: Options, cbs: Callbacks, rng: random.Random) -> None:
        if finished.done():
            return
        try:
            if renderer is not None:
                renderer(render_target, placed, opts, cbs, rng)
        except Exception as exc:
            finished.set_exception(exc)
            return
        finished.set_result(placed)

    inputs = LayoutInputs(words=words, size=size, target=target, max_words=max_words, options=options, callbacks=callbacks)
    controller = start_pipeline(inputs, engine or SpiralLayoutEngine(loop), deliver)
    try:
        placed = await finished
    finally:
        controller.cancel()

    attempt_state = controller.attempt_state
    return LayoutResult(
        words=placed,
        requested=len(controller.words),
        attempts=attempt_state.attempt if attempt_state else 0,
        font_sizes=attempt_state.font_sizes if attempt_state else options.font_sizes,
        state=controller.state,
        target=target,
    )
