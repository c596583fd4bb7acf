"""Shared fakes for driving the layout pipeline without a real event loop."""

from __future__ import annotations

import heapq
import itertools
from typing import Any, Callable, List, Optional

import pytest

from cloudlayout_core import PlacedWord
from cloudlayout_engine import EngineConfig


class ManualHandle:
    def __init__(self, when: float, callback: Callable[..., None], args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualLoop:
    """Minimal stand-in for an asyncio loop with a clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[tuple] = []
        self._counter = itertools.count()

    def time(self) -> float:
        return self.now

    def call_soon(self, callback: Callable[..., None], *args: Any) -> ManualHandle:
        return self.call_later(0, callback, *args)

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def advance(self, seconds: float) -> None:
        deadline = self.now + seconds
        while self._queue and self._queue[0][0] <= deadline:
            when, _, handle = heapq.heappop(self._queue)
            self.now = max(self.now, when)
            if not handle.cancelled():
                handle.callback(*handle.args)
        self.now = deadline

    def run_ready(self) -> None:
        self.advance(0)

    def step(self) -> None:
        """Run only the callbacks that are already due, not the ones they schedule."""
        due = []
        while self._queue and self._queue[0][0] <= self.now:
            due.append(heapq.heappop(self._queue)[2])
        for handle in due:
            if not handle.cancelled():
                handle.callback(*handle.args)


class ScriptedHandle:
    def __init__(self, engine: "ScriptedEngine", config: EngineConfig) -> None:
        self.engine = engine
        self.config = config
        self.stop_calls = 0

    def stop(self) -> None:
        self.stop_calls += 1
        self.engine.events.append(("stop", self.engine.handles.index(self)))

    def finish(self, placed_count: Optional[int] = None) -> List[PlacedWord]:
        words = self.config.words
        count = len(words) if placed_count is None else placed_count
        placed = [PlacedWord.at(word, float(index), 0.0) for index, word in enumerate(words[:count])]
        self.config.on_done(placed)
        return placed


class ScriptedEngine:
    """Layout engine whose completions are triggered by the test."""

    def __init__(self, auto_place: Optional[Callable[[int, EngineConfig], int]] = None) -> None:
        self.handles: List[ScriptedHandle] = []
        self.events: List[tuple] = []
        self.auto_place = auto_place

    @property
    def configs(self) -> List[EngineConfig]:
        return [handle.config for handle in self.handles]

    @property
    def current(self) -> ScriptedHandle:
        return self.handles[-1]

    def start(self, config: EngineConfig) -> ScriptedHandle:
        handle = ScriptedHandle(self, config)
        self.handles.append(handle)
        self.events.append(("start", len(self.handles) - 1))
        if self.auto_place is not None:
            handle.finish(self.auto_place(len(self.handles), config))
        return handle


class RecordingRenderer:
    def __init__(self) -> None:
        self.calls: List[dict] = []

    def __call__(self, target, words, options, callbacks, rng) -> None:
        self.calls.append({"target": target, "words": list(words), "options": options, "callbacks": callbacks, "rng": rng})


@pytest.fixture
def manual_loop() -> ManualLoop:
    return ManualLoop()


@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()
