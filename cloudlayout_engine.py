"""Layout engine boundary and a reference spiral packing engine."""
from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from cloudlayout_core import FormattedWord, PlacedWord, Spiral

logger = logging.getLogger(__name__)

SpiralFn = Callable[[int], Tuple[float, float]]


@dataclass(frozen=True)
class EngineConfig:
    random: random.Random
    spiral: Spiral
    size: Tuple[float, float]
    batch_size: int
    words: Sequence[FormattedWord]
    on_done: Callable[[List[PlacedWord]], None]


class LayoutHandle(Protocol):
    def stop(self) -> None:
        ...


class LayoutEngine(Protocol):
    def start(self, config: EngineConfig) -> LayoutHandle:
        ...


def archimedean_spiral(size: Tuple[float, float]) -> SpiralFn:
    ratio = size[0] / size[1]

    def step(t: int) -> Tuple[float, float]:
        angle = t * 0.1
        return ratio * angle * math.cos(angle), angle * math.sin(angle)

    return step


def rectangular_spiral(size: Tuple[float, float]) -> SpiralFn:
    dy = 4.0
    dx = dy * size[0] / size[1]
    position = [0.0, 0.0]

    def step(t: int) -> Tuple[float, float]:
        sign = -1 if t < 0 else 1
        leg = int(math.sqrt(1 + 4 * sign * t) - sign) & 3
        if leg == 0:
            position[0] += dx
        elif leg == 1:
            position[1] += dy
        elif leg == 2:
            position[0] -= dx
        else:
            position[1] -= dy
        return position[0], position[1]

    return step


SPIRALS = {
    Spiral.ARCHIMEDEAN: archimedean_spiral,
    Spiral.RECTANGULAR: rectangular_spiral,
}


def word_box(word: FormattedWord, char_width: float = 0.6) -> Tuple[float, float]:
    """Approximate the axis-aligned extent of a rotated word.

    Text width is estimated from the character count; no font metrics are
    consulted.
    """
    width = max(len(word.text), 1) * word.size * char_width + 2 * word.padding
    height = word.size + 2 * word.padding
    theta = math.radians(word.rotate)
    cos, sin = abs(math.cos(theta)), abs(math.sin(theta))
    return width * cos + height * sin, width * sin + height * cos


def overlaps(box: Tuple[float, float, float, float], placed: np.ndarray) -> bool:
    if placed.size == 0:
        return False
    x, y, w, h = box
    hits = (x < placed[:, 0] + placed[:, 2]) & (x + w > placed[:, 0]) & (y < placed[:, 1] + placed[:, 3]) & (y + h > placed[:, 1])
    return bool(hits.any())


class SpiralLayout:
    """One placement run; processes ``batch_size`` words per event-loop tick."""

    def __init__(self, config: EngineConfig, loop: asyncio.AbstractEventLoop, char_width: float) -> None:
        self.config = config
        self._loop = loop
        self._char_width = char_width
        self._boxes: List[Tuple[float, float, float, float]] = []
        self._placed: List[PlacedWord] = []
        self._index = 0
        self._timer: Optional[asyncio.Handle] = None
        self.stopped = False

    def start(self) -> "SpiralLayout":
        self._timer = self._loop.call_soon(self._tick)
        return self

    def stop(self) -> None:
        self.stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self) -> None:
        self._timer = None
        if self.stopped:
            return
        words = self.config.words
        end = min(self._index + max(self.config.batch_size, 1), len(words))
        while self._index < end:
            placed = self._place(words[self._index])
            if placed is not None:
                self._placed.append(placed)
            self._index += 1
        if self._index < len(words):
            self._timer = self._loop.call_soon(self._tick)
            return
        self.stopped = True
        logger.debug("Placed %d of %d words", len(self._placed), len(words))
        self.config.on_done(list(self._placed))

    def _place(self, word: FormattedWord) -> Optional[PlacedWord]:
        width, height = self.config.size
        box_w, box_h = word_box(word, self._char_width)
        if box_w > width or box_h > height:
            return None

        rng = self.config.random
        start_x = (rng.random() - 0.5) * width / 2
        start_y = (rng.random() - 0.5) * height / 2
        spiral = SPIRALS[self.config.spiral](self.config.size)
        boxes = np.asarray(self._boxes, dtype=float).reshape(-1, 4)
        max_delta = math.hypot(width, height)
        direction = 1 if rng.random() < 0.5 else -1
        t = -direction

        while True:
            t += direction
            dx, dy = spiral(t)
            if min(abs(dx), abs(dy)) >= max_delta:
                return None
            cx, cy = start_x + dx, start_y + dy
            left, top = cx - box_w / 2, cy - box_h / 2
            if left < -width / 2 or top < -height / 2 or left + box_w > width / 2 or top + box_h > height / 2:
                continue
            box = (left, top, box_w, box_h)
            if overlaps(box, boxes):
                continue
            self._boxes.append(box)
            return PlacedWord.at(word, cx, cy)


class SpiralLayoutEngine:
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, char_width: float = 0.6) -> None:
        self.loop = loop
        self.char_width = char_width

    def start(self, config: EngineConfig) -> SpiralLayout:
        loop = self.loop or asyncio.get_running_loop()
        return SpiralLayout(config, loop, self.char_width).start()
