"""Core data model and pure layout stages for word cloud generation."""
from __future__ import annotations

import enum
import logging
import math
import random
import re
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

DETERMINISTIC_SEED = "deterministic"
DEFAULT_MAX_WORDS = 100
DEFAULT_MIN_SIZE: Tuple[int, int] = (300, 300)

# d3 schemeCategory10
DEFAULT_COLORS: Tuple[str, ...] = (
    "#1f77b4","#ff7f0e","#2ca02c","#d62728","#9467bd",
    "#8c564b","#e377c2","#7f7f7f","#bcbd22","#17becf",
)

THEME_PRESETS: Mapping[str, Sequence[str]] = {
    "category10": DEFAULT_COLORS,
    "muted": (
        "#0f172a","#334155","#475569","#64748b","#94a3b8",
        "#0b3d3a","#116a63","#2a8c82","#4a5b3f","#6b7f5a",
    ),
    "forest": (
        "#102418","#1f3f2b","#325c3b","#4a7d4d","#6a9f5f","#8fc172",
    ),
    "sunrise": (
        "#1c1a4a","#3b3170","#6d3f9f","#a54bb7","#d855a8","#f26a7f","#ffa86e",
    ),
    "ocean": (
        "#0b1f3a","#123c69","#1c5a8f","#2877b5","#3495db","#3fb3ff",
    ),
}


class OptionsError(ValueError):
    """Raised for configuration values the layout pipeline cannot use."""


class Scale(str, enum.Enum):
    LINEAR = "linear"
    SQRT = "sqrt"
    LOG = "log"


class Spiral(str, enum.Enum):
    ARCHIMEDEAN = "archimedean"
    RECTANGULAR = "rectangular"


RotationStrategy = Callable[[int, Tuple[float, float], random.Random], float]


@dataclass(frozen=True)
class Word:
    text: str
    value: float
    extra: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "Word":
        extra = {key: value for key, value in data.items() if key not in ("text", "value")}
        return cls(text=str(data["text"]), value=float(data["value"]), extra=extra)  # type: ignore[arg-type]

    def to_dict(self) -> Dict[str, object]:
        return {**self.extra, "text": self.text, "value": self.value}


@dataclass(frozen=True)
class FormattedWord:
    """A word with the rendering attributes computed for one layout attempt."""

    text: str
    value: float
    padding: float
    rotate: float
    size: float
    font: str
    style: str
    weight: str
    extra: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = dict(self.extra)
        for item in fields(self):
            if item.name != "extra":
                payload[item.name] = getattr(self, item.name)
        return payload


@dataclass(frozen=True)
class PlacedWord(FormattedWord):
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def at(cls, word: FormattedWord, x: float, y: float) -> "PlacedWord":
        values = {item.name: getattr(word, item.name) for item in fields(FormattedWord)}
        return cls(x=x, y=y, **values)


def evenly_spaced_rotation(rotations: int, rotation_angles: Tuple[float, float], rng: random.Random) -> float:
    if rotations < 1:
        return 0.0
    low, high = rotation_angles
    if rotations == 1:
        angles = [low]
    else:
        angles = [low, high]
        increment = (high - low) / (rotations - 1)
        angle = low + increment
        while angle < high:
            angles.append(angle)
            angle += increment
    return float(choose(angles, rng))


def default_rotation(rng: random.Random) -> float:
    # Six steps of 30 degrees from -90 to 60; the range is intentionally not symmetric.
    return float((math.floor(rng.random() * 6) - 3) * 30)


def choose(items: Sequence[Any], rng: random.Random) -> Any:
    return items[math.floor(rng.random() * len(items))]


@dataclass(frozen=True)
class Options:
    """Configuration snapshot for one layout run."""

    colors: Tuple[str, ...] = DEFAULT_COLORS
    deterministic: bool = False
    enable_tooltip: bool = True
    font_family: str = "times new roman"
    font_sizes: Tuple[float, float] = (4.0, 32.0)
    font_style: str = "normal"
    font_weight: str = "normal"
    padding: float = 1.0
    rotations: Optional[int] = None
    rotation_angles: Tuple[float, float] = (-90.0, 90.0)
    rotate_fn: RotationStrategy = evenly_spaced_rotation
    scale: Scale = Scale.SQRT
    spiral: Spiral = Spiral.RECTANGULAR
    transition_duration: int = 600
    render_debounce: int = 100
    batch_size: int = 200
    svg_attributes: Mapping[str, str] = field(default_factory=dict)
    text_attributes: Mapping[str, str] = field(default_factory=dict)


def default_word_tooltip(word: FormattedWord) -> str:
    value = word.value
    if math.isfinite(value) and float(value).is_integer():
        value = int(value)
    return f"{word.text} ({value})"


@dataclass(frozen=True)
class Callbacks:
    get_word_tooltip: Callable[[FormattedWord], str] = default_word_tooltip
    get_word_color: Optional[Callable[[FormattedWord], str]] = None


DEFAULT_OPTIONS = Options()
DEFAULT_CALLBACKS = Callbacks()

_OPTION_NAMES = {item.name for item in fields(Options)}
_CALLBACK_NAMES = {item.name for item in fields(Callbacks)}


def snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _pair(value: object) -> Tuple[float, float]:
    try:
        low, high = value  # type: ignore[misc]
        return float(low), float(high)
    except (TypeError, ValueError) as exc:
        raise OptionsError(f"Expected a [min, max] pair, got {value!r}") from exc


def _coerce_option(name: str, value: object) -> object:
    if name in ("font_sizes", "rotation_angles"):
        return _pair(value)
    if name == "colors":
        if isinstance(value, str):
            return tuple(colour.strip() for colour in value.split(",") if colour.strip())
        return tuple(str(colour) for colour in value)  # type: ignore[union-attr]
    if name == "scale":
        try:
            return Scale(str(getattr(value, "value", value)).lower())
        except ValueError as exc:
            raise OptionsError(f"Unknown scale: {value!r}") from exc
    if name == "spiral":
        try:
            return Spiral(str(getattr(value, "value", value)).lower())
        except ValueError as exc:
            raise OptionsError(f"Unknown spiral: {value!r}") from exc
    if name in ("deterministic", "enable_tooltip"):
        return bool(value)
    if name in ("padding",):
        return float(value)  # type: ignore[arg-type]
    if name in ("rotations", "transition_duration", "render_debounce", "batch_size"):
        return int(value)  # type: ignore[arg-type]
    if name in ("svg_attributes", "text_attributes"):
        return {str(key): str(item) for key, item in dict(value).items()}  # type: ignore[call-overload]
    return value


def _collect_overrides(names: Iterable[str], overrides: Optional[Mapping[str, Any]], extra: Mapping[str, Any]) -> Dict[str, Any]:
    known = set(names)
    collected: Dict[str, Any] = {}
    for source in (overrides or {}, extra):
        for raw_key, value in source.items():
            key = snake_case(str(raw_key))
            if key not in known:
                logger.debug("Ignoring unknown setting %r", raw_key)
                continue
            if value is None:
                continue
            collected[key] = value
    return collected


def merge_options(overrides: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Options:
    collected = _collect_overrides(_OPTION_NAMES, overrides, kwargs)
    coerced: Dict[str, object] = {}
    for name, value in collected.items():
        try:
            coerced[name] = _coerce_option(name, value)
        except OptionsError:
            raise
        except (TypeError, ValueError) as exc:
            raise OptionsError(f"Invalid value for {name}: {value!r}") from exc
    return replace(DEFAULT_OPTIONS, **coerced)


def merge_callbacks(overrides: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Callbacks:
    collected = _collect_overrides(_CALLBACK_NAMES, overrides, kwargs)
    return replace(DEFAULT_CALLBACKS, **collected)


def check_options(options: Options, callbacks: Callbacks = DEFAULT_CALLBACKS) -> Options:
    low, high = options.font_sizes
    if not (math.isfinite(low) and math.isfinite(high)):
        raise OptionsError(f"Font sizes must be finite, got {options.font_sizes}")
    if low <= 0 or high <= 0:
        raise OptionsError(f"Font sizes must be positive, got {options.font_sizes}")
    if low > high:
        raise OptionsError(f"Minimum font size {low} exceeds maximum {high}")
    if not math.isfinite(options.padding) or options.padding < 0:
        raise OptionsError(f"Padding must not be negative, got {options.padding}")
    if options.batch_size < 1:
        raise OptionsError(f"Batch size must be at least 1, got {options.batch_size}")
    if not options.colors and callbacks.get_word_color is None:
        raise OptionsError("At least one colour is required")
    return options


def parse_words(payload: object) -> List[Word]:
    if isinstance(payload, MappingABC):
        entries: Iterable[object] = ({"text": key, "value": value} for key, value in payload.items())
    elif isinstance(payload, (list, tuple)):
        entries = payload
    else:
        return []

    words: List[Word] = []
    for entry in entries:
        if not isinstance(entry, MappingABC):
            continue
        if "text" not in entry or "value" not in entry:
            continue
        try:
            word = Word.from_mapping(entry)
        except (TypeError, ValueError):
            continue
        if not word.text.strip() or not math.isfinite(word.value) or word.value < 0:
            continue
        words.append(word)
    return words


def make_random(deterministic: bool) -> random.Random:
    return random.Random(DETERMINISTIC_SEED) if deterministic else random.Random()


def resolve_size(
    size: Optional[Sequence[float]] = None,
    min_size: Sequence[float] = DEFAULT_MIN_SIZE,
    observed: Optional[Sequence[float]] = None,
) -> Tuple[float, float]:
    if size is not None:
        return float(size[0]), float(size[1])
    if observed is None:
        return float(min_size[0]), float(min_size[1])
    return max(float(min_size[0]), float(observed[0])), max(float(min_size[1]), float(observed[1]))


# ----- Word selection -----

def select_words(words: Sequence[Word], max_words: int) -> List[Word]:
    # sorted() is stable, so ties keep their input order.
    ranked = sorted(words, key=lambda word: word.value, reverse=True)
    return ranked[:max(max_words, 0)]


# ----- Font scale -----

_SCALE_TRANSFORMS: Mapping[Scale, Callable[[np.ndarray], np.ndarray]] = {
    Scale.LINEAR: lambda values: values,
    Scale.SQRT: np.sqrt,
    Scale.LOG: np.log1p,
}


def build_font_scale(values: Iterable[float], font_sizes: Sequence[float], scale: Scale = Scale.SQRT) -> Callable[[float], float]:
    min_size, max_size = float(font_sizes[0]), float(font_sizes[1])
    transform = _SCALE_TRANSFORMS.get(Scale(scale), _SCALE_TRANSFORMS[Scale.LINEAR])
    domain = transform(np.clip(np.asarray(list(values), dtype=float), 0.0, None))
    domain = domain[np.isfinite(domain)]

    if domain.size == 0 or float(domain.max() - domain.min()) <= 0.0:
        return lambda _value: max_size

    low, span = float(domain.min()), float(domain.max() - domain.min())

    def font_scale(value: float) -> float:
        point = float(transform(np.float64(max(float(value), 0.0))))
        size = min_size + (point - low) / span * (max_size - min_size)
        if math.isnan(size):
            return min_size
        return float(np.clip(size, min_size, max_size))

    return font_scale


# ----- Rotation -----

def make_rotation_selector(options: Options, rng: random.Random) -> Callable[[], float]:
    if options.rotations:
        rotations, angles, rotate_fn = options.rotations, options.rotation_angles, options.rotate_fn
        return lambda: float(rotate_fn(rotations, angles, rng))
    return lambda: default_rotation(rng)


def assign_rotations(words: Sequence[Word], selector: Callable[[], float]) -> List[float]:
    return [selector() for _ in words]


# ----- Formatting -----

def format_words(
    words: Sequence[Word],
    rotations: Sequence[float],
    font_sizes: Sequence[float],
    options: Options,
) -> List[FormattedWord]:
    font_scale = build_font_scale((word.value for word in words), font_sizes, options.scale)
    return [
        FormattedWord(
            text=word.text,
            value=word.value,
            padding=options.padding,
            rotate=rotation,
            size=font_scale(word.value),
            font=options.font_family,
            style=options.font_style,
            weight=options.font_weight,
            extra=word.extra,
        )
        for word, rotation in zip(words, rotations)
    ]
