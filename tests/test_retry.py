"""Font-shrinking retry loop against a scripted layout engine."""

from __future__ import annotations

import logging
import random

import pytest

from cloudlayout_core import DEFAULT_OPTIONS, Word, merge_options
from cloudlayout_retry import (
    MAX_LAYOUT_ATTEMPTS,
    LayoutRetryController,
    LayoutState,
    shrink_font_sizes,
)
from tests.conftest import ScriptedEngine


def _controller(engine, words=None, options=DEFAULT_OPTIONS):
    words = words or [Word(text="a", value=10), Word(text="b", value=1)]
    accepted = []
    controller = LayoutRetryController(
        engine,
        words,
        [0.0] * len(words),
        options=options,
        size=(300.0, 300.0),
        rng=random.Random(0),
        on_accept=accepted.append,
    )
    return controller, accepted


def test_shrink_font_sizes() -> None:
    assert shrink_font_sizes((4, 32)) == pytest.approx((3.8, 30.4))
    assert shrink_font_sizes((1, 1)) == (1.0, 1.0)
    assert shrink_font_sizes((1.02, 1.01)) == (1.0, 1.0)


def test_shrink_sequence_is_non_increasing_and_floors_at_one() -> None:
    bounds = (3.0, 6.0)
    for _ in range(100):
        shrunk = shrink_font_sizes(bounds)
        assert shrunk[0] <= bounds[0] and shrunk[1] <= bounds[1]
        assert shrunk[0] >= 1 and shrunk[1] >= shrunk[0]
        bounds = shrunk
    assert bounds == (1.0, 1.0)


def test_complete_first_attempt_is_accepted(engine: ScriptedEngine) -> None:
    controller, accepted = _controller(engine)
    controller.start()
    assert controller.state is LayoutState.ATTEMPTING
    placed = engine.current.finish()
    assert accepted == [placed]
    assert controller.state is LayoutState.ACCEPTED
    assert len(engine.handles) == 1


def test_partial_attempt_stops_handle_and_retries_with_smaller_fonts(engine: ScriptedEngine) -> None:
    controller, accepted = _controller(engine)
    controller.start()
    first = engine.current
    first.finish(1)

    assert accepted == []
    assert first.stop_calls == 1
    assert len(engine.handles) == 2
    assert controller.attempt_state.attempt == 2
    assert controller.attempt_state.font_sizes == pytest.approx((3.8, 30.4))
    # The old handle is stopped before the next attempt starts.
    assert engine.events == [("start", 0), ("stop", 0), ("start", 1)]


def test_retries_reformat_sizes_but_keep_rotations(engine: ScriptedEngine) -> None:
    words = [Word(text="a", value=10), Word(text="b", value=1)]
    accepted = []
    controller = LayoutRetryController(
        engine,
        words,
        [30.0, -60.0],
        options=merge_options(scale="linear"),
        size=(100.0, 100.0),
        rng=random.Random(0),
        on_accept=accepted.append,
    )
    controller.start()
    engine.current.finish(0)
    first, second = engine.configs
    assert [word.rotate for word in first.words] == [word.rotate for word in second.words] == [30.0, -60.0]
    assert second.words[0].size == pytest.approx(first.words[0].size * 0.95)


def test_exhausted_attempts_warn_once_and_render_last_subset(engine: ScriptedEngine, caplog) -> None:
    controller, accepted = _controller(engine)
    caplog.set_level(logging.WARNING, logger="cloudlayout_retry")
    controller.start()
    for _ in range(MAX_LAYOUT_ATTEMPTS - 1):
        engine.current.finish(1)
    assert accepted == []
    last = engine.current.finish(1)

    assert len(engine.handles) == MAX_LAYOUT_ATTEMPTS
    assert controller.state is LayoutState.EXHAUSTED
    assert accepted == [last]
    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert len(warnings) == 1
    message = warnings[0].getMessage()
    assert "Unable to layout 1 word(s) after 10 attempts" in message
    assert "container/component size" in message
    assert "max font size" in message
    assert "rotation angles" in message


def test_attempt_bounds_never_increase(engine: ScriptedEngine) -> None:
    controller, _ = _controller(engine)
    controller.start()
    seen = []
    while not controller.done:
        seen.append(controller.attempt_state.font_sizes)
        engine.current.finish(0)
    assert len(seen) == MAX_LAYOUT_ATTEMPTS
    for previous, current in zip(seen, seen[1:]):
        assert current[0] <= previous[0] and current[1] <= previous[1]


def test_cancel_mid_attempt_suppresses_render_and_warning(engine: ScriptedEngine, caplog) -> None:
    controller, accepted = _controller(engine)
    caplog.set_level(logging.DEBUG, logger="cloudlayout_retry")
    controller.start()
    engine.current.finish(1)
    engine.current.finish(1)
    in_flight = engine.current
    assert controller.attempt_state.attempt == 3

    controller.cancel()
    assert in_flight.stop_calls == 1
    in_flight.finish(2)

    assert accepted == []
    assert controller.state is LayoutState.CANCELLED
    assert len(engine.handles) == 3
    assert not [record for record in caplog.records if record.levelno >= logging.WARNING]


def test_stale_completion_is_ignored(engine: ScriptedEngine) -> None:
    controller, accepted = _controller(engine)
    controller.start()
    stale = engine.current
    stale.finish(1)
    stale.finish(2)
    assert accepted == []
    assert controller.attempt_state.attempt == 2


def test_synchronous_engine_runs_to_exhaustion() -> None:
    engine = ScriptedEngine(auto_place=lambda attempt, config: 0)
    controller, accepted = _controller(engine)
    controller.start()
    assert controller.state is LayoutState.EXHAUSTED
    assert len(engine.handles) == MAX_LAYOUT_ATTEMPTS
    assert accepted == [[]]
    expected = []
    for index in range(MAX_LAYOUT_ATTEMPTS):
        expected += [("start", index), ("stop", index)]
    assert engine.events == expected


def test_synchronous_engine_accepts_when_words_fit_after_shrinking() -> None:
    engine = ScriptedEngine(auto_place=lambda attempt, config: len(config.words) if attempt == 3 else 1)
    controller, accepted = _controller(engine)
    controller.start()
    assert controller.state is LayoutState.ACCEPTED
    assert controller.attempt_state.attempt == 3
    assert len(accepted) == 1 and len(accepted[0]) == 2


def test_empty_selection_is_accepted(engine: ScriptedEngine) -> None:
    accepted = []
    controller = LayoutRetryController(
        engine, [], [], options=DEFAULT_OPTIONS, size=(10.0, 10.0), rng=random.Random(0), on_accept=accepted.append
    )
    controller.start()
    engine.current.finish()
    assert accepted == [[]]


def test_start_twice_is_an_error(engine: ScriptedEngine) -> None:
    controller, _ = _controller(engine)
    controller.start()
    with pytest.raises(RuntimeError):
        controller.start()


def test_synchronous_engine_handle_stopped_before_next_attempt() -> None:
    engine = ScriptedEngine(auto_place=lambda attempt, config: len(config.words) if attempt == 3 else 1)
    controller, accepted = _controller(engine)
    controller.start()
    assert engine.events == [("start", 0), ("stop", 0), ("start", 1), ("stop", 1), ("start", 2), ("stop", 2)]
    assert controller.state is LayoutState.ACCEPTED
    assert [config.words[0].size for config in engine.configs] == sorted(
        (config.words[0].size for config in engine.configs), reverse=True
    )
    assert len(accepted) == 1
