"""Flask application exposing word cloud layouts over HTTP."""
from __future__ import annotations

import asyncio
import json
import os
from collections import OrderedDict
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from flask import Flask, jsonify, request

from cloudlayout_core import (
    DEFAULT_MAX_WORDS,
    DEFAULT_MIN_SIZE,
    DEFAULT_OPTIONS,
    THEME_PRESETS,
    OptionsError,
    check_options,
    merge_options,
    parse_words,
    resolve_size,
)
from cloudlayout_logging import configure_logging
from cloudlayout_render import SvgTarget, render_html, render_svg
from cloudlayout_scheduler import LayoutResult, compute_layout

configure_logging()

app = Flask(__name__)

CACHE_ENABLED = os.environ.get("CLOUDLAYOUT_CACHE", "1").lower() not in {"0", "false", "no"}
CACHE_CAPACITY = max(1, int(os.environ.get("CLOUDLAYOUT_CACHE_MAX", "8") or 8))
LAYOUT_CACHE: OrderedDict[str, Dict[str, Any]] = OrderedDict()

# Options that accept callables or are not meaningful over JSON.
UNSUPPORTED_OPTIONS = {"rotate_fn", "rotateFn"}


def parse_pair(value: Any) -> Optional[Tuple[float, float]]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = (value.get("width"), value.get("height"))
    if not isinstance(value, Sequence) or isinstance(value, str) or len(value) != 2:
        raise ValueError(f"Expected [width, height], got {value!r}")
    width, height = float(value[0]), float(value[1])
    if width <= 0 or height <= 0:
        raise ValueError(f"Size must be positive, got {value!r}")
    return width, height


def parse_option_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    options = payload.get("options") or {}
    if not isinstance(options, Mapping):
        raise OptionsError("options must be an object")
    parsed = {key: value for key, value in options.items() if key not in UNSUPPORTED_OPTIONS}
    palette = parsed.get("colors")
    if isinstance(palette, str) and palette.strip().lower() in THEME_PRESETS:
        parsed["colors"] = THEME_PRESETS[palette.strip().lower()]
    return parsed


def build_cache_key(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, default=str)


def get_cached(cache_key: Optional[str]) -> Optional[Dict[str, Any]]:
    if not CACHE_ENABLED or cache_key is None:
        return None
    entry = LAYOUT_CACHE.get(cache_key)
    if entry is not None:
        LAYOUT_CACHE.move_to_end(cache_key)
    return entry


def store_cache_entry(cache_key: Optional[str], entry: Dict[str, Any]) -> None:
    if not CACHE_ENABLED or cache_key is None:
        return
    LAYOUT_CACHE[cache_key] = entry
    LAYOUT_CACHE.move_to_end(cache_key)
    while len(LAYOUT_CACHE) > CACHE_CAPACITY:
        LAYOUT_CACHE.popitem(last=False)


def build_layout_payload(result: LayoutResult) -> Dict[str, Any]:
    target: SvgTarget = result.target
    return {
        "words": [word.to_dict() for word in result.words],
        "requested": result.requested,
        "unplaced": result.unplaced,
        "attempts": result.attempts,
        "fontSizes": list(result.font_sizes),
        "state": result.state.value,
        "svg": target.svg,
    }


@app.get("/api/defaults")
def defaults() -> Any:
    return jsonify({
        "maxWords": DEFAULT_MAX_WORDS,
        "minSize": list(DEFAULT_MIN_SIZE),
        "options": {
            "colors": list(DEFAULT_OPTIONS.colors),
            "deterministic": DEFAULT_OPTIONS.deterministic,
            "enableTooltip": DEFAULT_OPTIONS.enable_tooltip,
            "fontFamily": DEFAULT_OPTIONS.font_family,
            "fontSizes": list(DEFAULT_OPTIONS.font_sizes),
            "fontStyle": DEFAULT_OPTIONS.font_style,
            "fontWeight": DEFAULT_OPTIONS.font_weight,
            "padding": DEFAULT_OPTIONS.padding,
            "rotations": DEFAULT_OPTIONS.rotations,
            "rotationAngles": list(DEFAULT_OPTIONS.rotation_angles),
            "scale": DEFAULT_OPTIONS.scale.value,
            "spiral": DEFAULT_OPTIONS.spiral.value,
            "transitionDuration": DEFAULT_OPTIONS.transition_duration,
            "renderDebounce": DEFAULT_OPTIONS.render_debounce,
            "batchSize": DEFAULT_OPTIONS.batch_size,
        },
        "palettes": {name: list(colours) for name, colours in THEME_PRESETS.items()},
    })


@app.post("/api/layout")
def layout() -> Any:
    payload = request.get_json(silent=True)
    if not isinstance(payload, Mapping):
        return jsonify({"error": "Expected a JSON object"}), 400

    words = parse_words(payload.get("words"))
    if not words and payload.get("words"):
        return jsonify({"error": "No valid words; each entry needs text and a non-negative value"}), 400

    try:
        options = check_options(merge_options(parse_option_payload(payload)))
        size = resolve_size(parse_pair(payload.get("size")), parse_pair(payload.get("minSize")) or DEFAULT_MIN_SIZE)
        max_words = int(payload.get("maxWords", DEFAULT_MAX_WORDS))
    except (OptionsError, TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400

    # Only deterministic layouts are reproducible, so only those are cached.
    cache_key = build_cache_key(payload) if options.deterministic and not payload.get("skipCache") else None
    response = get_cached(cache_key)
    if response is None:
        target = SvgTarget(width=size[0], height=size[1])
        result = asyncio.run(
            compute_layout(words, size=size, max_words=max_words, options=options, renderer=render_svg, target=target)
        )
        response = build_layout_payload(result)
        if payload.get("returnHtml"):
            response["html"] = render_html(
                target,
                result.words,
                options=options,
                requested=result.requested,
                title=str(payload.get("title", "Word Cloud")),
                heading=payload.get("heading"),
            )
        store_cache_entry(cache_key, response)

    return jsonify(response)


if __name__ == "__main__":
    app.run(debug=True)
