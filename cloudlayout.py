"""CLI entrypoint for laying out a weighted word list as an HTML word cloud."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from cloudlayout_core import (
    DEFAULT_COLORS,
    DEFAULT_MAX_WORDS,
    DEFAULT_OPTIONS,
    THEME_PRESETS,
    Options,
    OptionsError,
    Scale,
    Spiral,
    Word,
    check_options,
    merge_options,
    parse_words,
)
from cloudlayout_logging import configure_logging
from cloudlayout_render import SvgTarget, render_html, render_svg
from cloudlayout_scheduler import LayoutResult, compute_layout

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lay out a weighted word list as a word cloud.")
    parser.add_argument("input_path", help="JSON file: a list of {text, value} objects or a {word: weight} mapping.")
    parser.add_argument(
        "html_path",
        nargs="?",
        default="output/wordcloud.html",
        help="Destination HTML (or SVG with --svg) file path.",
    )
    parser.add_argument("--max-words", type=int, default=DEFAULT_MAX_WORDS, help="Maximum number of words to lay out.")
    parser.add_argument("--min-font", type=float, default=DEFAULT_OPTIONS.font_sizes[0], help="Minimum font size in pixels.")
    parser.add_argument("--max-font", type=float, default=DEFAULT_OPTIONS.font_sizes[1], help="Maximum font size in pixels.")
    parser.add_argument("--scale", choices=[scale.value for scale in Scale], default=DEFAULT_OPTIONS.scale.value, help="Weight to font size scale.")
    parser.add_argument("--spiral", choices=[spiral.value for spiral in Spiral], default=DEFAULT_OPTIONS.spiral.value, help="Placement spiral.")
    parser.add_argument(
        "--rotations",
        type=int,
        default=None,
        help="Number of evenly spaced angles between --min-angle and --max-angle (default: 30 degree steps from -90 to 60).",
    )
    parser.add_argument("--min-angle", type=float, default=DEFAULT_OPTIONS.rotation_angles[0], help="Lowest rotation angle in degrees.")
    parser.add_argument("--max-angle", type=float, default=DEFAULT_OPTIONS.rotation_angles[1], help="Highest rotation angle in degrees.")
    parser.add_argument("--padding", type=float, default=DEFAULT_OPTIONS.padding, help="Padding around each word in pixels.")
    parser.add_argument("--font-family", type=str, default=DEFAULT_OPTIONS.font_family, help="Font family used for rendering.")
    parser.add_argument("--font-weight", type=str, default=DEFAULT_OPTIONS.font_weight, help="Font weight used for rendering.")
    parser.add_argument(
        "--palette",
        type=str,
        default=None,
        help="Preset name (%s) or a comma-delimited list of colour hex codes." % ", ".join(THEME_PRESETS),
    )
    parser.add_argument("--deterministic", action="store_true", help="Use a fixed random seed for reproducible layouts.")
    parser.add_argument("--no-tooltips", action="store_true", help="Omit tooltip titles from the output.")
    parser.add_argument("--width", type=float, default=800, help="Canvas width in pixels.")
    parser.add_argument("--height", type=float, default=600, help="Canvas height in pixels.")
    parser.add_argument("--title", type=str, default="Word Cloud", help="HTML document title.")
    parser.add_argument("--heading", type=str, default=None, help="Heading text displayed above the cloud.")
    parser.add_argument("--svg", action="store_true", help="Write a bare SVG document instead of an HTML page.")
    parser.add_argument(
        "--dump-json",
        type=Path,
        default=None,
        help="Optional path to dump the placed words as JSON alongside the output.",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default from CLOUDLAYOUT_LOG_LEVEL or WARNING).")
    return parser.parse_args(argv)


def parse_palette(raw: str | None) -> Sequence[str]:
    if not raw:
        return DEFAULT_COLORS
    lower = raw.strip().lower()
    if lower in THEME_PRESETS:
        return THEME_PRESETS[lower]
    colours = [colour.strip() for colour in raw.split(",") if colour.strip()]
    return colours or DEFAULT_COLORS


def load_words(path: Path) -> List[Word]:
    with path.open("r", encoding="utf-8") as infile:
        payload = json.load(infile)
    return parse_words(payload)


def build_options(args: argparse.Namespace) -> Options:
    return check_options(
        merge_options(
            colors=parse_palette(args.palette),
            deterministic=args.deterministic,
            enable_tooltip=not args.no_tooltips,
            font_family=args.font_family,
            font_weight=args.font_weight,
            font_sizes=(args.min_font, args.max_font),
            padding=args.padding,
            rotations=args.rotations,
            rotation_angles=(args.min_angle, args.max_angle),
            scale=args.scale,
            spiral=args.spiral,
        )
    )


def run(args: argparse.Namespace) -> Tuple[LayoutResult, Options]:
    input_path = Path(args.input_path)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    try:
        options = build_options(args)
    except OptionsError as exc:
        raise SystemExit(f"Invalid options: {exc}") from exc

    try:
        words = load_words(input_path)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Input is not valid JSON: {exc}") from exc

    target = SvgTarget(width=args.width, height=args.height)
    result = asyncio.run(
        compute_layout(
            words,
            size=(args.width, args.height),
            max_words=args.max_words,
            options=options,
            renderer=render_svg,
            target=target,
        )
    )
    return result, options


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)

    result, options = run(args)
    target: SvgTarget = result.target
    output_path = Path(args.html_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if args.svg:
        output_path.write_text(target.svg, encoding="utf-8")
    else:
        html = render_html(
            target,
            result.words,
            options=options,
            requested=result.requested,
            title=args.title,
            heading=args.heading,
        )
        output_path.write_text(html, encoding="utf-8")
    logger.info("Placed %d of %d words in %d attempt(s)", len(result.words), result.requested, result.attempts)
    print(output_path)

    if args.dump_json:
        args.dump_json.parent.mkdir(parents=True, exist_ok=True)
        args.dump_json.write_text(json.dumps([word.to_dict() for word in result.words], indent=2), encoding="utf-8")


if __name__ == "__main__":
    main()
