"""SVG and HTML output for placed word cloud layouts."""
from __future__ import annotations

import json
import random
from dataclasses import dataclass
from html import escape
from typing import List, Mapping, Sequence

from cloudlayout_core import Callbacks, Options, PlacedWord, choose


@dataclass
class SvgTarget:
    width: float
    height: float
    svg: str = ""
    count: int = 0


def _attributes(attrs: Mapping[str, str]) -> str:
    return "".join(f' {escape(str(key))}="{escape(str(value))}"' for key, value in attrs.items())


def _number(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def word_color(word: PlacedWord, options: Options, callbacks: Callbacks, rng: random.Random) -> str:
    if callbacks.get_word_color is not None:
        return callbacks.get_word_color(word)
    return choose(options.colors, rng)


def render_svg(target: SvgTarget, words: Sequence[PlacedWord], options: Options, callbacks: Callbacks, rng: random.Random) -> None:
    width, height = target.width, target.height
    lines: List[str] = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{_number(width)}" height="{_number(height)}" '
        f'viewBox="0 0 {_number(width)} {_number(height)}"{_attributes(options.svg_attributes)}>',
        f'<g transform="translate({_number(width / 2)},{_number(height / 2)})">',
    ]
    for word in words:
        fill = word_color(word, options, callbacks, rng)
        title = f"<title>{escape(callbacks.get_word_tooltip(word))}</title>" if options.enable_tooltip else ""
        lines.append(
            f'<text class="word" text-anchor="middle" fill="{escape(fill)}" '
            f'font-family="{escape(word.font)}" font-size="{_number(word.size)}px" '
            f'font-style="{escape(word.style)}" font-weight="{escape(word.weight)}" '
            f'transform="translate({_number(word.x)},{_number(word.y)}) rotate({_number(word.rotate)})"'
            f'{_attributes(options.text_attributes)}>{title}{escape(word.text)}</text>'
        )
    lines.append("</g>")
    lines.append("</svg>")
    target.svg = "\n".join(lines)
    target.count = len(words)


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang=\"en\">
<head>
<meta charset=\"utf-8\"/>
<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\"/>
<title>{title}</title>
<style>
  :root {{ --bg:#ffffff; --border:#e6e6ea; --text:#111827; }}
  body {{ margin:0; background:var(--bg); color:var(--text); font-family: ui-sans-serif, system-ui, -apple-system, \"Segoe UI\", Roboto, Helvetica, Arial; }}
  header {{ padding:12px 16px; font-weight:700; letter-spacing:.2px; }}
  #wrap {{ display:flex; flex-direction:column; align-items:center; gap:10px; padding:10px; }}
  svg {{ border:1px solid var(--border); max-width:100%; height:auto; }}
  .legend {{ font-size:12px; opacity:.75; }}
  text.word {{ animation: fade-in {transition_ms}ms ease-in both; }}
  @keyframes fade-in {{ from {{ opacity:0; }} to {{ opacity:1; }} }}
</style>
</head>
<body>
  <div id=\"wrap\">
    <header>{heading}</header>
    <span class=\"legend\">Rendered &bull; {count} of {requested} words</span>
{svg}
  </div>
  <script type=\"application/json\" id=\"words\">{words_json}</script>
</body>
</html>
"""


def render_html(
    target: SvgTarget,
    words: Sequence[PlacedWord],
    *,
    options: Options,
    requested: int,
    title: str = "Word Cloud",
    heading: str | None = None,
) -> str:
    words_json = json.dumps([word.to_dict() for word in words]).replace("</", "<\\/")
    return HTML_TEMPLATE.format(
        title=escape(title),
        heading=escape(heading or title),
        transition_ms=int(options.transition_duration),
        count=len(words),
        requested=requested,
        svg=target.svg,
        words_json=words_json,
    )
