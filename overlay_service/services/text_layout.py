"""Greedy caption wrapping with a shrink-to-fit font size loop.

Widths are estimated, not measured: CJK glyphs count as one em, everything
else as 0.55 em.
"""

import re
from dataclasses import dataclass

WIDE_CHAR_RE = re.compile("[\u3000-\u9fff\uac00-\ud7af]")
NARROW_CHAR_RATIO = 0.55


@dataclass(frozen=True)
class LineLayout:
    lines: tuple[str, ...]
    font_size: float


def estimate_width(text: str, font_size: float) -> float:
    total = 0.0
    for char in text:
        total += font_size if WIDE_CHAR_RE.match(char) else font_size * NARROW_CHAR_RATIO
    return total


def wrap_text(text: str, max_width: float, font_size: float) -> list[str]:
    words = text.split()
    if not words:
        return [""]

    lines = []
    current = words[0]
    for word in words[1:]:
        candidate = f"{current} {word}"
        if estimate_width(candidate, font_size) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


def layout_caption(
    text: str,
    max_width: float,
    initial_font_size: float,
    max_text_height: float,
    *,
    min_font_size: float = 16.0,
    step: float = 2.0,
    line_height: float = 1.4,
) -> LineLayout:
    font_size = initial_font_size
    lines = wrap_text(text, max_width, font_size)
    while len(lines) * font_size * line_height > max_text_height and font_size > min_font_size:
        font_size = max(min_font_size, font_size - step)
        lines = wrap_text(text, max_width, font_size)
    return LineLayout(lines=tuple(lines), font_size=font_size)
