"""Colour helpers shared by everything that paints task pills."""

from __future__ import annotations

import re

FALLBACK_DARK = "#555555"

_RGB_PARTS = re.compile(r"(\d+)")


def _channels(color: str):
    if color.startswith("#"):
        digits = color[1:]
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        if len(digits) != 6:
            return None
        try:
            return tuple(int(digits[i:i + 2], 16) for i in (0, 2, 4))
        except ValueError:
            return None
    if color.startswith("rgb"):
        parts = _RGB_PARTS.findall(color)
        if len(parts) < 3:
            return None
        return tuple(int(p) for p in parts[:3])
    return None


def is_perceptually_light(color: str | None) -> bool:
    """True when dark text reads better than white text on ``color``.

    Unknown or malformed colours count as light.
    """
    if not color:
        return True
    if color.startswith("hsl"):
        parts = color.split(",")
        if len(parts) < 3:
            return True
        match = _RGB_PARTS.search(parts[2])
        return int(match.group(1)) > 65 if match else True
    channels = _channels(color)
    if channels is None:
        return True
    r, g, b = channels
    return (0.299 * r + 0.587 * g + 0.114 * b) / 255 > 0.5


def darken_color(color: str | None, percent: float) -> str:
    """Darken a ``#rrggbb`` colour by ``percent``; other formats get a neutral grey."""
    if not color or not color.startswith("#"):
        return FALLBACK_DARK
    channels = _channels(color)
    if channels is None:
        return FALLBACK_DARK
    amount = round(2.55 * percent)
    r, g, b = (max(0, min(255, c - amount)) for c in channels)
    return f"#{r:02x}{g:02x}{b:02x}"


def text_color_for(background: str | None) -> str:
    return "#1f2937" if is_perceptually_light(background) else "#ffffff"
