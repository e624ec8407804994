"""
Numeric helpers for gateway field values.

The Eagle gateways report numbers in several textual shapes: bare decimals
(``"143313.000"``), decimals followed by a unit (``"0.070000 kW"``), and
``0x``-prefixed hex counters (``"0x5a11b1cb"``). These helpers turn them into
Python numbers and are shared by both protocol adapters.

All functions here are pure: no I/O, no logging side effects.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-003)
- 2026-10-19: Stricter unit token; never publish "-0.0"

TODO:
- None
"""

from __future__ import annotations

import math
import re

from eagle_edge.src.errors import ParseError

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_UNIT_VALUE_RE = re.compile(
    r"""
    ^\s*
    (?P<number>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)
    \s*
    (?P<unit>[A-Za-z%/$]+)
    \s*$
    """,
    re.VERBOSE,
)
"""Number followed by optional whitespace and a unit token (letters, %, / or $)."""


def _to_finite_float(text: str) -> float | None:
    """Return ``float(text)`` when it is a finite number, else ``None``."""
    try:
        value = float(text)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def split_unit(text: str) -> tuple[float, str | None]:
    """Parse a value that may carry a trailing unit.

    A direct numeric parse is tried first; if that fails the trailing unit
    token is stripped and the numeric prefix parsed.

    Args:
        text: Raw field text, e.g. ``"1.5"`` or ``"14.329000 kWh"``.

    Returns:
        ``(value, unit)`` where *unit* is ``None`` for a bare number.

    Raises:
        ParseError: If no numeric prefix can be found. ``"nan"`` and
            infinities are rejected as well.
    """
    if text is None:
        raise ParseError("cannot parse a number from None")

    direct = _to_finite_float(text)
    if direct is not None:
        return direct, None

    match = _UNIT_VALUE_RE.match(text)
    if match is None:
        raise ParseError(f"no numeric value in {text!r}")

    value = _to_finite_float(match.group("number"))
    if value is None:
        raise ParseError(f"no numeric value in {text!r}")
    return value, match.group("unit")


def parse_unit_value(text: str) -> float:
    """Return the numeric part of ``"<number> <unit>"`` or a bare number.

    >>> parse_unit_value("0.070000 kW")
    0.07
    """
    value, _unit = split_unit(text)
    return value


def parse_unsigned(text: str | None) -> int:
    """Parse an unsigned integer given as ``0x``-prefixed hex or decimal.

    ``None`` and the empty string yield ``0``; optional diagnostic fields
    rely on that default.

    Raises:
        ParseError: If *text* is neither valid hex nor valid decimal.
    """
    if not text:
        return 0
    raw = text.strip()
    try:
        if raw[:2].lower() == "0x":
            digits = raw[2:]
            if not digits or digits[0] in "+-":
                raise ValueError(raw)
            return int(digits, 16)
        if raw[0] in "+-":
            raise ValueError(raw)
        return int(raw, 10)
    except ValueError as exc:
        raise ParseError(f"not an unsigned hex/decimal integer: {text!r}") from exc


def format_kwh(value: float) -> str:
    """Render an energy value for publishing (one decimal, 3-place rounding)."""
    text = f"{math.floor(value * 1000 + 0.5) / 1000:.1f}"
    # Tiny negative drift after a reset still publishes as zero.
    return "0.0" if text == "-0.0" else text
