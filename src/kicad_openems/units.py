"""Unit helpers for board-to-openEMS conversion.

Board coordinates are millimetres (``unit = 1e-3`` metres per board unit).
Component values read from footprint value fields use SI suffixes
("4.7k", "10n", "2.2u") and are parsed with :class:`decimal.Decimal` so that
"4.7k" is exactly 4700.0 rather than 4700.000000000001.
"""
from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from pydantic import BeforeValidator, WithJsonSchema

logger = logging.getLogger(__name__)

# Speed of light in vacuum (m/s)
C0_M_S: float = 299_792_458.0

# Default board unit in metres (KiCad boards are in mm)
DEFAULT_UNIT_M: float = 1e-3

_NUMBER_CHARS = frozenset("+-.eE0123456789")
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_SI_MULTIPLIERS: dict[str, Decimal] = {
    "T": Decimal("1e12"),
    "G": Decimal("1e9"),
    "M": Decimal("1e6"),
    "k": Decimal("1e3"),
    "m": Decimal("1e-3"),
    "u": Decimal("1e-6"),
    "n": Decimal("1e-9"),
    "p": Decimal("1e-12"),
    "f": Decimal("1e-15"),
}

_GRID_STEP = Decimal("0.1")


def si_multiplier(suffix: str) -> Decimal:
    """Return the multiplier for an SI suffix; unknown or empty suffix is 1."""
    if not suffix:
        return Decimal(1)
    return _SI_MULTIPLIERS.get(suffix[0], Decimal(1))


def parse_si_value(text: str) -> float:
    """Parse a component value such as ``"4.7k"`` or ``"10nF"``.

    The numeric part is the leading run of sign, digit, dot and exponent
    characters; the first character after it selects the multiplier
    (T, G, M, k, m, u, n, p, f). A value with no numeric prefix parses as 0.0.

    Examples:
        >>> parse_si_value("4.7k")
        4700.0
        >>> parse_si_value("100")
        100.0
    """
    stripped = text.strip()
    run_length = 0
    for char in stripped:
        if char not in _NUMBER_CHARS:
            break
        run_length += 1
    number_text = stripped[:run_length]
    suffix = stripped[run_length:].strip()

    match = _FLOAT_PREFIX_RE.match(number_text)
    if not match:
        logger.warning("Component value %r has no numeric part, using 0", text)
        return 0.0
    try:
        number = Decimal(match.group(0))
    except InvalidOperation:
        logger.warning("Component value %r is not a number, using 0", text)
        return 0.0
    return float(number * si_multiplier(suffix))


def round_to_grid(value: float) -> float:
    """Round a coordinate to the nearest 0.1 board unit, halves away from zero.

    Port and lumped element endpoints are snapped so that the mesh lines they
    contribute coincide with each other instead of forming near-duplicates.
    """
    quantized = Decimal(repr(float(value))).quantize(_GRID_STEP, rounding=ROUND_HALF_UP)
    return float(quantized)


def wavelength(freq_hz: float, unit: float = DEFAULT_UNIT_M) -> float:
    """Free-space wavelength at ``freq_hz`` expressed in board units."""
    if freq_hz <= 0:
        raise ValueError(f"Frequency must be positive, got {freq_hz!r}")
    return C0_M_S / freq_hz / unit


_FREQ_RE = re.compile(r"^\s*([+-]?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)\s*([a-zA-Z]+)\s*$")

_FREQ_SCALES_HZ: dict[str, Decimal] = {
    "hz": Decimal(1),
    "khz": Decimal("1e3"),
    "mhz": Decimal("1e6"),
    "ghz": Decimal("1e9"),
}

_FREQ_JSON_SCHEMA = {
    "anyOf": [
        {"type": "number"},
        {
            "type": "string",
            "pattern": r"^\s*[+-]?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?\s*(Hz|kHz|MHz|GHz|hz|khz|mhz|ghz)\s*$",
        },
    ],
    "title": "FrequencyHz",
    "description": "Frequency in Hz (number) or string with Hz/kHz/MHz/GHz units.",
}


def parse_frequency_hz(value: str | int | float) -> float:
    """Parse a frequency value to Hz as float."""
    if isinstance(value, bool):
        raise ValueError("FrequencyHz does not accept boolean values.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("FrequencyHz requires a numeric value.")
        try:
            return float(Decimal(text))
        except InvalidOperation:
            pass
        match = _FREQ_RE.match(text)
        if not match:
            raise ValueError("FrequencyHz string must be formatted like '2.4GHz', '100MHz', or '1e9'.")
        number_text, unit = match.groups()
        scale = _FREQ_SCALES_HZ.get(unit.lower())
        if scale is None:
            raise ValueError(f"Unknown FrequencyHz unit: {unit!r}")
        return float(Decimal(number_text) * scale)
    raise ValueError(f"Unsupported FrequencyHz value: {value!r}")


FrequencyHz = Annotated[float, BeforeValidator(parse_frequency_hz), WithJsonSchema(_FREQ_JSON_SCHEMA)]
