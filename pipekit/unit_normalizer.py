"""Pipe size and test pressure parsing using the Pint library.

Take-offs write nominal pipe sizes in many ways: 2", 2 in, 1-1/2, 1 1/2",
3/4, NPS 4, DN50, 50 mm, and reducers such as 2X1 or 4" x 2". Each side is
parsed into a Pint quantity so imperial and metric sizes can be compared.
"""

import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Optional, Tuple
from pint import UnitRegistry

# Initialize Pint unit registry
ureg = UnitRegistry()

# Largest nominal size accepted, in inches
MAX_NOMINAL_INCHES = 120

_NUMBER = r'(?P<num>\d+(?:\.\d+)?(?:(?:\s+|-)\d+/\d+)?|\d+/\d+)'

INCH_PATTERN = re.compile(
    r'^(?:NPS\s*)?' + _NUMBER + r'\s*(?:"|\'\'|IN\.?|INCH(?:ES)?|NPS)?$'
)
MM_PATTERN = re.compile(r'^' + _NUMBER + r'\s*(?:MM|MILLIMET(?:ER|RE)S?)$')
DN_PATTERN = re.compile(r'^DN\s*(?P<num>\d+)$')
REDUCER_SPLIT = re.compile(r'\s*[X×]\s*')

PRESSURE_PATTERN = re.compile(r'^(?P<num>\d+(?:\.\d+)?)\s*(?P<unit>PSIG?|BARG?|KPA|MPA)?$')
PRESSURE_UNITS = {
    "PSI": "psi", "PSIG": "psi",
    "BAR": "bar", "BARG": "bar",
    "KPA": "kilopascal", "MPA": "megapascal",
}


@dataclass(frozen=True)
class PipeSize:
    """A parsed size token: one quantity, or two for a reducer."""
    text: str
    parts: Tuple[Any, ...]

    @property
    def is_reducer(self) -> bool:
        return len(self.parts) > 1

    @property
    def inches(self) -> Tuple[float, ...]:
        return tuple(round(q.to(ureg.inch).magnitude, 3) for q in self.parts)


def _parse_number(text: str) -> Fraction:
    """Parse "2", "2.5", "3/4", "1-1/2" or "1 1/2" into a Fraction."""
    text = text.strip()
    whole, _, frac = re.sub(r'[\s-]+', ' ', text).partition(' ')
    if frac:
        return Fraction(whole) + Fraction(frac)
    return Fraction(whole)


def _format_inches(value: float) -> str:
    frac = Fraction(value).limit_denominator(16)
    whole, rem = divmod(frac.numerator, frac.denominator)
    if rem == 0:
        return f'{whole}"'
    if whole == 0:
        return f'{rem}/{frac.denominator}"'
    return f'{whole}-{rem}/{frac.denominator}"'


class UnitNormalizer:
    """Parses and normalizes nominal pipe size tokens."""

    def __init__(self):
        """Initialize the unit normalizer."""
        self.ureg = ureg

    def _parse_side(self, token: str):
        token = token.strip().upper()
        if not token:
            return None

        match = DN_PATTERN.match(token)
        if match:
            return int(match.group('num')) * self.ureg.millimeter

        match = MM_PATTERN.match(token)
        if match:
            return float(_parse_number(match.group('num'))) * self.ureg.millimeter

        match = INCH_PATTERN.match(token)
        if match:
            return float(_parse_number(match.group('num'))) * self.ureg.inch

        return None

    def parse_size(self, value: Any) -> Optional[PipeSize]:
        """Parse a size token.

        Args:
            value: The cell value (string, int or float)

        Returns:
            PipeSize, or None if the value is not a recognizable pipe size

        Examples:
            parse_size('2"') -> PipeSize(parts=(2 inch,))
            parse_size("1-1/2") -> PipeSize(parts=(1.5 inch,))
            parse_size("2X1") -> PipeSize(parts=(2 inch, 1 inch))
            parse_size("DN50") -> PipeSize(parts=(50 millimeter,))
        """
        if value is None:
            return None

        text = str(value).strip()
        if not text:
            return None

        parts = []
        for side in REDUCER_SPLIT.split(text.upper()):
            try:
                quantity = self._parse_side(side)
            except (ValueError, ZeroDivisionError):
                return None
            if quantity is None:
                return None
            inches = quantity.to(self.ureg.inch).magnitude
            if inches <= 0 or inches > MAX_NOMINAL_INCHES:
                return None
            parts.append(quantity)

        if not parts or len(parts) > 2:
            return None

        return PipeSize(text=text, parts=tuple(parts))

    def is_valid_size(self, value: Any) -> bool:
        return self.parse_size(value) is not None

    def to_inches(self, value: Any) -> Optional[float]:
        """Largest side of a size token in inches, or None if unparseable."""
        size = self.parse_size(value)
        if size is None:
            return None
        return max(size.inches)

    def normalize_size(self, value: Any) -> Optional[str]:
        """Canonical text for a size token.

        Imperial sizes are written as inch fractions ('1-1/2"'), metric sizes
        keep millimeters ('50mm'), reducers are joined with 'X'.
        """
        size = self.parse_size(value)
        if size is None:
            return None

        sides = []
        for quantity in size.parts:
            if quantity.units == self.ureg.millimeter:
                sides.append(f"{quantity.magnitude:g}mm")
            else:
                sides.append(_format_inches(quantity.magnitude))
        return "X".join(sides)

    def to_psi(self, value: Any) -> Optional[float]:
        """Test pressure in psi, or None if unparseable.

        Bare numbers are read as psi; psi(g), bar(g), kPa and MPa are
        converted.
        """
        if value is None:
            return None

        match = PRESSURE_PATTERN.match(str(value).strip().upper())
        if not match:
            return None

        unit = PRESSURE_UNITS[match.group('unit') or "PSI"]
        quantity = self.ureg.Quantity(float(match.group('num')), unit)
        return round(quantity.to(self.ureg.psi).magnitude, 2)
