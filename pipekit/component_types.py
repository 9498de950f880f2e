"""Component type mapping.

Maps the free-text type column of a take-off ("Gate Vlv", "90 ELBOW",
"Spring Hanger", "FW") onto a fixed component category, and each category
onto the milestone template category that tracks it.
"""

import logging
import re
from enum import Enum
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class ComponentCategory(Enum):
    VALVE = "VALVE"
    SUPPORT = "SUPPORT"
    GASKET = "GASKET"
    FITTING = "FITTING"
    FLANGE = "FLANGE"
    INSTRUMENT = "INSTRUMENT"
    PIPE = "PIPE"
    SPOOL = "SPOOL"
    FIELD_WELD = "FIELD_WELD"
    INSULATION = "INSULATION"
    PAINT = "PAINT"
    MISC = "MISC"


class TemplateCategory(Enum):
    """Milestone template families."""
    FULL = "FULL"
    REDUCED = "REDUCED"
    FIELD_WELD = "FIELD_WELD"
    INSULATION = "INSULATION"
    PAINT = "PAINT"


C = ComponentCategory

# Exact (uppercased) type text -> category
TYPE_MAPPINGS = {
    # Valves
    "VALVE": C.VALVE, "VLV": C.VALVE, "GATE VALVE": C.VALVE, "GATE VLV": C.VALVE,
    "GLOBE VALVE": C.VALVE, "CHECK VALVE": C.VALVE, "CHECK VLV": C.VALVE,
    "BALL VALVE": C.VALVE, "BUTTERFLY VALVE": C.VALVE, "NEEDLE VALVE": C.VALVE,
    "RELIEF VALVE": C.VALVE, "CONTROL VALVE": C.VALVE, "3-WAY VALVE": C.VALVE,
    "GATE": C.VALVE, "GLOBE": C.VALVE, "CHECK": C.VALVE, "BALL": C.VALVE,
    # Supports
    "SUPPORT": C.SUPPORT, "SUPP": C.SUPPORT, "PIPE SUPPORT": C.SUPPORT,
    "HANGER": C.SUPPORT, "SPRING HANGER": C.SUPPORT, "GUIDE": C.SUPPORT,
    "ANCHOR": C.SUPPORT, "SHOE": C.SUPPORT, "CLAMP": C.SUPPORT, "U-BOLT": C.SUPPORT,
    "TRUNNION": C.SUPPORT, "RESTRAINT": C.SUPPORT, "SLIDE": C.SUPPORT, "STOP": C.SUPPORT,
    # Gaskets
    "GASKET": C.GASKET, "GSKT": C.GASKET, "GMG": C.GASKET, "SPIRAL WOUND": C.GASKET,
    "RING GASKET": C.GASKET, "RTJ": C.GASKET, "RF GASKET": C.GASKET, "FACING": C.GASKET,
    # Fittings
    "FITTING": C.FITTING, "ELBOW": C.FITTING, "ELL": C.FITTING, "90 ELBOW": C.FITTING,
    "45 ELBOW": C.FITTING, "TEE": C.FITTING, "REDUCING TEE": C.FITTING,
    "REDUCER": C.FITTING, "COUPLING": C.FITTING, "UNION": C.FITTING, "CAP": C.FITTING,
    "PLUG": C.FITTING, "NIPPLE": C.FITTING, "CROSS": C.FITTING, "WELDOLET": C.FITTING,
    "THREADOLET": C.FITTING, "SOCKOLET": C.FITTING, "OLET": C.FITTING,
    # Flanges
    "FLANGE": C.FLANGE, "FLG": C.FLANGE, "BLIND FLANGE": C.FLANGE, "BLIND": C.FLANGE,
    "WELD NECK": C.FLANGE, "WN FLANGE": C.FLANGE, "SLIP ON": C.FLANGE,
    "SO FLANGE": C.FLANGE, "LAP JOINT": C.FLANGE, "ORIFICE FLANGE": C.FLANGE,
    "SPECTACLE BLIND": C.FLANGE,
    # Instruments
    "INSTRUMENT": C.INSTRUMENT, "INST": C.INSTRUMENT, "PSV": C.INSTRUMENT,
    "PRV": C.INSTRUMENT, "GAUGE": C.INSTRUMENT, "PI": C.INSTRUMENT, "TI": C.INSTRUMENT,
    "FI": C.INSTRUMENT, "LI": C.INSTRUMENT, "TRANSMITTER": C.INSTRUMENT,
    "SWITCH": C.INSTRUMENT, "INDICATOR": C.INSTRUMENT,
    # Pipe and spools
    "PIPE": C.PIPE, "PIPING": C.PIPE, "SPOOL": C.SPOOL, "PIPE SPOOL": C.SPOOL,
    "FABRICATED SPOOL": C.SPOOL, "FAB SPOOL": C.SPOOL,
    # Field welds
    "FIELD WELD": C.FIELD_WELD, "FIELD_WELD": C.FIELD_WELD, "FW": C.FIELD_WELD,
    "WELD": C.FIELD_WELD, "BUTT WELD": C.FIELD_WELD, "SOCKET WELD": C.FIELD_WELD,
    # Coatings
    "INSULATION": C.INSULATION, "INSUL": C.INSULATION, "PAINT": C.PAINT,
    "COATING": C.PAINT,
}

# Substring keywords, checked in order after exact and whole-word matching
KEYWORDS = [
    (("VALVE", "VLV"), C.VALVE),
    (("SUPPORT", "HANG", "CLAMP"), C.SUPPORT),
    (("GASKET", "GSKT", "SEAL"), C.GASKET),
    (("FLANGE", "FLG", "BLIND"), C.FLANGE),
    (("ELBOW", "TEE", "FITTING", "REDUCER"), C.FITTING),
    (("INSTRUMENT", "GAUGE", "PSV", "TRANSMITTER"), C.INSTRUMENT),
    (("SPOOL",), C.SPOOL),
    (("PIPE", "PIPING"), C.PIPE),
    (("WELD",), C.FIELD_WELD),
    (("INSUL",), C.INSULATION),
    (("PAINT", "COAT"), C.PAINT),
]

TEMPLATE_CATEGORY_FOR = {
    C.PIPE: TemplateCategory.FULL,
    C.SPOOL: TemplateCategory.FULL,
    C.FIELD_WELD: TemplateCategory.FIELD_WELD,
    C.INSULATION: TemplateCategory.INSULATION,
    C.PAINT: TemplateCategory.PAINT,
}


def _normalize(text: str) -> str:
    return re.sub(r'\s+', ' ', text.upper().replace('_', ' ')).strip()


class ComponentTypeMapper:
    """Maps raw type text to a ComponentCategory."""

    def __init__(self):
        # Longest patterns first so "GATE VALVE" beats "GATE"
        self._patterns = sorted(
            ((_normalize(k), v) for k, v in TYPE_MAPPINGS.items()),
            key=lambda item: (-len(item[0]), item[0])
        )
        self._exact = dict(self._patterns)

    def map_type(self, type_text: Optional[str]) -> Tuple[ComponentCategory, bool]:
        """Map type text to a category.

        Order: exact table, whole-word match of a known pattern, keyword
        substring, else MISC.

        Args:
            type_text: Raw component type cell

        Returns:
            Tuple of (category, recognized); recognized is False for blank or unknown text
        """
        if not type_text or not type_text.strip():
            return C.MISC, False

        normalized = _normalize(type_text)

        if normalized in self._exact:
            return self._exact[normalized], True

        for pattern, category in self._patterns:
            if re.search(r'(?<![A-Z0-9])' + re.escape(pattern) + r'(?![A-Z0-9])', normalized):
                logger.debug(f"Partial type match: '{type_text}' -> {category.value} (via '{pattern}')")
                return category, True

        for keywords, category in KEYWORDS:
            if any(keyword in normalized for keyword in keywords):
                logger.debug(f"Keyword type match: '{type_text}' -> {category.value}")
                return category, True

        return C.MISC, False

    def categorize(self, type_text: Optional[str], description: Optional[str] = None) -> Tuple[ComponentCategory, bool]:
        """Map type text, falling back to the description when the type is blank."""
        if type_text and type_text.strip():
            return self.map_type(type_text)
        if description:
            category, recognized = self.map_type(description)
            if recognized:
                return category, True
        return C.MISC, False


def template_category_for(category: ComponentCategory) -> TemplateCategory:
    """Template family for a component category (everything else uses the reduced set)."""
    return TEMPLATE_CATEGORY_FOR.get(category, TemplateCategory.REDUCED)
