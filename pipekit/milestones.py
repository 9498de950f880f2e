"""
Milestone templates.

Templates are project configuration, read-only to the import pipeline. The
upstream store has held milestone lists in several shapes (a JSON array, a
JSON-encoded string, an object wrapping the array), so records are parsed
defensively here: a template whose milestones cannot be read is logged and
ignored rather than failing the import.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .component_types import TemplateCategory
from .errors import TemplateNotFound

logger = logging.getLogger(__name__)

TEMPLATE_NAMES = {
    TemplateCategory.FULL: "Full Milestone Set",
    TemplateCategory.REDUCED: "Reduced Milestone Set",
    TemplateCategory.FIELD_WELD: "Field Weld",
    TemplateCategory.INSULATION: "Insulation",
    TemplateCategory.PAINT: "Paint",
}

DEFAULT_TEMPLATE_NAME = "Default Component Template"

# Fallback order when a project has no template for a category
FALLBACK_ORDER = [
    TemplateCategory.REDUCED,
    TemplateCategory.FULL,
]

# Standard template records, usable to seed a project
STANDARD_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Full Milestone Set",
        "category": "FULL",
        "milestones": [
            {"name": "Receive", "order": 1, "weight": 5},
            {"name": "Erect", "order": 2, "weight": 30},
            {"name": "Connect", "order": 3, "weight": 30},
            {"name": "Support", "order": 4, "weight": 15},
            {"name": "Punch", "order": 5, "weight": 5},
            {"name": "Test", "order": 6, "weight": 10},
            {"name": "Restore", "order": 7, "weight": 5},
        ],
    },
    {
        "name": "Reduced Milestone Set",
        "category": "REDUCED",
        "milestones": [
            {"name": "Receive", "order": 1, "weight": 10},
            {"name": "Install", "order": 2, "weight": 60},
            {"name": "Punch", "order": 3, "weight": 10},
            {"name": "Test", "order": 4, "weight": 15},
            {"name": "Restore", "order": 5, "weight": 5},
        ],
    },
    {
        "name": "Field Weld",
        "category": "FIELD_WELD",
        "milestones": [
            {"name": "Fit Up", "order": 1, "weight": 10},
            {"name": "Weld Made", "order": 2, "weight": 60},
            {"name": "Punch", "order": 3, "weight": 10},
            {"name": "Test", "order": 4, "weight": 15},
            {"name": "Restore", "order": 5, "weight": 5},
        ],
    },
    {
        "name": "Insulation",
        "category": "INSULATION",
        "milestones": [
            {"name": "Insulate", "order": 1, "weight": 60},
            {"name": "Metal Out", "order": 2, "weight": 40},
        ],
    },
    {
        "name": "Paint",
        "category": "PAINT",
        "milestones": [
            {"name": "Primer", "order": 1, "weight": 40},
            {"name": "Finish Coat", "order": 2, "weight": 60},
        ],
    },
]


@dataclass(frozen=True)
class MilestoneDefinition:
    name: str
    order: int
    weight: float = 0.0


@dataclass(frozen=True)
class MilestoneTemplate:
    name: str
    milestones: Tuple[MilestoneDefinition, ...]
    category: Optional[TemplateCategory] = None
    id: Optional[str] = None

    @property
    def milestone_names(self) -> List[str]:
        return [m.name for m in self.milestones]

    @property
    def total_weight(self) -> float:
        return sum(m.weight for m in self.milestones)


def parse_milestones(raw: Any) -> Optional[List[MilestoneDefinition]]:
    """Parse stored milestone data into ordered definitions.

    Accepts a list of dicts (or plain names), a JSON string encoding one,
    or an object with a "milestones" key.

    Returns:
        Definitions sorted by order, or None if the data is unusable
    """
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None

    if isinstance(raw, dict):
        raw = raw.get("milestones")

    if not isinstance(raw, list) or not raw:
        return None

    definitions = []
    seen = set()
    for position, entry in enumerate(raw, start=1):
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, dict):
            return None

        name = str(entry.get("name") or "").strip()
        if not name or name in seen:
            return None
        seen.add(name)

        try:
            order = int(entry.get("order", position))
            weight = float(entry.get("weight", 0) or 0)
        except (TypeError, ValueError):
            return None

        definitions.append(MilestoneDefinition(name=name, order=order, weight=weight))

    definitions.sort(key=lambda d: d.order)
    return definitions


def _parse_category(value: Any) -> Optional[TemplateCategory]:
    if value is None:
        return None
    try:
        return TemplateCategory(str(value).strip().upper())
    except ValueError:
        return None


class MilestoneTemplateSet:
    """A project's milestone templates, resolvable by template category."""

    def __init__(self, templates: Iterable[MilestoneTemplate] = ()):
        self.templates: List[MilestoneTemplate] = list(templates)
        self._by_name = {t.name: t for t in self.templates}

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "MilestoneTemplateSet":
        """Build a template set from stored records.

        Each record has "name", "milestones" and optionally "id" and
        "category". Records whose milestones cannot be parsed are skipped.
        """
        templates = []
        for record in records:
            name = record.get("name")
            milestones = parse_milestones(record.get("milestones"))
            if not name or milestones is None:
                logger.warning(f"Ignoring milestone template {name!r}: unreadable milestone data")
                continue

            template = MilestoneTemplate(
                name=name,
                milestones=tuple(milestones),
                category=_parse_category(record.get("category")),
                id=record.get("id"),
            )
            if abs(template.total_weight - 100) > 0.01:
                logger.warning(
                    f"Milestone template '{name}' weights sum to {template.total_weight:g}, not 100"
                )
            templates.append(template)

        return cls(templates)

    def __len__(self) -> int:
        return len(self.templates)

    def get(self, name: str) -> Optional[MilestoneTemplate]:
        return self._by_name.get(name)

    def _lookup(self, category: TemplateCategory) -> Optional[MilestoneTemplate]:
        for template in self.templates:
            if template.category is category:
                return template
        return self._by_name.get(TEMPLATE_NAMES[category])

    def for_category(self, category: TemplateCategory) -> MilestoneTemplate:
        """Resolve the template for a category.

        Falls back to the reduced set, then the full set, then the default
        component template, then whichever template exists.

        Raises:
            TemplateNotFound: If the project has no usable templates
        """
        template = self._lookup(category)
        if template is not None:
            return template

        for fallback in FALLBACK_ORDER:
            template = self._lookup(fallback)
            if template is not None:
                logger.warning(
                    f"No '{category.value}' milestone template, using '{template.name}'"
                )
                return template

        template = self._by_name.get(DEFAULT_TEMPLATE_NAME)
        if template is None and self.templates:
            template = self.templates[0]
        if template is None:
            raise TemplateNotFound("Project has no usable milestone templates")

        logger.warning(f"No '{category.value}' milestone template, using '{template.name}'")
        return template
