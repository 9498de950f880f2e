from typing import List, Dict, Any, Optional, Sequence
import logging
import re

from .errors import InvalidMapping, MissingRequiredField
from .lexical_similarity import LexicalSimilarity, candidate_names
from .models import ColumnMapping, FieldMatch, MatchKind
from .schema import CANONICAL_FIELDS, FIELD_SCHEMAS, REQUIRED_FIELDS

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 1.0
ALIAS_CONFIDENCE = 0.95


def _header_key(header: str) -> str:
    """Lowercase, trim, and collapse whitespace/underscores/hyphens to one space."""
    return re.sub(r'[\s_\-]+', ' ', header.lower().strip())


class ColumnMapper:
    """Maps raw file headers onto the canonical component fields.

    Matching runs in stages (exact, alias, fuzzy). Each stage is applied
    across all fields before the next one starts, so a fuzzy guess can never
    claim a header that an exact or alias match would have taken.
    """

    def __init__(self, fuzzy_threshold: float = 0.8):
        """Initialize the mapper.

        Args:
            fuzzy_threshold: Token overlap a fuzzy match must exceed (default: 0.8)
        """
        self.fuzzy_threshold = fuzzy_threshold
        self.lexical = LexicalSimilarity()

        # Forward lookups: header key -> canonical field
        self._exact_to_field: Dict[str, str] = {}
        self._alias_to_field: Dict[str, str] = {}
        for schema in CANONICAL_FIELDS:
            for name in (schema["label"], schema["id"]):
                self._exact_to_field[_header_key(name)] = schema["id"]
            for alias in schema["aliases"]:
                self._alias_to_field.setdefault(_header_key(alias), schema["id"])

    def infer(self, headers: Sequence[str]) -> ColumnMapping:
        """Infer a best-effort mapping for a header list.

        Deterministic: the same headers always produce the same mapping.

        Args:
            headers: Raw header names in file order

        Returns:
            ColumnMapping with match kind and confidence per mapped field
        """
        mapping = ColumnMapping()

        self._match_lookup(headers, mapping, self._exact_to_field, MatchKind.EXACT, EXACT_CONFIDENCE)
        self._match_lookup(headers, mapping, self._alias_to_field, MatchKind.ALIAS, ALIAS_CONFIDENCE)
        self._match_fuzzy(headers, mapping)

        logger.debug(f"Inferred mapping for {len(headers)} headers: {mapping.as_dict()}")
        return mapping

    def _match_lookup(self, headers: Sequence[str], mapping: ColumnMapping,
                      lookup: Dict[str, str], kind: MatchKind, confidence: float) -> None:
        for header in headers:
            if mapping.field_for(header) is not None:
                continue
            field_id = lookup.get(_header_key(header))
            if field_id is None or field_id in mapping.matches:
                continue
            mapping.assign(FieldMatch(field_id, header, kind, confidence))

    def _match_fuzzy(self, headers: Sequence[str], mapping: ColumnMapping) -> None:
        """Assign remaining fields by token overlap, best score first."""
        scored = []
        for header_index, header in enumerate(headers):
            if mapping.field_for(header) is not None:
                continue
            for field_index, schema in enumerate(CANONICAL_FIELDS):
                if schema["id"] in mapping.matches:
                    continue
                score = max(
                    self.lexical.token_overlap(header, name)
                    for name in candidate_names(schema)
                )
                if score > self.fuzzy_threshold:
                    scored.append((-score, header_index, field_index, header, schema["id"], score))

        # Highest score wins; ties go to the earlier header, then the earlier field
        for _, _, _, header, field_id, score in sorted(scored):
            if field_id in mapping.matches or mapping.field_for(header) is not None:
                continue
            mapping.assign(FieldMatch(field_id, header, MatchKind.FUZZY, score))

    def apply_overrides(self, mapping: ColumnMapping, headers: Sequence[str],
                        overrides: Dict[str, Optional[str]]) -> ColumnMapping:
        """Apply manual overrides on top of an inferred mapping.

        Overrides always win. A header claimed by an override is removed from
        whichever field inferred it; a value of None unmaps the field.

        Args:
            mapping: Current mapping (left unchanged)
            headers: Raw header names of the file
            overrides: Canonical field -> raw header (or None)

        Returns:
            New ColumnMapping

        Raises:
            InvalidMapping: For unknown fields or headers, or one header given to two fields
        """
        claimed = {}
        for field_id, header in overrides.items():
            if field_id not in FIELD_SCHEMAS:
                raise InvalidMapping(f"Unknown canonical field '{field_id}'")
            if header is None:
                continue
            if header not in headers:
                raise InvalidMapping(f"Header '{header}' is not present in the file")
            if header in claimed:
                raise InvalidMapping(
                    f"Header '{header}' cannot be mapped to both "
                    f"'{claimed[header]}' and '{field_id}'"
                )
            claimed[header] = field_id

        result = mapping.copy()
        for field_id, header in overrides.items():
            result.unassign(field_id)
            if header is None:
                continue
            displaced = result.field_for(header)
            if displaced is not None:
                result.unassign(displaced)
                logger.info(f"Override moved header '{header}' from '{displaced}' to '{field_id}'")

        for field_id, header in overrides.items():
            if header is not None:
                result.assign(FieldMatch(field_id, header, MatchKind.MANUAL, 1.0))

        return result

    def map(self, headers: Sequence[str],
            overrides: Optional[Dict[str, Optional[str]]] = None) -> ColumnMapping:
        """Infer a mapping and apply any manual overrides."""
        mapping = self.infer(headers)
        if overrides:
            mapping = self.apply_overrides(mapping, headers, overrides)
        return mapping

    def missing_required(self, mapping: ColumnMapping) -> List[str]:
        return mapping.missing(REQUIRED_FIELDS)

    def require_complete(self, mapping: ColumnMapping) -> None:
        """Raise MissingRequiredField when drawing number or identifier is unmapped."""
        missing = self.missing_required(mapping)
        if missing:
            raise MissingRequiredField(missing)

    def get_mapping_report(self, headers: Sequence[str], mapping: ColumnMapping) -> Dict[str, Any]:
        """Generate a report of column mappings for previews.

        Returns:
            Dictionary with mapped fields, unmapped headers and fields, and missing required fields
        """
        mapped_headers = set(mapping.as_dict().values())
        return {
            "mapped": mapping.as_dict(),
            "matches": mapping.to_dict(),
            "unmapped_headers": [h for h in headers if h not in mapped_headers],
            "unmapped_fields": [s["id"] for s in CANONICAL_FIELDS if s["id"] not in mapping.matches],
            "missing_required": self.missing_required(mapping),
        }
