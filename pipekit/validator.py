"""
Row validation.

Every check runs on every row so all reasons are reported together. Rows are
independent of each other except for the duplicate-row check, which runs
after the per-row pass; the per-row pass can therefore fan out over a
thread pool.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .component_types import ComponentTypeMapper
from .models import (
    CandidateRow,
    ColumnMapping,
    RawTable,
    Severity,
    ValidationIssue,
    Verdict,
    drawing_key,
)
from .schema import FIELD_SCHEMAS, REQUIRED_FIELDS
from .unit_normalizer import UnitNormalizer

logger = logging.getLogger(__name__)

DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%d-%b-%Y", "%d %b %Y", "%Y/%m/%d"]

QUANTITY_PATTERN = re.compile(r'^\d+(?:\.0+)?$')

# Weld log flags: Yes/No, True/False, Y/N, 1/0, X or blank
FLAG_VALUES = {
    "yes": True, "y": True, "true": True, "1": True, "x": True,
    "no": False, "n": False, "false": False, "0": False,
}

FLAG_FIELDS = ("pmi_required", "pwht_required")

# Weld dates outside this window are accepted with a warning
MAX_FUTURE_YEARS = 1
MAX_PAST_YEARS = 2

# Below this many rows the thread pool costs more than it saves
PARALLEL_MIN_ROWS = 500


def _error(code: str, field: Optional[str], message: str) -> ValidationIssue:
    return ValidationIssue(code=code, field=field, message=message, severity=Severity.ERROR)


def _warning(code: str, field: Optional[str], message: str) -> ValidationIssue:
    return ValidationIssue(code=code, field=field, message=message, severity=Severity.WARNING)


def parse_flag(value: Optional[str]) -> Optional[bool]:
    """Read a yes/no cell. Blank and unrecognized values give None."""
    if value is None:
        return None
    return FLAG_VALUES.get(value.strip().lower())


def _shift_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # 29 February in a non-leap year
        return day.replace(year=day.year + years, day=28)


def parse_date(text: str) -> Optional[datetime]:
    """Parse ISO, MM/DD/YYYY or DD-Mon-YYYY dates (and ISO datetimes)."""
    text = text.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


class RowValidator:
    """Applies presence, format, referential and duplicate checks to rows."""

    def __init__(self, workers: int = 4, clock: Callable[[], date] = date.today):
        """
        Args:
            workers: Thread pool size for large files (1 disables the pool)
            clock: Returns today's date for the weld date plausibility window
        """
        self.workers = workers
        self.clock = clock
        self.units = UnitNormalizer()
        self.types = ComponentTypeMapper()

    def validate(
        self,
        table: RawTable,
        mapping: ColumnMapping,
        existing_drawings: Iterable[str] = (),
        auto_create_drawings: bool = False
    ) -> List[CandidateRow]:
        """
        Validate every row of a table under a mapping.

        Args:
            table: Parsed file
            mapping: Column mapping (required fields may be missing; rows then fail presence)
            existing_drawings: Drawing numbers that already exist in the project
            auto_create_drawings: Unknown drawings become a warning instead of an error

        Returns:
            CandidateRows in file order
        """
        known = {drawing_key(d) for d in existing_drawings if d}
        columns = [(f, table.column_index(h)) for f, h in mapping.as_dict().items()]

        def check(index: int) -> CandidateRow:
            return self._validate_row(table, index, columns, known, auto_create_drawings)

        indexes = range(table.row_count)
        if self.workers > 1 and table.row_count >= PARALLEL_MIN_ROWS:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                rows = list(executor.map(check, indexes))
        else:
            rows = [check(i) for i in indexes]

        self._flag_duplicates(rows)
        for row in rows:
            row.verdict = self._verdict(row)

        rejected = sum(1 for r in rows if r.verdict is Verdict.REJECTED)
        logger.info(f"Validated {len(rows)} rows: {rejected} rejected")
        return rows

    def _validate_row(
        self,
        table: RawTable,
        index: int,
        columns: List[Tuple[str, int]],
        known_drawings: set,
        auto_create_drawings: bool
    ) -> CandidateRow:
        raw = table.rows[index]
        values: Dict[str, Optional[str]] = {f: raw[i] for f, i in columns}
        row = CandidateRow(row_number=table.row_number(index), raw=raw, values=values)

        # Required presence
        for field_id in REQUIRED_FIELDS:
            if not values.get(field_id):
                row.errors.append(_error(
                    "MissingRequiredField", field_id,
                    f"{FIELD_SCHEMAS[field_id]['label']} is required"
                ))

        # Lengths
        for field_id, value in values.items():
            max_length = FIELD_SCHEMAS[field_id]["expected"].get("max_length")
            if value and max_length and len(value) > max_length:
                row.errors.append(_error(
                    "ValueTooLong", field_id,
                    f"{FIELD_SCHEMAS[field_id]['label']} exceeds {max_length} characters"
                ))

        # Formats
        size = values.get("size")
        if size and not self.units.is_valid_size(size):
            row.errors.append(_error("InvalidSize", "size", f"'{size}' is not a pipe size"))

        quantity = values.get("quantity")
        if quantity:
            limit = FIELD_SCHEMAS["quantity"]["expected"]["max"]
            if QUANTITY_PATTERN.match(quantity) and 1 <= int(float(quantity)) <= limit:
                row.quantity = int(float(quantity))
            else:
                row.errors.append(_error(
                    "InvalidQuantity", "quantity",
                    f"'{quantity}' is not a whole number between 1 and {limit}"
                ))

        welded = values.get("date_welded")
        if welded:
            parsed = parse_date(welded)
            if parsed is None:
                row.errors.append(_error("InvalidDate", "date_welded", f"'{welded}' is not a date"))
            else:
                today = self.clock()
                if parsed.date() > _shift_years(today, MAX_FUTURE_YEARS):
                    row.warnings.append(_warning(
                        "ImplausibleDate", "date_welded",
                        f"'{welded}' is more than {MAX_FUTURE_YEARS} year in the future"
                    ))
                elif parsed.date() < _shift_years(today, -MAX_PAST_YEARS):
                    row.warnings.append(_warning(
                        "ImplausibleDate", "date_welded",
                        f"'{welded}' is more than {MAX_PAST_YEARS} years in the past"
                    ))

        pressure = values.get("test_pressure")
        if pressure and self.units.to_psi(pressure) is None:
            row.errors.append(_error(
                "InvalidPressure", "test_pressure",
                f"'{pressure}' is not a pressure (psi, bar, kPa or MPa)"
            ))

        for field_id in FLAG_FIELDS:
            flag = values.get(field_id)
            if flag and parse_flag(flag) is None:
                row.errors.append(_error(
                    "InvalidFlag", field_id,
                    f"'{flag}' is not Yes/No, True/False, 1/0 or X"
                ))

        # Referential
        drawing = values.get("drawing_number")
        if drawing and drawing_key(drawing) not in known_drawings:
            if auto_create_drawings:
                row.warnings.append(_warning(
                    "DrawingWillBeCreated", "drawing_number",
                    f"Drawing '{drawing}' does not exist and will be created"
                ))
            else:
                row.errors.append(_error(
                    "UnknownDrawing", "drawing_number",
                    f"Drawing '{drawing}' does not exist in this project"
                ))

        # Component type
        type_text = values.get("component_type")
        category, recognized = self.types.categorize(type_text, values.get("description"))
        row.component_category = category.value
        if type_text and not recognized:
            row.warnings.append(_warning(
                "UnknownComponentType", "component_type",
                f"Type '{type_text}' is not recognized, tracked as {category.value}"
            ))

        return row

    def _flag_duplicates(self, rows: List[CandidateRow]) -> None:
        """Flag rows identical across all mapped fields to an earlier row."""
        first_seen: Dict[Tuple, int] = {}
        for row in rows:
            key = tuple(sorted(row.values.items(), key=lambda item: item[0]))
            if key in first_seen:
                row.warnings.append(_warning(
                    "PossibleDuplicateRow", None,
                    f"Identical to row {first_seen[key]}"
                ))
            else:
                first_seen[key] = row.row_number

    def _verdict(self, row: CandidateRow) -> Verdict:
        if row.errors:
            return Verdict.REJECTED
        if any(w.code == "PossibleDuplicateRow" for w in row.warnings):
            return Verdict.NEEDS_REVIEW
        return Verdict.ACCEPTED
