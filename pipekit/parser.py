from .adapters.csv_adapter import CsvAdapter
from .adapters.excel_adapter import ExcelAdapter
from .config import ImportSettings
from .errors import EmptyFile, FileTooLarge, RowLimitExceeded, UnsupportedFormat
from .models import RawTable
from typing import List, Dict, Any, Optional, Sequence
from pathlib import Path
import csv
import json
import logging
import openpyxl

logger = logging.getLogger(__name__)


def _clean_cell(value: Any) -> Optional[str]:
    """Trim a cell; empty strings become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _build_headers(cells: List[Optional[str]]) -> List[str]:
    """Turn the header row into unique, addressable header names.

    Trailing blank cells are dropped, interior blanks become "Column <n>",
    and repeated names are suffixed "Name (2)", "Name (3)", ...
    """
    while cells and cells[-1] is None:
        cells = cells[:-1]

    headers = []
    seen = {}
    for index, cell in enumerate(cells, start=1):
        name = cell if cell is not None else f"Column {index}"
        key = name.lower()
        if key in seen:
            seen[key] += 1
            name = f"{name} ({seen[key]})"
        else:
            seen[key] = 1
        headers.append(name)
    return headers


class FileParser:
    """Decodes uploaded CSV / spreadsheet bytes into a RawTable."""

    def __init__(self, settings: Optional[ImportSettings] = None, register_defaults: bool = True):
        """Initialize the file parser.

        Args:
            settings: Limits to enforce (defaults to ImportSettings())
            register_defaults: If True, register the CSV and Excel adapters
        """
        self.settings = settings or ImportSettings()
        self.adapters = []
        if register_defaults:
            self.register_adapter(CsvAdapter())
            self.register_adapter(ExcelAdapter())

    def register_adapter(self, adapter):
        """Register a file adapter for parsing.

        Args:
            adapter: Adapter instance with can_handle() and iter_rows() methods
        """
        self.adapters.append(adapter)

    def _find_adapter(self, content_type: str):
        for a in self.adapters:
            if a.can_handle(content_type):
                return a
        raise UnsupportedFormat(content_type)

    def parse(self, data: bytes, content_type: str) -> RawTable:
        """Parse uploaded bytes into a RawTable.

        Args:
            data: Raw file bytes
            content_type: Declared type ("csv", "spreadsheet", a MIME type or a file name)

        Returns:
            RawTable with unique headers and rows padded to header width

        Raises:
            FileTooLarge: If the byte size exceeds max_file_bytes
            UnsupportedFormat: If no adapter handles the content type
            MalformedFile: If the bytes cannot be decoded
            EmptyFile: If there is no header row or no data rows
            RowLimitExceeded: If there are more than max_rows data rows
        """
        if len(data) > self.settings.max_file_bytes:
            raise FileTooLarge(len(data), self.settings.max_file_bytes)

        content_type = (content_type or "").split(";", 1)[0].strip()
        adapter = self._find_adapter(content_type)

        headers: Optional[List[str]] = None
        rows = []
        row_numbers = []

        for row_number, raw_cells in adapter.iter_rows(data, content_type):
            cells = [_clean_cell(c) for c in raw_cells]

            if headers is None:
                # Header row is the first non-empty row
                if any(c is not None for c in cells):
                    headers = _build_headers(cells)
                continue

            width = len(headers)
            cells = (cells + [None] * width)[:width]
            if all(c is None for c in cells):
                continue

            if len(rows) >= self.settings.max_rows:
                raise RowLimitExceeded(self.settings.max_rows)

            rows.append(tuple(cells))
            row_numbers.append(row_number)

        if headers is None:
            raise EmptyFile("File contains no header row")
        if not rows:
            raise EmptyFile()

        logger.info(f"Parsed {len(rows)} rows x {len(headers)} columns ({content_type})")

        return RawTable(
            headers=tuple(headers),
            rows=tuple(rows),
            source_row_numbers=tuple(row_numbers)
        )

    def export(self, data: List[Dict[str, Any]], output_path: str,
               format: Optional[str] = None, headers: Optional[Sequence[str]] = None) -> str:
        """Export rows (for example rejected rows with their reasons) to a file.

        Args:
            data: List of dictionaries, one per row
            output_path: Path where the file should be saved
            format: Output format ('csv', 'excel', 'json', or None for auto-detect from extension)
            headers: Column order (defaults to keys in first-seen order)

        Returns:
            Path to the exported file

        Raises:
            ValueError: If format is not supported or data is empty
        """
        if not data:
            raise ValueError("Cannot export empty data")

        output_path = Path(output_path)

        # Auto-detect format from extension if not provided
        if format is None:
            suffix = output_path.suffix.lower()
            if suffix in ['.csv', '.tsv']:
                format = 'csv'
            elif suffix in ['.xlsx', '.xlsm']:
                format = 'excel'
            elif suffix == '.json':
                format = 'json'
            else:
                format = 'csv'
                output_path = output_path.with_suffix('.csv')

        format = format.lower()

        if headers is None:
            headers = []
            for row in data:
                for key in row.keys():
                    if key not in headers:
                        headers.append(key)
        headers = list(headers)

        if format == 'csv':
            self._export_csv(data, output_path, headers)
        elif format == 'excel':
            self._export_excel(data, output_path, headers)
        elif format == 'json':
            self._export_json(data, output_path)
        else:
            raise ValueError(f"Unsupported export format: {format}. Supported formats: csv, excel, json")

        logger.info(f"Exported {len(data)} rows to {output_path}")
        return str(output_path)

    def _export_csv(self, data: List[Dict[str, Any]], output_path: Path, headers: List[str]) -> None:
        """Export data to CSV file."""
        with open(output_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=headers, extrasaction='ignore')
            writer.writeheader()
            for row in data:
                writer.writerow({header: row.get(header, '') for header in headers})

    def _export_excel(self, data: List[Dict[str, Any]], output_path: Path, headers: List[str]) -> None:
        """Export data to Excel file."""
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Rows"

        for col_idx, header in enumerate(headers, start=1):
            ws.cell(row=1, column=col_idx, value=header)

        for row_idx, row_data in enumerate(data, start=2):
            for col_idx, header in enumerate(headers, start=1):
                ws.cell(row=row_idx, column=col_idx, value=row_data.get(header, ''))

        wb.save(output_path)

    def _export_json(self, data: List[Dict[str, Any]], output_path: Path) -> None:
        """Export data to JSON file."""
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
