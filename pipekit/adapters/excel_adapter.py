import io
import zipfile
from datetime import date, datetime, time
from pathlib import Path

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import MalformedFile


class ExcelAdapter:
    CONTENT_TYPES = {
        "spreadsheet",
        "xlsx",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel.sheet.macroenabled.12",
    }
    SUFFIXES = {".xlsx", ".xlsm"}

    def can_handle(self, content_type):
        content_type = content_type.lower()
        return content_type in self.CONTENT_TYPES or Path(content_type).suffix in self.SUFFIXES

    def _cell_text(self, value):
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.time() == time(0, 0):
                return value.date().isoformat()
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def iter_rows(self, data, content_type="spreadsheet"):
        """Yield (row_number, cells) from the first worksheet."""
        try:
            wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (zipfile.BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as e:
            raise MalformedFile(f"Could not open spreadsheet: {e}")

        try:
            ws = wb.worksheets[0]
            for row_number, row in enumerate(ws.iter_rows(values_only=True), start=1):
                yield row_number, [self._cell_text(value) for value in row]
        finally:
            wb.close()
