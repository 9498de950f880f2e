import csv
import io
import chardet
from pathlib import Path
from typing import Iterator, List, Tuple

from ..errors import MalformedFile


class CsvAdapter:
    """CSV adapter for decoding uploaded CSV and TSV bytes.

    Handles:
    - Multiple encodings (UTF-8, UTF-8-BOM, Windows-1252, etc.)
    - Different delimiters (comma, semicolon, tab)
    - Strict quoting: unbalanced quotes are a MalformedFile, not a silent merge
    """

    CONTENT_TYPES = {"csv", "text/csv", "application/csv", "tsv", "text/tab-separated-values"}
    SUFFIXES = {".csv", ".tsv"}
    FALLBACK_ENCODINGS = ["utf-8", "cp1252"]

    def can_handle(self, content_type: str) -> bool:
        """Check if this adapter can handle the declared content type or file name."""
        content_type = content_type.lower()
        return content_type in self.CONTENT_TYPES or Path(content_type).suffix in self.SUFFIXES

    def _is_tab_separated(self, content_type: str) -> bool:
        content_type = content_type.lower()
        return "tab-separated" in content_type or content_type == "tsv" or content_type.endswith(".tsv")

    def _detect_encoding(self, data: bytes) -> str:
        """Detect byte encoding using chardet, checking for a UTF-8 BOM first."""
        if data.startswith(b'\xef\xbb\xbf'):
            return 'utf-8-sig'

        # Use the first 10KB for detection
        result = chardet.detect(data[:10000])
        encoding = result.get('encoding') or 'utf-8'

        encoding_lower = encoding.lower()
        if 'utf-8' in encoding_lower or 'utf8' in encoding_lower or encoding_lower == 'ascii':
            return 'utf-8'
        return encoding

    def _decode(self, data: bytes) -> str:
        """Decode bytes with the detected encoding, then the fallbacks.

        Raises:
            MalformedFile: If no candidate encoding decodes the bytes
        """
        detected = self._detect_encoding(data)
        candidates = [detected] + [e for e in self.FALLBACK_ENCODINGS if e != detected]

        for encoding in candidates:
            try:
                text = data.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                continue
            if '\x00' in text:
                raise MalformedFile("File contains binary data and is not a text CSV")
            return text

        raise MalformedFile(f"Could not decode file (tried {', '.join(candidates)})")

    def _detect_delimiter(self, text: str) -> str:
        """Detect the delimiter from a sample, falling back to first-line counts."""
        first_line = text.split('\n', 1)[0]

        try:
            dialect = csv.Sniffer().sniff(text[:4096], delimiters=',;\t')
            if dialect.delimiter in first_line:
                return dialect.delimiter
        except csv.Error:
            pass

        comma_count = first_line.count(',')
        semicolon_count = first_line.count(';')
        tab_count = first_line.count('\t')

        if tab_count > comma_count and tab_count > semicolon_count:
            return '\t'
        elif semicolon_count > comma_count:
            return ';'
        return ','

    def iter_rows(self, data: bytes, content_type: str = "csv") -> Iterator[Tuple[int, List[str]]]:
        """Yield (line_number, cells) for every record in the file.

        Args:
            data: Raw CSV/TSV bytes
            content_type: Declared content type, used to pick the tab delimiter for TSV

        Yields:
            1-based line number where the record starts, and its raw cell strings

        Raises:
            MalformedFile: If the bytes cannot be decoded or quoting is unbalanced
        """
        if not data:
            return

        text = self._decode(data)
        delimiter = '\t' if self._is_tab_separated(content_type) else self._detect_delimiter(text)

        reader = csv.reader(io.StringIO(text, newline=''), delimiter=delimiter,
                            quotechar='"', strict=True)
        line_number = 1
        try:
            for cells in reader:
                yield line_number, cells
                line_number = reader.line_num + 1
        except csv.Error as e:
            raise MalformedFile(f"Error parsing CSV near line {reader.line_num}: {e}")
