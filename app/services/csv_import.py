"""
CSV parsing and validation for agency bulk uploads.

The parse is all-or-nothing: the first bad header or row raises
CsvValidationError and no records are returned. Row numbers in messages are
1-based over the non-blank lines of the file, so the header is row 1.

Expected format:
    name,location,description,contact_email,trust_score,price,...
    Acme Edu,Pune,"Great, agency",hello@acme.edu,80,1500
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.errors import CsvValidationError

REQUIRED_COLUMNS = ("name", "location", "description", "contact_email")
OPTIONAL_COLUMNS = ("trust_score", "price", "contact_phone", "website", "business_hours")
KNOWN_COLUMNS = REQUIRED_COLUMNS + OPTIONAL_COLUMNS

BOM = "\ufeff"

# Leading numeric prefix, e.g. "12.5", "-3", ".5", "1e3" ("12abc" parses as 12)
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_LINE_SPLIT = re.compile(r"\r?\n")
_SURROUNDING_QUOTES = re.compile(r'^"(.*)"$')


@dataclass
class CsvRecord:
    """One validated data row of a bulk-upload file."""

    name: str
    location: str
    description: str
    contact_email: str
    trust_score: float = 0.0
    price: float = 0.0
    contact_phone: str = ""
    website: str = ""
    business_hours: str = ""

    def to_insert_payload(self, owner_id: Optional[str] = None) -> Dict[str, Any]:
        payload = asdict(self)
        payload["owner_id"] = owner_id
        payload["status"] = "pending"
        return payload


def parse_csv_line(line: str) -> List[str]:
    """Split one CSV line, honouring double-quoted fields and "" escapes."""
    values: List[str] = []
    current: List[str] = []
    inside_quotes = False

    line = line.lstrip(BOM)
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if inside_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                inside_quotes = not inside_quotes
        elif char == "," and not inside_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    values.append("".join(current).strip())
    return [_SURROUNDING_QUOTES.sub(r"\1", value) for value in values]


def _parse_number(value: str) -> Optional[float]:
    """Parse the leading numeric prefix of value; None when there is none."""
    match = _NUMBER_PREFIX.match(value)
    if not match:
        return None
    return float(match.group(0))


def _build_record(headers: List[str], values: List[str], row: int) -> CsvRecord:
    fields: Dict[str, Any] = {}

    for header, value in zip(headers, values):
        if header in REQUIRED_COLUMNS and not value:
            raise CsvValidationError(
                f"Missing required value for {header} in row {row}", row=row, column=header
            )

        if header == "trust_score":
            score = _parse_number(value) if value else None
            if value and (score is None or score < 0 or score > 100):
                raise CsvValidationError(
                    f"Trust score must be between 0 and 100 in row {row}", row=row, column=header
                )
            fields[header] = score or 0.0
        elif header == "price":
            price = _parse_number(value) if value else None
            if value and (price is None or price < 0):
                raise CsvValidationError(
                    f"Price must be a positive number in row {row}", row=row, column=header
                )
            fields[header] = price or 0.0
        elif header in KNOWN_COLUMNS:
            fields[header] = value

    return CsvRecord(**fields)


def parse_csv(content: str) -> List[CsvRecord]:
    """
    Parse a bulk-upload CSV document into validated records.

    Args:
        content: Full text of the file (a leading BOM is tolerated)

    Returns:
        Records in file order

    Raises:
        CsvValidationError: On the first structural or value error
    """
    lines = [line for line in _LINE_SPLIT.split(content.lstrip(BOM)) if line.strip()]

    if len(lines) < 2:
        raise CsvValidationError("CSV file must contain a header row and at least one data row")

    headers = [header.lower().strip() for header in parse_csv_line(lines[0])]

    for required in REQUIRED_COLUMNS:
        if required not in headers:
            raise CsvValidationError(f"Missing required column: {required}", column=required)

    records: List[CsvRecord] = []
    for index, line in enumerate(lines[1:], start=2):
        try:
            values = parse_csv_line(line)
            if len(values) != len(headers):
                raise CsvValidationError(
                    f"Row {index} has {len(values)} columns but should have {len(headers)}", row=index
                )
            records.append(_build_record(headers, values, index))
        except CsvValidationError as e:
            raise CsvValidationError(f"Error in row {index}: {e.message}", row=index, column=e.column) from e

    return records


def validate_upload(filename: Optional[str], size: int, max_bytes: Optional[int] = None) -> None:
    """Checks made before a file is read: extension and size."""
    if max_bytes is None:
        max_bytes = settings.MAX_UPLOAD_BYTES
    if not filename or not filename.lower().endswith(".csv"):
        raise CsvValidationError("Please upload a CSV file")
    if size > max_bytes:
        raise CsvValidationError(f"File size must be less than {max_bytes // (1024 * 1024)}MB")


def decode_csv_upload(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvValidationError("File must be UTF-8 encoded text") from e


__all__ = [
    "CsvRecord",
    "parse_csv",
    "parse_csv_line",
    "validate_upload",
    "decode_csv_upload",
    "REQUIRED_COLUMNS",
    "OPTIONAL_COLUMNS",
]
