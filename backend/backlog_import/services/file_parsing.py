"""
Export parsing: CSV, JSON and Excel files into raw rows.

Every parser returns (headers, rows) where each row maps every header to a
string, with "" for missing cells. Blank lines are dropped. Nothing here
interprets values; that is the reconciliation engine's job.
"""

import csv
import io
import json
from typing import Any

import openpyxl

# Envelope keys that hold the item list in common tracker exports.
JSON_ENVELOPE_KEYS = ("issues", "items", "data")


class ExportParseError(ValueError):
    """The file could not be read as the format it claims to be."""


def detect_format(filename: str | None) -> str:
    """Guess the format from a file name. Anything unknown is treated as CSV."""
    name = (filename or "").lower()
    if name.endswith(".json"):
        return "json"
    if name.endswith((".xlsx", ".xlsm")):
        return "excel"
    return "csv"


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows_from_table(headers: list[str], table: list[list[str]]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for values in table:
        if not values or all(v.strip() == "" for v in values):
            continue
        rows.append({
            h: (values[idx].strip() if idx < len(values) else "")
            for idx, h in enumerate(headers)
        })
    return rows


# ─── CSV ──────────────────────────────────────────────────────

def parse_csv(file_bytes: bytes) -> tuple[list[str], list[dict[str, str]]]:
    """Parse a CSV export. The first non-blank line is the header row."""
    try:
        text_content = file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ExportParseError(f"CSV file is not UTF-8: {e}") from e

    reader = csv.reader(io.StringIO(text_content))
    header_values: list[str] | None = None
    for values in reader:
        if values and any(v.strip() for v in values):
            header_values = values
            break
    if header_values is None:
        return [], []

    headers = [h.strip() for h in header_values]
    return headers, _rows_from_table(headers, list(reader))


# ─── JSON ─────────────────────────────────────────────────────

def flatten_record(obj: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """
    Flatten nested objects into dotted keys.
    {"fields": {"status": {"name": "Done"}}} → {"fields.status.name": "Done"}

    Lists are kept as one cell; lists of scalars are comma-joined so that
    tag and dependency columns survive.
    """
    result: dict[str, str] = {}
    for key, value in obj.items():
        new_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            result.update(flatten_record(value, new_key))
        elif isinstance(value, list):
            if all(not isinstance(v, (dict, list)) for v in value):
                result[new_key] = ", ".join(_cell_to_str(v) for v in value if v is not None)
            else:
                result[new_key] = json.dumps(value)
        else:
            result[new_key] = _cell_to_str(value)
    return result


def parse_json(file_bytes: bytes) -> tuple[list[str], list[dict[str, str]]]:
    """
    Parse a JSON export.

    Accepts a list of objects, an envelope holding the list under one of
    JSON_ENVELOPE_KEYS (Jira uses "issues"), or a single object.
    """
    try:
        data = json.loads(file_bytes.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ExportParseError(f"Invalid JSON: {e}") from e

    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = next(
            (data[k] for k in JSON_ENVELOPE_KEYS if isinstance(data.get(k), list)),
            [data],
        )
    else:
        raise ExportParseError("JSON export must be an object or a list of objects")

    rows = [flatten_record(item) for item in items if isinstance(item, dict)]

    # Header order: first appearance across all rows
    headers: dict[str, None] = {}
    for row in rows:
        for key in row:
            headers.setdefault(key, None)
    header_list = list(headers)
    return header_list, [{h: row.get(h, "") for h in header_list} for row in rows]


# ─── Excel ────────────────────────────────────────────────────

def parse_excel(file_bytes: bytes) -> tuple[list[str], list[dict[str, str]]]:
    """Parse the active sheet of a workbook. The first non-empty row is the header."""
    try:
        wb = openpyxl.load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    except Exception as e:
        raise ExportParseError(f"Invalid Excel file: {e}") from e

    try:
        ws = wb.active
        table = [
            [_cell_to_str(v) for v in row_values]
            for row_values in ws.iter_rows(values_only=True)
        ]
    finally:
        wb.close()

    while table and all(v == "" for v in table[0]):
        table.pop(0)
    if not table:
        return [], []

    headers = list(table[0])
    # Trailing unnamed columns are formatting debris
    while headers and headers[-1] == "":
        headers.pop()
    return headers, _rows_from_table(headers, table[1:])


PARSERS = {
    "csv": parse_csv,
    "json": parse_json,
    "excel": parse_excel,
}


def parse_export(file_bytes: bytes, filename: str | None = None) -> tuple[str, list[str], list[dict[str, str]]]:
    """Parse an uploaded export. Returns (format, headers, rows)."""
    fmt = detect_format(filename)
    headers, rows = PARSERS[fmt](file_bytes)
    return fmt, headers, rows
