"""Tolerant CSV parsing for worker output, embedded in stdout or written to a file."""

import csv
import io
import logging
import re
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from scraper_host.errors import MalformedRow, TooFewRows
from scraper_host.models import BusinessRecord

logger = logging.getLogger(__name__)

START_MARKER = "--- CSV_DATA_START ---"
END_MARKER = "--- CSV_DATA_END ---"
SEPARATOR = ","
QUOTE = '"'

_WHITESPACE_RUN = re.compile(r"\s+")
_NON_KEY_CHARS = re.compile(r"[^a-z0-9_]")

# Normalized header aliases per record field, first non-empty match wins.
FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "name": ("name", "business_name"),
    "address": ("address",),
    "phone": ("phone_number", "phonenumber", "phone"),
    "email": ("email",),
    "website": ("website",),
    "rating": ("rating",),
    "reviews": ("total_ratings", "totalratings", "reviews", "review_count"),
    "additional_numbers": ("additional_numbers", "additionalnumbers"),
    "additional_emails": ("additional_emails", "additionalemails"),
    "social_media_links": ("social_media_links", "socialmedialinks"),
}

# Column titles used by the worker when it prints its table.
DISPLAY_HEADERS: Dict[str, str] = {
    "name": "Name",
    "address": "Address",
    "phone": "Phone Number",
    "email": "Email",
    "website": "Website",
    "rating": "Rating",
    "reviews": "Total Ratings",
    "additional_numbers": "Additional Numbers",
    "additional_emails": "Additional Emails",
    "social_media_links": "Social Media Links",
}


def normalize_header(header: str) -> str:
    """Lower-case, collapse whitespace to ``_`` and drop anything outside ``[a-z0-9_]``."""
    key = _WHITESPACE_RUN.sub("_", header.strip().lower())
    return _NON_KEY_CHARS.sub("", key)


def split_row(line: str, separator: str = SEPARATOR, quote: str = QUOTE) -> List[str]:
    """Split one line into trimmed fields; separators inside quotes are literal.

    A doubled quote inside a quoted region yields one literal quote character.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char == quote:
            if in_quotes and index + 1 < length and line[index + 1] == quote:
                current.append(quote)
                index += 1
            else:
                in_quotes = not in_quotes
        elif char == separator and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        index += 1

    fields.append("".join(current).strip())
    return fields


def parse_text(text: str) -> List[Dict[str, str]]:
    """Parse CSV text into rows keyed by normalized header names.

    Raises ``TooFewRows`` when there is no header plus at least one data row and
    ``MalformedRow`` when the header yields no usable column names.
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if len(lines) < 2:
        raise TooFewRows(f"Expected a header and at least one data row, got {len(lines)} line(s)")

    headers = [normalize_header(cell) for cell in split_row(lines[0])]
    if not any(headers):
        raise MalformedRow(f"Header row has no usable column names: {lines[0]!r}")

    rows: List[Dict[str, str]] = []
    for line in lines[1:]:
        values = split_row(line)
        row: Dict[str, str] = {}
        for index, header in enumerate(headers):
            if not header:
                continue
            row[header] = values[index] if index < len(values) else ""
        rows.append(row)
    return rows


def extract_embedded(full_output: str, start_marker: str = START_MARKER, end_marker: str = END_MARKER) -> Optional[str]:
    """Return the trimmed text between the markers, or ``None`` when either is absent."""
    start = full_output.find(start_marker)
    if start == -1:
        return None
    start += len(start_marker)
    end = full_output.find(end_marker, start)
    if end == -1:
        return None
    return full_output[start:end].strip()


def to_business_record(row: Mapping[str, str]) -> BusinessRecord:
    values: Dict[str, str] = {}
    for field_name, aliases in FIELD_ALIASES.items():
        values[field_name] = next((row[alias] for alias in aliases if row.get(alias)), "")
    return BusinessRecord(**values)


def to_business_records(rows: Iterable[Mapping[str, str]]) -> List[BusinessRecord]:
    return [to_business_record(row) for row in rows]


def extract_table(stdout_text: str) -> Optional[List[BusinessRecord]]:
    """Records from the embedded block, or ``None`` when there is no usable block."""
    block = extract_embedded(stdout_text)
    if block is None:
        logger.info("CSV data markers not found in output")
        return None
    try:
        rows = parse_text(block)
    except (TooFewRows, MalformedRow) as exc:
        logger.warning("Ignoring embedded CSV block: %s", exc)
        return None
    logger.info("Parsed %d rows from embedded CSV block", len(rows))
    return to_business_records(rows)


def read_table_file(path: Path) -> List[BusinessRecord]:
    """Parse a result file; raises ``FileNotFoundError`` or a CSV parse error."""
    content = Path(path).read_text(encoding="utf-8", errors="replace")
    return to_business_records(parse_text(content))


def load_result_table(
    path: Path,
    *,
    attempts: int = 3,
    delay: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[List[BusinessRecord]]:
    """Read a result file the worker may still be flushing, waiting longer before each attempt."""
    for attempt in range(1, attempts + 1):
        sleep(delay * attempt)
        try:
            records = read_table_file(path)
        except FileNotFoundError:
            logger.info("Result file %s not found (attempt %d/%d)", path, attempt, attempts)
            continue
        except (TooFewRows, MalformedRow) as exc:
            logger.info("Result file %s not usable yet (attempt %d/%d): %s", path, attempt, attempts, exc)
            continue
        except OSError as exc:
            logger.warning("Failed to read result file %s (attempt %d/%d): %s", path, attempt, attempts, exc)
            continue
        if records:
            return records
    logger.warning("No business data could be loaded from %s", path)
    return None


def format_table(records: Iterable[BusinessRecord]) -> str:
    """Render records as CSV with the worker's human-readable column titles."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    field_names = BusinessRecord.field_names()
    writer.writerow([DISPLAY_HEADERS[name] for name in field_names])
    for record in records:
        # Rows are line-delimited, so embedded line breaks cannot survive.
        writer.writerow([" ".join(getattr(record, name).splitlines()).strip() for name in field_names])
    return buffer.getvalue()


def format_embedded_block(records: Iterable[BusinessRecord]) -> str:
    return f"{START_MARKER}\n{format_table(records)}{END_MARKER}\n"
