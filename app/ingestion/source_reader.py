"""
app/ingestion/source_reader.py

CSV reader that turns an uploaded product list into SourceRecords.

Column roles are detected with an ordered rule table: the first rule whose
predicate accepts a header wins, and a role with no matching header falls
back to its position (first column = sequence, second = product).
"""

from __future__ import annotations

import csv
import io
import logging
import re
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Sequence

from app.domain.drug_records import SourceRecord

logger = logging.getLogger(__name__)

SEQUENCE_ROLE = "sequence"
PRODUCT_ROLE = "product"


class SourceFileError(ValueError):
    """
    Raised when an upload cannot be read into at least one source row.
    """


def normalize_header(header: str) -> str:
    return "".join(ch for ch in (header or "").strip().lower() if ch.isalnum() or ch == "#")


def _exact(*aliases: str) -> Callable[[str], bool]:
    accepted = {normalize_header(alias) for alias in aliases}
    return lambda header: normalize_header(header) in accepted


def _pattern(expression: str) -> Callable[[str], bool]:
    compiled = re.compile(expression, re.IGNORECASE)
    return lambda header: bool(compiled.search(header or ""))


@dataclass(frozen=True)
class ColumnRule:
    role: str
    name: str
    predicate: Callable[[str], bool]


# Evaluated top to bottom; exact aliases outrank substring patterns.
COLUMN_RULES: tuple[ColumnRule, ...] = (
    ColumnRule(SEQUENCE_ROLE, "sequence_alias", _exact("순번", "seq", "sequence", "no", "no.", "number", "index", "#")),
    ColumnRule(PRODUCT_ROLE, "product_alias", _exact("product", "product name", "product_name", "제품명", "품목명")),
    ColumnRule(SEQUENCE_ROLE, "sequence_pattern", _pattern(r"순번|seq|\bno\b\.?|number|#|index")),
    ColumnRule(PRODUCT_ROLE, "product_pattern", _pattern(r"product|brand|name|제품|품목|english")),
)

# Product is resolved first so it is never starved by the sequence fallback.
POSITIONAL_DEFAULTS: dict[str, int] = {PRODUCT_ROLE: 1, SEQUENCE_ROLE: 0}


@dataclass(frozen=True)
class ColumnSelection:
    sequence_column: str | None
    product_column: str
    strategies: dict[str, str]


def detect_columns(headers: Sequence[str], rules: Sequence[ColumnRule] = COLUMN_RULES) -> ColumnSelection:
    """
    Assign the sequence and product roles to distinct headers.

    Raises:
        SourceFileError: If no header can hold the product role.
    """

    selected: dict[str, str] = {}
    strategies: dict[str, str] = {}
    for rule in rules:
        if rule.role in selected:
            continue
        for header in headers:
            if header in selected.values():
                continue
            if rule.predicate(header):
                selected[rule.role] = header
                strategies[rule.role] = rule.name
                break

    for role, position in POSITIONAL_DEFAULTS.items():
        if role in selected:
            continue
        free = [header for header in headers if header not in selected.values()]
        if position < len(headers) and headers[position] in free:
            selected[role] = headers[position]
            strategies[role] = "positional"
        elif role == PRODUCT_ROLE and free:
            # A single-column file is a product list without sequence numbers.
            selected[role] = free[0]
            strategies[role] = "positional"

    if PRODUCT_ROLE not in selected:
        raise SourceFileError("Could not find a product column in the uploaded file.")

    return ColumnSelection(
        sequence_column=selected.get(SEQUENCE_ROLE),
        product_column=selected[PRODUCT_ROLE],
        strategies=strategies,
    )


def read_source_records(stream: IO[bytes] | IO[str] | bytes | str) -> list[SourceRecord]:
    """
    Read a CSV (UTF-8, BOM tolerant) into source rows.

    Rows with an empty product are dropped. A missing sequence value falls
    back to the 1-based data row number. Sequences must be unique.
    """

    if isinstance(stream, bytes):
        stream = io.BytesIO(stream)
    elif isinstance(stream, str):
        stream = io.StringIO(stream)

    text_stream: IO[str]
    wrapped = not isinstance(stream, io.TextIOBase)
    if wrapped:
        text_stream = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")  # type: ignore[arg-type]
    else:
        text_stream = stream  # type: ignore[assignment]

    try:
        reader = csv.DictReader(text_stream)
        headers = [header for header in (reader.fieldnames or []) if header is not None]
        if not headers:
            raise SourceFileError("CSV header row is missing.")

        selection = detect_columns(headers)
        records: list[SourceRecord] = []
        skipped = 0
        for row_number, row in enumerate(reader, start=1):
            product = (row.get(selection.product_column) or "").strip()
            if not product:
                skipped += 1
                continue
            raw_sequence = (row.get(selection.sequence_column) or "").strip() if selection.sequence_column else ""
            records.append(SourceRecord(sequence=raw_sequence or str(row_number), product_name=product))
    except UnicodeDecodeError as exc:
        raise SourceFileError("Uploaded file is not valid UTF-8 text.") from exc
    except csv.Error as exc:
        raise SourceFileError(f"Malformed CSV content: {exc}") from exc
    finally:
        if wrapped:
            # Leave the caller's byte stream open.
            text_stream.detach()  # type: ignore[attr-defined]

    if not records:
        raise SourceFileError("Uploaded file has no rows with a product name.")

    sequence_counts = Counter(record.sequence for record in records)
    duplicates = sorted(sequence for sequence, count in sequence_counts.items() if count > 1)
    if duplicates:
        raise SourceFileError(f"Duplicate sequence values: {', '.join(duplicates)}")

    logger.info(
        "Source rows read rows=%s skipped=%s sequence_column=%s product_column=%s strategies=%s",
        len(records),
        skipped,
        selection.sequence_column,
        selection.product_column,
        selection.strategies,
    )
    return records


def read_source_file(path: str | Path) -> list[SourceRecord]:
    with Path(path).open("rb") as handle:
        return read_source_records(handle)
