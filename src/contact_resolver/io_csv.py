"""CSV serialization helpers."""

from __future__ import annotations

import csv
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from .models import ContactRecord, FuzzySearchResult

CSV_FIELDS = [
    "name",
    "phones",
    "emails",
    "addresses",
    "score",
    "match_type",
    "match_value",
]

LIST_SEPARATOR = ";"


def contact_row(record: ContactRecord, match: FuzzySearchResult | None = None) -> dict[str, str]:
    """Flatten a contact (and optionally how it matched) into one CSV row."""
    return {
        "name": record.name,
        "phones": LIST_SEPARATOR.join(record.phones),
        "emails": LIST_SEPARATOR.join(record.emails),
        "addresses": LIST_SEPARATOR.join(record.addresses),
        "score": f"{match.score:.3f}" if match else "",
        "match_type": match.match_type if match else "",
        "match_value": match.match_value if match else "",
    }


def _write(file_obj: TextIO, rows: Iterable[dict[str, str]]) -> None:
    writer = csv.DictWriter(file_obj, fieldnames=CSV_FIELDS)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)


def write_rows(path: str | None, rows: Iterable[dict[str, str]]) -> None:
    """Write contact rows to CSV with stable schema; ``None`` or ``-`` means stdout."""
    if path is None or path == "-":
        _write(sys.stdout, rows)
        return
    output_path = Path(path)
    with output_path.open("w", newline="", encoding="utf-8") as file_obj:
        _write(file_obj, rows)
