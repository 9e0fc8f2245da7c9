"""
shared/utils/csv_export.py
CSV generation for list exports.

Every field is quoted and embedded quotes are doubled (RFC 4180).
Embedded line breaks are flattened to spaces so an export always has
exactly one header line plus one line per row.
"""

import csv
import io
from typing import Any, Callable, Iterable, Sequence, Tuple

from fastapi.responses import StreamingResponse

# (header, value getter)
Column = Tuple[str, Callable[[Any], Any]]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    return text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")


def rows_to_csv(rows: Iterable[Any], columns: Sequence[Column]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([header for header, _ in columns])
    for row in rows:
        writer.writerow([_cell(getter(row)) for _, getter in columns])
    return buffer.getvalue()


def csv_response(text: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
