import csv
import io
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from fastapi.responses import Response

DATE_FORMAT = "%d/%m/%Y %H:%M"
FILENAME_FORMAT = "%Y-%m-%d_%H-%M-%S"


def to_csv(rows: Iterable[Mapping[str, Any]], headers: List[str]) -> str:
    """Render rows as CSV; fields holding commas, quotes or newlines are quoted with quotes doubled."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")

    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if row.get(h) is None else str(row.get(h)) for h in headers])

    return buffer.getvalue()


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.strftime(DATE_FORMAT)


def export_filename(prefix: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{prefix}_{now.strftime(FILENAME_FORMAT)}.csv"


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
