"""HTML rendering for notification bodies."""

import html
from datetime import datetime, timezone
from typing import Optional, Sequence

from .models._time import ensure_utc

STYLE = """<style>
body { font-family: Calibri, Arial, sans-serif; font-size: 11pt; }
table { border-width: 1px; border-style: solid; border-color: black; border-collapse: collapse; }
th { border-width: 1px; padding: 3px; border-style: solid; border-color: black; background-color: #6495ED; }
td { border-width: 1px; padding: 3px; border-style: solid; border-color: black; }
</style>"""

EMPTY_ROW_TEXT = "No events."


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def render_table(headers: Sequence[str], rows: Sequence[Sequence[Optional[object]]]) -> str:
    """Render rows as an HTML table; every cell is escaped, None renders empty."""
    lines = ["<table>"]
    lines.append("<tr>" + "".join(f"<th>{html.escape(h)}</th>" for h in headers) + "</tr>")
    if not rows:
        lines.append(f'<tr><td colspan="{len(headers)}">{EMPTY_ROW_TEXT}</td></tr>')
    for row in rows:
        cells = "".join(
            f"<td>{html.escape('' if cell is None else str(cell))}</td>" for cell in row
        )
        lines.append(f"<tr>{cells}</tr>")
    lines.append("</table>")
    return "\n".join(lines)


def render_document(header: str, table: str, extra_lines: Sequence[str] = ()) -> str:
    """Wrap a header line and a rendered table in a styled HTML document."""
    paragraphs = [f"<p>{html.escape(header)}</p>"]
    paragraphs.extend(f"<p>{html.escape(line)}</p>" for line in extra_lines)
    return "\n".join(
        [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            '<meta charset="utf-8">',
            STYLE,
            "</head>",
            "<body>",
            *paragraphs,
            table,
            "</body>",
            "</html>",
            "",
        ]
    )
