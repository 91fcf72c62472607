"""
Report and dashboard exports: CSV, Markdown, paginated PDF, dashboard PNG/PDF.

Every exporter is a pure read of its inputs. Rows, reports and figures are
never modified, so exporting cannot disturb the live view.
"""

from __future__ import annotations

import base64
import html
import io
import math
import re
import struct
from dataclasses import dataclass
from typing import Sequence

import pandas as pd
import plotly.graph_objects as go
import plotly.io as pio

from insight_stream.charts import compose_dashboard
from insight_stream.models import Report
from insight_stream.rows import DataRow, display_text

# A4 at 96 dpi with 48px margins.
PAGE_WIDTH_PX = 794
PAGE_HEIGHT_PX = 1123
PAGE_MARGIN_PX = 48
CONTENT_WIDTH_PX = PAGE_WIDTH_PX - 2 * PAGE_MARGIN_PX
CONTENT_HEIGHT_PX = PAGE_HEIGHT_PX - 2 * PAGE_MARGIN_PX

LINE_HEIGHT_PX = 20
CHARS_PER_LINE = 95
BLOCK_SPACING_PX = 12

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv",
    "markdown": "text/markdown",
    "pdf": "application/pdf",
    "png": "image/png",
    "svg": "image/svg+xml",
}
EXPORT_EXTENSIONS = {"csv": "csv", "markdown": "md", "pdf": "pdf", "png": "png", "svg": "svg"}


def slugify(title: str) -> str:
    slug = re.sub(r"\s+", "-", title.strip().lower())
    slug = re.sub(r"[^\w-]", "", slug)
    return slug or "export"


def export_filename(title: str, fmt: str, suffix: str = "") -> str:
    stem = slugify(title)
    if suffix:
        stem = f"{stem}-{slugify(suffix)}"
    return f"{stem}.{EXPORT_EXTENSIONS.get(fmt, fmt)}"


def rows_to_csv(rows: Sequence[DataRow]) -> str:
    """CSV with the first row's keys as header; RFC 4180 quoting, CRLF lines."""
    if not rows:
        return ""
    header = list(rows[0].keys())
    frame = pd.DataFrame([[display_text(row.get(column)) for column in header] for row in rows], columns=header)
    stream = io.StringIO()
    frame.to_csv(stream, index=False, lineterminator="\r\n")
    return stream.getvalue()


def report_to_markdown(report: Report) -> str:
    analysis = report.analysis
    lines = [
        f"# {report.name}",
        "",
        f"_Generated {report.date} from {len(report.data)} rows._",
        "",
        "## Summary",
        "",
        analysis.summary,
        "",
    ]
    if analysis.statistics:
        lines += ["## Key statistics", "", "| Metric | Value |", "| --- | --- |"]
        lines += [
            f"| {stat.label.replace('|', '/')} | {display_text(stat.value).replace('|', '/')} |"
            for stat in analysis.statistics
        ]
        lines.append("")
    lines += ["## Insights", ""]
    lines += [f"- {insight}" for insight in analysis.insights] or ["- No insights returned."]
    lines.append("")
    pulse = analysis.performance_pulse
    if pulse.strengths or pulse.risks:
        lines += ["## Performance pulse", "", "### Strengths", ""]
        lines += [f"- {item}" for item in pulse.strengths] or ["- None noted."]
        lines += ["", "### Risks", ""]
        lines += [f"- {item}" for item in pulse.risks] or ["- None noted."]
        lines.append("")
    if analysis.suggested_charts:
        lines += ["## Charts", ""]
        lines += [f"- {chart.title} ({chart.type}: {chart.x_axis} vs {chart.y_axis})" for chart in analysis.suggested_charts]
        lines.append("")
    return "\n".join(lines)


@dataclass(frozen=True)
class PdfBlock:
    html: str
    height: int

    @classmethod
    def heading(cls, text: str, level: int = 2) -> "PdfBlock":
        size = 32 if level == 1 else 26
        return cls(f"<h{level}>{html.escape(text)}</h{level}>", size + BLOCK_SPACING_PX)

    @classmethod
    def paragraph(cls, text: str, tag: str = "p") -> "PdfBlock":
        lines = max(1, math.ceil(len(text) / CHARS_PER_LINE))
        return cls(f"<{tag}>{html.escape(text)}</{tag}>", lines * LINE_HEIGHT_PX + BLOCK_SPACING_PX)

    @classmethod
    def statistic(cls, label: str, value: str) -> "PdfBlock":
        return cls(
            f"<div class=\"stat\"><span>{html.escape(label)}</span><strong>{html.escape(value)}</strong></div>",
            LINE_HEIGHT_PX + BLOCK_SPACING_PX,
        )


def paginate_blocks(blocks: Sequence[PdfBlock], page_height: int = CONTENT_HEIGHT_PX) -> list[list[PdfBlock]]:
    """Greedy page fill: a block that would cross the page boundary starts a new page."""
    pages: list[list[PdfBlock]] = []
    current: list[PdfBlock] = []
    used = 0
    for block in blocks:
        if current and used + block.height > page_height:
            pages.append(current)
            current, used = [], 0
        current.append(block)
        used += block.height
    if current:
        pages.append(current)
    return pages


def report_blocks(report: Report) -> list[PdfBlock]:
    analysis = report.analysis
    blocks = [
        PdfBlock.heading(report.name, level=1),
        PdfBlock.paragraph(f"Generated {report.date} from {len(report.data)} rows.", tag="small"),
        PdfBlock.heading("Summary"),
        PdfBlock.paragraph(analysis.summary),
    ]
    if analysis.statistics:
        blocks.append(PdfBlock.heading("Key statistics"))
        blocks += [PdfBlock.statistic(stat.label, display_text(stat.value)) for stat in analysis.statistics]
    blocks.append(PdfBlock.heading("Insights"))
    blocks += [PdfBlock.paragraph(f"• {insight}") for insight in analysis.insights]
    pulse = analysis.performance_pulse
    if pulse.strengths:
        blocks.append(PdfBlock.heading("Strengths"))
        blocks += [PdfBlock.paragraph(f"+ {item}") for item in pulse.strengths]
    if pulse.risks:
        blocks.append(PdfBlock.heading("Risks"))
        blocks += [PdfBlock.paragraph(f"- {item}") for item in pulse.risks]
    return blocks


_PDF_STYLE = f"""
  @page {{ size: A4; margin: {PAGE_MARGIN_PX}px; }}
  body {{ font-family: Arial, sans-serif; color: #1d2939; margin: 0; font-size: 13px; line-height: {LINE_HEIGHT_PX}px; }}
  h1 {{ font-size: 24px; margin: 0 0 8px; color: #4338ca; }}
  h2 {{ font-size: 17px; margin: 8px 0 4px; }}
  p, small {{ display: block; margin: 0 0 {BLOCK_SPACING_PX}px; }}
  small {{ color: #667085; }}
  .page {{ page-break-after: always; }}
  .page:last-child {{ page-break-after: auto; }}
  .stat {{ display: flex; justify-content: space-between; border-bottom: 1px solid #e4e7ec; margin-bottom: 6px; }}
  .tile {{ overflow: hidden; width: {CONTENT_WIDTH_PX}px; height: {CONTENT_HEIGHT_PX}px; page-break-after: always; }}
  .tile:last-child {{ page-break-after: auto; }}
  .tile img {{ width: {CONTENT_WIDTH_PX}px; display: block; }}
"""


def _document(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <title>{html.escape(title)}</title>
  <style>{_PDF_STYLE}</style>
</head>
<body>
{body}
</body>
</html>"""


def _html_to_pdf(document: str) -> bytes:
    from weasyprint import HTML

    return HTML(string=document).write_pdf()


def report_html(report: Report, page_height: int = CONTENT_HEIGHT_PX) -> str:
    pages = paginate_blocks(report_blocks(report), page_height)
    body = "\n".join(
        "<section class=\"page\">" + "".join(block.html for block in page) + "</section>" for page in pages
    )
    return _document(report.name, body)


def report_pdf(report: Report) -> bytes:
    return _html_to_pdf(report_html(report))


def dashboard_png(figures: Sequence[go.Figure], titles: Sequence[str], scale: float = 1.0) -> bytes:
    """Capture every chart (interactive chrome removed) as one tall PNG."""
    composite = compose_dashboard(figures, titles)
    return pio.to_image(composite, format="png", width=composite.layout.width, height=composite.layout.height, scale=scale)


def png_size(png: bytes) -> tuple[int, int]:
    if png[:8] != b"\x89PNG\r\n\x1a\n":
        raise ValueError("Not a PNG image.")
    width, height = struct.unpack(">II", png[16:24])
    return width, height


def dashboard_tiles(image_height: int, page_height: int = CONTENT_HEIGHT_PX) -> list[int]:
    """Vertical offsets of the page-sized slices covering an image of ``image_height``."""
    if image_height <= 0:
        return [0]
    return [index * page_height for index in range(math.ceil(image_height / page_height))]


def dashboard_html(png: bytes, title: str = "Dashboard") -> str:
    width, height = png_size(png)
    scaled_height = math.ceil(height * CONTENT_WIDTH_PX / width)
    encoded = base64.b64encode(png).decode("ascii")
    tiles = "\n".join(
        f"<div class=\"tile\"><img src=\"data:image/png;base64,{encoded}\" style=\"margin-top:-{offset}px\"/></div>"
        for offset in dashboard_tiles(scaled_height)
    )
    return _document(title, tiles)


def dashboard_pdf(png: bytes, title: str = "Dashboard") -> bytes:
    return _html_to_pdf(dashboard_html(png, title))
