from __future__ import annotations

import csv
import datetime
import io
from typing import Any, List, Mapping, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .hours import labor_cost, shift_hours, week_matrix
from .timegrid import TimeGrid, format_hours, week_days, week_start_for

BAND_COLORS = {
    "low": colors.HexColor("#c8e6c9"),
    "medium": colors.HexColor("#ffe0b2"),
    "high": colors.HexColor("#ffcdd2"),
    "none": colors.white,
}

_HEADER_STYLE = [
    ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 8),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
]


def _styles():
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="ScheduleTitle",
            parent=styles["Heading1"],
            fontSize=16,
            spaceAfter=12,
        )
    )
    styles.add(ParagraphStyle(name="Cell", parent=styles["Normal"], fontSize=7, leading=9))
    return styles


def _build(story: List[Any], title: str) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        title=title,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
    )
    doc.build(story)
    return buffer.getvalue()


def render_week_pdf(
    company: Mapping[str, Any],
    employees: Sequence[Mapping[str, Any]],
    shifts: Sequence[Mapping[str, Any]],
    week_start: datetime.date,
) -> bytes:
    """Weekly schedule: one row per employee, one column per day, plus a total."""
    styles = _styles()
    week_start = week_start_for(week_start)
    days = week_days(week_start)
    title = f"{company.get('name', 'Schedule')} - week of {week_start.isoformat()}"
    story: List[Any] = [Paragraph(escape(title), styles["ScheduleTitle"])]

    header = ["Employee"] + [day.strftime("%a %d/%m") for day in days] + ["Total"]
    data: List[List[Any]] = [header]
    for row in week_matrix(employees, shifts, week_start):
        line: List[Any] = [Paragraph(escape(str(row["employee"].get("name") or "")), styles["Cell"])]
        for cell in row["days"]:
            if cell["hours"]:
                text = "<br/>".join(cell["ranges"] + [format_hours(cell["hours"])])
            else:
                text = "-"
            line.append(Paragraph(text, styles["Cell"]))
        line.append(format_hours(row["totalHours"]))
        data.append(line)
    if len(data) == 1:
        data.append(["No employees"] + [""] * 8)

    table = Table(data, colWidths=[1.6 * inch] + [1.1 * inch] * 7 + [0.8 * inch], repeatRows=1)
    table.setStyle(TableStyle(_HEADER_STYLE + [("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.beige])]))
    story.append(table)
    return _build(story, title)


def render_day_pdf(
    company: Mapping[str, Any],
    shifts: Sequence[Mapping[str, Any]],
    day: datetime.date,
    grid: TimeGrid,
    sales: Optional[Mapping[str, Any]] = None,
) -> bytes:
    """Daily schedule with a labor cost summary under the shift list."""
    styles = _styles()
    title = f"{company.get('name', 'Schedule')} - {day.strftime('%A %d %B %Y')}"
    story: List[Any] = [Paragraph(escape(title), styles["ScheduleTitle"])]

    data: List[List[Any]] = [["Employee", "Start", "End", "Hours", "Notes"]]
    ordered = sorted(shifts, key=lambda item: (grid.index_of(item["startTime"]) or 0, item.get("employeeName") or ""))
    for shift in ordered:
        data.append(
            [
                shift.get("employeeName") or f"#{shift['employeeId']}",
                shift["startTime"],
                shift["endTime"],
                format_hours(shift_hours(shift)),
                Paragraph(escape(shift.get("notes") or ""), styles["Cell"]),
            ]
        )
    if len(data) == 1:
        data.append(["No shifts scheduled", "", "", "", ""])
    table = Table(data, colWidths=[2.2 * inch, 0.9 * inch, 0.9 * inch, 0.8 * inch, 4.0 * inch], repeatRows=1)
    table.setStyle(TableStyle(_HEADER_STYLE))
    story.extend([table, Spacer(1, 0.25 * inch)])

    estimated = float((sales or {}).get("estimatedSales") or 0.0)
    hourly = float((sales or {}).get("hourlyEmployeeCost") or 0.0)
    summary = labor_cost(shifts, grid, estimated, hourly)
    pct = summary["laborCostPercentage"]
    summary_rows = [
        ["Total hours", format_hours(summary["totalHours"])],
        ["Labor cost", f"{summary['totalCost']:.2f}"],
        ["Estimated sales", f"{summary['estimatedSales']:.2f}"],
        ["Labor cost %", "-" if pct is None else f"{pct:.1f}%"],
    ]
    summary_table = Table(summary_rows, colWidths=[1.6 * inch, 1.2 * inch])
    summary_table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("BACKGROUND", (1, 3), (1, 3), BAND_COLORS[summary["band"]]),
            ]
        )
    )
    story.append(summary_table)
    return _build(story, title)


def render_week_csv(
    employees: Sequence[Mapping[str, Any]],
    shifts: Sequence[Mapping[str, Any]],
    week_start: datetime.date,
) -> str:
    week_start = week_start_for(week_start)
    handle = io.StringIO()
    writer = csv.writer(handle)
    writer.writerow(["employee"] + [day.isoformat() for day in week_days(week_start)] + ["total_hours"])
    for row in week_matrix(employees, shifts, week_start):
        writer.writerow(
            [row["employee"].get("name")]
            + ["; ".join(cell["ranges"]) for cell in row["days"]]
            + [f"{row['totalHours']:g}"]
        )
    return handle.getvalue()
