"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - PDF export                                                            ║
║                                                                              ║
║  Two shapes per entity:                                                      ║
║  - list   : title, generated-at line, table, total line                      ║
║  - detail : title, key/value block, free text sections                       ║
║  Every page carries "Page N" in the footer.                                  ║
║  Records come in with their references already populated.                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import io
from datetime import datetime, timezone
from typing import List, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from crm_backend.config import parse_iso
from crm_backend.services.references import ref_name

STYLES = getSampleStyleSheet()
HEADER_BG = colors.HexColor("#333333")
ROW_LINE = colors.HexColor("#dddddd")
LABEL_COLOR = colors.HexColor("#555555")


def format_date(value, with_time: bool = True, default: str = "Not set") -> str:
    try:
        parsed = parse_iso(value)
    except (TypeError, ValueError):
        return default
    if not parsed:
        return default
    return parsed.strftime("%Y-%m-%d %H:%M" if with_time else "%Y-%m-%d")


def capitalize(value: str) -> str:
    return value[:1].upper() + value[1:] if value else ""


def _p(text, style: str = "BodyText") -> Paragraph:
    return Paragraph(escape(str(text if text is not None else "")), STYLES[style])


def _footer(canvas, doc):
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.drawCentredString(letter[0] / 2, 0.5 * inch, f"Page {doc.page}")
    canvas.restoreState()


def _render(title: str, story: List) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=letter, title=title,
        leftMargin=50, rightMargin=50, topMargin=50, bottomMargin=60,
    )
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    head = [
        Paragraph(escape(title), STYLES["Title"]),
        Paragraph(f"Generated on: {generated}", STYLES["Normal"]),
        Spacer(1, 0.3 * inch),
    ]
    doc.build(head + story, onFirstPage=_footer, onLaterPages=_footer)
    return buffer.getvalue()


def _list_table(headers: List[str], rows: List[List[str]], widths: List[float]) -> Table:
    data = [headers] + [[_p(cell) for cell in row] for row in rows]
    table = Table(data, colWidths=widths, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 11),
        ("LINEBELOW", (0, 1), (-1, -1), 0.5, ROW_LINE),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    return table


def _details_table(details: List[Tuple[str, str]]) -> Table:
    """Key/value pairs laid out two per row."""
    rows = []
    for i in range(0, len(details), 2):
        row = []
        for label, value in details[i:i + 2]:
            row.extend([f"{label}:", _p(value)])
        while len(row) < 4:
            row.append("")
        rows.append(row)
    table = Table(rows, colWidths=[90, 160, 90, 160])
    table.setStyle(TableStyle([
        ("TEXTCOLOR", (0, 0), (0, -1), LABEL_COLOR),
        ("TEXTCOLOR", (2, 0), (2, -1), LABEL_COLOR),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
    ]))
    return table


def _section(title: str, body) -> List:
    return [Spacer(1, 0.2 * inch), Paragraph(escape(title), STYLES["Heading3"]), _p(body)]


def _total(label: str, count: int) -> List:
    return [Spacer(1, 0.3 * inch), Paragraph(f"Total {label}: {count}", STYLES["Normal"])]


# ==================== CUSTOMERS ====================

def build_customers_pdf(customers: List[dict], detail: bool = False) -> bytes:
    if detail and len(customers) == 1:
        c = customers[0]
        story = [
            Paragraph(escape(c.get("name", "")), STYLES["Heading2"]),
            _details_table([
                ("Email", c.get("email", "")),
                ("Phone", c.get("phone") or "Not provided"),
                ("Company", c.get("company") or "Not provided"),
                ("Status", capitalize(c.get("status", ""))),
                ("Assigned To", ref_name(c.get("assignedTo"), "Unassigned")),
                ("Created By", ref_name(c.get("createdBy"))),
                ("Created On", format_date(c.get("createdAt"))),
                ("Last Contact", format_date(c.get("lastContact"))),
            ]),
        ]
        address = c.get("address") or {}
        parts = [address.get(k) for k in ("street", "city", "state", "zipCode", "country")]
        if any(parts):
            story += _section("Address", ", ".join(p for p in parts if p))
        if c.get("notes"):
            story += _section("Notes", c["notes"])
        if c.get("tags"):
            story += _section("Tags", ", ".join(c["tags"]))
        history = c.get("statusHistory") or []
        if history:
            story += [Spacer(1, 0.2 * inch), Paragraph("Status History", STYLES["Heading3"])]
            for entry in history:
                line = f"{format_date(entry.get('date'))}: Changed to {entry.get('status')}"
                if entry.get("notes"):
                    line += f" - {entry['notes']}"
                story.append(_p(line))
        return _render("Customer Report", story)

    rows = [
        [c.get("name", ""), c.get("email", ""), c.get("phone") or "-",
         c.get("company") or "-", capitalize(c.get("status", ""))]
        for c in customers
    ]
    story = [_list_table(["Name", "Email", "Phone", "Company", "Status"], rows, [110, 150, 85, 95, 70])]
    story += _total("customers", len(customers))
    return _render("Customer Report", story)


# ==================== INTERACTIONS ====================

def build_interactions_pdf(interactions: List[dict], detail: bool = False) -> bytes:
    if detail and len(interactions) == 1:
        i = interactions[0]
        customer = i.get("customer")
        heading = f"{capitalize(i.get('type', ''))} - {format_date(i.get('date'))}"
        story = [Paragraph(escape(heading), STYLES["Heading2"])]
        if isinstance(customer, dict):
            who = ref_name(customer)
            if customer.get("company"):
                who += f" ({customer['company']})"
            story.append(_p(f"Customer: {who}"))
        if i.get("summary"):
            story += _section("Summary", i["summary"])
        details = [
            ("Type", capitalize(i.get("type", ""))),
            ("Date", format_date(i.get("date"))),
            ("Created By", ref_name(i.get("createdBy"))),
            ("Created At", format_date(i.get("createdAt"))),
        ]
        if i.get("outcome"):
            details.append(("Outcome", i["outcome"]))
        if i.get("duration") is not None:
            details.append(("Duration", f"{i['duration']} min"))
        story += [Spacer(1, 0.2 * inch), Paragraph("Details", STYLES["Heading3"]), _details_table(details)]
        if i.get("details"):
            story += _section("Notes", i["details"])
        if i.get("nextAction"):
            story += _section("Next Action", i["nextAction"])
        return _render("Interaction Report", story)

    rows = [
        [format_date(i.get("date"), with_time=False, default="N/A"),
         ref_name(i.get("customer")), capitalize(i.get("type", "")), i.get("summary") or "-"]
        for i in interactions
    ]
    story = [_list_table(["Date", "Customer", "Type", "Summary"], rows, [80, 120, 70, 240])]
    story += _total("interactions", len(interactions))
    return _render("Interaction Report", story)


# ==================== TASKS ====================

def build_tasks_pdf(tasks: List[dict], detail: bool = False) -> bytes:
    if detail and len(tasks) == 1:
        t = tasks[0]
        details = [
            ("Status", capitalize(t.get("status", ""))),
            ("Priority", capitalize(t.get("priority", ""))),
            ("Due Date", format_date(t.get("dueDate"))),
            ("Reminder Date", format_date(t.get("reminderDate"))),
            ("Assigned To", ref_name(t.get("assignedTo"), "Unassigned")),
            ("Created By", ref_name(t.get("createdBy"))),
            ("Created At", format_date(t.get("createdAt"))),
            ("Completed At", format_date(t.get("completedAt"))),
        ]
        customer = t.get("customer")
        if isinstance(customer, dict):
            details.append(("Customer", ref_name(customer)))
            if customer.get("company"):
                details.append(("Company", customer["company"]))
            if customer.get("email"):
                details.append(("Email", customer["email"]))
        story = [Paragraph(escape(t.get("title", "")), STYLES["Heading2"]), _details_table(details)]
        if t.get("description"):
            story += _section("Description", t["description"])
        return _render("Tasks Report", story)

    rows = [
        [t.get("title", ""), capitalize(t.get("status", "")), capitalize(t.get("priority", "")),
         format_date(t.get("dueDate"), with_time=False, default="N/A"),
         ref_name(t.get("assignedTo"), "Unassigned")]
        for t in tasks
    ]
    story = [_list_table(["Title", "Status", "Priority", "Due Date", "Assigned To"], rows, [160, 75, 65, 80, 110])]
    story += _total("tasks", len(tasks))
    return _render("Tasks Report", story)
