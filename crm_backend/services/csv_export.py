"""
CSV export of customers and interactions (dashboard downloads).
Records come in with their references already populated.
"""

import csv
import io
from datetime import datetime, timezone
from typing import List, Dict

from crm_backend.config import parse_iso
from crm_backend.services.references import ref_name

CUSTOMER_COLUMNS = ["Name", "Email", "Phone", "Company", "Status", "Notes", "Assigned To"]
INTERACTION_COLUMNS = ["Date", "Customer", "Type", "Summary", "Outcome", "Created By"]


def _csv(columns: List[str], rows: List[Dict]) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=columns)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue()


def _date(value) -> str:
    try:
        parsed = parse_iso(value)
    except (TypeError, ValueError):
        return ""
    return parsed.strftime("%Y-%m-%d") if parsed else ""


def customers_csv(customers: List[dict]) -> str:
    return _csv(CUSTOMER_COLUMNS, [
        {
            "Name": c.get("name", ""),
            "Email": c.get("email", ""),
            "Phone": c.get("phone") or "",
            "Company": c.get("company") or "",
            "Status": c.get("status", ""),
            "Notes": c.get("notes") or "",
            "Assigned To": ref_name(c.get("assignedTo"), "Unassigned"),
        }
        for c in customers
    ])


def interactions_csv(interactions: List[dict]) -> str:
    return _csv(INTERACTION_COLUMNS, [
        {
            "Date": _date(i.get("date")),
            "Customer": ref_name(i.get("customer")),
            "Type": i.get("type", ""),
            "Summary": i.get("summary") or "",
            "Outcome": i.get("outcome") or "",
            "Created By": ref_name(i.get("createdBy")),
        }
        for i in interactions
    ])


def export_filename(kind: str, extension: str) -> str:
    """customers-20240131.csv"""
    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{kind}-{date_str}.{extension}"
