"""
CSV export service for sales.

Flattens Sale records (optionally with evidence columns) into CSV for
commission reconciliation in spreadsheets.

Format:
- Header row in a fixed column order (kept stable for downstream sheets).
- Every cell is quoted; embedded quotes are doubled.
- Commas inside Product Details and Notes are replaced with ";".
- Amounts use 2 decimals; the commission rate is a whole percentage ("10%").

Security:
- CSV Injection Prevention: free-text fields are sanitized to prevent formula execution
- Security Logging: logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import logging
from decimal import ROUND_HALF_UP, Decimal
from io import StringIO
from typing import Callable, Iterable, Iterator, List, Optional, Sequence
from uuid import UUID

from domain.evidence import SaleEvidence
from domain.money import round_money
from domain.sale import Sale
from domain.time import to_iso_utc

logger = logging.getLogger(__name__)

SALES_CSV_HEADER: tuple[str, ...] = (
    "Sale ID",
    "Date",
    "Customer Name",
    "Customer Phone",
    "Customer Instagram",
    "Channel",
    "Sale Amount",
    "Commission Rate",
    "Commission Amount",
    "Status",
    "Detection Method",
    "Rep Name",
    "Rep Phone",
    "Product Details",
    "Notes",
    "Verified By",
    "Verified At",
    "Conversation ID",
)

EVIDENCE_CSV_HEADER: tuple[str, ...] = ("Keywords Found", "Message Count")

EvidenceLookup = Callable[[UUID], Optional[SaleEvidence]]


def sanitize_csv_field(value: str | None, field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    If dangerous characters are found and stripped, a warning is logged for
    security monitoring.

    Example:
        sanitize_csv_field("=1+1", "customer_name")
        # Returns "1+1" and logs warning about stripped "=" character

        sanitize_csv_field("Normal Name", "customer_name")
        # Returns "Normal Name" (unchanged, no logging)
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text
    dangerous_chars = {'=', '+', '-', '@', '\t', '\r'}

    # Strip dangerous leading characters
    stripped_chars = []
    while text and text[0] in dangerous_chars:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],  # First 100 chars
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention"
            }
        )

    return text


def _free_text(value: str | None, field_name: str, *, replace_commas: bool = False) -> str:
    text = sanitize_csv_field(value, field_name)
    if replace_commas:
        text = text.replace(",", ";")
    return text


def format_amount(value: Decimal) -> str:
    return f"{round_money(value):.2f}"


def format_rate(rate: Decimal) -> str:
    """0.10 -> "10%"."""
    return f"{(rate * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP)}%"


def sale_to_csv_row(
    sale: Sale,
    *,
    include_evidence: bool = False,
    evidence: Optional[SaleEvidence] = None,
) -> List[str]:
    row = [
        str(sale.sale_id),
        to_iso_utc(sale.sale_date, name="sale_date"),
        _free_text(sale.customer_name, "customer_name"),
        # Phone numbers keep their leading "+".
        sale.customer_phone,
        _free_text(sale.customer_instagram, "customer_instagram"),
        sale.channel.value,
        format_amount(sale.sale_amount),
        format_rate(sale.commission_rate),
        format_amount(sale.commission_amount),
        sale.status.value,
        sale.detection_method.value,
        _free_text(sale.rep_info.name, "rep_name"),
        sale.rep_info.phone_number,
        _free_text(sale.product_details, "product_details", replace_commas=True),
        _free_text(sale.notes, "notes", replace_commas=True),
        _free_text(sale.verified_by.name if sale.verified_by else None, "verified_by"),
        to_iso_utc(sale.verified_at, name="verified_at") if sale.verified_at else "",
        sale.conversation_id,
    ]

    if include_evidence:
        if evidence is not None:
            keywords = "; ".join(sanitize_csv_field(k, "keywords_found") for k in evidence.keywords)
            row.extend([keywords, str(len(evidence.transcript_snapshot))])
        else:
            row.extend(["", "0"])

    return row


def _render_row(row: Sequence[str]) -> str:
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    writer.writerow(row)
    return output.getvalue()


def iter_sales_csv(
    sales: Iterable[Sale],
    *,
    include_evidence: bool = False,
    evidence_lookup: Optional[EvidenceLookup] = None,
) -> Iterator[str]:
    """
    Yield the CSV document one line at a time (header first).

    Evidence is fetched per sale through `evidence_lookup` only when
    `include_evidence` is set.
    """
    if include_evidence and evidence_lookup is None:
        raise ValueError("evidence_lookup is required when include_evidence is set")

    header = list(SALES_CSV_HEADER)
    if include_evidence:
        header.extend(EVIDENCE_CSV_HEADER)
    yield _render_row(header)

    for sale in sales:
        evidence = evidence_lookup(sale.sale_id) if include_evidence else None
        yield _render_row(sale_to_csv_row(sale, include_evidence=include_evidence, evidence=evidence))


def generate_sales_csv(
    sales: Iterable[Sale],
    *,
    include_evidence: bool = False,
    evidence_lookup: Optional[EvidenceLookup] = None,
) -> str:
    """
    Generate the complete sales CSV as a string.

    Example:
        csv_content = generate_sales_csv(sales)

        # Save to file
        with open("sales-export.csv", "w", newline="") as f:
            f.write(csv_content)
    """
    return "".join(
        iter_sales_csv(sales, include_evidence=include_evidence, evidence_lookup=evidence_lookup)
    )


__all__ = [
    "SALES_CSV_HEADER",
    "EVIDENCE_CSV_HEADER",
    "format_amount",
    "format_rate",
    "generate_sales_csv",
    "iter_sales_csv",
    "sale_to_csv_row",
    "sanitize_csv_field",
]
