"""ZATCA simplified-invoice QR payloads.

Two encodings are supported:

* ``tlv`` - the phase-1 format ZATCA publishes: a sequence of
  tag/length/value records (1 seller name, 2 VAT registration number,
  3 timestamp, 4 invoice total incl. VAT, 5 VAT total), Base64 encoded.
* ``json`` - a Base64 JSON object with the same facts plus the invoice
  number. Kept for invoices issued before the TLV payload was adopted.
"""

import base64
import json
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from servicepro.services.money import CENT

TAG_SELLER_NAME = 1
TAG_VAT_NUMBER = 2
TAG_TIMESTAMP = 3
TAG_INVOICE_TOTAL = 4
TAG_VAT_TOTAL = 5

TLV_FIELD_NAMES = {
    TAG_SELLER_NAME: "seller_name",
    TAG_VAT_NUMBER: "vat_number",
    TAG_TIMESTAMP: "timestamp",
    TAG_INVOICE_TOTAL: "invoice_total",
    TAG_VAT_TOTAL: "vat_total",
}


@dataclass
class VatNumberValidation:
    is_valid: bool
    message: str
    formatted: Optional[str] = None


def validate_vat_number(vat_number: Optional[str]) -> VatNumberValidation:
    """Saudi VAT numbers are 15 digits, starting with 3 and ending with 03."""
    if not vat_number:
        return VatNumberValidation(False, "VAT number is required for VAT-registered businesses")

    cleaned = re.sub(r"\D", "", vat_number)
    if len(cleaned) != 15:
        return VatNumberValidation(False, "VAT number must be exactly 15 digits")
    if not cleaned.startswith("3"):
        return VatNumberValidation(False, "VAT number must start with 3")
    if not cleaned.endswith("03"):
        return VatNumberValidation(False, "VAT number must end with 03")
    return VatNumberValidation(True, "Valid Saudi VAT number", cleaned)


def validate_commercial_registration(cr_number: Optional[str]) -> VatNumberValidation:
    if not cr_number:
        return VatNumberValidation(False, "Commercial Registration number is required for businesses")
    cleaned = re.sub(r"\D", "", cr_number)
    if len(cleaned) != 10:
        return VatNumberValidation(False, "Commercial Registration must be exactly 10 digits")
    return VatNumberValidation(True, "Valid Commercial Registration number", cleaned)


TLV_MAX_VALUE_BYTES = 255


def encode_tlv(records: List[Tuple[int, str]]) -> str:
    buffer = bytearray()
    for tag, value in records:
        encoded = value.encode("utf-8")
        if len(encoded) > TLV_MAX_VALUE_BYTES:
            raise ValueError(f"TLV value for tag {tag} exceeds {TLV_MAX_VALUE_BYTES} bytes")
        buffer.append(tag)
        buffer.append(len(encoded))
        buffer.extend(encoded)
    return base64.b64encode(bytes(buffer)).decode("ascii")


def decode_tlv(payload: str) -> Dict[int, str]:
    raw = base64.b64decode(payload)
    records: Dict[int, str] = {}
    position = 0
    while position < len(raw):
        if position + 2 > len(raw):
            raise ValueError("Truncated TLV record header")
        tag = raw[position]
        length = raw[position + 1]
        start = position + 2
        end = start + length
        if end > len(raw):
            raise ValueError(f"Truncated TLV value for tag {tag}")
        records[tag] = raw[start:end].decode("utf-8")
        position = end
    return records


def _format_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(CENT))


def _format_timestamp(timestamp: datetime) -> str:
    return timestamp.replace(microsecond=0).isoformat() + ("Z" if timestamp.tzinfo is None else "")


def build_invoice_qr(invoice, company_settings, fmt: str = "tlv") -> str:
    """Build the QR payload for an issued invoice."""
    seller_name = company_settings.company_name_en
    vat_number = company_settings.vat_number or ""
    timestamp = _format_timestamp(invoice.issued_date)
    total = _format_amount(invoice.total_amount)
    vat_total = _format_amount(invoice.vat_amount)

    if fmt == "json":
        qr_data = {
            "companyName": seller_name,
            "vatNumber": vat_number,
            "timestamp": timestamp,
            "totalAmount": total,
            "vatAmount": vat_total,
            "invoiceNumber": invoice.invoice_number,
        }
        return base64.b64encode(json.dumps(qr_data).encode("utf-8")).decode("ascii")

    if fmt != "tlv":
        raise ValueError(f"Unknown QR format: {fmt}")

    return encode_tlv([
        (TAG_SELLER_NAME, seller_name),
        (TAG_VAT_NUMBER, vat_number),
        (TAG_TIMESTAMP, timestamp),
        (TAG_INVOICE_TOTAL, total),
        (TAG_VAT_TOTAL, vat_total),
    ])


def decode_invoice_qr(payload: str) -> Tuple[str, Dict[str, Any]]:
    """Return ``(format, fields)`` for a stored QR payload of either encoding."""
    raw = base64.b64decode(payload)
    if raw[:1] == b"{":
        return "json", json.loads(raw.decode("utf-8"))

    records = decode_tlv(payload)
    return "tlv", {TLV_FIELD_NAMES.get(tag, f"tag_{tag}"): value for tag, value in records.items()}
