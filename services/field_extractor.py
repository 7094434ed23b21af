# services/field_extractor.py
"""Regex field extraction for invoices, contracts and generic documents"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

DOCUMENT_LABELS = ["invoice", "contract", "receipt", "id_document", "general"]

_DATE = r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})"
_AMOUNT = r"\$?\s*([\d,]+\.?\d*)"
_DATE_FORMATS = ("%m/%d/%Y", "%m-%d-%Y", "%m.%d.%Y", "%m/%d/%y", "%m-%d-%y", "%Y-%m-%d", "%d.%m.%Y")

INVOICE_NUMBER = [
    re.compile(r"(?:invoice|inv)\s*(?:number|no\.?)?[\s#:]*([A-Z0-9][A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE),
    re.compile(r"(?:bill|doc)\s*(?:number|no\.?)?[\s#:]*([A-Z0-9][A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE),
    re.compile(r"#\s*([A-Z0-9-]{3,})"),
]
INVOICE_DATES = {
    "invoice_date": [
        re.compile(r"(?:invoice|bill)\s*date\s*:\s*" + _DATE, re.IGNORECASE),
        re.compile(r"(?:date|issued)[\s:]*" + _DATE, re.IGNORECASE),
        re.compile(r"(\d{4}-\d{2}-\d{2})"),
    ],
    "due_date": [
        re.compile(r"(?:due|payment)\s*date\s*:\s*" + _DATE, re.IGNORECASE),
        re.compile(r"(?:due|payable)\s*by\s*:?\s*" + _DATE, re.IGNORECASE),
    ],
}
INVOICE_AMOUNTS = {
    "total": [
        re.compile(r"(?<!sub)(?<!sub-)(?:total|amount|balance|sum)\s*(?:due)?[\s:]*" + _AMOUNT, re.IGNORECASE),
    ],
    "subtotal": [
        re.compile(r"(?:subtotal|sub-total)[\s:]*" + _AMOUNT, re.IGNORECASE),
        re.compile(r"(?:net|pre-tax)\s*amount[\s:]*" + _AMOUNT, re.IGNORECASE),
    ],
    "tax": [
        re.compile(r"(?:sales\s*tax|tax|vat)(?:\s*\(?\d+(?:\.\d+)?%\)?)?[\s:]*" + _AMOUNT, re.IGNORECASE),
    ],
}
EMAIL = re.compile(r"[\w.-]+@[\w.-]+\.\w{2,}")
PHONE = re.compile(r"(?:\+\d{1,2}\s)?\(?\d{3}\)?[\s.-]\d{3}[\s.-]\d{4}")
ADDRESS = re.compile(
    r"\d+\s+[\w\s,]+?(?:street|st|avenue|ave|road|rd|boulevard|blvd|lane|ln|drive|dr)\b[\w\s,]*?\d{5}",
    re.IGNORECASE,
)
LINE_ITEM_DESCRIPTION_FIRST = re.compile(r"^\s*(\D.*?)\s+(\d+)\s+\$?([\d,]+\.?\d*)\s+\$?([\d,]+\.?\d*)\s*$")
LINE_ITEM_QUANTITY_FIRST = re.compile(r"^\s*(\d+)\s+(\D.*?)\s+\$?([\d,]+\.?\d*)\s+\$?([\d,]+\.?\d*)\s*$")

CONTRACT_PARTIES = [
    re.compile(r"(?:between|party|client)[\s:]+([^\n\r.]+)", re.IGNORECASE),
    re.compile(r"(?:vendor|supplier|contractor)[\s:]+([^\n\r.]+)", re.IGNORECASE),
]
CONTRACT_DATES = {
    "effective_date": [
        re.compile(r"(?:effective|start)\s*date[\s:]*" + _DATE, re.IGNORECASE),
        re.compile(r"(?:commences|begins)\s*on[\s:]*" + _DATE, re.IGNORECASE),
    ],
    "expiration_date": [
        re.compile(r"(?:expiration|termination|end)\s*date[\s:]*" + _DATE, re.IGNORECASE),
        re.compile(r"(?:expires|concludes)\s*on[\s:]*" + _DATE, re.IGNORECASE),
    ],
}
CONTRACT_VALUE = [
    re.compile(r"(?:contract|agreement)\s*value[\s:]*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(?:total|sum)\s*amount[\s:]*" + _AMOUNT, re.IGNORECASE),
]
CONTRACT_TERMS = [
    re.compile(r"payment\s*terms?[\s:]*([^\n:]{3,30})", re.IGNORECASE),
    re.compile(r"(?:^|\n)\s*terms?[\s:]*([^\n:]{3,30})", re.IGNORECASE),
]
GENERIC_DATE = re.compile(r"\b\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\b")
GENERIC_AMOUNT = re.compile(r"\$\s*([\d,]+\.?\d*)")


# ============= Helpers =============

def find_first_match(text: str, patterns: Sequence[re.Pattern]) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1)
    return None


def standardize_date(value: str) -> str:
    """ISO yyyy-mm-dd when the date parses, else the original string."""
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date().isoformat()
        except ValueError:
            continue
    return value


def parse_amount(value: str) -> Optional[float]:
    cleaned = re.sub(r"[^\d.]", "", value)
    try:
        return float(cleaned)
    except ValueError:
        return None


def keyword_classify(text: str) -> Tuple[str, float]:
    """Classification used when the hosted classifier is unavailable."""
    lower = (text or "").lower()
    if len(lower.strip()) < 10:
        return "general", 0.5
    if any(k in lower for k in ("invoice", "bill", "total", "amount")):
        return "invoice", 0.8
    if any(k in lower for k in ("contract", "agreement", "terms")):
        return "contract", 0.8
    if any(k in lower for k in ("receipt", "purchase", "payment")):
        return "receipt", 0.8
    if "passport" in lower or "license" in lower or re.search(r"\bid\b", lower):
        return "id_document", 0.8
    return "general", 0.6


# ============= Extractor =============

class FieldExtractor:

    def analyze(self, text: str, document_type: str) -> Dict[str, Any]:
        logger.info(f"Analyzing text as {document_type} document")
        kind = (document_type or "").lower()
        if kind in ("invoice", "receipt"):
            return self._analyze_invoice(text)
        if kind in ("contract", "legal"):
            return self._analyze_contract(text)
        return self._analyze_generic(text)

    def _analyze_invoice(self, text: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        invoice_number = find_first_match(text, INVOICE_NUMBER)
        if invoice_number:
            fields["invoice_number"] = invoice_number

        fields["date_info"] = {}
        for date_type, patterns in INVOICE_DATES.items():
            found = find_first_match(text, patterns)
            if found:
                fields["date_info"][date_type] = standardize_date(found)

        fields["financial_info"] = {}
        for amount_type, patterns in INVOICE_AMOUNTS.items():
            found = find_first_match(text, patterns)
            if found and parse_amount(found) is not None:
                fields["financial_info"][amount_type] = parse_amount(found)

        # First occurrence usually belongs to the vendor, second to the customer
        emails = EMAIL.findall(text)
        phones = PHONE.findall(text)
        addresses = ADDRESS.findall(text)
        fields["vendor_info"] = self._contact_at(0, emails, phones, addresses)
        fields["customer_info"] = self._contact_at(1, emails, phones, addresses)

        line_items = self._line_items(text)
        if line_items:
            fields["line_items"] = line_items
        return fields

    @staticmethod
    def _contact_at(index: int, emails: List[str], phones: List[str], addresses: List[str]) -> Dict[str, str]:
        info = {}
        if len(emails) > index:
            info["email"] = emails[index]
        if len(phones) > index:
            info["phone"] = phones[index]
        if len(addresses) > index:
            info["address"] = addresses[index].strip()
        return info

    @staticmethod
    def _line_items(text: str) -> List[Dict[str, Any]]:
        items = []
        for line in text.splitlines():
            match = LINE_ITEM_DESCRIPTION_FIRST.match(line)
            if match:
                description, quantity = match.group(1), match.group(2)
            else:
                match = LINE_ITEM_QUANTITY_FIRST.match(line)
                if not match:
                    continue
                quantity, description = match.group(1), match.group(2)

            unit_price = parse_amount(match.group(3))
            total = parse_amount(match.group(4))
            qty = int(quantity)
            if description.strip() and qty > 0 and unit_price is not None and total is not None:
                items.append({
                    "description": description.strip(),
                    "quantity": qty,
                    "unit_price": unit_price,
                    "total": total,
                })
        return items

    def _analyze_contract(self, text: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"contract_info": {}}

        parties = []
        for pattern in CONTRACT_PARTIES:
            parties.extend(m.group(1).strip() for m in pattern.finditer(text))
        if parties:
            fields["parties"] = parties

        for date_type, patterns in CONTRACT_DATES.items():
            found = find_first_match(text, patterns)
            if found:
                fields["contract_info"][date_type] = standardize_date(found)

        value = find_first_match(text, CONTRACT_VALUE)
        if value and parse_amount(value) is not None:
            fields["contract_info"]["value"] = parse_amount(value)

        terms = find_first_match(text, CONTRACT_TERMS)
        if terms:
            fields["contract_info"]["terms"] = terms.strip()
        return fields

    def _analyze_generic(self, text: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        dates = GENERIC_DATE.findall(text)
        if dates:
            fields["dates"] = [standardize_date(d) for d in dates]

        amounts = [parse_amount(a) for a in GENERIC_AMOUNT.findall(text)]
        amounts = [a for a in amounts if a is not None]
        if amounts:
            fields["amounts"] = amounts

        contacts = {}
        emails = EMAIL.findall(text)
        if emails:
            contacts["emails"] = emails
        phones = PHONE.findall(text)
        if phones:
            contacts["phones"] = phones
        addresses = [a.strip() for a in ADDRESS.findall(text)]
        if addresses:
            contacts["addresses"] = addresses
        if contacts:
            fields["contacts"] = contacts
        return fields
