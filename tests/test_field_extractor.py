"""Tests for regex field extraction and keyword classification."""
import pytest

from services.field_extractor import FieldExtractor, keyword_classify, parse_amount, standardize_date

INVOICE_TEXT = """ACME SUPPLIES
Invoice Number: INV-2024-001
Invoice Date: 01/15/2024
Due Date: 02/15/2024
billing@acme.com (555) 123-4567
customer@client.org (555) 987-6543

Widget 2 $10.00 $20.00
3 Gadget $5.50 $16.50

Subtotal: $36.50
Tax: $3.65
Total Due: $40.15
"""

CONTRACT_TEXT = """SERVICE AGREEMENT
This agreement is made between Acme Corp and Beta LLC.
Effective Date: 03/01/2024
Termination Date: 02/28/2025
Contract Value: $120,000.00
Payment Terms: Net 30 days
"""


@pytest.fixture
def extractor() -> FieldExtractor:
    return FieldExtractor()


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [
        ("01/15/2024", "2024-01-15"),
        ("2024-01-15", "2024-01-15"),
        ("15.01.2024", "2024-01-15"),
        ("someday", "someday"),
    ])
    def test_standardize_date(self, value, expected):
        assert standardize_date(value) == expected

    def test_parse_amount(self):
        assert parse_amount("$1,250.50") == 1250.50
        assert parse_amount("n/a") is None

    @pytest.mark.parametrize("text,label", [
        ("Please pay the invoice total", "invoice"),
        ("This agreement sets out the terms", "contract"),
        ("Thanks for your purchase", "receipt"),
        ("Passport issued to the holder", "id_document"),
        ("Meeting notes from Tuesday", "general"),
    ])
    def test_keyword_classify(self, text, label):
        assert keyword_classify(text)[0] == label

    def test_keyword_classify_short_text(self):
        assert keyword_classify("hi") == ("general", 0.5)


class TestInvoiceFields:

    def test_number_dates_and_amounts(self, extractor):
        fields = extractor.analyze(INVOICE_TEXT, "invoice")

        assert fields["invoice_number"] == "INV-2024-001"
        assert fields["date_info"] == {"invoice_date": "2024-01-15", "due_date": "2024-02-15"}
        assert fields["financial_info"]["subtotal"] == 36.50
        assert fields["financial_info"]["tax"] == 3.65
        assert fields["financial_info"]["total"] == 40.15

    def test_vendor_and_customer_contacts(self, extractor):
        fields = extractor.analyze(INVOICE_TEXT, "invoice")

        assert fields["vendor_info"]["email"] == "billing@acme.com"
        assert fields["customer_info"]["email"] == "customer@client.org"
        assert fields["customer_info"]["phone"] == "(555) 987-6543"

    def test_line_items_in_either_column_order(self, extractor):
        items = extractor.analyze(INVOICE_TEXT, "invoice")["line_items"]

        assert items == [
            {"description": "Widget", "quantity": 2, "unit_price": 10.0, "total": 20.0},
            {"description": "Gadget", "quantity": 3, "unit_price": 5.5, "total": 16.5},
        ]

    def test_receipts_use_invoice_rules(self, extractor):
        assert "financial_info" in extractor.analyze("Total: $12.00", "receipt")


class TestContractFields:

    def test_contract_info(self, extractor):
        fields = extractor.analyze(CONTRACT_TEXT, "contract")
        info = fields["contract_info"]

        assert info["effective_date"] == "2024-03-01"
        assert info["expiration_date"] == "2025-02-28"
        assert info["value"] == 120000.0
        assert info["terms"].startswith("Net 30")
        assert any("Acme Corp" in party for party in fields["parties"])

    def test_expiration_date_label(self, extractor):
        info = extractor.analyze("Expiration Date: 12/31/2026", "contract")["contract_info"]
        assert info["expiration_date"] == "2026-12-31"


class TestGenericFields:

    def test_dates_amounts_and_contacts(self, extractor):
        text = "Meeting on 04/02/2024 cost $75.00. Reach me at ops@example.com or 555-222-3333."

        fields = extractor.analyze(text, "general")

        assert fields["dates"] == ["2024-04-02"]
        assert fields["amounts"] == [75.0]
        assert fields["contacts"]["emails"] == ["ops@example.com"]
        assert fields["contacts"]["phones"] == ["555-222-3333"]

    def test_nothing_found(self, extractor):
        assert extractor.analyze("plain words only", "unknown") == {}
