from unittest import mock

import pytest

from invoice_gatherer.invoice_details import (
    InvoiceDetails,
    details_from_text,
    get_details_extractor,
    pdf_text_invoice_details,
    placeholder_invoice_details,
)

SAMPLE = """
Acme Pty Ltd
TAX INVOICE
Invoice No: INV-1042
Invoice Date: 2024-03-15
Total $100.00
"""


def test_placeholder_never_opens_the_file():
    details = placeholder_invoice_details("/does/not/exist.pdf")

    assert details == InvoiceDetails("?", "?", "?")
    assert details.label() == "? ? ?"


def test_details_from_text():
    assert details_from_text(SAMPLE) == InvoiceDetails("Acme Pty Ltd", "2024-03-15", "INV-1042")


def test_slash_dates_lose_their_separators():
    text = "Tax Invoice\nBlue Gum Cleaning\nInvoice #: 77\nDate: 15/03/2024\n"

    assert details_from_text(text) == InvoiceDetails("Blue Gum Cleaning", "15-03-2024", "77")


def test_unknown_fields_stay_unknown():
    assert details_from_text("") == InvoiceDetails()
    assert details_from_text("Just a letter\nwith no numbers") == InvoiceDetails("Just a letter", "?", "?")


def test_pdf_text_reads_every_page(tmp_path):
    path = tmp_path / "invoice.pdf"
    path.write_bytes(b"%PDF-1.4")
    pages = [mock.Mock(), mock.Mock()]
    pages[0].extract_text.return_value = "Acme Pty Ltd\nInvoice Number 555\n"
    pages[1].extract_text.return_value = None

    with mock.patch("invoice_gatherer.invoice_details.PdfReader") as reader:
        reader.return_value.pages = pages
        details = pdf_text_invoice_details(str(path))

    assert details == InvoiceDetails("Acme Pty Ltd", "?", "555")


def test_pdf_text_propagates_unreadable_files(tmp_path):
    with pytest.raises(OSError):
        pdf_text_invoice_details(str(tmp_path / "missing.pdf"))


def test_get_details_extractor():
    assert get_details_extractor("placeholder") is placeholder_invoice_details
    assert get_details_extractor("pdf-text") is pdf_text_invoice_details

    with pytest.raises(ValueError, match="pdf-text, placeholder"):
        get_details_extractor("ocr")
