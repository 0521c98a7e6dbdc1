import re
from typing import Callable, Dict, NamedTuple, Optional

from PyPDF2 import PdfReader

UNKNOWN = "?"


class InvoiceDetails(NamedTuple):
    company_name: str = UNKNOWN
    invoice_date: str = UNKNOWN
    invoice_number: str = UNKNOWN

    def label(self) -> str:
        return f"{self.company_name} {self.invoice_date} {self.invoice_number}"


DetailsExtractor = Callable[[str], InvoiceDetails]


def placeholder_invoice_details(pdf_path: str) -> InvoiceDetails:
    """Return the ``? ? ?`` sentinel without opening the file."""
    return InvoiceDetails()


INVOICE_NUMBER_PATTERNS = [
    re.compile(r"\bInvoice\s*(?:No\.?|Number|Num\.?|#)\s*[:#]?\s*([A-Z0-9][A-Z0-9/_-]*)", re.IGNORECASE),
    re.compile(r"\bTax\s+Invoice\s+([A-Z0-9][A-Z0-9/_-]*\d[A-Z0-9/_-]*)", re.IGNORECASE),
]
INVOICE_DATE_PATTERNS = [
    re.compile(r"\b(?:Invoice\s+)?Date\s*(?:of\s+Issue)?\s*:?\s*(\d{4}-\d{2}-\d{2})", re.IGNORECASE),
    re.compile(r"\b(?:Invoice\s+)?Date\s*(?:of\s+Issue)?\s*:?\s*(\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4})", re.IGNORECASE),
    re.compile(r"\b(?:Invoice\s+)?Date\s*(?:of\s+Issue)?\s*:?\s*(\d{1,2}\s+[A-Za-z]{3,9}\s+\d{4})", re.IGNORECASE),
]


def extract_text_pypdf2(file_path: str) -> str:
    with open(file_path, "rb") as f:
        reader = PdfReader(f)
        text = ""
        for page in reader.pages:
            text += (page.extract_text() or "") + "\n"
    return text


def _first_match(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def _clean_field(value: str) -> str:
    value = re.sub(r"\s+", " ", value).strip()
    # File names cannot carry path separators.
    return re.sub(r"[/\\]", "-", value)


def _company_name(text: str) -> Optional[str]:
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if re.match(r"^(tax\s+)?invoice\b", line, re.IGNORECASE):
            continue
        return line[:60]
    return None


def details_from_text(text: str) -> InvoiceDetails:
    company = _company_name(text)
    invoice_date = _first_match(INVOICE_DATE_PATTERNS, text)
    invoice_number = _first_match(INVOICE_NUMBER_PATTERNS, text)
    return InvoiceDetails(
        _clean_field(company) if company else UNKNOWN,
        _clean_field(invoice_date) if invoice_date else UNKNOWN,
        _clean_field(invoice_number) if invoice_number else UNKNOWN,
    )


def pdf_text_invoice_details(pdf_path: str) -> InvoiceDetails:
    """Guess the invoice fields from the PDF text layer.

    Scanned invoices without a text layer come back as ``? ? ?``. Unreadable
    files raise so the caller can decide what to do.
    """
    return details_from_text(extract_text_pypdf2(pdf_path))


DETAILS_EXTRACTORS: Dict[str, DetailsExtractor] = {
    "placeholder": placeholder_invoice_details,
    "pdf-text": pdf_text_invoice_details,
}


def get_details_extractor(name: str) -> DetailsExtractor:
    try:
        return DETAILS_EXTRACTORS[name]
    except KeyError:
        choices = ", ".join(sorted(DETAILS_EXTRACTORS))
        raise ValueError(f"Unknown invoice details extractor '{name}' (choose from {choices})")
