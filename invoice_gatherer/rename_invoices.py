import os
import re
from typing import List, Optional

from .invoice_details import DetailsExtractor, InvoiceDetails, placeholder_invoice_details
from .run_report import RunReport, note_problem

PDF_EXTENSION = ".pdf"
RESERVED_ON_WINDOWS = re.compile(r'[<>:"|?*]')


def count_existing_pdfs(save_path: str) -> int:
    """Count the PDFs already in ``save_path``; seeds the naming counter.

    Raises ``OSError`` when the folder cannot be listed.
    """
    return len(
        [
            f
            for f in os.listdir(save_path)
            if f.endswith(PDF_EXTENSION) and os.path.isfile(os.path.join(save_path, f))
        ]
    )


def _sanitize_label(label: str) -> str:
    label = re.sub(r"[/\\\x00]", "_", label)
    if os.name == "nt":
        # "? ? ?" is not a legal Windows file name.
        label = RESERVED_ON_WINDOWS.sub("_", label)
    return label.strip()


def invoice_filename(counter: int, details: InvoiceDetails) -> str:
    return f"{counter} {_sanitize_label(details.label())}{PDF_EXTENSION}"


def rename_invoices(
    pdf_files: List[str],
    starting_counter: int,
    save_path: str,
    details_extractor: Optional[DetailsExtractor] = None,
    report: Optional[RunReport] = None,
) -> List[str]:
    """Rename each PDF to ``"<counter> <details>.pdf"`` in the given order.

    The counter advances once per input file whether or not its rename works,
    so numbering stays contiguous. Existing files are never overwritten.
    Returns the new names of the files that were renamed.
    """

    extractor = details_extractor or placeholder_invoice_details
    renamed: List[str] = []
    counter = starting_counter

    for filename in pdf_files:
        file_path = os.path.join(save_path, filename)

        try:
            details = extractor(file_path)
        except Exception as e:
            note_problem(report, f"Unable to read invoice details from {filename}: {e}")
            details = InvoiceDetails()

        new_filename = invoice_filename(counter, details)
        counter += 1
        new_file_path = os.path.join(save_path, new_filename)

        if os.path.exists(new_file_path):
            note_problem(report, f"Unable to rename {filename}: {new_filename} already exists")
            continue

        try:
            os.rename(file_path, new_file_path)
        except OSError as e:
            note_problem(report, f"Unable to rename {filename}: {e}")
            continue

        renamed.append(new_filename)
        print(f"Renamed {filename} → {new_filename}")

    return renamed
