import os
import shutil
import zipfile
import zlib
from typing import List, Optional

from .run_report import RunReport, note_problem

PDF_EXTENSION = ".pdf"
PARTIAL_SUFFIX = ".part"


def _extract_pdf_entry(archive: zipfile.ZipFile, info: zipfile.ZipInfo, destination_path: str) -> None:
    partial_path = destination_path + PARTIAL_SUFFIX
    with archive.open(info) as src:
        try:
            with open(partial_path, "wb") as dst:
                shutil.copyfileobj(src, dst)
            os.replace(partial_path, destination_path)
        except Exception:
            # Only the partial copy is ours to delete; the destination may be another invoice.
            if os.path.exists(partial_path):
                os.remove(partial_path)
            raise


def extract_zip_archives(
    zip_files: List[str], save_path: str, report: Optional[RunReport] = None
) -> List[str]:
    """Extract the PDFs inside each archive into ``save_path`` and delete the archive.

    Entry paths are flattened to their base name. Non-PDF entries are ignored.
    Returns the extracted file names in archive order.
    """

    extracted: List[str] = []

    for zip_name in zip_files:
        zip_path = os.path.join(save_path, zip_name)

        try:
            archive = zipfile.ZipFile(zip_path)
        except (OSError, zipfile.BadZipFile) as e:
            note_problem(report, f"Unable to open ZIP file {zip_name}: {e}")
            continue

        with archive:
            for info in archive.infolist():
                if info.is_dir() or not info.filename.endswith(PDF_EXTENSION):
                    continue

                name = os.path.basename(info.filename.replace("\\", "/"))
                destination_path = os.path.join(save_path, name)
                replacing = os.path.exists(destination_path)
                try:
                    _extract_pdf_entry(archive, info, destination_path)
                except (OSError, EOFError, RuntimeError, zipfile.BadZipFile, zlib.error) as e:
                    note_problem(report, f"Unable to extract PDF {info.filename} from {zip_name}: {e}")
                    continue

                if replacing:
                    note_problem(report, f"Replaced existing file {name} with the copy from {zip_name}")
                extracted.append(name)
                print(f"Extracted: {zip_name} → {name}")

        try:
            os.remove(zip_path)
        except OSError as e:
            note_problem(report, f"Unable to remove the ZIP file {zip_name}: {e}")

    return extracted
