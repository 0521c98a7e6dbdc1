import os
from unittest import mock

import pytest

from invoice_gatherer.invoice_details import InvoiceDetails
from invoice_gatherer import rename_invoices as rename_module
from invoice_gatherer.rename_invoices import count_existing_pdfs, invoice_filename, rename_invoices
from invoice_gatherer.run_report import RunReport


@pytest.fixture
def save_path(tmp_path):
    return str(tmp_path)


def _touch(save_path, name, data=b"%PDF"):
    with open(os.path.join(save_path, name), "wb") as handle:
        handle.write(data)


def test_count_existing_pdfs_is_case_sensitive_and_skips_folders(save_path):
    for name in ("a.pdf", "b.pdf", "c.PDF", "d.txt"):
        _touch(save_path, name)
    os.mkdir(os.path.join(save_path, "folder.pdf"))

    assert count_existing_pdfs(save_path) == 2


def test_count_missing_folder_raises(tmp_path):
    with pytest.raises(OSError):
        count_existing_pdfs(str(tmp_path / "missing"))


def test_renames_with_contiguous_counters(save_path):
    _touch(save_path, "x.pdf")
    _touch(save_path, "y.pdf")

    renamed = rename_invoices(["x.pdf", "y.pdf"], 5, save_path)

    assert renamed == ["5 ? ? ?.pdf", "6 ? ? ?.pdf"]
    assert sorted(os.listdir(save_path)) == ["5 ? ? ?.pdf", "6 ? ? ?.pdf"]


def test_never_overwrites_an_existing_file(save_path):
    _touch(save_path, "5 ? ? ?.pdf", b"older invoice")
    _touch(save_path, "x.pdf")
    _touch(save_path, "y.pdf")
    report = RunReport()

    renamed = rename_invoices(["x.pdf", "y.pdf"], 5, save_path, report=report)

    assert renamed == ["6 ? ? ?.pdf"]
    with open(os.path.join(save_path, "5 ? ? ?.pdf"), "rb") as handle:
        assert handle.read() == b"older invoice"
    assert os.path.exists(os.path.join(save_path, "x.pdf"))
    assert report.problems == ["Unable to rename x.pdf: 5 ? ? ?.pdf already exists"]


def test_missing_file_still_consumes_its_number(save_path):
    _touch(save_path, "y.pdf")
    report = RunReport()

    renamed = rename_invoices(["gone.pdf", "y.pdf"], 0, save_path, report=report)

    assert renamed == ["1 ? ? ?.pdf"]
    assert report.problems[0].startswith("Unable to rename gone.pdf:")


def test_uses_extracted_details_without_path_separators(save_path):
    _touch(save_path, "x.pdf")
    extractor = mock.Mock(return_value=InvoiceDetails("Acme/Co", "2024-01-01", "INV\\1"))

    renamed = rename_invoices(["x.pdf"], 1, save_path, details_extractor=extractor)

    assert renamed == ["1 Acme_Co 2024-01-01 INV_1.pdf"]
    extractor.assert_called_once_with(os.path.join(save_path, "x.pdf"))


def test_extractor_failure_falls_back_to_placeholder(save_path):
    _touch(save_path, "x.pdf")
    extractor = mock.Mock(side_effect=ValueError("EOF marker not found"))
    report = RunReport()

    renamed = rename_invoices(["x.pdf"], 3, save_path, details_extractor=extractor, report=report)

    assert renamed == ["3 ? ? ?.pdf"]
    assert report.problems == ["Unable to read invoice details from x.pdf: EOF marker not found"]


def test_windows_names_avoid_reserved_characters(monkeypatch):
    monkeypatch.setattr(rename_module.os, "name", "nt")

    assert invoice_filename(4, InvoiceDetails()) == "4 _ _ _.pdf"
    assert invoice_filename(5, InvoiceDetails("Acme: Co", "2024-01-01", "INV*1")) == "5 Acme_ Co 2024-01-01 INV_1.pdf"


def test_posix_names_keep_the_placeholder(monkeypatch):
    monkeypatch.setattr(rename_module.os, "name", "posix")

    assert invoice_filename(4, InvoiceDetails()) == "4 ? ? ?.pdf"
