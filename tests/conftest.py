import pytest

from invoice_gatherer.settings import Settings

ENV_VARS = (
    "INVOICE_GATHERER_CREDENTIALS",
    "INVOICE_GATHERER_TOKEN_PATH",
    "INVOICE_GATHERER_INVOICES_DIR",
    "INVOICE_GATHERER_CALLBACK_PORT",
    "INVOICE_GATHERER_LOG_FILE",
    "INVOICE_GATHERER_DETAILS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory with none of the settings exported.

    Setting before deleting makes monkeypatch undo whatever a loaded .env
    file adds during the test.
    """
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def settings(tmp_path):
    return Settings(
        credentials=str(tmp_path / "credentials.json"),
        token_path=str(tmp_path / "token.json"),
        invoices_dir=str(tmp_path / "Invoices"),
        callback_port=0,
        log_file_path=str(tmp_path / "logs" / "InvoiceGatherer.log"),
    )
