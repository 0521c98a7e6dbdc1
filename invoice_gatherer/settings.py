import os
from typing import Optional

from dotenv import load_dotenv

DEFAULT_CREDENTIALS = "credentials.json"
DEFAULT_TOKEN_PATH = "InvoiceGathererToken.json"
DEFAULT_INVOICES_DIR = "Invoices"
DEFAULT_CALLBACK_PORT = 8080
DEFAULT_LOG_FILE_PATH = "InvoiceGatherer.log"
DEFAULT_DETAILS_EXTRACTOR = "placeholder"

GMAIL_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"
CALLBACK_HOST = "localhost"
CALLBACK_PATH = "/oauth2callback"


class Settings:
    """Runtime configuration for one pipeline run.

    ``credentials`` is either a path to the Google client JSON or the JSON text
    itself. It is resolved by ``gmail_auth.load_client_config`` and handed to
    the credential provider explicitly.
    """

    def __init__(
        self,
        credentials: str = DEFAULT_CREDENTIALS,
        token_path: str = DEFAULT_TOKEN_PATH,
        invoices_dir: str = DEFAULT_INVOICES_DIR,
        callback_port: int = DEFAULT_CALLBACK_PORT,
        log_file_path: str = DEFAULT_LOG_FILE_PATH,
        details_extractor: str = DEFAULT_DETAILS_EXTRACTOR,
    ):
        self.credentials = credentials
        self.token_path = token_path
        self.invoices_dir = invoices_dir
        self.callback_port = callback_port
        self.log_file_path = log_file_path
        self.details_extractor = details_extractor

    @property
    def redirect_uri(self) -> str:
        return f"http://{CALLBACK_HOST}:{self.callback_port}{CALLBACK_PATH}"

    def __repr__(self) -> str:
        return (
            f"Settings(invoices_dir={self.invoices_dir!r}, token_path={self.token_path!r}, "
            f"callback_port={self.callback_port}, log_file_path={self.log_file_path!r}, "
            f"details_extractor={self.details_extractor!r})"
        )


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"INVOICE_GATHERER_CALLBACK_PORT must be an integer, got: {raw}")
    if not 0 < port < 65536:
        raise ValueError(f"INVOICE_GATHERER_CALLBACK_PORT out of range: {port}")
    return port


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build settings from the environment, loading a ``.env`` file first.

    Variables already exported in the environment win over the file.
    """

    if env_file:
        if not os.path.exists(env_file):
            raise RuntimeError(f"Env file {env_file} does not exist")
        load_dotenv(env_file)
    else:
        load_dotenv(os.path.join(os.getcwd(), ".env"))

    return Settings(
        credentials=os.getenv("INVOICE_GATHERER_CREDENTIALS", DEFAULT_CREDENTIALS),
        token_path=os.getenv("INVOICE_GATHERER_TOKEN_PATH", DEFAULT_TOKEN_PATH),
        invoices_dir=os.getenv("INVOICE_GATHERER_INVOICES_DIR", DEFAULT_INVOICES_DIR),
        callback_port=_parse_port(
            os.getenv("INVOICE_GATHERER_CALLBACK_PORT", str(DEFAULT_CALLBACK_PORT))
        ),
        log_file_path=os.getenv("INVOICE_GATHERER_LOG_FILE", DEFAULT_LOG_FILE_PATH),
        details_extractor=os.getenv("INVOICE_GATHERER_DETAILS", DEFAULT_DETAILS_EXTRACTOR),
    )
