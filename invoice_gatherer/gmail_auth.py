import json
import os
import queue
import re
import threading
import webbrowser
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from requests.adapters import HTTPAdapter, Retry

from .settings import CALLBACK_PATH, GMAIL_SCOPE, Settings

LISTEN_ADDRESS = "127.0.0.1"
REQUIRED_CLIENT_KEYS = ("client_id", "client_secret", "auth_uri", "token_uri")
SUCCESS_MESSAGE = "Authorization successful! You can close this tab."

ClientConfig = Dict[str, Dict[str, object]]


class AuthConfigurationError(RuntimeError):
    """Exception raised when authentication cannot succeed without operator action."""


def _client_section(client_config: ClientConfig) -> Dict[str, object]:
    return client_config.get("installed") or client_config["web"]


def load_client_config(source: str) -> ClientConfig:
    """Return the Google OAuth client configuration from a path or JSON text."""

    text = source or ""
    if not text.lstrip().startswith("{"):
        try:
            with open(text, "r", encoding="utf-8") as handle:
                text = handle.read()
        except OSError as e:
            raise AuthConfigurationError(f"Unable to read client credentials file {source}: {e}")

    try:
        config = json.loads(text)
    except ValueError as e:
        raise AuthConfigurationError(f"Unable to parse client credentials: {e}")

    if not isinstance(config, dict):
        raise AuthConfigurationError("Client credentials must be a JSON object")

    client_type = next(
        (key for key in ("installed", "web") if isinstance(config.get(key), dict)), None
    )
    if client_type is None:
        raise AuthConfigurationError(
            "Client credentials need an 'installed' or 'web' section"
        )

    missing = [key for key in REQUIRED_CLIENT_KEYS if not config[client_type].get(key)]
    if missing:
        raise AuthConfigurationError(
            f"Client credentials are missing: {', '.join(missing)}"
        )

    return {client_type: config[client_type]}


def _parse_expiry(raw: object) -> Optional[datetime]:
    """Return a naive UTC datetime, which is what google-auth compares against."""

    if not raw:
        return None

    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Fractions of any precision become exactly six digits.
    text = re.sub(r"\.(\d+)", lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)

    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if value.year <= 1:
        # Zero timestamp: the token never expires.
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _load_token_from_file(token_path: str, client_config: ClientConfig) -> Optional[Credentials]:
    if not os.path.exists(token_path):
        return None

    try:
        with open(token_path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError("token file is not a JSON object")

        access_token = data.get("access_token") or None
        refresh_token = data.get("refresh_token") or None
        if not access_token and not refresh_token:
            raise ValueError("token file holds no tokens")

        expiry = _parse_expiry(data.get("expiry"))
    except (OSError, ValueError) as e:
        print(f"Ignoring unusable token file {token_path}: {e}")
        return None

    client = _client_section(client_config)
    return Credentials(
        token=access_token,
        refresh_token=refresh_token,
        token_uri=client["token_uri"],
        client_id=client["client_id"],
        client_secret=client["client_secret"],
        scopes=[GMAIL_SCOPE],
        expiry=expiry,
    )


def _save_token(token_path: str, credentials: Credentials) -> None:
    expiry = credentials.expiry
    payload = {
        "access_token": credentials.token,
        "token_type": "Bearer",
        "refresh_token": credentials.refresh_token,
        "expiry": expiry.replace(tzinfo=timezone.utc).isoformat() if expiry else None,
    }
    try:
        with open(token_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
    except OSError as e:
        raise AuthConfigurationError(f"Unable to save token file {token_path}: {e}")


class _CallbackServer(HTTPServer):
    def __init__(self, address: Tuple[str, int], expected_state: Optional[str]):
        super().__init__(address, _OAuthCallbackHandler)
        self.expected_state = expected_state
        self.codes: "queue.Queue[str]" = queue.Queue()
        self.code_received = False


class _OAuthCallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != CALLBACK_PATH:
            self._respond(404, "Not found")
            return

        params = parse_qs(parsed.query)
        code = (params.get("code") or [""])[0]
        if not code:
            self._respond(400, "Authorization code not found")
            return

        state = (params.get("state") or [""])[0]
        expected = self.server.expected_state
        if expected and state != expected:
            self._respond(400, "Authorization state mismatch")
            return

        self._respond(200, SUCCESS_MESSAGE)
        if self.server.code_received:
            return

        self.server.code_received = True
        self.server.codes.put(code)
        # shutdown() blocks until serve_forever returns, so it cannot run on this thread.
        threading.Thread(target=self.server.shutdown, daemon=True).start()

    def _respond(self, status: int, message: str) -> None:
        body = message.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:
        print(f"OAuth callback: {format % args}")


def start_callback_server(
    port: int, expected_state: Optional[str] = None, host: str = LISTEN_ADDRESS
) -> Tuple[_CallbackServer, threading.Thread]:
    """Start the loopback listener that receives exactly one authorization code."""

    try:
        server = _CallbackServer((host, port), expected_state)
    except OSError as e:
        raise AuthConfigurationError(f"Unable to start OAuth callback listener on port {port}: {e}")

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, thread


def _get_token_from_web(client_config: ClientConfig, settings: Settings) -> Credentials:
    flow = Flow.from_client_config(
        client_config, scopes=[GMAIL_SCOPE], redirect_uri=settings.redirect_uri
    )
    auth_url, state = flow.authorization_url(access_type="offline", prompt="consent")

    server, thread = start_callback_server(settings.callback_port, expected_state=state)
    try:
        print("Opening the browser for Gmail authorization...")
        if not webbrowser.open(auth_url):
            raise AuthConfigurationError(
                f"Unable to open a web browser. Visit this URL to authorize: {auth_url}"
            )
        auth_code = server.codes.get()
    finally:
        if not server.code_received:
            server.shutdown()
        thread.join()
        server.server_close()

    try:
        flow.fetch_token(code=auth_code)
    except Exception as e:
        raise AuthConfigurationError(f"Unable to retrieve token: {e}")

    return flow.credentials


def get_credentials(client_config: ClientConfig, settings: Settings) -> Credentials:
    """Return saved credentials, or run the browser flow and save the new grant."""

    client_id = _client_section(client_config).get("client_id")
    print(f"Using Google OAuth client {client_id}")

    credentials = _load_token_from_file(settings.token_path, client_config)
    if credentials is not None:
        return credentials

    credentials = _get_token_from_web(client_config, settings)
    _save_token(settings.token_path, credentials)
    print(f"Saved Gmail authorization to {settings.token_path}")
    return credentials


def _make_session(credentials: Credentials) -> AuthorizedSession:
    session = AuthorizedSession(credentials)
    retries = Retry(
        total=5,
        connect=5,
        read=5,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset(["GET"]),
    )
    adapter = HTTPAdapter(max_retries=retries, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def obtain_session(client_config: ClientConfig, settings: Settings) -> AuthorizedSession:
    """Return an authorized HTTP session for the Gmail API."""

    return _make_session(get_credentials(client_config, settings))
