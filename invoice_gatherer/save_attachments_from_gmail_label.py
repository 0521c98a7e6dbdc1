import base64
import os
from typing import Dict, Iterator, List, Optional, Tuple

import requests
from google.auth.exceptions import RefreshError

from .gmail_auth import AuthConfigurationError
from .run_report import RunReport, note_problem
from .search_query import SearchQuery, build_gmail_query

GMAIL_BASE = "https://gmail.googleapis.com/gmail/v1"
USER_ID = "me"
PAGE_SIZE = 100

PDF_EXTENSION = ".pdf"
ZIP_EXTENSION = ".zip"

REAUTHORIZE_HINT = (
    "The saved Gmail authorization may have been revoked;"
    " delete the token file and run again to re-authorize."
)


class GmailRequestError(RuntimeError):
    """Exception raised when a Gmail API call does not succeed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _describe_gmail_error(response: requests.Response, action: str) -> str:
    """Return a helpful error string for Gmail API failures."""

    detail = ""
    try:
        payload = response.json()
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            status = error.get("status")
            message = error.get("message")
            if status or message:
                detail = f"{status or 'Error'}: {message or ''}".strip()
    except ValueError:
        # fall back to raw body below
        pass

    detail = detail or response.text[:200]
    if response.status_code in (401, 403):
        detail = f"{detail} {REAUTHORIZE_HINT}"

    return f"{action}: {response.status_code} {detail}"


def _get(session: requests.Session, url: str, **kwargs) -> requests.Response:
    try:
        return session.get(url, timeout=60, **kwargs)
    except RefreshError as e:
        raise AuthConfigurationError(f"Unable to refresh the Gmail authorization: {e} {REAUTHORIZE_HINT}")


def _list_message_ids(session: requests.Session, search: str) -> List[str]:
    url = f"{GMAIL_BASE}/users/{USER_ID}/messages"
    params: Dict[str, object] = {"q": search, "maxResults": PAGE_SIZE}
    message_ids: List[str] = []

    while True:
        response = _get(session, url, params=params)
        if response.status_code in (401, 403):
            # Retrying will not help; the operator has to re-authorize.
            raise AuthConfigurationError(
                _describe_gmail_error(response, "Failed to list messages")
            )
        if response.status_code != 200:
            raise GmailRequestError(
                _describe_gmail_error(response, "Failed to list messages"),
                status_code=response.status_code,
            )

        payload = response.json()
        message_ids.extend(
            message["id"] for message in payload.get("messages", []) if message.get("id")
        )

        page_token = payload.get("nextPageToken")
        if not page_token:
            return message_ids
        params = {"q": search, "maxResults": PAGE_SIZE, "pageToken": page_token}


def _get_message_details(session: requests.Session, message_id: str) -> Dict[str, object]:
    url = f"{GMAIL_BASE}/users/{USER_ID}/messages/{message_id}"
    response = _get(session, url, params={"format": "full"})
    if response.status_code != 200:
        raise GmailRequestError(
            _describe_gmail_error(response, f"Failed to fetch message {message_id}"),
            status_code=response.status_code,
        )
    return response.json()


def _walk_parts(part: Dict[str, object]) -> Iterator[Dict[str, object]]:
    yield part
    for child in part.get("parts") or []:
        yield from _walk_parts(child)


def _is_wanted_attachment(filename: str) -> bool:
    return bool(filename) and filename.endswith((PDF_EXTENSION, ZIP_EXTENSION))


def _fetch_attachment_data(
    session: requests.Session, message_id: str, part: Dict[str, object]
) -> str:
    """Return the base64url payload of a part, downloading it when not inline."""

    body = part.get("body") or {}
    data = body.get("data")
    if data:
        return data

    attachment_id = body.get("attachmentId")
    if not attachment_id:
        raise GmailRequestError("Attachment is missing both inline content and an identifier")

    url = f"{GMAIL_BASE}/users/{USER_ID}/messages/{message_id}/attachments/{attachment_id}"
    response = _get(session, url)
    if response.status_code != 200:
        raise GmailRequestError(
            _describe_gmail_error(response, f"Failed to download attachment {attachment_id}"),
            status_code=response.status_code,
        )
    return response.json().get("data") or ""


def _decode_attachment_data(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


def _safe_filename(filename: str) -> str:
    return os.path.basename(filename.replace("\\", "/"))


def save_attachments_from_gmail_label(
    session: requests.Session,
    query: SearchQuery,
    save_path: str,
    report: Optional[RunReport] = None,
) -> Tuple[List[str], List[str]]:
    """Download the PDF and ZIP attachments of every message matching ``query``.

    Returns ``(pdf_files, zip_files)``: file names relative to ``save_path`` in
    download order. Failures on a single message or attachment are reported and
    skipped; failing to list the messages raises.
    """

    pdf_files: List[str] = []
    zip_files: List[str] = []

    os.makedirs(save_path, exist_ok=True)

    search = build_gmail_query(query)
    print(f"Searching Gmail: {search}")
    message_ids = _list_message_ids(session, search)
    print(f"Found {len(message_ids)} matching messages")

    for message_id in message_ids:
        try:
            message = _get_message_details(session, message_id)
        except (GmailRequestError, requests.RequestException, ValueError) as e:
            note_problem(report, f"Unable to get message {message_id}: {e}")
            continue

        for part in _walk_parts(message.get("payload") or {}):
            filename = part.get("filename") or ""
            if not _is_wanted_attachment(filename):
                continue

            try:
                encoded = _fetch_attachment_data(session, message_id, part)
            except (GmailRequestError, requests.RequestException, ValueError) as e:
                note_problem(report, f"Failed to download attachment {filename}: {e}")
                continue

            try:
                data = _decode_attachment_data(encoded)
            except ValueError as e:
                note_problem(report, f"Failed to decode attachment {filename}: {e}")
                continue

            name = _safe_filename(filename)
            destination_path = os.path.join(save_path, name)
            if os.path.exists(destination_path):
                note_problem(
                    report, f"Overwriting existing file {name} with the attachment from message {message_id}"
                )
            try:
                with open(destination_path, "wb") as handle:
                    handle.write(data)
            except OSError as e:
                note_problem(report, f"Failed to save file {filename}: {e}")
                continue

            if name.endswith(PDF_EXTENSION):
                pdf_files.append(name)
            else:
                zip_files.append(name)
            print(f"Saved attachment {name}")

    return pdf_files, zip_files
