"""Stand-ins for the Gmail REST API at the ``requests.Session`` boundary."""

import base64
import io
import json
import zipfile

from invoice_gatherer.save_attachments_from_gmail_label import GMAIL_BASE

MESSAGES_URL = f"{GMAIL_BASE}/users/me/messages"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else "")

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def zip_bytes(entries) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries:
            archive.writestr(name, data)
    return buffer.getvalue()


def inline_part(filename, data: bytes, mime_type="application/pdf"):
    return {"filename": filename, "mimeType": mime_type, "body": {"data": encode(data), "size": len(data)}}


def remote_part(filename, attachment_id, mime_type="application/pdf"):
    return {"filename": filename, "mimeType": mime_type, "body": {"attachmentId": attachment_id}}


def multipart(*parts):
    return {"filename": "", "mimeType": "multipart/mixed", "body": {"size": 0}, "parts": list(parts)}


def message(message_id, *parts):
    body = {"filename": "", "mimeType": "text/plain", "body": {"data": encode(b"Please find attached.")}}
    return {"id": message_id, "payload": multipart(body, *parts)}


class FakeGmailSession:
    """Answers message listing, message and attachment GETs from canned data.

    ``pages`` splits the listed ids into result pages linked by
    ``nextPageToken``; ids without a message answer 404. ``responses`` maps a
    URL to a response (or exception) that overrides the canned behaviour.
    """

    def __init__(self, messages=(), pages=None, attachments=None, responses=None):
        self.messages = {m["id"]: m for m in messages}
        self.pages = pages if pages is not None else [[m["id"] for m in messages]]
        self.attachments = attachments or {}
        self.responses = responses or {}
        self.calls = []

    def get(self, url, params=None, timeout=None):
        params = dict(params or {})
        self.calls.append((url, params))

        if url in self.responses:
            response = self.responses[url]
            if isinstance(response, Exception):
                raise response
            return response

        if url == MESSAGES_URL:
            return self._list(params)

        if "/attachments/" in url:
            attachment_id = url.rsplit("/", 1)[1]
            if attachment_id not in self.attachments:
                return _not_found()
            data = self.attachments[attachment_id]
            return FakeResponse(200, {"data": encode(data), "size": len(data)})

        message_id = url.rsplit("/", 1)[1]
        if message_id not in self.messages:
            return _not_found()
        return FakeResponse(200, self.messages[message_id])

    def _list(self, params):
        token = params.get("pageToken")
        index = int(token.split("-")[1]) if token else 0
        ids = self.pages[index] if self.pages else []

        payload = {"resultSizeEstimate": len(ids)}
        if ids:
            payload["messages"] = [{"id": i, "threadId": i} for i in ids]
        if index + 1 < len(self.pages):
            payload["nextPageToken"] = f"page-{index + 1}"
        return FakeResponse(200, payload)

    def list_calls(self):
        return [params for url, params in self.calls if url == MESSAGES_URL]


def _not_found():
    return FakeResponse(404, {"error": {"code": 404, "message": "Requested entity was not found.", "status": "NOT_FOUND"}})
