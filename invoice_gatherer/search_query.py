import re
from datetime import date, datetime
from typing import NamedTuple

DATE_FORMAT = "%Y-%m-%d"
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

LABEL_REQUIRED = "Label field is required."
INVALID_DATE = "Invalid date format. Use 'YYYY-MM-DD'"
INVALID_RANGE = "End date must be after the start date."


class InvalidSearchError(ValueError):
    """Raised when user input cannot be turned into a search query.

    The message is short enough to show on the status line as-is.
    """


class SearchQuery(NamedTuple):
    label: str
    start: date
    end: date


def _parse_date(text: str) -> date:
    text = (text or "").strip()
    if not _DATE_PATTERN.match(text):
        raise InvalidSearchError(INVALID_DATE)
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError:
        raise InvalidSearchError(INVALID_DATE)


def parse_search_query(label: str, start_text: str, end_text: str) -> SearchQuery:
    label = (label or "").strip()
    if not label:
        raise InvalidSearchError(LABEL_REQUIRED)

    start = _parse_date(start_text)
    end = _parse_date(end_text)
    if end <= start:
        raise InvalidSearchError(INVALID_RANGE)

    return SearchQuery(label, start, end)


def _gmail_date(value: date) -> str:
    return f"{value.year}/{value.month}/{value.day}"


def build_gmail_query(query: SearchQuery) -> str:
    """Return the Gmail search expression for ``query``.

    Gmail reads ``after:``/``before:`` as calendar dates in the mailbox's
    timezone, so ``end`` is exclusive.
    """

    return (
        f"label:{query.label} has:attachment "
        f"after:{_gmail_date(query.start)} before:{_gmail_date(query.end)}"
    )
