"""Download invoice attachments from a Gmail label and number them for filing."""

__version__ = "0.1.0"
