import argparse
import builtins
import datetime
import os
import sys
from typing import Callable, List, Optional

from .extract_zip_archives import extract_zip_archives
from .gmail_auth import load_client_config, obtain_session
from .invoice_details import DETAILS_EXTRACTORS, DetailsExtractor, get_details_extractor
from .rename_invoices import count_existing_pdfs, rename_invoices
from .run_report import RunReport
from .save_attachments_from_gmail_label import save_attachments_from_gmail_label
from .search_query import DATE_FORMAT, InvalidSearchError, SearchQuery, parse_search_query
from .settings import Settings, load_settings

DEFAULT_LOOKBACK_DAYS = 30


class _QueueLogger:
    """File-like object that mirrors writes to a queue and an optional console."""

    def __init__(self, file_obj, queue=None, echo=None):
        self._file = file_obj
        self._queue = queue
        self._echo = echo
        self._buffer = ""

    def write(self, message):
        if not message:
            return

        self._file.write(message)
        self._file.flush()

        if self._echo is not None:
            self._echo.write(message)

        if not self._queue:
            return

        self._buffer += message
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            line = line.strip()
            if line:
                self._queue.put(("log", line))

    def flush(self):
        self._file.flush()
        if self._echo is not None:
            self._echo.flush()
        if self._queue and self._buffer.strip():
            self._queue.put(("log", self._buffer.strip()))
        self._buffer = ""

    def isatty(self):
        return False


# Store the original print function
original_print = builtins.print


def print_with_timestamp(*args, **kwargs):
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    sep = kwargs.pop("sep", " ")
    all_args = sep.join(str(arg) for arg in args)
    original_print(f"{timestamp} - {all_args}", **kwargs)


def _unique(names: List[str]) -> List[str]:
    # A later attachment with the same name overwrote the earlier file on disk.
    return list(dict.fromkeys(names))


def run_pipeline(
    query: SearchQuery,
    settings: Settings,
    session=None,
    details_extractor: Optional[DetailsExtractor] = None,
    status_callback: Optional[Callable[[str], None]] = None,
) -> RunReport:
    """Download, expand and rename the invoices matching ``query``.

    Fatal errors (authorization, listing messages, reading the invoices
    folder) propagate. Problems with single messages, attachments, archives
    or files are collected on the returned report.
    """

    def set_status(text: str) -> None:
        print(text)
        if status_callback:
            status_callback(text)

    report = RunReport()
    extractor = details_extractor or get_details_extractor(settings.details_extractor)

    set_status("Downloading...")
    if session is None:
        session = obtain_session(load_client_config(settings.credentials), settings)

    save_path = settings.invoices_dir
    os.makedirs(save_path, exist_ok=True)
    starting_counter = count_existing_pdfs(save_path)
    print(f"{starting_counter} PDFs already in {save_path}")

    pdf_files, zip_files = save_attachments_from_gmail_label(session, query, save_path, report)
    report.downloaded_pdfs.extend(pdf_files)
    report.downloaded_zips.extend(zip_files)

    set_status("Extracting ZIP files...")
    report.extracted_pdfs.extend(extract_zip_archives(_unique(zip_files), save_path, report))

    set_status("Renaming...")
    to_rename = _unique(report.downloaded_pdfs + report.extracted_pdfs)
    report.renamed.extend(
        rename_invoices(to_rename, starting_counter, save_path, extractor, report)
    )

    set_status(report.summary())
    return report


def run(
    query: SearchQuery,
    settings: Settings,
    log_queue=None,
    session=None,
    details_extractor: Optional[DetailsExtractor] = None,
    echo=None,
) -> RunReport:
    """Run the pipeline with output teed to the log file and ``log_queue``.

    Status changes are posted to the queue as ``("status", text)`` and log
    lines as ``("log", line)``.
    """

    def post_status(text: str) -> None:
        if log_queue is not None:
            log_queue.put(("status", text))

    log_dir = os.path.dirname(os.path.abspath(settings.log_file_path))
    os.makedirs(log_dir, exist_ok=True)

    original_stdout = sys.stdout

    # Open the log file in append mode
    with open(settings.log_file_path, "a", encoding="utf-8", errors="replace") as log_file:
        logger = _QueueLogger(log_file, log_queue, echo)
        sys.stdout = logger
        builtins.print = print_with_timestamp

        try:
            return run_pipeline(
                query,
                settings,
                session=session,
                details_extractor=details_extractor,
                status_callback=post_status,
            )
        except Exception as e:
            print(f"Download failed: {e}")
            raise
        finally:
            builtins.print = original_print
            logger.flush()
            sys.stdout = original_stdout


def _default_dates():
    today = datetime.date.today()
    start = today - datetime.timedelta(days=DEFAULT_LOOKBACK_DAYS)
    return start.strftime(DATE_FORMAT), today.strftime(DATE_FORMAT)


def main(argv=None) -> int:
    default_start, default_end = _default_dates()

    parser = argparse.ArgumentParser(
        description="Download PDF and ZIP invoice attachments from a Gmail label."
    )
    parser.add_argument("--label", help="Gmail label to search; omit to open the window")
    parser.add_argument("--start", default=default_start, help="first day, YYYY-MM-DD")
    parser.add_argument("--end", default=default_end, help="day after the last, YYYY-MM-DD")
    parser.add_argument(
        "--details",
        choices=sorted(DETAILS_EXTRACTORS),
        help="how invoice details are read for the new file names",
    )
    parser.add_argument("--env-file", help="load settings from this .env file")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.env_file)
        if args.details:
            settings.details_extractor = args.details
        get_details_extractor(settings.details_extractor)
    except (RuntimeError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.label is None:
        from .gui import main as gui_main

        gui_main(settings)
        return 0

    try:
        query = parse_search_query(args.label, args.start, args.end)
    except InvalidSearchError as e:
        print(e, file=sys.stderr)
        return 2

    try:
        run(query, settings, echo=sys.stdout)
    except Exception as e:
        print(f"Download failed: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
