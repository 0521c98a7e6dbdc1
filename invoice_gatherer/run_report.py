from typing import List, Optional


class RunReport:
    """Counters and recoverable problems collected during one run."""

    def __init__(self):
        self.downloaded_pdfs: List[str] = []
        self.downloaded_zips: List[str] = []
        self.extracted_pdfs: List[str] = []
        self.renamed: List[str] = []
        self.problems: List[str] = []

    def add_problem(self, message: str) -> None:
        print(message)
        self.problems.append(message)

    @property
    def ok(self) -> bool:
        return not self.problems

    def summary(self) -> str:
        if self.ok:
            return "Download Complete"
        count = len(self.problems)
        plural = "problem" if count == 1 else "problems"
        return f"Download Complete with {count} {plural}"


def note_problem(report: Optional[RunReport], message: str) -> None:
    """Print ``message`` and record it on ``report`` when one is given."""

    if report is None:
        print(message)
        return
    report.add_problem(message)
