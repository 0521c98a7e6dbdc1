import datetime
import os
import queue
import subprocess
import sys
import threading
import tkinter as tk
from tkinter import ttk

from customtkinter import (
    CTk,
    CTkButton,
    CTkEntry,
    CTkLabel,
    set_appearance_mode,
    set_default_color_theme,
)
from tkcalendar import DateEntry

from .main_script import DEFAULT_LOOKBACK_DAYS, run
from .search_query import InvalidSearchError, parse_search_query
from .settings import Settings, load_settings

MAX_LOG_LINES = 300


class App:
    def __init__(self, root, settings: Settings):
        self.root = root
        self.root.title("Invoice Gatherer")
        self.root.geometry("520x560")

        self.settings = settings

        # Initialize script_thread as None
        self.script_thread = None
        self.queue = queue.Queue()

        self.status_var = tk.StringVar(value="Status: Idle")

        self.label_label = CTkLabel(root, text="Gmail Label")
        self.label_label.pack(fill="x", padx=10, pady=(10, 0))
        self.label_entry = CTkEntry(root, placeholder_text="e.g. Invoices")
        self.label_entry.pack(fill="x", padx=10, pady=5)

        today = datetime.date.today()

        self.date_frame = tk.Frame(root, bg="#1E1E1E")
        self.date_frame.pack(fill="x", padx=10, pady=5)

        self.start_label = CTkLabel(self.date_frame, text="Start Date")
        self.start_label.pack(side="left", padx=(0, 5))
        self.start_entry = DateEntry(self.date_frame, date_pattern="yyyy-mm-dd")
        self.start_entry.set_date(today - datetime.timedelta(days=DEFAULT_LOOKBACK_DAYS))
        self.start_entry.pack(side="left", padx=(0, 15))

        self.end_label = CTkLabel(self.date_frame, text="End Date")
        self.end_label.pack(side="left", padx=(0, 5))
        self.end_entry = DateEntry(self.date_frame, date_pattern="yyyy-mm-dd")
        self.end_entry.set_date(today)
        self.end_entry.pack(side="left")

        self.main_button = CTkButton(root, text="Download", command=self.run_in_thread)
        self.main_button.pack(fill="x", padx=10, pady=10)

        self.status_label = CTkLabel(root, textvariable=self.status_var)
        self.status_label.pack(fill="x", padx=10, pady=(0, 5))

        self.progress = ttk.Progressbar(root, mode="indeterminate")
        self.progress.pack(fill="x", padx=10)

        self.log_label = CTkLabel(root, text="Recent Activity")
        self.log_label.pack(fill="x", padx=10, pady=(10, 0))

        self.log_frame = tk.Frame(root, bg="#1E1E1E")
        self.log_frame.pack(fill="both", expand=True, padx=10, pady=5)

        self.log_scrollbar = tk.Scrollbar(self.log_frame)
        self.log_scrollbar.pack(side="right", fill="y")

        self.log_text = tk.Text(
            self.log_frame,
            height=10,
            bg="#1E1E1E",
            fg="white",
            insertbackground="white",
            wrap="word",
            state="disabled",
            yscrollcommand=self.log_scrollbar.set,
        )
        self.log_text.pack(side="left", fill="both", expand=True)
        self.log_scrollbar.config(command=self.log_text.yview)

        self.open_log_button = CTkButton(root, text="Open Log File", command=self.open_log_file)
        self.open_log_button.pack(fill="x", padx=10, pady=(5, 10))

        self.root.after(100, self.update_log)

    def append_log(self, message):
        self.log_text.configure(state="normal")
        self.log_text.insert("end", message + "\n")
        self.log_text.see("end")
        total_lines = int(self.log_text.index("end-1c").split(".")[0])
        if total_lines > MAX_LOG_LINES:
            self.log_text.delete("1.0", f"{total_lines - MAX_LOG_LINES}.0")
        self.log_text.configure(state="disabled")

    def update_log(self):
        while not self.queue.empty():
            kind, payload = self.queue.get()

            if kind == "log":
                self.append_log(str(payload))
            elif kind == "status":
                self.status_var.set(f"Status: {payload}")
            elif kind == "done":
                self.finish_run(str(payload), failed=False)
            elif kind == "failed":
                self.finish_run(str(payload), failed=True)

        self.root.after(200, self.update_log)

    def run_in_thread(self):
        if self.script_thread and self.script_thread.is_alive():
            return

        try:
            query = parse_search_query(
                self.label_entry.get(), self.start_entry.get(), self.end_entry.get()
            )
        except InvalidSearchError as e:
            self.status_var.set(f"Status: {e}")
            return

        self.script_thread = threading.Thread(target=self.run_main, args=(query,), daemon=True)
        self.script_thread.start()
        self.main_button.configure(state="disabled", text="Download")
        self.status_var.set("Status: Starting...")
        self.progress.start(10)

    def run_main(self, query):
        try:
            report = run(query, self.settings, self.queue)
        except Exception as e:
            self.queue.put(("failed", f"Download failed: {e}"))
        else:
            self.queue.put(("done", report.summary()))

    def finish_run(self, status, failed):
        self.script_thread = None
        self.progress.stop()
        self.status_var.set(f"Status: {status}")
        self.main_button.configure(state="normal", text="Retry" if failed else "Download")

    def open_log_file(self):
        log_path = os.path.abspath(self.settings.log_file_path)
        if not os.path.exists(log_path):
            with open(log_path, "w"):
                pass

        try:
            os.startfile(log_path)
        except AttributeError:
            opener = "open" if sys.platform == "darwin" else "xdg-open"
            subprocess.Popen([opener, log_path])


def main(settings=None):
    set_appearance_mode("dark")
    set_default_color_theme("dark-blue")

    root = CTk()
    App(root, settings or load_settings())
    root.mainloop()


if __name__ == "__main__":
    main()
