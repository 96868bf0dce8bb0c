"""File picker used when no report paths are given on the command line."""
from pathlib import Path
from typing import List, Optional


def pick_reports(initial_dir: Optional[Path] = None) -> List[Path]:
    """
    Ask the user to select one or more CSV reports.

    Args:
        initial_dir: Directory the dialog opens in; defaults to the working directory

    Returns:
        Selected paths, empty when the dialog was cancelled
    """
    # Imported here so headless installs without Tk can still run with explicit paths.
    import tkinter as tk
    from tkinter import filedialog

    root = tk.Tk()
    root.withdraw()
    try:
        filenames = filedialog.askopenfilenames(
            parent=root,
            title="Select a transaction report",
            initialdir=str(initial_dir or Path.cwd()),
            filetypes=[("CSV files", "*.csv"), ("All files", "*.*")]
        )
    finally:
        root.destroy()

    return [Path(name) for name in filenames]
