from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.processing_result import Progress

"""Progress display with tqdm (TTY only).

- UploadProgressBar: records written / total during persistence, fed with
  the Progress values of the persistence engine
- FileProgressIndicator: one status line per parsed file

In non-TTY environments (CI, pipes) nothing is drawn, to avoid ANSI control
sequence spam in logs.
"""

__all__ = [
    "UploadProgressBar",
    "is_tty_enabled",
    "FileProgressIndicator",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class UploadProgressBar:
    """Record-level upload progress.

    The displayed position is set from Progress.current rather than
    incremented, so it mirrors the engine exactly. reset() returns the bar to
    0/0 between runs.
    """

    def __init__(self, *, description: str = "Uploading") -> None:
        self.description = description
        self.current = 0
        self.total = 0
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None

    def _ensure_bar(self, total: int) -> None:
        if not self.enabled:
            return
        if self.pbar is None:
            self.pbar = tqdm(
                total=total,
                desc=self.description,
                unit="rec",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        elif self.pbar.total != total:
            self.pbar.reset(total=total)

    def update(self, progress: Progress) -> None:
        self.current = progress.current
        self.total = progress.total
        self._ensure_bar(progress.total)
        if self.pbar is not None:
            self.pbar.n = progress.current
            self.pbar.refresh()

    def reset(self) -> None:
        self.current = 0
        self.total = 0
        if self.pbar is not None:
            self.pbar.reset(total=0)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> UploadProgressBar:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.reset()
        self.close()


class FileProgressIndicator:
    """Per-file parse status without a full progress bar."""

    def __init__(self, total_files: int) -> None:
        self.total_files = total_files
        self.current_file = 0
        self.enabled = is_tty_enabled()

    def start_file(self, file_name: str) -> None:
        self.current_file += 1
        if self.enabled:
            print(f"  File {self.current_file}/{self.total_files}: {file_name}", end="", flush=True)

    def finish_file(self, success: bool = True, records: int = 0) -> None:
        if self.enabled:
            status = "ok" if success else "failed"
            if records > 0:
                print(f" - {records} records {status}")
            else:
                print(f" {status}")
