from __future__ import annotations

from typing import TextIO

MSG_INFO = "0;32"
MSG_WARN = "0;33"
MSG_ERROR = "0;31"


class Reporter:
    """
    Formats the one-line status messages the CLI prints for each generated
    test, warning and error, e.g. ``[INFO]\\t-> generated: test_add``.
    """

    def __init__(self, stream: TextIO, color: bool = False) -> None:
        self.stream = stream
        self.color = color

    def _emit(self, code: str, label: str, message: str) -> None:
        if self.color:
            self.stream.write(f"\033[{code}m[{label}]\t\033[m-> {message}\n")
        else:
            self.stream.write(f"[{label}]\t-> {message}\n")
        self.stream.flush()

    def info(self, message: str) -> None:
        self._emit(MSG_INFO, "INFO", message)

    def warn(self, message: str) -> None:
        self._emit(MSG_WARN, "WARN", message)

    def error(self, message: str) -> None:
        self._emit(MSG_ERROR, "ERROR", message)
