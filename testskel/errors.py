from __future__ import annotations

from pathlib import Path


class TestskelError(Exception):
    """Base class for every error raised by testskel."""

    __test__ = False


class ConfigError(TestskelError):
    """No filtering mode was selected, or a filter pattern does not compile."""


class ParseError(TestskelError):
    def __init__(self, path: Path | str, message: str, lineno: int | None = None) -> None:
        self.path = Path(path)
        self.lineno = lineno
        location = f"{self.path}:{lineno}" if lineno else str(self.path)
        super().__init__(f"{location}: {message}")


class RenderError(TestskelError):
    """A synthesized test could not be turned into valid Python source."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{self.path}: {message}")
