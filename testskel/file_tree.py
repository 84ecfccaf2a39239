from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Iterable

from .models import FileInfo

IGNORE_DIRS = (".git", "__pycache__", ".venv", "venv", "env", ".mypy_cache", ".pytest_cache", ".tox")
TEST_FILE_GLOBS = ("test_*.py", "*_test.py")


def is_test_file(path: Path, globs: Iterable[str] = TEST_FILE_GLOBS) -> bool:
    if path.name == "conftest.py":
        return True
    return any(fnmatch.fnmatch(path.name, pattern) for pattern in globs)


def collect_python_files(
    directory: Path,
    recursive: bool = False,
    test_globs: Iterable[str] = TEST_FILE_GLOBS,
    ignore_dirs: Iterable[str] = IGNORE_DIRS,
) -> list[Path]:
    """
    List the source files of a directory in sorted order, leaving out test
    modules. Subdirectories are only visited when ``recursive`` is set.
    """
    directory = directory.resolve()
    ignored = set(ignore_dirs)
    candidates = directory.rglob("*.py") if recursive else directory.glob("*.py")
    files: list[Path] = []
    for path in candidates:
        if any(part in ignored for part in path.relative_to(directory).parts):
            continue
        if not path.is_file() or is_test_file(path, test_globs):
            continue
        files.append(path)
    return sorted(files)


def infer_module_path(path: Path) -> str:
    """
    Convert a source file path to the dotted path it is imported by.

    Walks up through parent directories as long as they hold an
    ``__init__.py``, which is also the directory pytest puts on sys.path
    for a test module living next to the source.

    Example:
        /work/pkg/sub/module.py (pkg and sub are packages) -> pkg.sub.module
        /work/pkg/__init__.py -> pkg
    """
    path = path.resolve()
    parts: list[str] = [] if path.stem == "__init__" else [path.stem]
    parent = path.parent
    while (parent / "__init__.py").is_file():
        parts.insert(0, parent.name)
        if parent.parent == parent:
            break
        parent = parent.parent
    return ".".join(parts)


def file_info_for(path: Path) -> FileInfo:
    path = path.resolve()
    return FileInfo(path=path, module_path=infer_module_path(path))


def target_test_path(source: Path) -> Path:
    """
    ``pkg/module.py`` -> ``pkg/test_module.py``. ``pkg/__init__.py`` gets
    ``pkg/test___init__.py`` so it never shares a target with ``pkg/pkg.py``.
    """
    return source.with_name(f"test_{source.stem}.py")
