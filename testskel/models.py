from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import TestskelError


class ParamKind(str, Enum):
    POSITIONAL_ONLY = "positional_only"
    POSITIONAL = "positional"
    VAR_POSITIONAL = "var_positional"
    KEYWORD_ONLY = "keyword_only"
    VAR_KEYWORD = "var_keyword"


class FunctionKind(str, Enum):
    FUNCTION = "function"
    METHOD = "method"
    STATICMETHOD = "staticmethod"
    CLASSMETHOD = "classmethod"
    PROPERTY = "property"


@dataclass(frozen=True)
class FileInfo:
    path: Path                      # absolute path
    module_path: str                # e.g. "pkg.sub.module"


@dataclass(frozen=True)
class Param:
    name: str
    annotation: str | None = None   # source text of the annotation
    kind: ParamKind = ParamKind.POSITIONAL
    has_default: bool = False


@dataclass(frozen=True)
class Receiver:
    """
    The class a method is declared on. ``fields`` are the constructor
    parameters, which the generated test needs to build an instance.
    """

    name: str
    fields: tuple[Param, ...] = ()


@dataclass(frozen=True)
class FunctionSignature:
    name: str                       # function or method name
    file: FileInfo
    lineno: int
    params: tuple[Param, ...] = ()
    results: tuple[Param, ...] = ()
    receiver: Receiver | None = None
    exported: bool = True
    kind: FunctionKind = FunctionKind.FUNCTION
    is_async: bool = False
    is_generator: bool = False
    can_raise: bool = False

    @property
    def qualified_name(self) -> str:
        """``Class.method`` for methods, the bare name otherwise."""
        if self.receiver is not None:
            return f"{self.receiver.name}.{self.name}"
        return self.name

    @property
    def needs_instance(self) -> bool:
        return self.kind in (FunctionKind.METHOD, FunctionKind.PROPERTY)


@dataclass
class PackageIndex:
    """Functions found per source file, in declaration order."""

    files: dict[Path, tuple[FunctionSignature, ...]] = field(default_factory=dict)

    def add(self, path: Path, signatures: tuple[FunctionSignature, ...]) -> None:
        self.files[path] = signatures

    def signatures(self) -> list[FunctionSignature]:
        return [sig for sigs in self.files.values() for sig in sigs]


@dataclass(frozen=True)
class ExistingTestSet:
    directory: Path
    names: frozenset[str] = frozenset()
    warnings: tuple[str, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.names


@dataclass(frozen=True)
class Placeholder:
    """A value slot in a table case: ``name`` is the key, ``value`` the Python literal."""

    name: str
    annotation: str | None
    value: str


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    name: str
    args: tuple[Placeholder, ...] = ()
    fields: tuple[Placeholder, ...] = ()
    wants: tuple[Placeholder, ...] = ()
    want_err: Placeholder | None = None


@dataclass(frozen=True)
class TestModel:
    __test__ = False

    name: str
    function: FunctionSignature
    cases: tuple[TestCase, ...]
    subtests: bool = False
    print_inputs: bool = False


@dataclass
class GeneratedFile:
    path: Path                      # target test module
    source: FileInfo
    tests: list[TestModel]
    output: bytes
    # the existing target could not be parsed; output is a fresh module
    replaces_invalid: bool = False

    @property
    def test_names(self) -> list[str]:
        return [t.name for t in self.tests]


@dataclass
class PathOutcome:
    """
    Result of running the pipeline on one input path. ``files`` empty with
    no ``error`` means the path had no eligible functions.
    """

    path: Path
    files: list[GeneratedFile] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: TestskelError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def test_count(self) -> int:
        return sum(len(f.tests) for f in self.files)
