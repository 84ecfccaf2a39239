from __future__ import annotations

import ast
import keyword
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .errors import RenderError
from .models import (
    FileInfo,
    FunctionKind,
    FunctionSignature,
    GeneratedFile,
    Param,
    ParamKind,
    Placeholder,
    TestCase,
    TestModel,
)

logger = logging.getLogger(__name__)

INDENT = "    "
MAX_IMPORT_LINE = 79
TODO_CASES = "# TODO: Add test cases."

# local names used inside generated test bodies
_RESERVED = frozenset({"asyncio", "pytest", "case", "cases", "args", "fields", "obj", "_collect"})

_COLLECT_HELPER = [
    "async def _collect(aiter):",
    f"{INDENT}return [item async for item in aiter]",
]


def _is_identifier(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name)


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _alias(name: str) -> str:
    """Local name for an imported target, kept clear of pytest collection and test locals."""
    if name in _RESERVED or name.startswith(("test", "Test", "got", "want")):
        return f"_{name}_"
    return name


@dataclass
class _Imports:
    stdlib: set[str] = field(default_factory=set)
    third_party: set[str] = field(default_factory=set)
    targets: set[str] = field(default_factory=set)
    needs_collect: bool = False


def _target(sig: FunctionSignature) -> str:
    return sig.receiver.name if sig.receiver is not None else sig.name


def _display_name(sig: FunctionSignature) -> str:
    return sig.qualified_name


def _call_arguments(params: Sequence[Param], source: str) -> str:
    parts: list[str] = []
    for p in params:
        ref = f"{source}[{_quote(p.name)}]"
        if p.kind is ParamKind.VAR_POSITIONAL:
            parts.append(f"*{ref}")
        elif p.kind is ParamKind.KEYWORD_ONLY:
            parts.append(f"{p.name}={ref}")
        elif p.kind is ParamKind.VAR_KEYWORD:
            parts.append(f"**{ref}")
        else:
            parts.append(ref)
    return ", ".join(parts)


def _printed_arguments(params: Sequence[Param]) -> str:
    parts: list[str] = []
    for p in params:
        ref = f"{{args['{p.name}']!r}}"
        if p.kind is ParamKind.VAR_POSITIONAL:
            parts.append(f"*{ref}")
        elif p.kind is ParamKind.KEYWORD_ONLY:
            parts.append(f"{p.name}={ref}")
        elif p.kind is ParamKind.VAR_KEYWORD:
            parts.append(f"**{ref}")
        else:
            parts.append(ref)
    return ", ".join(parts)


def _invocation(sig: FunctionSignature) -> str:
    """The expression that exercises ``sig`` once ``args``/``obj`` are bound."""
    target = _alias(_target(sig))
    call_args = _call_arguments(sig.params, "args")
    if sig.kind is FunctionKind.PROPERTY:
        return f"obj.{sig.name}"
    if sig.kind is FunctionKind.METHOD:
        expr = f"obj.{sig.name}({call_args})"
    elif sig.receiver is not None:
        expr = f"{target}.{sig.name}({call_args})"
    else:
        expr = f"{target}({call_args})"

    if sig.is_async and sig.is_generator:
        return f"asyncio.run(_collect({expr}))"
    if sig.is_async:
        return f"asyncio.run({expr})"
    if sig.is_generator:
        return f"list({expr})"
    return expr


def _columns(case: TestCase) -> list[str]:
    columns: list[str] = []
    if case.fields:
        columns.append("fields")
    if case.args:
        columns.append("args")
    columns.extend(w.name for w in case.wants)
    if case.want_err is not None:
        columns.append("want_err")
    return columns


def _slot_line(key: str | None, slot: Placeholder, indent: str) -> str:
    head = f"{_quote(key)}: " if key is not None else ""
    line = f"{indent}{head}{slot.value},"
    if slot.annotation:
        line += f"  # {_one_line(slot.annotation)}"
    return line


def _dict_lines(key: str | None, slots: Sequence[Placeholder], indent: str) -> list[str]:
    head = f"{_quote(key)}: " if key is not None else ""
    if not slots:
        return [f"{indent}{head}{{}},"]
    lines = [f"{indent}{head}{{"]
    lines.extend(_slot_line(slot.name, slot, indent + INDENT) for slot in slots)
    lines.append(f"{indent}}},")
    return lines


def _cell_lines(column: str, case: TestCase, indent: str, keyed: bool) -> list[str]:
    key = column if keyed else None
    if column == "fields":
        return _dict_lines(key, case.fields, indent)
    if column == "args":
        return _dict_lines(key, case.args, indent)
    if column == "want_err" and case.want_err is not None:
        return [_slot_line(key, case.want_err, indent)]
    for want in case.wants:
        if want.name == column:
            return [_slot_line(key, want, indent)]
    raise KeyError(column)


class _TestWriter:
    """Writes the source of one test function."""

    def __init__(self, model: TestModel) -> None:
        if not model.cases:
            raise ValueError(f"{model.name} has no test cases")
        self.model = model
        self.sig = model.function
        self.columns = _columns(model.cases[0])

    def ref(self, column: str, inside_fstring: bool = False) -> str:
        if self.model.subtests or column in ("args", "fields"):
            return column
        if inside_fstring:
            return f"case['{column}']"
        return f"case[{_quote(column)}]"

    def message(self, got: str, want: str, index: int) -> str:
        prefix = "" if self.model.subtests else "{case['name']}: "
        printed = _printed_arguments(self.sig.params) if self.model.print_inputs else ""
        call = "" if self.sig.kind is FunctionKind.PROPERTY else f"({printed})"
        label = "" if index == 0 else f" {got}"
        ref = self.ref(want, inside_fstring=True)
        return f'f"{prefix}{_display_name(self.sig)}{call}{label} = {{{got}!r}}, {want} {{{ref}!r}}"'

    def body(self, exit_stmt: str) -> list[str]:
        sig = self.sig
        lines: list[str] = []
        if sig.needs_instance:
            receiver = sig.receiver
            fields = receiver.fields if receiver is not None else ()
            target = _alias(_target(sig))
            lines.append(f"obj = {target}({_call_arguments(fields, 'fields')})")

        invocation = _invocation(sig)
        if "want_err" in self.columns:
            want_err = self.ref("want_err")
            lines.append(f"if {want_err} is not None:")
            lines.append(f"{INDENT}with pytest.raises({want_err}):")
            lines.append(f"{INDENT * 2}{invocation}")
            lines.append(f"{INDENT}{exit_stmt}")

        wants = [w.name for w in self.model.cases[0].wants]
        if not wants:
            lines.append(invocation)
            return lines
        gots = ["got" if i == 0 else f"got_{i}" for i in range(len(wants))]
        lines.append(f"{', '.join(gots)} = {invocation}")
        for i, (got, want) in enumerate(zip(gots, wants)):
            lines.append(f"assert {got} == {self.ref(want)}, {self.message(got, want, i)}")
        return lines

    def table(self, indent: str) -> list[str]:
        lines: list[str] = []
        for case in self.model.cases:
            if self.model.subtests:
                lines.append(f"{indent}pytest.param(")
                for column in self.columns:
                    lines.extend(_cell_lines(column, case, indent + INDENT, keyed=False))
                lines.append(f"{indent}{INDENT}id={_quote(case.name)},")
                lines.append(f"{indent}),")
            else:
                lines.append(f"{indent}{{")
                lines.append(f"{indent}{INDENT}{_quote('name')}: {_quote(case.name)},")
                for column in self.columns:
                    lines.extend(_cell_lines(column, case, indent + INDENT, keyed=True))
                lines.append(f"{indent}}},")
        lines.append(f"{indent}{TODO_CASES}")
        return lines

    def lines(self) -> list[str]:
        name = self.model.name
        if not self.columns:
            # nothing to vary: the test only checks that the call completes
            body = self.body("return")
            return [f"def {name}() -> None:"] + [INDENT + line for line in body]

        if self.model.subtests:
            lines = [
                "@pytest.mark.parametrize(",
                f"{INDENT}{_quote(', '.join(self.columns))},",
                f"{INDENT}[",
            ]
            lines.extend(self.table(INDENT * 2))
            lines.append(f"{INDENT}],")
            lines.append(")")
            lines.append(f"def {name}({', '.join(self.columns)}) -> None:")
            lines.extend(INDENT + line for line in self.body("return"))
            return lines

        lines = [f"def {name}() -> None:", f"{INDENT}cases = ["]
        lines.extend(self.table(INDENT * 2))
        lines.append(f"{INDENT}]")
        lines.append(f"{INDENT}for case in cases:")
        for column in ("fields", "args"):
            if column in self.columns:
                lines.append(f"{INDENT * 2}{column} = case[{_quote(column)}]")
        lines.extend(INDENT * 2 + line for line in self.body("continue"))
        return lines


def render_test(model: TestModel) -> str:
    """Source of a single test function, without imports."""
    return "\n".join(_TestWriter(model).lines()) + "\n"


def _collect_imports(tests: Sequence[TestModel]) -> _Imports:
    imports = _Imports()
    for model in tests:
        sig = model.function
        imports.targets.add(_target(sig))
        if sig.is_async:
            imports.stdlib.add("asyncio")
            if sig.is_generator:
                imports.needs_collect = True
        columns = _columns(model.cases[0]) if model.cases else []
        if (model.subtests and columns) or sig.can_raise:
            imports.third_party.add("pytest")
    return imports


def _target_import_lines(module_path: str, names: Sequence[str]) -> list[str]:
    entries = [name if _alias(name) == name else f"{name} as {_alias(name)}" for name in sorted(names)]
    line = f"from {module_path} import {', '.join(entries)}"
    if len(line) <= MAX_IMPORT_LINE:
        return [line]
    return [f"from {module_path} import ("] + [f"{INDENT}{entry}," for entry in entries] + [")"]


def _header_lines(module_path: str, imports: _Imports) -> list[str]:
    blocks: list[list[str]] = []
    if imports.stdlib:
        blocks.append([f"import {name}" for name in sorted(imports.stdlib)])
    if imports.third_party:
        blocks.append([f"import {name}" for name in sorted(imports.third_party)])
    blocks.append(_target_import_lines(module_path, sorted(imports.targets)))
    lines: list[str] = []
    for block in blocks:
        if lines:
            lines.append("")
        lines.extend(block)
    return lines


def _check_importable(path: Path, module_path: str) -> None:
    if not module_path or not all(_is_identifier(part) for part in module_path.split(".")):
        raise RenderError(path, f"cannot import {module_path or 'the source module'!r} from a test module")


def _existing_bindings(tree: ast.Module) -> tuple[set[str], set[tuple[str, str]], set[str]]:
    """Modules imported, (module, name) pairs imported, and top-level definitions."""
    modules: set[str] = set()
    names: set[tuple[str, str]] = set()
    defined: set[str] = set()
    for node in tree.body:
        if isinstance(node, ast.Import):
            modules.update(alias.name for alias in node.names if alias.asname is None)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            names.update((node.module, alias.asname or alias.name) for alias in node.names)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            defined.add(node.name)
    return modules, names, defined


def _insertion_line(tree: ast.Module) -> int:
    """0-based line index after the last top-level import, or after the module docstring."""
    last = 0
    for node in tree.body:
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            last = node.end_lineno or node.lineno
    if last:
        return last
    if ast.get_docstring(tree) is not None:
        first = tree.body[0]
        return first.end_lineno or first.lineno
    return 0


def _merge(path: Path, existing_text: str, module_path: str, imports: _Imports, tests_src: str) -> str:
    try:
        tree = ast.parse(existing_text, filename=str(path))
    except (SyntaxError, ValueError) as exc:
        raise RenderError(path, f"existing test file is not valid Python: {exc}") from exc

    modules, names, defined = _existing_bindings(tree)
    missing = _Imports(
        stdlib={m for m in imports.stdlib if m not in modules},
        third_party={m for m in imports.third_party if m not in modules},
        targets={t for t in imports.targets if (module_path, _alias(t)) not in names},
    )
    new_lines: list[str] = []
    for name in sorted(missing.stdlib | missing.third_party):
        new_lines.append(f"import {name}")
    if missing.targets:
        new_lines.extend(_target_import_lines(module_path, sorted(missing.targets)))

    lines = existing_text.rstrip("\n").split("\n")
    at = _insertion_line(tree)
    if new_lines:
        lines[at:at] = new_lines if at else new_lines + [""]

    helper = imports.needs_collect and "_collect" not in defined
    parts = ["\n".join(lines)]
    if helper:
        parts.append("\n".join(_COLLECT_HELPER))
    parts.append(tests_src.rstrip("\n"))
    return "\n\n\n".join(parts) + "\n"


def render(
    path: Path,
    tests: Sequence[TestModel],
    source: FileInfo,
    existing_text: str | None = None,
) -> GeneratedFile:
    """
    Render ``tests`` into the test module at ``path``.

    When ``existing_text`` is given the tests are appended to it and only the
    imports it lacks are added. The result is checked with ``ast.parse``; a
    test that cannot be expressed as valid Python raises RenderError.
    """
    path = Path(path)
    _check_importable(path, source.module_path)
    for model in tests:
        if not _is_identifier(model.name):
            raise RenderError(path, f"{model.name!r} is not a valid test function name")

    try:
        tests_src = "\n\n".join(render_test(model) for model in tests)
    except (ValueError, KeyError) as exc:
        raise RenderError(path, f"cannot render test: {exc}") from exc

    imports = _collect_imports(tests)
    if existing_text is not None and existing_text.strip():
        text = _merge(path, existing_text, source.module_path, imports, tests_src)
    else:
        header = f'"""Tests for {source.module_path}."""\n\n' + "\n".join(
            _header_lines(source.module_path, imports)
        )
        parts = [header]
        if imports.needs_collect:
            parts.append("\n".join(_COLLECT_HELPER))
        parts.append(tests_src.rstrip("\n"))
        text = "\n\n\n".join(parts) + "\n"

    try:
        ast.parse(text, filename=str(path))
    except SyntaxError as exc:
        raise RenderError(path, f"generated code is not valid Python: {exc.msg} (line {exc.lineno})") from exc

    logger.debug("rendered %d tests for %s", len(tests), path)
    return GeneratedFile(path=path, source=source, tests=list(tests), output=text.encode("utf-8"))
