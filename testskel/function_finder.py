from __future__ import annotations

import ast
import logging
import re
from pathlib import Path
from typing import Iterable, Iterator

from .errors import ParseError
from .file_tree import TEST_FILE_GLOBS, collect_python_files, file_info_for
from .models import (
    FileInfo,
    FunctionKind,
    FunctionSignature,
    PackageIndex,
    Param,
    ParamKind,
    Receiver,
)

logger = logging.getLogger(__name__)

_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)
_RAISES_DOC = re.compile(r"^\s*Raises\s*:|:raises?\b", re.MULTILINE)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(path, f"cannot read source: {exc}") from exc


def parse_source(path: Path) -> ast.Module:
    source = _read_text(path)
    try:
        return ast.parse(source, filename=str(path))
    except SyntaxError as exc:
        raise ParseError(path, f"syntax error: {exc.msg}", exc.lineno) from exc
    except ValueError as exc:
        # null bytes in the source
        raise ParseError(path, f"cannot parse source: {exc}") from exc


def _annotation(node: ast.expr | None) -> str | None:
    if node is None:
        return None
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value.strip()
    return ast.unparse(node)


def _decorator_name(node: ast.expr) -> str:
    if isinstance(node, ast.Call):
        node = node.func
    return ast.unparse(node)


def _walk_body(node: ast.AST) -> Iterator[ast.AST]:
    """Like ast.walk over a function body, but stays out of nested scopes."""
    stack = [child for child in ast.iter_child_nodes(node) if not isinstance(child, _SCOPES)]
    while stack:
        child = stack.pop()
        yield child
        stack.extend(c for c in ast.iter_child_nodes(child) if not isinstance(c, _SCOPES))


def _params(args: ast.arguments, skip_first: bool = False) -> tuple[Param, ...]:
    positional = [*args.posonlyargs, *args.args]
    first_default = len(positional) - len(args.defaults)
    params: list[Param] = []
    for i, arg in enumerate(positional):
        kind = ParamKind.POSITIONAL_ONLY if i < len(args.posonlyargs) else ParamKind.POSITIONAL
        params.append(Param(arg.arg, _annotation(arg.annotation), kind, i >= first_default))
    if skip_first and params:
        params = params[1:]
    if args.vararg is not None:
        params.append(Param(args.vararg.arg, _annotation(args.vararg.annotation), ParamKind.VAR_POSITIONAL))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(
            Param(arg.arg, _annotation(arg.annotation), ParamKind.KEYWORD_ONLY, default is not None)
        )
    if args.kwarg is not None:
        params.append(Param(args.kwarg.arg, _annotation(args.kwarg.annotation), ParamKind.VAR_KEYWORD))
    return tuple(params)


def _tuple_elements(node: ast.expr) -> list[ast.expr]:
    if not isinstance(node, ast.Subscript):
        return []
    base = ast.unparse(node.value).rsplit(".", 1)[-1]
    if base not in ("tuple", "Tuple") or not isinstance(node.slice, ast.Tuple):
        return []
    elts = node.slice.elts
    # tuple[int, ...] is a homogeneous tuple, a single result
    if any(isinstance(e, ast.Constant) and e.value is Ellipsis for e in elts):
        return []
    return list(elts)


def _result_name(index: int) -> str:
    return "want" if index == 0 else f"want_{index}"


def _results(node: ast.FunctionDef | ast.AsyncFunctionDef, body: list[ast.AST]) -> tuple[Param, ...]:
    returns = node.returns
    if isinstance(returns, ast.Constant) and isinstance(returns.value, str):
        try:
            returns = ast.parse(returns.value.strip(), mode="eval").body
        except SyntaxError:
            return (Param(_result_name(0), returns.value.strip()),)

    if returns is not None:
        if isinstance(returns, ast.Constant) and returns.value is None:
            return ()
        if ast.unparse(returns).rsplit(".", 1)[-1] in ("None", "NoReturn", "Never"):
            return ()
        elements = _tuple_elements(returns)
        if elements:
            return tuple(Param(_result_name(i), ast.unparse(e)) for i, e in enumerate(elements))
        return (Param(_result_name(0), ast.unparse(returns)),)

    for child in body:
        if isinstance(child, (ast.Yield, ast.YieldFrom)):
            return (Param(_result_name(0), None),)
        if isinstance(child, ast.Return) and child.value is not None:
            if not (isinstance(child.value, ast.Constant) and child.value.value is None):
                return (Param(_result_name(0), None),)
    return ()


def _can_raise(node: ast.FunctionDef | ast.AsyncFunctionDef, body: list[ast.AST]) -> bool:
    if any(isinstance(child, ast.Raise) for child in body):
        return True
    docstring = ast.get_docstring(node) or ""
    return bool(_RAISES_DOC.search(docstring))


def _function_signature(
    node: ast.FunctionDef | ast.AsyncFunctionDef,
    file_info: FileInfo,
    exported: bool,
    receiver: Receiver | None = None,
    kind: FunctionKind = FunctionKind.FUNCTION,
) -> FunctionSignature:
    body = list(_walk_body(node))
    skip_first = kind in (FunctionKind.METHOD, FunctionKind.CLASSMETHOD, FunctionKind.PROPERTY)
    return FunctionSignature(
        name=node.name,
        file=file_info,
        lineno=node.lineno,
        params=() if kind is FunctionKind.PROPERTY else _params(node.args, skip_first),
        results=_results(node, body),
        receiver=receiver,
        exported=exported,
        kind=kind,
        is_async=isinstance(node, ast.AsyncFunctionDef),
        is_generator=any(isinstance(child, (ast.Yield, ast.YieldFrom)) for child in body),
        can_raise=_can_raise(node, body),
    )


def _function_kind(node: ast.FunctionDef | ast.AsyncFunctionDef, in_class: bool) -> FunctionKind | None:
    """Kind of a definition, or None for definitions that are not test targets."""
    kind = FunctionKind.METHOD if in_class else FunctionKind.FUNCTION
    for decorator in node.decorator_list:
        name = _decorator_name(decorator)
        short = name.rsplit(".", 1)[-1]
        if short == "overload" or short in ("setter", "deleter"):
            return None
        if not in_class:
            continue
        if short == "staticmethod":
            kind = FunctionKind.STATICMETHOD
        elif short == "classmethod":
            kind = FunctionKind.CLASSMETHOD
        elif short in ("property", "cached_property"):
            kind = FunctionKind.PROPERTY
    return kind


def _is_record_class(node: ast.ClassDef) -> bool:
    """dataclasses and NamedTuples get their constructor from annotated fields."""
    if any(_decorator_name(d).rsplit(".", 1)[-1] == "dataclass" for d in node.decorator_list):
        return True
    return any(ast.unparse(b).rsplit(".", 1)[-1] == "NamedTuple" for b in node.bases)


def _constructor_fields(node: ast.ClassDef) -> tuple[Param, ...]:
    for item in node.body:
        if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) and item.name == "__init__":
            return _params(item.args, skip_first=True)
    if not _is_record_class(node):
        return ()
    fields: list[Param] = []
    for item in node.body:
        if not (isinstance(item, ast.AnnAssign) and isinstance(item.target, ast.Name)):
            continue
        annotation = _annotation(item.annotation) or ""
        if "ClassVar" in annotation:
            continue
        fields.append(Param(item.target.id, annotation, ParamKind.POSITIONAL, item.value is not None))
    return tuple(fields)


def _module_all(tree: ast.Module) -> frozenset[str] | None:
    for node in tree.body:
        if isinstance(node, ast.Assign):
            targets = node.targets
        elif isinstance(node, ast.AnnAssign) and node.value is not None:
            targets = [node.target]
        else:
            continue
        if not any(isinstance(t, ast.Name) and t.id == "__all__" for t in targets):
            continue
        value = node.value
        if isinstance(value, (ast.List, ast.Tuple)):
            return frozenset(
                e.value for e in value.elts if isinstance(e, ast.Constant) and isinstance(e.value, str)
            )
    return None


def _is_exported(name: str, public: frozenset[str] | None) -> bool:
    if public is not None:
        return name in public
    return not name.startswith("_")


def _class_signatures(
    node: ast.ClassDef, file_info: FileInfo, public: frozenset[str] | None
) -> Iterator[FunctionSignature]:
    receiver = Receiver(name=node.name, fields=_constructor_fields(node))
    class_exported = _is_exported(node.name, public)
    for item in node.body:
        if not isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) or item.name == "__init__":
            continue
        kind = _function_kind(item, in_class=True)
        if kind is None:
            continue
        yield _function_signature(
            item,
            file_info,
            exported=class_exported and not item.name.startswith("_"),
            receiver=receiver,
            kind=kind,
        )


def index_file(path: Path) -> tuple[FunctionSignature, ...]:
    """
    Index the module-level functions and the methods of module-level classes
    of one source file, in declaration order.

    A file without functions gives an empty tuple. Unreadable files and
    syntax errors raise ParseError.
    """
    file_info = file_info_for(path)
    tree = parse_source(file_info.path)
    public = _module_all(tree)

    signatures: list[FunctionSignature] = []
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            kind = _function_kind(node, in_class=False)
            if kind is None:
                continue
            signatures.append(
                _function_signature(node, file_info, exported=_is_exported(node.name, public))
            )
        elif isinstance(node, ast.ClassDef):
            signatures.extend(_class_signatures(node, file_info, public))

    logger.debug("indexed %d functions in %s", len(signatures), file_info.path)
    return tuple(signatures)


def index_path(
    path: Path | str,
    recursive: bool = False,
    test_globs: Iterable[str] = TEST_FILE_GLOBS,
) -> PackageIndex:
    """
    Index a source file, or every source file of a directory (its immediate
    files unless ``recursive``). Test modules found in a directory are not
    indexed.
    """
    path = Path(path)
    if path.is_dir():
        files = collect_python_files(path, recursive=recursive, test_globs=tuple(test_globs))
    elif path.is_file():
        if path.suffix != ".py":
            raise ParseError(path, "not a Python source file")
        files = [path.resolve()]
    else:
        raise ParseError(path, "no such file or directory")

    index = PackageIndex()
    for source in files:
        index.add(source, index_file(source))
    return index


def collect_functions(path: Path | str, recursive: bool = False) -> list[FunctionSignature]:
    return index_path(path, recursive=recursive).signatures()
