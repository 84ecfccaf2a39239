from __future__ import annotations

import ast
from typing import AbstractSet, Iterable

from .models import (
    ExistingTestSet,
    FunctionSignature,
    Param,
    ParamKind,
    Placeholder,
    TestCase,
    TestModel,
)

DEFAULT_CASE_NAME = "case_1"

# placeholder literal per (unqualified) annotation name
_LITERALS = {
    "int": "0",
    "float": "0.0",
    "complex": "0j",
    "str": '""',
    "bytes": 'b""',
    "bytearray": "bytearray()",
    "bool": "False",
    "list": "[]",
    "List": "[]",
    "Sequence": "[]",
    "MutableSequence": "[]",
    "Iterable": "[]",
    "Collection": "[]",
    "dict": "{}",
    "Dict": "{}",
    "Mapping": "{}",
    "MutableMapping": "{}",
    "set": "set()",
    "Set": "set()",
    "AbstractSet": "set()",
    "MutableSet": "set()",
    "frozenset": "frozenset()",
    "FrozenSet": "frozenset()",
    "tuple": "()",
    "Tuple": "()",
}

WANT_ERR = Placeholder(name="want_err", annotation="type[Exception] | None", value="None")


def base_test_name(sig: FunctionSignature) -> str:
    """``test_<name>``, or ``test_<Class>_<name>`` for methods."""
    if sig.receiver is not None:
        return f"test_{sig.receiver.name}_{sig.name}"
    return f"test_{sig.name}"


def next_free_name(candidate: str, taken: AbstractSet[str]) -> str:
    """
    Return ``candidate`` if it is not taken, otherwise the first of
    ``candidate_2``, ``candidate_3``, ... that is free.
    """
    if candidate not in taken:
        return candidate
    suffix = 2
    while f"{candidate}_{suffix}" in taken:
        suffix += 1
    return f"{candidate}_{suffix}"


def _short_name(node: ast.expr) -> str:
    return ast.unparse(node).rsplit(".", 1)[-1]


def _value_for(node: ast.expr) -> str:
    if isinstance(node, ast.Constant):
        # Literal members and bare None
        return "None" if node.value is None else repr(node.value)
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        members = [node.left, node.right]
        if any(isinstance(m, ast.Constant) and m.value is None for m in members):
            return "None"
        return _value_for(node.left)
    if isinstance(node, ast.Subscript):
        base = _short_name(node.value)
        elts = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
        if base == "Optional":
            return "None"
        if base == "Union":
            if any(_short_name(e) == "None" for e in elts):
                return "None"
            return _value_for(elts[0])
        if base in ("Literal", "Annotated", "Final"):
            return _value_for(elts[0])
        return _LITERALS.get(base, "None")
    if isinstance(node, (ast.Name, ast.Attribute)):
        return _LITERALS.get(_short_name(node), "None")
    return "None"


def placeholder_value(annotation: str | None) -> str:
    """A literal of the annotated type to put in the table, ``None`` when unknown."""
    if not annotation:
        return "None"
    try:
        node = ast.parse(annotation, mode="eval").body
    except SyntaxError:
        return "None"
    return _value_for(node)


def placeholder_for(param: Param) -> Placeholder:
    if param.kind is ParamKind.VAR_POSITIONAL:
        return Placeholder(param.name, param.annotation, "()")
    if param.kind is ParamKind.VAR_KEYWORD:
        return Placeholder(param.name, param.annotation, "{}")
    return Placeholder(param.name, param.annotation, placeholder_value(param.annotation))


def build_case(sig: FunctionSignature, name: str = DEFAULT_CASE_NAME) -> TestCase:
    fields: tuple[Placeholder, ...] = ()
    if sig.receiver is not None and sig.needs_instance:
        fields = tuple(placeholder_for(p) for p in sig.receiver.fields)
    return TestCase(
        name=name,
        args=tuple(placeholder_for(p) for p in sig.params),
        fields=fields,
        wants=tuple(Placeholder(r.name, r.annotation, placeholder_value(r.annotation)) for r in sig.results),
        want_err=WANT_ERR if sig.can_raise else None,
    )


def build_test_model(
    sig: FunctionSignature,
    name: str,
    subtests: bool = False,
    print_inputs: bool = False,
) -> TestModel:
    return TestModel(
        name=name,
        function=sig,
        cases=(build_case(sig),),
        subtests=subtests,
        print_inputs=print_inputs,
    )


def synthesize(
    signatures: Iterable[FunctionSignature],
    existing: ExistingTestSet | AbstractSet[str] = frozenset(),
    subtests: bool = False,
    print_inputs: bool = False,
) -> list[TestModel]:
    """
    Build one TestModel per signature, in order. Test names never collide
    with an existing test or with a test built earlier in the same call.
    """
    taken = set(existing.names if isinstance(existing, ExistingTestSet) else existing)
    models: list[TestModel] = []
    for sig in signatures:
        name = next_free_name(base_test_name(sig), taken)
        taken.add(name)
        models.append(build_test_model(sig, name, subtests=subtests, print_inputs=print_inputs))
    return models
