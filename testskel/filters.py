from __future__ import annotations

from typing import Iterable

from .config import FilterCriteria
from .models import ExistingTestSet, FunctionSignature
from .synthesizer import base_test_name


def has_test(sig: FunctionSignature, existing: ExistingTestSet | frozenset[str]) -> bool:
    """
    True when ``existing`` holds the base test name of ``sig``, or, for a
    method, ``test_<name>`` inside a ``Test<Class>`` class.
    """
    if base_test_name(sig) in existing:
        return True
    return sig.receiver is not None and f"Test{sig.receiver.name}.test_{sig.name}" in existing


def accepts(
    sig: FunctionSignature,
    criteria: FilterCriteria,
    existing: ExistingTestSet | frozenset[str] = frozenset(),
) -> bool:
    """
    Decide whether a test should be generated for ``sig``.

    Rules, in order: the inclusion pattern must match the qualified name,
    the exclusion pattern must not, exported-only drops private functions,
    and all-functions mode (without patterns) drops functions that already
    have a test.
    """
    name = sig.qualified_name
    if criteria.only is not None and not criteria.only.search(name):
        return False
    if criteria.exclude is not None and criteria.exclude.search(name):
        return False
    if criteria.exported and not sig.exported:
        return False
    if criteria.all_funcs and not criteria.has_patterns and has_test(sig, existing):
        return False
    return True


def select(
    signatures: Iterable[FunctionSignature],
    criteria: FilterCriteria,
    existing: ExistingTestSet | frozenset[str] = frozenset(),
) -> tuple[FunctionSignature, ...]:
    """Accepted signatures, in the order they were given."""
    return tuple(sig for sig in signatures if accepts(sig, criteria, existing))
