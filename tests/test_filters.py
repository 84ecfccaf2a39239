import re
from pathlib import Path

from hypothesis import given
from hypothesis import strategies as st

from testskel.config import FilterCriteria
from testskel.filters import accepts, has_test, select
from testskel.models import FileInfo, FunctionSignature, Receiver

FILE = FileInfo(path=Path("/src/pkg/mod.py"), module_path="pkg.mod")


def make_sig(name: str, receiver: str | None = None) -> FunctionSignature:
    exported = not name.startswith("_") and not (receiver or "").startswith("_")
    return FunctionSignature(
        name=name,
        file=FILE,
        lineno=1,
        receiver=Receiver(receiver) if receiver else None,
        exported=exported,
    )


SIGS = [
    make_sig("add"),
    make_sig("_sum"),
    make_sig("parse_int"),
    make_sig("encode", receiver="Encoder"),
    make_sig("_flush", receiver="Encoder"),
]


def names(sigs) -> list[str]:
    return [s.qualified_name for s in sigs]


def test_only_pattern_matches_qualified_name() -> None:
    criteria = FilterCriteria(only=re.compile(r"^Encoder\."))
    assert names(select(SIGS, criteria)) == ["Encoder.encode", "Encoder._flush"]


def test_only_pattern_is_a_search_not_a_full_match() -> None:
    criteria = FilterCriteria(only=re.compile("parse"))
    assert names(select(SIGS, criteria)) == ["parse_int"]


def test_exclude_pattern_removes_candidates() -> None:
    criteria = FilterCriteria(only=re.compile("Encoder"), exclude=re.compile("flush"))
    assert names(select(SIGS, criteria)) == ["Encoder.encode"]


def test_exported_only() -> None:
    criteria = FilterCriteria(exported=True)
    assert names(select(SIGS, criteria)) == ["add", "parse_int", "Encoder.encode"]


def test_all_mode_skips_functions_with_tests() -> None:
    criteria = FilterCriteria(all_funcs=True)
    existing = frozenset({"test_add", "test_Encoder_encode"})
    assert names(select(SIGS, criteria, existing)) == ["_sum", "parse_int", "Encoder._flush"]


def test_all_mode_skips_methods_tested_in_a_test_class() -> None:
    criteria = FilterCriteria(all_funcs=True)
    existing = frozenset({"TestEncoder.test_encode", "TestOther.test_flush"})
    # 只有 Test<Class> 里的同名测试才算数
    assert names(select(SIGS, criteria, existing)) == ["add", "_sum", "parse_int", "Encoder._flush"]
    assert has_test(make_sig("encode", receiver="Encoder"), existing)
    assert not has_test(make_sig("encode"), existing)


def test_all_mode_with_patterns_does_not_skip_tested_functions() -> None:
    criteria = FilterCriteria(only=re.compile("add"), all_funcs=True)
    assert names(select(SIGS, criteria, frozenset({"test_add"}))) == ["add"]


def test_select_keeps_input_order() -> None:
    criteria = FilterCriteria(exported=True)
    reordered = list(reversed(SIGS))
    assert names(select(reordered, criteria)) == ["Encoder.encode", "parse_int", "add"]


identifiers = st.from_regex(r"\A_?[a-z][a-z0-9_]{0,8}\Z")
signatures = st.lists(
    st.builds(make_sig, identifiers, st.one_of(st.none(), st.sampled_from(["Encoder", "_Hidden"]))),
    max_size=12,
)
patterns = st.one_of(st.none(), st.sampled_from(["a", "^_", "Encoder", "[0-9]", "x$"]))


@given(
    sigs=signatures,
    only=patterns,
    exclude=patterns,
    exported=st.booleans(),
    all_funcs=st.booleans(),
    existing=st.frozensets(
        st.sampled_from(["test_add", "test_a", "test__a", "test_Encoder_a", "TestEncoder.test_a"])
    ),
)
def test_select_matches_rule_precedence(sigs, only, exclude, exported, all_funcs, existing) -> None:
    criteria = FilterCriteria(
        only=re.compile(only) if only else None,
        exclude=re.compile(exclude) if exclude else None,
        exported=exported,
        all_funcs=all_funcs,
    )
    selected = select(sigs, criteria, existing)

    expected = []
    for sig in sigs:
        name = sig.qualified_name
        test_name = f"test_{sig.receiver.name}_{sig.name}" if sig.receiver else f"test_{sig.name}"
        class_test = f"Test{sig.receiver.name}.test_{sig.name}" if sig.receiver else None
        if only and not re.search(only, name):
            continue
        if exclude and re.search(exclude, name):
            continue
        if exported and not sig.exported:
            continue
        if all_funcs and not (only or exclude) and (test_name in existing or class_test in existing):
            continue
        expected.append(sig)

    assert list(selected) == expected
    # 过滤是纯函数：同样的输入总是得到同样的结果
    assert select(sigs, criteria, existing) == selected
    assert all(accepts(sig, criteria, existing) for sig in selected)
