import pytest

from testskel.config import FilterCriteria, Options, parse_options, parse_regexp
from testskel.errors import ConfigError


def test_parse_options_requires_a_filtering_mode() -> None:
    with pytest.raises(ConfigError) as excinfo:
        parse_options(Options(print_inputs=True, write_output=True))
    assert "-only, -excl, -exported, or -all" in str(excinfo.value)


@pytest.mark.parametrize(
    "options",
    [
        pytest.param(Options(only_funcs="^add"), id="only"),
        pytest.param(Options(excl_funcs="^_"), id="excl"),
        pytest.param(Options(exported_funcs=True), id="exported"),
        pytest.param(Options(all_funcs=True), id="all"),
    ],
)
def test_any_single_mode_is_enough(options) -> None:
    config = parse_options(options)
    config.criteria.validate()


def test_patterns_are_compiled() -> None:
    config = parse_options(Options(only_funcs="^add", excl_funcs="sub$", subtests=True))
    assert config.criteria.only is not None
    assert config.criteria.only.search("add_one")
    assert config.criteria.exclude is not None
    assert config.criteria.has_patterns
    assert config.subtests


def test_invalid_exclude_pattern() -> None:
    with pytest.raises(ConfigError) as excinfo:
        parse_options(Options(excl_funcs="*bad"))
    assert "invalid -excl regex" in str(excinfo.value)


def test_jobs_must_be_positive() -> None:
    with pytest.raises(ConfigError):
        parse_options(Options(all_funcs=True, jobs=0))


def test_parse_regexp_empty_is_none() -> None:
    assert parse_regexp("", "only") is None


def test_empty_criteria_fail_validation() -> None:
    with pytest.raises(ConfigError):
        FilterCriteria().validate()
