"""Tests for the command-line interface."""

import asyncio
import io
import logging
import os
import stat
from pathlib import Path

from testskel import cli
from testskel.cli import main_async, parse_args
from testskel.reporter import Reporter

SOURCE = '''\
def add(a: int, b: int) -> int:
    return a + b


def _sum(values: list[int]) -> int:
    return sum(values)
'''


def make_source(root: Path) -> Path:
    path = root / "calc.py"
    path.write_text(SOURCE, encoding="utf-8")
    return path


def run_cli(*argv: str) -> tuple[int, str, str]:
    out = io.BytesIO()
    err = io.StringIO()
    code = asyncio.run(main_async(list(argv), out=out, err=err))
    return code, out.getvalue().decode(), err.getvalue()


class TestParseArgs:
    def test_go_style_single_dash_flags(self) -> None:
        args = parse_args(["-only", "^add", "-excl", "sub", "-exported", "-all", "-i", "-w", "a.py"])
        assert args.only_funcs == "^add"
        assert args.excl_funcs == "sub"
        assert args.exported_funcs
        assert args.all_funcs
        assert args.print_inputs
        assert args.write_output
        assert args.paths == ["a.py"]

    def test_double_dash_flags(self) -> None:
        args = parse_args(["--all", "--subtests", "--allow-error", "-r", "-j", "2", "src"])
        assert args.all_funcs
        assert args.subtests
        assert args.allow_error
        assert args.recursive
        assert args.jobs == 2

    def test_defaults(self) -> None:
        args = parse_args([])
        assert args.paths == []
        assert not args.write_output
        assert args.jobs == 4


def test_prints_generated_tests_to_stdout(tmp_path: Path) -> None:
    source = make_source(tmp_path)
    code, out, err = run_cli("-exported", str(source))

    assert code == 0
    assert "def test_add() -> None:" in out
    assert "test__sum" not in out
    assert err == "[INFO]\t-> generated: test_add\n"
    # 默认不写文件
    assert not source.with_name("test_calc.py").exists()


def test_write_mode_creates_test_file(tmp_path: Path) -> None:
    source = make_source(tmp_path)
    code, out, err = run_cli("-all", "-w", str(source))

    target = source.with_name("test_calc.py")
    assert code == 0
    assert out == ""
    assert target.exists()
    assert "def test__sum() -> None:" in target.read_text(encoding="utf-8")
    assert "generated: test_add" in err
    assert "generated: test__sum" in err
    if os.name == "posix":
        assert not stat.S_IMODE(target.stat().st_mode) & 0o111


def test_missing_mode_is_reported(tmp_path: Path) -> None:
    source = make_source(tmp_path)
    code, out, err = run_cli(str(source))

    assert code == 2
    assert out == ""
    assert err == "[ERROR]\t-> please specify either the -only, -excl, -exported, or -all flag\n"


def test_missing_paths_is_reported() -> None:
    code, _, err = run_cli("-all")
    assert code == 2
    assert "please specify a file or directory containing the source" in err


def test_invalid_regex_is_reported_before_any_output(tmp_path: Path) -> None:
    source = make_source(tmp_path)
    code, out, err = run_cli("-only", "([", "-w", str(source))

    assert code == 2
    assert out == ""
    assert "invalid -only regex" in err
    assert not source.with_name("test_calc.py").exists()


def test_no_eligible_functions_is_a_warning(tmp_path: Path) -> None:
    source = make_source(tmp_path)
    code, out, err = run_cli("-only", "^parse", str(source))

    assert code == 0
    assert out == ""
    assert err == f"[WARN]\t-> no tests generated for: {source}\n"


def test_allow_error_reports_error_and_success(tmp_path: Path) -> None:
    broken = tmp_path / "broken.py"
    broken.write_text("def broken(:\n", encoding="utf-8")
    source = make_source(tmp_path)

    code, out, err = run_cli("-exported", "--allow-error", str(broken), str(source))

    lines = err.splitlines()
    assert code == 1
    assert lines[0].startswith("[ERROR]\t-> ")
    assert "broken.py" in lines[0]
    assert lines[1] == "[INFO]\t-> generated: test_add"
    assert "def test_add() -> None:" in out


def test_first_error_stops_the_run_without_allow_error(tmp_path: Path) -> None:
    broken = tmp_path / "broken.py"
    broken.write_text("def broken(:\n", encoding="utf-8")
    source = make_source(tmp_path)

    code, out, err = run_cli("-exported", str(broken), str(source))

    assert code == 1
    assert out == ""
    assert len(err.splitlines()) == 1


def test_reporter_colours() -> None:
    stream = io.StringIO()
    reporter = Reporter(stream, color=True)
    reporter.info("generated: test_add")
    reporter.error("boom")

    assert stream.getvalue() == (
        "\033[0;32m[INFO]\t\033[m-> generated: test_add\n"
        "\033[0;31m[ERROR]\t\033[m-> boom\n"
    )


def test_broken_companion_is_reported_once(tmp_path: Path, caplog) -> None:
    source = make_source(tmp_path)
    (tmp_path / "test_other.py").write_text("def test_broken(:\n", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="testskel"):
        code, out, err = run_cli("-exported", str(source))

    lines = err.splitlines()
    assert code == 0
    assert len(lines) == 2
    assert lines[0].startswith("[WARN]\t-> could not read existing tests in ")
    assert "test_other.py" in lines[0]
    assert lines[1] == "[INFO]\t-> generated: test_add"
    # 状态行只由 Reporter 输出，日志里不再重复
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
    assert "def test_add() -> None:" in out


def test_write_mode_keeps_an_unparsable_target(tmp_path: Path) -> None:
    source = make_source(tmp_path)
    target = source.with_name("test_calc.py")
    target.write_text("def test_add(:\n", encoding="utf-8")

    code, out, err = run_cli("-exported", "-w", str(source))

    lines = err.splitlines()
    assert code == 0
    assert out == ""
    assert len(lines) == 2
    assert lines[0].startswith("[WARN]\t-> could not read existing tests in ")
    assert lines[1].startswith("[WARN]\t-> not writing ")
    assert lines[1].endswith("test_calc.py: existing file is not valid Python")
    assert target.read_text(encoding="utf-8") == "def test_add(:\n"


def test_unparsable_target_is_printed_as_a_new_module(tmp_path: Path) -> None:
    source = make_source(tmp_path)
    source.with_name("test_calc.py").write_text("def test_add(:\n", encoding="utf-8")

    code, out, err = run_cli("-exported", str(source))

    assert code == 0
    assert out.startswith('"""Tests for calc."""\n')
    assert err.splitlines()[-1] == "[INFO]\t-> generated: test_add"


def failing_write(generated) -> None:
    raise OSError("disk full")


def test_failed_write_stops_the_run(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "write_generated", failing_write)
    first = make_source(tmp_path)
    second = tmp_path / "other.py"
    second.write_text("def other() -> int:\n    return 1\n", encoding="utf-8")

    code, out, err = run_cli("-all", "-w", str(first), str(second))

    lines = err.splitlines()
    assert code == 1
    assert len(lines) == 1
    assert lines[0].startswith("[ERROR]\t-> cannot write ")
    assert lines[0].endswith("test_calc.py: disk full")


def test_failed_write_with_allow_error_keeps_going(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "write_generated", failing_write)
    first = make_source(tmp_path)
    second = tmp_path / "other.py"
    second.write_text("def other() -> int:\n    return 1\n", encoding="utf-8")

    code, _, err = run_cli("-all", "-w", "--allow-error", str(first), str(second))

    lines = err.splitlines()
    assert code == 1
    assert [line.split(": ")[-1] for line in lines] == ["disk full", "disk full"]
    assert lines[1].startswith("[ERROR]\t-> cannot write ")
    assert "test_other.py" in lines[1]
