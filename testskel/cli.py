from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import BinaryIO, Sequence, TextIO

from .config import Options, parse_options
from .errors import ConfigError
from .generator import TestGenerator
from .models import GeneratedFile, PathOutcome
from .reporter import Reporter

NEW_FILE_PERM = 0o644

logger = logging.getLogger("testskel")


def setup_logging(verbose: bool = False) -> None:
    """Diagnostics go to stderr; status lines are printed by the Reporter."""
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
    )
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="testskel",
        description="Generate table-driven pytest skeletons for the functions of Python source files.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="Source files or directories to generate tests for.",
    )
    parser.add_argument(
        "-only",
        "--only",
        dest="only_funcs",
        default="",
        metavar="REGEX",
        help="Generate tests only for functions and methods matching the regexp "
        "(matched against 'name' or 'Class.name').",
    )
    parser.add_argument(
        "-excl",
        "--excl",
        dest="excl_funcs",
        default="",
        metavar="REGEX",
        help="Skip functions and methods matching the regexp.",
    )
    parser.add_argument(
        "-exported",
        "--exported",
        dest="exported_funcs",
        action="store_true",
        help="Generate tests only for exported (public) functions and methods.",
    )
    parser.add_argument(
        "-all",
        "--all",
        dest="all_funcs",
        action="store_true",
        help="Generate tests for every function and method that has no test yet.",
    )
    parser.add_argument(
        "-i",
        "--print-inputs",
        dest="print_inputs",
        action="store_true",
        help="Print the test inputs in failure messages.",
    )
    parser.add_argument(
        "-subtests",
        "--subtests",
        dest="subtests",
        action="store_true",
        help="Render table cases as pytest.mark.parametrize cases.",
    )
    parser.add_argument(
        "-w",
        "--write",
        dest="write_output",
        action="store_true",
        help="Write output to test files instead of stdout.",
    )
    parser.add_argument(
        "--allow-error",
        dest="allow_error",
        action="store_true",
        help="Keep going with the other paths when one of them fails.",
    )
    parser.add_argument(
        "-r",
        "--recursive",
        dest="recursive",
        action="store_true",
        help="Descend into subdirectories of directory arguments.",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        dest="jobs",
        type=int,
        default=4,
        help="Paths processed in parallel with --allow-error (default: 4).",
    )
    parser.add_argument(
        "--no-color",
        dest="no_color",
        action="store_true",
        help="Do not colour status lines.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug information to stderr.",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return create_parser().parse_args(argv)


def options_from_args(args: argparse.Namespace) -> Options:
    return Options(
        only_funcs=args.only_funcs,
        excl_funcs=args.excl_funcs,
        exported_funcs=args.exported_funcs,
        all_funcs=args.all_funcs,
        print_inputs=args.print_inputs,
        subtests=args.subtests,
        write_output=args.write_output,
        allow_error=args.allow_error,
        recursive=args.recursive,
        jobs=args.jobs,
    )


def write_generated(generated: GeneratedFile) -> None:
    fd = os.open(generated.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, NEW_FILE_PERM)
    with os.fdopen(fd, "wb") as f:
        f.write(generated.output)


def output_test(generated: GeneratedFile, write_output: bool, reporter: Reporter, out: BinaryIO) -> bool:
    if write_output:
        if generated.replaces_invalid:
            # never overwrite a test module the user still has to fix
            reporter.warn(f"not writing {generated.path}: existing file is not valid Python")
            return True
        try:
            write_generated(generated)
        except OSError as e:
            reporter.error(f"cannot write {generated.path}: {e}")
            return False
    for name in generated.test_names:
        reporter.info(f"generated: {name}")
    if not write_output:
        out.write(generated.output)
        out.flush()
    return True


def report_outcome(
    outcome: PathOutcome,
    opts: Options,
    reporter: Reporter,
    out: BinaryIO,
) -> bool:
    """Print the status lines of one outcome; False once anything failed."""
    for warning in outcome.warnings:
        reporter.warn(warning)
    if outcome.error is not None:
        reporter.error(str(outcome.error))
        return False
    if not outcome.files:
        reporter.warn(f"no tests generated for: {outcome.path}")
        return True
    ok = True
    for generated in outcome.files:
        if not output_test(generated, opts.write_output, reporter, out):
            ok = False
            if not opts.allow_error:
                break
    return ok


async def run(
    paths: Sequence[str],
    opts: Options,
    reporter: Reporter,
    out: BinaryIO,
) -> int:
    """
    Generate tests for ``paths``. Returns the process exit code: 0 when
    every path succeeded, 1 when a path failed, 2 for invalid options.
    """
    try:
        config = parse_options(opts)
    except ConfigError as e:
        reporter.error(str(e))
        return 2
    if not paths:
        reporter.error("please specify a file or directory containing the source")
        return 2

    generator = TestGenerator(config)
    outcomes = await generator.run([Path(p) for p in paths])

    exit_code = 0
    reported = 0
    for outcome in outcomes:
        reported += 1
        if not report_outcome(outcome, opts, reporter, out):
            exit_code = 1
            if not opts.allow_error:
                break
    skipped = len(paths) - reported
    if skipped:
        logger.info("stopped after a failed path, %d path(s) not processed", skipped)
    return exit_code


async def main_async(
    argv: Sequence[str] | None = None,
    out: BinaryIO | None = None,
    err: TextIO | None = None,
) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    err = err if err is not None else sys.stderr
    out = out if out is not None else sys.stdout.buffer
    color = not args.no_color and "NO_COLOR" not in os.environ and err.isatty()
    reporter = Reporter(err, color=color)
    return await run(args.paths, options_from_args(args), reporter, out)


def main() -> None:
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
