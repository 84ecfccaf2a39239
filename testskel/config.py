from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import ConfigError


@dataclass
class Options:
    """Raw options as they come from the command line."""

    only_funcs: str = ""            # regexp for functions to include
    excl_funcs: str = ""            # regexp for functions to exclude
    exported_funcs: bool = False    # only exported (public) functions
    all_funcs: bool = False         # every function that has no test yet
    print_inputs: bool = False      # print arguments in failure messages
    subtests: bool = False          # one parametrized case per table row
    write_output: bool = False      # write test files instead of printing
    allow_error: bool = False       # keep going after a failed path
    recursive: bool = False         # descend into subdirectories
    jobs: int = 4


@dataclass(frozen=True)
class FilterCriteria:
    only: re.Pattern[str] | None = None
    exclude: re.Pattern[str] | None = None
    exported: bool = False
    all_funcs: bool = False

    @property
    def has_patterns(self) -> bool:
        return self.only is not None or self.exclude is not None

    def validate(self) -> None:
        if not (self.has_patterns or self.exported or self.all_funcs):
            raise ConfigError("please specify either the -only, -excl, -exported, or -all flag")


@dataclass(frozen=True)
class GenerationConfig:
    criteria: FilterCriteria
    print_inputs: bool = False
    subtests: bool = False
    allow_error: bool = False
    recursive: bool = False
    jobs: int = 4
    test_file_globs: tuple[str, ...] = ("test_*.py", "*_test.py")


def parse_regexp(value: str, flag: str) -> re.Pattern[str] | None:
    if not value:
        return None
    try:
        return re.compile(value)
    except re.error as exc:
        raise ConfigError(f"invalid -{flag} regex: {exc}") from exc


def parse_options(opts: Options) -> GenerationConfig:
    """
    Validate the raw options and compile the filter patterns.

    Raises ConfigError before any source is read, so a bad invocation never
    produces partial output.
    """
    if not (opts.only_funcs or opts.excl_funcs or opts.exported_funcs or opts.all_funcs):
        raise ConfigError("please specify either the -only, -excl, -exported, or -all flag")
    if opts.jobs < 1:
        raise ConfigError(f"-jobs must be at least 1, got {opts.jobs}")

    criteria = FilterCriteria(
        only=parse_regexp(opts.only_funcs, "only"),
        exclude=parse_regexp(opts.excl_funcs, "excl"),
        exported=opts.exported_funcs,
        all_funcs=opts.all_funcs,
    )
    return GenerationConfig(
        criteria=criteria,
        print_inputs=opts.print_inputs,
        subtests=opts.subtests,
        allow_error=opts.allow_error,
        recursive=opts.recursive,
        jobs=opts.jobs,
    )
