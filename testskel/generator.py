from __future__ import annotations

import ast
import asyncio
import logging
from pathlib import Path
from typing import Iterable

from .config import GenerationConfig
from .errors import ParseError, RenderError
from .existing_tests import ExistingTestScanner
from .file_tree import file_info_for, target_test_path
from .filters import select
from .function_finder import index_path
from .models import FunctionSignature, GeneratedFile, PathOutcome
from .renderer import render
from .synthesizer import synthesize

logger = logging.getLogger(__name__)


def _existing_target_text(target: Path) -> str | None:
    """Text of an existing test module, or None when it is missing or not valid Python."""
    if not target.exists():
        return None
    try:
        text = target.read_text(encoding="utf-8")
        ast.parse(text, filename=str(target))
    except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as exc:
        logger.debug("ignoring existing test file %s: %s", target, exc)
        return None
    return text


class TestGenerator:
    """
    Runs the whole pipeline (index, scan existing tests, filter, synthesize,
    render) for each input path. Nothing is written to disk here; callers
    get GeneratedFile objects back and decide what to do with them.

    Example:
        generator = TestGenerator(parse_options(Options(exported_funcs=True)))
        outcomes = asyncio.run(generator.run(["pkg/module_a.py"]))
    """

    __test__ = False  # Prevent pytest from collecting this as a test class

    def __init__(self, config: GenerationConfig, scanner: ExistingTestScanner | None = None) -> None:
        config.criteria.validate()
        self.config = config
        # scoped to this generator, so one run never sees another run's cache
        self.scanner = scanner or ExistingTestScanner(config.test_file_globs)

    # ---- one source file ----

    def generate_file(
        self,
        source: Path,
        signatures: Iterable[FunctionSignature],
        warnings: list[str] | None = None,
    ) -> GeneratedFile | None:
        """Tests for one source file, or None when no function is eligible."""
        source = source.resolve()
        existing = self.scanner.scan(source.parent)
        if warnings is not None:
            warnings.extend(w for w in existing.warnings if w not in warnings)

        selected = select(signatures, self.config.criteria, existing)
        if not selected:
            logger.debug("no eligible functions in %s", source)
            return None

        models = synthesize(
            selected,
            existing,
            subtests=self.config.subtests,
            print_inputs=self.config.print_inputs,
        )
        target = target_test_path(source)
        existing_text = _existing_target_text(target)
        if existing_text is None and target.exists():
            # the scanner has already warned about this file; it counts as empty
            generated = render(target, models, file_info_for(source))
            generated.replaces_invalid = True
            return generated
        return render(target, models, file_info_for(source), existing_text)

    # ---- one input path ----

    def generate_for_path(self, path: Path | str) -> PathOutcome:
        """
        Run the pipeline for one file or directory. Parse and render errors
        are caught here and returned on the outcome, so sibling paths are
        not affected.
        """
        outcome = PathOutcome(path=Path(path))
        try:
            index = index_path(path, recursive=self.config.recursive, test_globs=self.config.test_file_globs)
            for source, signatures in index.files.items():
                generated = self.generate_file(source, signatures, outcome.warnings)
                if generated is not None:
                    outcome.files.append(generated)
        except (ParseError, RenderError) as exc:
            logger.debug("generation failed for %s: %s", path, exc)
            outcome.files = []
            outcome.error = exc
        return outcome

    # ---- all input paths ----

    async def run(self, paths: Iterable[Path | str]) -> list[PathOutcome]:
        """
        Process every path and return the outcomes in input order.

        With ``allow_error`` the paths run concurrently on worker threads;
        otherwise they run one after another and processing stops at the
        first failed path.
        """
        paths = [Path(p) for p in paths]
        if not self.config.allow_error:
            outcomes: list[PathOutcome] = []
            for path in paths:
                outcome = await asyncio.to_thread(self.generate_for_path, path)
                outcomes.append(outcome)
                if not outcome.ok:
                    break
            return outcomes

        semaphore = asyncio.Semaphore(self.config.jobs)

        async def process_single_path(path: Path) -> PathOutcome:
            async with semaphore:
                return await asyncio.to_thread(self.generate_for_path, path)

        return list(await asyncio.gather(*(process_single_path(p) for p in paths)))


def generate_tests(path: Path | str, config: GenerationConfig) -> list[GeneratedFile]:
    """
    Generate tests for a single path, raising ParseError or RenderError
    instead of returning an outcome.
    """
    outcome = TestGenerator(config).generate_for_path(path)
    if outcome.error is not None:
        raise outcome.error
    return outcome.files
