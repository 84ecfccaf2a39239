"""
Table-driven pytest skeleton generator.

This package provides a tool to:
- index the functions and methods of Python source files
- filter them by name patterns, visibility, or missing tests
- synthesize table-driven pytest test skeletons for them
- render the tests into test modules next to the sources
"""

__version__ = "0.1.0"

__all__ = [
    "cli",
    "config",
    "errors",
    "existing_tests",
    "file_tree",
    "filters",
    "function_finder",
    "generator",
    "models",
    "renderer",
    "reporter",
    "synthesizer",
]
