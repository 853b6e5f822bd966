"""Render mock plans into pytest modules and write them to disk."""

from unit_skeleton.assembler.test_generator import (
    generate_test_case,
    generate_test_file,
)
from unit_skeleton.assembler.writer import test_path_for, write_generated

__all__ = [
    # Test generation
    "generate_test_case",
    "generate_test_file",
    # Writing
    "test_path_for",
    "write_generated",
]
