"""Write generated test modules next to their source file."""

import logging
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

YES_ANSWERS = frozenset({"y", "yes"})


def test_path_for(source_path: str | Path) -> Path:
    """Path of the generated test module: ``foo.py`` -> ``test_foo.py``."""
    source_path = Path(source_path)
    return source_path.with_name(f"test_{source_path.stem}.py")


# Not a test function, despite the name
test_path_for.__test__ = False


def write_generated(
    content: str,
    path: str | Path,
    force: bool = False,
    confirm: Callable[[str], str] | None = None,
) -> bool:
    """Write a generated test module, asking before overwriting.

    Args:
        content: Module source to write
        path: Destination path
        force: Overwrite an existing file without asking
        confirm: Prompt function returning the user's answer, input() by default

    Returns:
        True if the file was written
    """
    path = Path(path)
    if path.exists() and not force:
        if confirm is None:
            confirm = input
        answer = confirm(f"{path} already exists. Overwrite? [y/N] ")
        if answer.strip().lower() not in YES_ANSWERS:
            logger.info(f"Kept existing {path}")
            return False

    path.write_text(content, encoding="utf-8")
    logger.info(f"Test written to {path}")
    return True
