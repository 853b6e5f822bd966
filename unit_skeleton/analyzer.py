"""Main analyzer that orchestrates the mock-inference pipeline."""

import logging
from pathlib import Path

from unit_skeleton.classifier import classify_class
from unit_skeleton.engine.inferencer import (
    KNOWN_GLOBALS,
    get_constructor_mock_data,
    get_func_mock_data,
)
from unit_skeleton.engine.sandbox import materialize
from unit_skeleton.engine.structure import extract_structure
from unit_skeleton.models import ClassAnalysis

logger = logging.getLogger(__name__)


def analyze_source(
    source: str,
    source_path: str = "<source>",
    module_path: str | None = None,
    class_name: str | None = None,
    known_globals: frozenset[str] | set[str] = KNOWN_GLOBALS,
) -> ClassAnalysis:
    """Build the mock plan of the class defined in a module's source.

    Args:
        source: Python source text
        source_path: File name used in messages
        module_path: Dotted import path of the module, derived from the path if omitted
        class_name: Class to analyze when the module defines several
        known_globals: Extra builtin names to treat as external globals

    Returns:
        ClassAnalysis holding one frozen mock plan per function

    Raises:
        ParseError: If the source does not hold a single recognizable class
        MaterializationError: If the class cannot be evaluated in the sandbox
    """
    logger.info(f"Starting analysis of {source_path}")
    known = frozenset(KNOWN_GLOBALS) | frozenset(known_globals)

    model = extract_structure(source, filename=source_path, class_name=class_name)
    materialized = materialize(source, model, filename=source_path)
    class_type = classify_class(model)

    constructor = get_constructor_mock_data(model, materialized, known)
    accessors = {}
    for accessor in model.accessors:
        accessors[accessor.key] = get_func_mock_data(model, materialized, accessor, known)
    methods = {}
    for method in model.methods:
        methods[method.key] = get_func_mock_data(model, materialized, method, known)

    analysis = ClassAnalysis(
        source_path=source_path,
        module_path=module_path or module_path_for(source_path),
        class_type=class_type,
        model=model,
        constructor=constructor,
        accessors=accessors,
        methods=methods,
        warnings=materialized.warnings,
    )
    logger.info(
        f"Analyzed {model.class_name}: {len(accessors)} accessors, {len(methods)} methods, "
        f"{len(analysis.all_warnings())} warnings"
    )
    return analysis


def analyze_file(
    path: str | Path,
    class_name: str | None = None,
    known_globals: frozenset[str] | set[str] = KNOWN_GLOBALS,
) -> ClassAnalysis:
    """Read a Python file and analyze its class."""
    path = Path(path)
    source = path.read_text(encoding="utf-8")
    return analyze_source(
        source,
        source_path=str(path),
        module_path=module_path_for(path),
        class_name=class_name,
        known_globals=known_globals,
    )


def module_path_for(path: str | Path) -> str:
    """Detect the dotted module path by walking up through package directories."""
    path = Path(path)
    if path.suffix != ".py":
        return "module"
    path = path.resolve()
    parts = [path.stem]

    parent = path.parent
    while parent != parent.parent:
        if (parent / "__init__.py").exists():
            parts.insert(0, parent.name)
            parent = parent.parent
        else:
            break

    return ".".join(parts)
