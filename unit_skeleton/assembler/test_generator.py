"""Generate pytest test skeletons from a class's mock plan."""

import logging

from unit_skeleton.classifier import ClassType
from unit_skeleton.engine.mock_plan import FuncMockData, MockKind, MockPlanEntry
from unit_skeleton.engine.structure import MethodDecl
from unit_skeleton.models import ClassAnalysis

logger = logging.getLogger(__name__)

INDENT = "    "

# Name of the fixture holding the instance under test
SUBJECT_NAMES = {
    ClassType.COMPONENT: "component",
    ClassType.DIRECTIVE: "directive",
    ClassType.SERVICE: "service",
    ClassType.PIPE: "pipe",
    ClassType.CLASS: "obj",
}

# Class types whose constructor arguments are provided by one fixture each
INJECTED_TYPES = frozenset({ClassType.COMPONENT, ClassType.DIRECTIVE, ClassType.SERVICE})

# Fixture names pytest already provides
RESERVED_FIXTURES = frozenset(
    {"request", "tmp_path", "tmp_path_factory", "monkeypatch", "capsys", "caplog", "pytestconfig"}
)


def generate_test_file(analysis: ClassAnalysis, method: str | None = None) -> str:
    """Generate a complete pytest module for the analyzed class.

    Args:
        analysis: Mock plan of the class
        method: Only render the test for this method or accessor

    Returns:
        Python test module as a string

    Raises:
        ValueError: If ``method`` names no method or accessor of the class
    """
    subject = SUBJECT_NAMES[analysis.class_type]
    funcs = _selected_functions(analysis, method)
    logger.info(
        f"Generating {len(funcs)} tests for {analysis.class_name} ({analysis.class_type.value})"
    )

    fixtures = _generate_fixtures(analysis, subject)
    tests = [] if method else [_generate_create_test(subject)]
    for decl, data in funcs:
        tests.append(generate_test_case(analysis, decl, data, subject))

    tests_str = "\n\n".join(tests)
    return f'''"""Unit tests for {analysis.class_name}.

Generated by unit-skeleton from {analysis.source_path}. Review the stubbed
values and add assertions on results before relying on these tests.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from {analysis.module_path} import {analysis.class_name}


{fixtures}


class Test{analysis.class_name}:
{tests_str}
'''


def generate_test_case(
    analysis: ClassAnalysis, decl: MethodDecl, data: FuncMockData, subject: str
) -> str:
    """Generate one test method exercising a method or accessor.

    Props are pre-set on the subject, dependency stand-ins assigned and
    globals patched before the call; every spy is asserted afterwards.
    """
    lines: list[str] = []
    if data.is_async:
        lines.append("@pytest.mark.asyncio")
    prefix = "async def" if data.is_async else "def"
    lines.append(f"{prefix} {_test_name(decl)}(self, {subject}):")

    body: list[str] = []
    for entry in data.props.values():
        if not entry.written:
            body.append(f"{subject}.{entry.member_path} = {entry.declaration}")
    map_entries = data.map.values()
    for entry in map_entries:
        if entry.written or _shadowed(entry, map_entries):
            continue
        body.append(f"{subject}.{entry.member_path} = {entry.declaration}")

    patches, patched_body = _global_patches(analysis, data)
    call_lines = [_call_line(decl, data, subject)]
    call_lines.extend(_spy_assertions(data, subject))

    if patches:
        body.extend(_with_lines(patches))
        body.extend(INDENT + line for line in patched_body + call_lines)
    else:
        body.extend(call_lines)

    for entry in data.props.values():
        if entry.written and entry.declaration != "MagicMock()":
            body.append(f"assert {subject}.{entry.member_path} == {entry.declaration}")

    lines.extend(INDENT + line for line in body)
    return "\n".join(_indent(line) for line in lines)


def _selected_functions(analysis: ClassAnalysis, method: str | None):
    decls = {decl.key: decl for decl in analysis.model.functions()}
    funcs = [(decls[key], data) for key, data in analysis.accessors.items()]
    funcs += [(decls[key], data) for key, data in analysis.methods.items()]
    if method is None:
        return funcs
    selected = [(decl, data) for decl, data in funcs if method in (decl.name, decl.key)]
    if not selected:
        raise ValueError(f"{analysis.class_name} has no method or accessor named '{method}'")
    return selected


def _generate_fixtures(analysis: ClassAnalysis, subject: str) -> str:
    model = analysis.model
    constructor = analysis.constructor
    blocks: list[str] = []
    args: list[str] = []
    fixture_names: list[str] = []

    if analysis.class_type in INJECTED_TYPES:
        for param, value in zip(model.constructor_params, constructor.params):
            name = param.name
            if name == subject or name in RESERVED_FIXTURES:
                name = f"mock_{name}"
            fixture_names.append(name)
            args.append(f"{param.name}={name}" if param.keyword_only else name)
            blocks.append(_dependency_fixture(name, param.name, value.code, constructor))
    else:
        for param, value in zip(model.constructor_params, constructor.params):
            args.append(f"{param.name}={value.code}" if param.keyword_only else value.code)

    construct = f"{model.class_name}({', '.join(args)})"
    body: list[str] = []
    patches, patched_body = _global_patches(analysis, constructor)
    if patches:
        body.extend(_with_lines(patches))
        body.extend(INDENT + line for line in patched_body)
        body.append(f"{INDENT}return {construct}")
    else:
        body.append(f"return {construct}")

    lines = ["@pytest.fixture", f"def {subject}({', '.join(fixture_names)}):"]
    lines.extend(INDENT + line for line in body)
    blocks.append("\n".join(lines))
    return "\n\n\n".join(blocks)


def _dependency_fixture(name: str, param_name: str, code: str, constructor: FuncMockData) -> str:
    """Fixture for one injected constructor argument."""
    configured = []
    if code == "MagicMock()":
        entries = [e for e in constructor.map.values() if e.root_name == param_name]
        for entry in entries:
            if entry.written or _shadowed(entry, entries) or entry.member_path == param_name:
                continue
            configured.append(f"{INDENT}{name}.{entry.member_path} = {entry.declaration}")

    lines = ["@pytest.fixture", f"def {name}():"]
    if configured:
        lines.append(f"{INDENT}{name} = {code}")
        lines.extend(configured)
        lines.append(f"{INDENT}return {name}")
    else:
        lines.append(f"{INDENT}return {code}")
    return "\n".join(lines)


def _generate_create_test(subject: str) -> str:
    return f"""{INDENT}def test_should_create(self, {subject}):
{INDENT}{INDENT}assert {subject} is not None"""


def _test_name(decl: MethodDecl) -> str:
    if decl.kind in ("getter", "setter"):
        return f"test_should_run_{decl.kind}_{decl.name}"
    return f"test_should_run_{decl.name}"


def _call_line(decl: MethodDecl, data: FuncMockData, subject: str) -> str:
    if decl.kind == "getter":
        return f"_ = {subject}.{decl.name}"
    if decl.kind == "setter":
        value = data.params[0].code if data.params else "MagicMock()"
        return f"{subject}.{decl.name} = {value}"

    args = [
        f"{param.name}={value.code}" if param.keyword_only else value.code
        for param, value in zip(decl.params, data.params)
    ]
    call = f"{subject}.{decl.name}({', '.join(args)})"
    # Generators only run their body when consumed
    if decl.is_generator:
        if data.is_async:
            return f"_ = [item async for item in {call}]"
        return f"_ = list({call})"
    return f"await {call}" if data.is_async else call


def _global_patches(analysis: ClassAnalysis, data: FuncMockData) -> tuple[list[str], list[str]]:
    """Build the patch() calls and the stand-in assignments for global entries.

    Returns:
        Tuple of (patch expressions, lines configuring the patched mocks)
    """
    patches: list[str] = []
    configured: list[str] = []
    entries = data.globals.values()

    for symbol in data.global_symbols():
        target = _patch_target(analysis, symbol)
        root_entry = data.globals.get(symbol)
        if root_entry is not None and root_entry.kind is MockKind.SPY:
            patches.append(f'patch("{target}", {root_entry.declaration}) as mock_{symbol}')
        else:
            patches.append(f'patch("{target}") as mock_{symbol}')

    for entry in entries:
        if entry.target_path == entry.root_name or entry.written or _shadowed(entry, entries):
            continue
        member = entry.target_path.split(".", 1)[1]
        configured.append(f"mock_{entry.root_name}.{member} = {entry.declaration}")
    return patches, configured


def _patch_target(analysis: ClassAnalysis, symbol: str) -> str:
    if symbol in analysis.model.global_names:
        return f"{analysis.module_path}.{symbol}"
    return f"builtins.{symbol}"


def _with_lines(patches: list[str]) -> list[str]:
    if len(patches) == 1:
        return [f"with {patches[0]}:"]
    return ["with ("] + [f"{INDENT}{p}," for p in patches] + ["):"]


def _spy_assertions(data: FuncMockData, subject: str) -> list[str]:
    lines = []
    for entry in data.spies():
        if entry.scope == "global":
            head, _, rest = entry.target_path.partition(".")
            target = f"mock_{head}.{rest}" if rest else f"mock_{head}"
        else:
            target = f"{subject}.{entry.member_path}"
        check = "assert_awaited" if entry.is_async else "assert_called"
        lines.append(f"{target}.{check}()")
    return lines


def _shadowed(entry: MockPlanEntry, entries: list[MockPlanEntry]) -> bool:
    """True if a value stub would hide the members another entry configures."""
    if entry.kind is MockKind.SPY:
        return False
    prefix = entry.target_path + "."
    return any(other.target_path.startswith(prefix) for other in entries)


def _indent(line: str) -> str:
    """Indent a test-method line into the test class body."""
    return f"{INDENT}{line}" if line else line
