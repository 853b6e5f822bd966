"""Neutralize a class module and load it in an isolated namespace."""

import __future__

import ast
import builtins
import functools
import inspect
import logging
import sys
from dataclasses import dataclass, field
from unittest.mock import MagicMock

from unit_skeleton.engine.structure import StructuralModel

logger = logging.getLogger(__name__)

# Name under which the placeholder factory is visible to sanitized code
PLACEHOLDER_NAME = "__unit_skeleton_placeholder__"

# Method decorators that survive sanitization, by last name segment
KEPT_METHOD_DECORATORS = frozenset(
    {
        "property",
        "setter",
        "getter",
        "deleter",
        "staticmethod",
        "classmethod",
        "abstractmethod",
        "cached_property",
    }
)


class MaterializationError(Exception):
    """Sanitized class source could not be evaluated."""

    def __init__(self, message: str, lineno: int | None = None):
        super().__init__(message)
        self.lineno = lineno


@dataclass
class MaterializedClass:
    """A live class object plus the member names read from it."""

    klass: type
    accessor_names: tuple[str, ...]
    method_names: tuple[str, ...]
    warnings: list[str] = field(default_factory=list)

    def has_member(self, name: str) -> bool:
        """True if the class itself defines the attribute."""
        return name in vars(self.klass)


def _is_stdlib(module: str) -> bool:
    return module.split(".")[0] in sys.stdlib_module_names


def _placeholder(name: str, origin: ast.stmt | None = None) -> ast.Assign:
    node = ast.Assign(
        targets=[ast.Name(id=name, ctx=ast.Store())],
        value=ast.Call(
            func=ast.Name(id=PLACEHOLDER_NAME, ctx=ast.Load()),
            args=[],
            keywords=[ast.keyword(arg="name", value=ast.Constant(value=name))],
        ),
    )
    if origin is not None:
        return ast.copy_location(node, origin)
    node.lineno = node.end_lineno = 1
    node.col_offset = node.end_col_offset = 0
    return node


def _bound_names(stmt: ast.stmt) -> list[str]:
    """Names a top-level statement would bind, in source order."""
    names: list[str] = []
    for node in ast.walk(stmt):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
            found = [node.id]
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            found = [node.name]
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            found = [
                (alias.asname or alias.name).split(".")[0]
                for alias in node.names
                if alias.name != "*"
            ]
        else:
            continue
        for name in found:
            if name not in names:
                names.append(name)
    return names


def _has_call(node: ast.AST | None) -> bool:
    return node is not None and any(isinstance(n, ast.Call) for n in ast.walk(node))


def _is_main_guard(stmt: ast.stmt) -> bool:
    if not isinstance(stmt, ast.If) or not isinstance(stmt.test, ast.Compare):
        return False
    left = stmt.test.left
    return isinstance(left, ast.Name) and left.id == "__name__"


def _is_super_call(node: ast.AST) -> bool:
    return (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id == "super"
    )


class ClassSanitizer(ast.NodeTransformer):
    """Rewrite a module so its classes can be defined without side effects.

    Inheritance collapses to ``object``, ``super()`` calls are elided or
    turned into self-calls, unresolvable imports become placeholders and
    top-level statements that could run code are replaced by placeholder
    bindings for the names they define.
    """

    def __init__(self):
        self._self_names: list[str | None] = []
        self.replaced_imports: list[str] = []
        self.star_imports: list[str] = []

    # ── Module level ──

    def visit_Module(self, node: ast.Module) -> ast.Module:
        node.body = self._sanitize_block(node.body, module_level=True)
        if self.star_imports:
            node.body = self._bind_free_names(node) + node.body
        return node

    def _bind_free_names(self, node: ast.Module) -> list[ast.stmt]:
        """Placeholders for names that only a replaced star import could supply."""
        bound: set[str] = set(dir(builtins))
        loaded: list[str] = []
        for child in ast.walk(node):
            if isinstance(child, ast.arg):
                bound.add(child.arg)
            elif isinstance(child, ast.Name):
                if isinstance(child.ctx, ast.Load):
                    if child.id not in loaded:
                        loaded.append(child.id)
                else:
                    bound.add(child.id)
            elif isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                bound.add(child.name)
            elif isinstance(child, (ast.Import, ast.ImportFrom)):
                bound.update(
                    (alias.asname or alias.name).split(".")[0] for alias in child.names
                )
        bound.add(PLACEHOLDER_NAME)
        return [_placeholder(name) for name in loaded if name not in bound]

    def _sanitize_block(self, body: list[ast.stmt], module_level: bool) -> list[ast.stmt]:
        result: list[ast.stmt] = []
        for stmt in body:
            result.extend(self._sanitize_statement(stmt, module_level))
        return result

    def _sanitize_statement(self, stmt: ast.stmt, module_level: bool) -> list[ast.stmt]:
        if isinstance(stmt, ast.Import):
            return self._sanitize_import(stmt)
        if isinstance(stmt, ast.ImportFrom):
            return self._sanitize_import_from(stmt)
        if isinstance(stmt, ast.ClassDef):
            return [self.visit_ClassDef(stmt)]
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if module_level:
                stmt.decorator_list = []
                return [stmt]
            return [self._sanitize_method(stmt)]
        if isinstance(stmt, (ast.Assign, ast.AnnAssign, ast.AugAssign)):
            if not _has_call(stmt.value):
                if isinstance(stmt, ast.AnnAssign) and stmt.value is None:
                    return [] if module_level else [stmt]
                return [stmt]
        if isinstance(stmt, ast.Expr):
            # Docstrings stay, registration calls go
            if isinstance(stmt.value, ast.Constant):
                return [stmt]
            logger.debug(f"Dropping statement at line {stmt.lineno}")
            return []
        if isinstance(stmt, ast.Pass):
            return [stmt]
        if module_level and _is_main_guard(stmt):
            return []
        return [_placeholder(name, stmt) for name in _bound_names(stmt)]

    def _sanitize_import(self, stmt: ast.Import) -> list[ast.stmt]:
        kept = [alias for alias in stmt.names if _is_stdlib(alias.name)]
        result: list[ast.stmt] = []
        if kept:
            result.append(ast.copy_location(ast.Import(names=kept), stmt))
        for alias in stmt.names:
            if alias in kept:
                continue
            bound = alias.asname or alias.name.split(".")[0]
            self.replaced_imports.append(alias.name)
            result.append(_placeholder(bound, stmt))
        return result

    def _sanitize_import_from(self, stmt: ast.ImportFrom) -> list[ast.stmt]:
        if stmt.module == "__future__":
            # Compiled with postponed annotations anyway
            return []
        if stmt.level == 0 and stmt.module and _is_stdlib(stmt.module):
            return [stmt]
        module = "." * stmt.level + (stmt.module or "")
        self.replaced_imports.append(module)
        if any(alias.name == "*" for alias in stmt.names):
            self.star_imports.append(module)
        return [
            _placeholder(alias.asname or alias.name, stmt)
            for alias in stmt.names
            if alias.name != "*"
        ]

    # ── Classes and methods ──

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.ClassDef:
        node.bases = [ast.Name(id="object", ctx=ast.Load())]
        node.keywords = []
        node.decorator_list = []
        node.body = self._sanitize_block(node.body, module_level=False) or [ast.Pass()]
        return node

    def _sanitize_method(self, node):
        node.decorator_list = [
            d for d in node.decorator_list if self._keep_decorator(d)
        ]
        positional = node.args.posonlyargs + node.args.args
        is_static = any(
            isinstance(d, ast.Name) and d.id == "staticmethod"
            for d in node.decorator_list
        )
        self._self_names.append(positional[0].arg if positional and not is_static else None)
        try:
            node.body = self._sanitize_function_body(node.body)
        finally:
            self._self_names.pop()
        return node

    @staticmethod
    def _keep_decorator(node: ast.expr) -> bool:
        if isinstance(node, ast.Name):
            return node.id in KEPT_METHOD_DECORATORS
        if isinstance(node, ast.Attribute):
            return node.attr in KEPT_METHOD_DECORATORS
        return False

    def _sanitize_function_body(self, body: list[ast.stmt]) -> list[ast.stmt]:
        result: list[ast.stmt] = []
        for stmt in body:
            if self._is_super_init(stmt):
                continue
            result.append(self.visit(stmt))
        return result or [ast.Pass()]

    @staticmethod
    def _is_super_init(stmt: ast.stmt) -> bool:
        if not (isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Call)):
            return False
        func = stmt.value.func
        return (
            isinstance(func, ast.Attribute)
            and func.attr == "__init__"
            and _is_super_call(func.value)
        )

    def visit_Expr(self, node: ast.Expr) -> ast.stmt:
        # Nested under if/try/with; pass keeps the enclosing block non-empty
        if self._is_super_init(node):
            return ast.copy_location(ast.Pass(), node)
        self.generic_visit(node)
        return node

    def visit_Attribute(self, node: ast.Attribute) -> ast.AST:
        self.generic_visit(node)
        if _is_super_call(node.value) and self._self_names and self._self_names[-1]:
            return ast.copy_location(
                ast.Attribute(
                    value=ast.Name(id=self._self_names[-1], ctx=ast.Load()),
                    attr=node.attr,
                    ctx=node.ctx,
                ),
                node,
            )
        return node

    def visit_FunctionDef(self, node):
        # Nested functions inside method bodies
        node.body = self._sanitize_function_body(node.body)
        return node

    visit_AsyncFunctionDef = visit_FunctionDef


def sanitize(tree: ast.Module) -> ast.Module:
    """Apply the neutralizing rewrite to a parsed module.

    Args:
        tree: A freshly parsed module; it is modified in place

    Returns:
        The sanitized module with locations fixed
    """
    sanitizer = ClassSanitizer()
    tree = sanitizer.visit(tree)
    if sanitizer.replaced_imports:
        logger.debug(f"Replaced imports: {', '.join(sanitizer.replaced_imports)}")
    return ast.fix_missing_locations(tree)


def sanitize_source(source: str) -> str:
    """Sanitized module as source text, for diagnostics."""
    return ast.unparse(sanitize(ast.parse(source)))


def evaluate(tree: ast.Module, class_name: str, filename: str = "<sandbox>") -> type:
    """Execute a sanitized module in a private namespace and return the class.

    Annotations are compiled as postponed so they are never evaluated. The
    namespace is never registered in ``sys.modules``.

    Raises:
        MaterializationError: If execution fails or the class is missing
    """
    namespace = {
        "__name__": f"unit_skeleton_sandbox.{class_name}",
        "__builtins__": builtins,
        PLACEHOLDER_NAME: MagicMock,
    }
    try:
        code = compile(
            tree,
            filename,
            "exec",
            flags=__future__.annotations.compiler_flag,
            dont_inherit=True,
        )
        exec(code, namespace)
    except Exception as e:
        lineno = getattr(e, "lineno", None)
        raise MaterializationError(
            f"Could not evaluate sanitized class {class_name}: {type(e).__name__}: {e}",
            lineno,
        ) from e

    klass = namespace.get(class_name)
    if not isinstance(klass, type):
        raise MaterializationError(f"Class {class_name} is not defined after evaluation")
    return klass


def materialize(source: str, model: StructuralModel, filename: str = "<sandbox>") -> MaterializedClass:
    """Obtain a live, constructible class for the analyzed model.

    The source is parsed afresh so the structural model's trees are never
    touched. Member names read from the live class are compared with the
    model; mismatches are reported as warnings and the model wins.

    Args:
        source: Original module source
        model: Structural model of the class
        filename: File name for compile errors

    Returns:
        MaterializedClass with the live class and its member names

    Raises:
        MaterializationError: If the sanitized module cannot be evaluated
    """
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        raise MaterializationError(f"Could not parse {filename}: {e.msg}", e.lineno) from e

    tree = sanitize(tree)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Sanitized module for {model.class_name}:\n{ast.unparse(tree)}")
    klass = evaluate(tree, model.class_name, filename)
    logger.info(f"Materialized class {model.class_name}")

    accessor_names: list[str] = []
    method_names: list[str] = []
    mangled_prefix = f"_{model.class_name.lstrip('_')}__"
    for name, member in vars(klass).items():
        if name.startswith(mangled_prefix):
            name = name[len(mangled_prefix) - 2 :]
        if isinstance(member, (property, functools.cached_property)):
            accessor_names.append(name)
        elif isinstance(member, (staticmethod, classmethod)) or inspect.isfunction(member):
            if name.startswith("__") and name.endswith("__"):
                continue
            method_names.append(name)

    materialized = MaterializedClass(
        klass=klass,
        accessor_names=tuple(accessor_names),
        method_names=tuple(method_names),
    )
    _confirm_members(materialized, model)
    return materialized


def _confirm_members(materialized: MaterializedClass, model: StructuralModel) -> None:
    for label, live, static in (
        ("accessors", materialized.accessor_names, model.accessor_names),
        ("methods", materialized.method_names, model.method_names),
    ):
        missing = [name for name in static if name not in live]
        extra = [name for name in live if name not in static]
        if missing or extra:
            message = (
                f"{model.class_name} {label} differ from the live class "
                f"(missing: {missing}, extra: {extra}); using parsed structure"
            )
            logger.warning(message)
            materialized.warnings.append(message)
