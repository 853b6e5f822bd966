"""Infer the mock plan of a function by walking its expression statements.

Each statement is decomposed into reference chains (runs of attribute,
call and subscript nodes ending in a name). A chain is classified by its
root: attributes of injected dependencies go to ``map``, attributes the
class never initializes go to ``props`` and module globals go to
``globals``. Everything else is internal to the class and needs no
stand-in.
"""

import ast
import builtins
import logging
from dataclasses import dataclass

from unit_skeleton.engine.mock_plan import FuncMockData, MockKind, MockPlanEntry
from unit_skeleton.engine.parameters import synthesize_parameters, value_for_default
from unit_skeleton.engine.sandbox import MaterializedClass
from unit_skeleton.engine.structure import MethodDecl, StructuralModel

logger = logging.getLogger(__name__)

# Builtins that reach outside the process and must be patched in tests
KNOWN_GLOBALS = frozenset({"open", "input"})

# Modules whose functions are pure enough to run for real inside a test
PURE_MODULES = frozenset(
    {
        "__future__",
        "abc",
        "collections",
        "copy",
        "dataclasses",
        "decimal",
        "enum",
        "fractions",
        "functools",
        "itertools",
        "json",
        "math",
        "operator",
        "re",
        "statistics",
        "string",
        "textwrap",
        "typing",
        "typing_extensions",
    }
)

ITERATING_BUILTINS = frozenset(
    {
        "list",
        "tuple",
        "set",
        "frozenset",
        "dict",
        "sorted",
        "reversed",
        "enumerate",
        "zip",
        "sum",
        "min",
        "max",
        "any",
        "all",
        "iter",
        "map",
        "filter",
    }
)

DYNAMIC_CODE_BUILTINS = frozenset({"eval", "exec"})
DYNAMIC_ATTRIBUTE_BUILTINS = frozenset({"getattr", "setattr", "delattr"})

# Iterated by a loop body; one element so the body runs once
LOOP_RESULT = "[MagicMock()]"

# Consumers that need a real object rather than a scalar
OBJECT_USAGES = frozenset({"subscript", "context", "async-context", "async-iterate", "await"})


class ExpressionClassificationWarning(UserWarning):
    """A statement whose references cannot be classified statically."""

    def __init__(self, message: str, lineno: int | None = None, source: str | None = None):
        super().__init__(message)
        self.message = message
        self.lineno = lineno
        self.source = source

    def __str__(self) -> str:
        if self.lineno is None:
            return self.message
        return f"line {self.lineno}: {self.message}"


@dataclass(frozen=True)
class Usage:
    """How the value of an expression is consumed by its parent."""

    kind: str  # "read", "statement", "test", "loop", "iterate", "sized", "compare", "await", ...
    value: ast.expr | None = None  # compared constant or assigned value


READ = Usage("read")


@dataclass(frozen=True)
class _Registration:
    registry: str  # "props", "map" or "globals"
    key: str
    entry: MockPlanEntry


class FuncTestGen:
    """Per-function mock inference over one constructor, accessor or method.

    Args:
        model: Structural model of the class
        materialized: The live class produced by the sandbox
        func: The function to analyze
        known_globals: Builtin names treated as external globals
    """

    def __init__(
        self,
        model: StructuralModel,
        materialized: MaterializedClass,
        func: MethodDecl,
        known_globals: frozenset[str] = KNOWN_GLOBALS,
    ):
        self.model = model
        self.materialized = materialized
        self.func = func
        self.known_globals = frozenset(known_globals)
        self._pending: list[_Registration] = []
        self._constructor_params = (
            frozenset(p.name for p in func.params) if func.kind == "constructor" else frozenset()
        )

    def get_initial_parameters(self):
        """Synthesized argument values for the function's parameters."""
        return synthesize_parameters(self.func.params)

    def get_expression_statements(self):
        """The function's expression statements in source order."""
        return self.func.statements

    def set_mock_data(self, statement, func_mock_data: FuncMockData) -> None:
        """Classify one statement and register its entries.

        A statement that cannot be classified is skipped as a whole: the
        warning is recorded on ``func_mock_data`` and nothing it references
        is registered.
        """
        self._pending = []
        try:
            self._visit_statement(statement.node, statement.role)
        except ExpressionClassificationWarning as w:
            w.lineno = statement.lineno
            w.source = statement.one_line()
            func_mock_data.warnings.append(w)
            logger.info(f"{self.func.name}: skipped statement at {w}")
            return

        for registration in self._pending:
            registry = getattr(func_mock_data, registration.registry)
            registry.register(registration.key, registration.entry)

    # Statements

    def _visit_statement(self, node: ast.AST, role: str) -> None:
        if role in ("if-test", "while-test", "match-guard"):
            self._visit(node, Usage("test"))
        elif role == "for-iter":
            self._visit(node, Usage("loop"))
        elif role == "async-for-iter":
            self._visit(node, Usage("async-iterate"))
        elif role == "with-item":
            self._visit(node, Usage("context"))
        elif role == "async-with-item":
            self._visit(node, Usage("async-context"))
        elif role == "match-subject":
            self._visit(node, READ)
        elif isinstance(node, ast.Expr):
            self._visit(node.value, Usage("statement"))
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                self._visit_target(target, node.value)
            self._visit(node.value, READ)
        elif isinstance(node, ast.AnnAssign):
            self._visit_target(node.target, node.value)
            if node.value is not None:
                self._visit(node.value, READ)
        elif isinstance(node, ast.AugAssign):
            self._visit_target(node.target, node.value, augmented=True)
            self._visit(node.value, READ)
        elif isinstance(node, ast.Return):
            self._visit(node.value, READ)
        elif isinstance(node, ast.Raise):
            self._visit_raise(node)
        elif isinstance(node, ast.Assert):
            self._visit(node.test, Usage("test"))
            if node.msg is not None:
                self._visit(node.msg, READ)
        elif isinstance(node, ast.Delete):
            for target in node.targets:
                if isinstance(target, ast.Subscript):
                    self._visit_chain(target.value, Usage("subscript"))
                    self._visit(target.slice, READ)
        elif isinstance(node, ast.expr):
            self._visit(node, READ)

    def _visit_raise(self, node: ast.Raise) -> None:
        # The exception class itself must stay real to be raisable
        for exc in (node.exc, node.cause):
            if isinstance(exc, ast.Call):
                for arg in exc.args:
                    self._visit(arg, READ)
                for keyword in exc.keywords:
                    self._visit(keyword.value, READ)

    def _visit_target(self, target: ast.expr, value: ast.expr | None, augmented=False) -> None:
        if isinstance(target, (ast.Tuple, ast.List)):
            for elt in target.elts:
                self._visit_target(elt, None, augmented)
        elif isinstance(target, ast.Starred):
            self._visit_target(target.value, None, augmented)
        elif isinstance(target, ast.Name):
            if target.id in self.func.global_names and self._is_module_global(target.id):
                self._register(
                    "globals",
                    target.id,
                    self._write_entry(target.id, "global", value, augmented),
                )
        elif isinstance(target, (ast.Attribute, ast.Subscript)):
            kind = "augmented-write" if augmented else "write"
            self._visit_chain(target, Usage(kind, value))

    # Expressions

    def _visit(self, node: ast.AST | None, usage: Usage) -> None:
        if node is None:
            return
        if isinstance(node, (ast.Attribute, ast.Call, ast.Subscript, ast.Name)):
            self._visit_chain(node, usage)
        elif isinstance(node, ast.Await):
            self._visit(node.value, Usage("await"))
        elif isinstance(node, ast.Compare):
            operands = [node.left] + list(node.comparators)
            constants = [op for op in operands if isinstance(op, ast.Constant)]
            for operand in operands:
                if constants and not isinstance(operand, ast.Constant):
                    self._visit(operand, Usage("compare", constants[0]))
                else:
                    self._visit(operand, READ)
        elif isinstance(node, ast.BoolOp):
            for value in node.values:
                self._visit(value, Usage("test"))
        elif isinstance(node, ast.UnaryOp):
            self._visit(node.operand, Usage("test") if isinstance(node.op, ast.Not) else READ)
        elif isinstance(node, ast.IfExp):
            self._visit(node.test, Usage("test"))
            self._visit(node.body, READ)
            self._visit(node.orelse, READ)
        elif isinstance(node, (ast.ListComp, ast.SetComp, ast.GeneratorExp, ast.DictComp)):
            for generator in node.generators:
                self._visit(generator.iter, Usage("loop"))
                for condition in generator.ifs:
                    self._visit(condition, Usage("test"))
            if isinstance(node, ast.DictComp):
                self._visit(node.key, READ)
                self._visit(node.value, READ)
            else:
                self._visit(node.elt, READ)
        elif isinstance(node, ast.Starred):
            self._visit(node.value, Usage("iterate"))
        elif isinstance(node, ast.YieldFrom):
            self._visit(node.value, Usage("iterate"))
        elif isinstance(node, ast.Lambda):
            self._visit(node.body, READ)
        elif isinstance(node, ast.Constant):
            return
        else:
            for child in ast.iter_child_nodes(node):
                if isinstance(child, ast.expr):
                    self._visit(child, READ)
                elif isinstance(child, ast.keyword):
                    self._visit(child.value, READ)

    def _visit_chain(self, node: ast.expr, usage: Usage) -> None:
        base, ops = _unwind(node)
        base, ops = self._resolve_getattr(base, ops)

        names: list[str] = []
        if isinstance(base, ast.Name):
            names.append(base.id)
            for op in ops:
                if op[0] != "attr":
                    break
                names.append(op[1])
            self._check_dynamic(base.id, ops)
            self._classify(names, ops[len(names) - 1 :], usage)
        else:
            self._visit(base, READ)

        self._visit_operations(base, ops, names)

    def _visit_operations(self, base: ast.expr, ops: list[tuple], names: list[str]) -> None:
        """Walk call arguments and subscript indexes after the chain itself."""
        arg_usage = READ
        if len(names) == 1 and self._is_internal_builtin(names[0]):
            if names[0] in ITERATING_BUILTINS:
                arg_usage = Usage("iterate")
            elif names[0] == "len":
                arg_usage = Usage("sized")

        for index, op in enumerate(ops):
            if op[0] == "call":
                call = op[1]
                usage = arg_usage if index == 0 else READ
                for arg in call.args:
                    self._visit(arg, usage)
                for keyword in call.keywords:
                    self._visit(keyword.value, READ)
            elif op[0] == "sub":
                self._visit(op[1].slice, READ)
            elif op[0] == "getattr":
                for extra in op[1]:
                    self._visit(extra, READ)

    def _resolve_getattr(self, base: ast.expr, ops: list[tuple]):
        """Rewrite ``getattr(x, "name")`` at the chain base into ``x.name``."""
        if not (
            isinstance(base, ast.Name)
            and base.id == "getattr"
            and ops
            and ops[0][0] == "call"
            and self._is_internal_builtin("getattr")
        ):
            return base, ops
        call = ops[0][1]
        if len(call.args) < 2 or not _is_str_constant(call.args[1]):
            return base, ops
        inner_base, inner_ops = _unwind(call.args[0])
        extra = [("getattr", call.args[2:])] if len(call.args) > 2 else []
        return inner_base, inner_ops + [("attr", call.args[1].value)] + extra + ops[1:]

    def _check_dynamic(self, root: str, ops: list[tuple]) -> None:
        if not self._is_internal_builtin(root):
            return
        if not ops or ops[0][0] != "call":
            return
        call = ops[0][1]
        if root in DYNAMIC_CODE_BUILTINS:
            raise ExpressionClassificationWarning(f"{root}() hides what it references")
        if root in DYNAMIC_ATTRIBUTE_BUILTINS and call.args:
            if len(call.args) >= 2 and _is_str_constant(call.args[1]):
                return
            target_root = _chain_root(call.args[0])
            if target_root is None:
                return
            if target_root == self.func.self_name or self._root_scope(target_root) != "internal":
                raise ExpressionClassificationWarning(
                    f"{root}() with a computed attribute name cannot be classified"
                )

    # Classification

    def _classify(self, names: list[str], rest: list[tuple], usage: Usage) -> None:
        """Register an entry for a reference chain.

        Args:
            names: Static dotted prefix, starting with the root name
            rest: The operations following the static prefix
            usage: How the chain's value is consumed
        """
        root = names[0]
        next_op = rest[0] if rest else None
        chain_ends = len(rest) <= 1

        if root == self.func.self_name:
            self._classify_self(names, next_op, chain_ends, usage)
            return

        scope = self._root_scope(root)
        if scope == "internal":
            return
        if scope == "unresolved":
            hint = " (possibly from a star import)" if self.model.has_star_import else ""
            raise ExpressionClassificationWarning(f"Cannot resolve name '{root}'{hint}")

        if len(names) == 1 and next_op is None:
            return
        registry = "map" if scope == "dependency" else "globals"
        path = ".".join(names)
        self._register(registry, path, self._entry(path, scope, next_op, chain_ends, usage))

    def _classify_self(self, names, next_op, chain_ends: bool, usage: Usage) -> None:
        if len(names) == 1:
            return
        attr = names[1]
        direct_write = len(names) == 2 and next_op is None and usage.kind.endswith("write")

        if attr in self.model.method_names or attr in self.model.accessor_names:
            return
        if self.materialized.has_member(attr) and attr not in self.model.class_attributes:
            return

        if direct_write:
            self._register(
                "props",
                attr,
                self._write_entry(
                    f"{names[0]}.{attr}",
                    "property",
                    usage.value,
                    usage.kind == "augmented-write",
                ),
            )
            return

        if attr in self.model.dependency_attributes:
            if len(names) == 2 and (next_op is None or next_op[0] != "call"):
                return
            path = ".".join(names)
            self._register("map", path, self._entry(path, "dependency", next_op, chain_ends, usage))
            return

        if attr in self.model.initialized_attributes or attr in self.model.class_attributes:
            return

        # Attribute set somewhere other than __init__: the test must provide it
        path = f"{names[0]}.{attr}"
        if len(names) > 2 or next_op is not None or usage.kind in OBJECT_USAGES:
            entry = MockPlanEntry(path, MockKind.OBJECT_STUB, "MagicMock()", "property")
        else:
            entry = MockPlanEntry(path, MockKind.VALUE_STUB, _read_literal(attr, usage), "property")
        self._register("props", attr, entry)

    def _root_scope(self, root: str | None) -> str:
        """One of "dependency", "global", "internal" or "unresolved"."""
        if root is None:
            return "internal"
        if root in self._constructor_params:
            return "dependency"
        if root in self.func.local_names:
            return "internal"
        if root in self.func.global_names or self._is_module_global(root):
            if self._is_module_global(root) and not self._is_pure_import(root):
                return "global"
            return "internal"
        if root in self.model.module_definitions or root == self.model.class_name:
            return "internal"
        if root in self.known_globals:
            return "global"
        if hasattr(builtins, root) or (root.startswith("__") and root.endswith("__")):
            return "internal"
        return "unresolved"

    def _is_module_global(self, name: str) -> bool:
        return name in self.model.global_names

    def _is_pure_import(self, name: str) -> bool:
        origin = self.model.global_origin(name)
        if origin is None or origin.startswith("."):
            return False
        return origin.split(".")[0] in PURE_MODULES

    def _is_internal_builtin(self, name: str) -> bool:
        return (
            hasattr(builtins, name)
            and name not in self.func.local_names
            and name not in self.model.global_names
            and name not in self.model.module_definitions
        )

    def _entry(self, path: str, scope: str, next_op, chain_ends: bool, usage: Usage) -> MockPlanEntry:
        if next_op is not None and next_op[0] == "call":
            call = next_op[1]
            is_async = chain_ends and usage.kind == "await"
            return_hint = None
            if chain_ends and usage.kind == "loop":
                return_hint = LOOP_RESULT
            elif chain_ends and usage.kind in ("iterate", "sized"):
                return_hint = "[]"
            elif chain_ends and usage.kind == "compare":
                return_hint = _compare_literal(usage.value)
            return MockPlanEntry(
                target_path=path,
                kind=MockKind.SPY,
                declaration=_spy_declaration(path, scope, is_async, return_hint),
                scope=scope,
                is_async=is_async,
                arity=len(call.args) + len(call.keywords),
                return_hint=return_hint,
            )

        if next_op is not None or usage.kind in OBJECT_USAGES:
            return MockPlanEntry(path, MockKind.OBJECT_STUB, "MagicMock()", scope)

        if usage.kind in ("write", "augmented-write"):
            return self._write_entry(path, scope, usage.value, usage.kind == "augmented-write")

        return MockPlanEntry(
            path, MockKind.VALUE_STUB, _read_literal(path.rsplit(".", 1)[-1], usage), scope
        )

    def _write_entry(self, path: str, scope: str, value, augmented: bool) -> MockPlanEntry:
        if augmented:
            # Read before written: needs a value of the right type up front
            declaration = value_for_default(ast.unparse(value)).code if value else "0"
            return MockPlanEntry(path, MockKind.VALUE_STUB, declaration, scope)
        literal = _literal_source(value)
        return MockPlanEntry(
            path,
            MockKind.VALUE_STUB,
            literal if literal is not None else "MagicMock()",
            scope,
            written=True,
        )

    def _register(self, registry: str, key: str, entry: MockPlanEntry) -> None:
        self._pending.append(_Registration(registry, key, entry))


def get_func_mock_data(
    model: StructuralModel,
    materialized: MaterializedClass,
    func: MethodDecl,
    known_globals: frozenset[str] = KNOWN_GLOBALS,
) -> FuncMockData:
    """Build the frozen mock plan of one function.

    Args:
        model: Structural model of the class
        materialized: Live class from the sandbox
        func: Constructor, accessor or method to analyze
        known_globals: Builtin names treated as external globals

    Returns:
        Frozen FuncMockData
    """
    func_test_gen = FuncTestGen(model, materialized, func, known_globals)
    func_mock_data = FuncMockData(
        name=func.name,
        kind=func.kind,
        params=func_test_gen.get_initial_parameters(),
        is_async=func.is_async,
    )

    for statement in func_test_gen.get_expression_statements():
        logger.debug(f"Expression {statement.index}: {statement.one_line()}")
        func_test_gen.set_mock_data(statement, func_mock_data)

    func_mock_data.freeze()
    logger.debug(
        f"{func.key}: {len(func_mock_data.map)} map, {len(func_mock_data.props)} props, "
        f"{len(func_mock_data.globals)} globals"
    )
    return func_mock_data


def get_constructor_mock_data(
    model: StructuralModel,
    materialized: MaterializedClass,
    known_globals: frozenset[str] = KNOWN_GLOBALS,
) -> FuncMockData:
    """Mock plan of the constructor, or of the implicit one if none is written."""
    if model.constructor is not None:
        return get_func_mock_data(model, materialized, model.constructor, known_globals)
    func_mock_data = FuncMockData(
        name="__init__",
        kind="constructor",
        params=synthesize_parameters(model.constructor_params),
    )
    func_mock_data.freeze()
    return func_mock_data


def _unwind(node: ast.expr) -> tuple[ast.expr, list[tuple]]:
    """Split a chain into its base and the operations applied to it."""
    ops: list[tuple] = []
    while True:
        if isinstance(node, ast.Attribute):
            ops.append(("attr", node.attr))
            node = node.value
        elif isinstance(node, ast.Call):
            ops.append(("call", node))
            node = node.func
        elif isinstance(node, ast.Subscript):
            ops.append(("sub", node))
            node = node.value
        else:
            break
    ops.reverse()
    return node, ops


def _chain_root(node: ast.expr) -> str | None:
    base, _ = _unwind(node)
    return base.id if isinstance(base, ast.Name) else None


def _is_str_constant(node: ast.expr) -> bool:
    return isinstance(node, ast.Constant) and isinstance(node.value, str)


def _literal_source(node: ast.expr | None) -> str | None:
    """Source text of a literal value, or None for anything computed."""
    if node is None:
        return None
    try:
        ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return None
    return ast.unparse(node)


def _compare_literal(node: ast.expr | None) -> str:
    if node is None:
        return "MagicMock()"
    return value_for_default(ast.unparse(node)).code


def _read_literal(name: str, usage: Usage) -> str:
    if usage.kind == "loop":
        return LOOP_RESULT
    if usage.kind in ("iterate", "sized"):
        return "[]"
    if usage.kind == "compare":
        return _compare_literal(usage.value)
    return repr(name)


def _spy_declaration(path: str, scope: str, is_async: bool, return_hint: str | None) -> str:
    mock_class = "AsyncMock" if is_async else "MagicMock"
    name = path if scope == "global" else path.split(".", 1)[-1]
    if return_hint is None:
        return f"{mock_class}(name={name!r})"
    return f"{mock_class}(name={name!r}, return_value={return_hint})"
