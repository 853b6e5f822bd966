"""Extract the structural model of a class from Python source."""

import ast
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

GETTER_DECORATORS = frozenset(
    {
        "property",
        "cached_property",
        "functools.cached_property",
    }
)

STATIC_DECORATORS = frozenset({"staticmethod"})

IMPORT_NODES = (ast.Import, ast.ImportFrom)


class ParseError(Exception):
    """Source text is not a single recognizable class."""

    def __init__(self, message: str, lineno: int | None = None):
        super().__init__(message)
        self.lineno = lineno


@dataclass(frozen=True)
class ParamDecl:
    """A declared parameter of a constructor, method or setter."""

    name: str
    declared_type: str | None
    kind: str  # "constructor-param", "method", "getter", "setter"
    default: str | None = None
    keyword_only: bool = False


@dataclass(frozen=True)
class ExpressionStatement:
    """One statement (or compound-statement header) of a function body."""

    index: int
    lineno: int
    end_lineno: int
    source: str
    node: ast.AST
    role: str  # "statement", "if-test", "for-iter", "with-item", ...

    def one_line(self) -> str:
        """Source collapsed onto a single line, for log output."""
        return " ".join(self.source.split())


@dataclass(frozen=True)
class MethodDecl:
    """A method (or constructor) of the analyzed class."""

    name: str
    kind: str  # "constructor", "method", "getter", "setter"
    params: tuple[ParamDecl, ...]
    statements: tuple[ExpressionStatement, ...]
    is_async: bool
    decorators: tuple[str, ...]
    self_name: str | None
    local_names: frozenset[str]
    global_names: frozenset[str]
    lineno: int
    is_generator: bool = False

    @property
    def key(self) -> str:
        return self.name


@dataclass(frozen=True)
class AccessorDecl(MethodDecl):
    """A property getter or setter."""

    @property
    def key(self) -> str:
        return f"{self.kind} {self.name}"


@dataclass(frozen=True)
class StructuralModel:
    """Everything the engine needs to know about the class, read-only."""

    class_name: str
    constructor_params: tuple[ParamDecl, ...]
    accessors: tuple[AccessorDecl, ...]
    methods: tuple[MethodDecl, ...]
    constructor: MethodDecl | None
    decorators: tuple[str, ...]
    bases: tuple[str, ...]
    module_globals: tuple[tuple[str, str], ...]  # (bound name, origin)
    module_definitions: frozenset[str]
    initialized_attributes: frozenset[str]
    class_attributes: frozenset[str]
    dependency_attributes: frozenset[str]
    has_star_import: bool = False

    @property
    def global_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.module_globals)

    def global_origin(self, name: str) -> str | None:
        for bound, origin in self.module_globals:
            if bound == name:
                return origin
        return None

    @property
    def method_names(self) -> tuple[str, ...]:
        return tuple(m.name for m in self.methods)

    @property
    def accessor_names(self) -> tuple[str, ...]:
        names: list[str] = []
        for accessor in self.accessors:
            if accessor.name not in names:
                names.append(accessor.name)
        return tuple(names)

    def functions(self) -> tuple[MethodDecl, ...]:
        """Accessors followed by methods, in declaration order."""
        return self.accessors + self.methods


def decorator_name(node: ast.expr) -> str:
    """Dotted name of a decorator, ignoring any call arguments."""
    if isinstance(node, ast.Call):
        node = node.func
    return ast.unparse(node)


def extract_structure(
    source: str, filename: str = "<source>", class_name: str | None = None
) -> StructuralModel:
    """Parse source text and build the structural model of its class.

    Args:
        source: Python source text
        filename: File name used in error messages
        class_name: Class to pick when the module defines several

    Returns:
        StructuralModel of the selected class

    Raises:
        ParseError: If the source does not hold a single recognizable class
    """
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        raise ParseError(f"Invalid Python source: {e.msg}", e.lineno) from e

    class_node = _select_class(tree, class_name)
    logger.info(f"Extracting structure of class {class_node.name}")

    module_globals, module_definitions, has_star = _collect_module_names(tree)
    module_definitions.discard(class_node.name)

    constructor: MethodDecl | None = None
    accessors: list[AccessorDecl] = []
    methods: list[MethodDecl] = []
    class_attributes: set[str] = set()
    init_node = None

    for stmt in class_node.body:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            kind = _member_kind(stmt)
            if kind is None:
                logger.debug(f"Skipping member {stmt.name}")
                continue
            if kind == "constructor":
                init_node = stmt
                constructor = _build_function(stmt, kind, source, MethodDecl)
            elif kind in ("getter", "setter"):
                accessors.append(_build_function(stmt, kind, source, AccessorDecl))
            else:
                methods.append(_build_function(stmt, kind, source, MethodDecl))
        elif isinstance(stmt, ast.Assign):
            for target in stmt.targets:
                class_attributes.update(_target_names(target))
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            class_attributes.add(stmt.target.id)

    decorators = tuple(decorator_name(d) for d in class_node.decorator_list)

    if constructor is not None:
        constructor_params = constructor.params
        initialized, dependencies = _analyze_constructor(init_node, constructor)
    elif any(d.split(".")[-1] == "dataclass" for d in decorators):
        constructor_params = _dataclass_fields(class_node)
        initialized = frozenset(p.name for p in constructor_params)
        dependencies = initialized
    else:
        constructor_params = ()
        initialized = frozenset()
        dependencies = frozenset()

    model = StructuralModel(
        class_name=class_node.name,
        constructor_params=constructor_params,
        accessors=tuple(accessors),
        methods=tuple(methods),
        constructor=constructor,
        decorators=decorators,
        bases=tuple(ast.unparse(b) for b in class_node.bases),
        module_globals=tuple(module_globals.items()),
        module_definitions=frozenset(module_definitions),
        initialized_attributes=initialized,
        class_attributes=frozenset(class_attributes),
        dependency_attributes=dependencies,
        has_star_import=has_star,
    )
    logger.info(
        f"Class {model.class_name}: {len(model.constructor_params)} constructor params, "
        f"{len(model.accessors)} accessors, {len(model.methods)} methods"
    )
    return model


def _select_class(tree: ast.Module, class_name: str | None) -> ast.ClassDef:
    """Pick the single exported top-level class."""
    classes = [node for node in tree.body if isinstance(node, ast.ClassDef)]

    if class_name is not None:
        for node in classes:
            if node.name == class_name:
                return node
        raise ParseError(f"Class '{class_name}' is not defined at module level")

    exported = _dunder_all(tree)
    if exported is not None:
        candidates = [node for node in classes if node.name in exported]
    else:
        candidates = [node for node in classes if not node.name.startswith("_")]

    if not candidates:
        raise ParseError("No exported class found")
    if len(candidates) > 1:
        names = ", ".join(node.name for node in candidates)
        raise ParseError(
            f"Expected a single exported class, found: {names}",
            candidates[1].lineno,
        )
    return candidates[0]


def _dunder_all(tree: ast.Module) -> set[str] | None:
    for node in tree.body:
        if not isinstance(node, ast.Assign):
            continue
        if any(isinstance(t, ast.Name) and t.id == "__all__" for t in node.targets):
            try:
                return set(ast.literal_eval(node.value))
            except (ValueError, TypeError):
                return None
    return None


def _iter_module_statements(body: list[ast.stmt]):
    """Yield module-level statements, descending into if/try/with blocks."""
    for stmt in body:
        yield stmt
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            continue
        for attr in ("body", "orelse", "finalbody"):
            yield from _iter_module_statements(getattr(stmt, attr, []) or [])
        for handler in getattr(stmt, "handlers", []) or []:
            yield from _iter_module_statements(handler.body)


def _collect_module_names(tree: ast.Module) -> tuple[dict[str, str], set[str], bool]:
    """Split module-level names into external globals and local definitions."""
    module_globals: dict[str, str] = {}
    definitions: set[str] = set()
    has_star = False

    for stmt in _iter_module_statements(tree.body):
        if isinstance(stmt, ast.Import):
            for alias in stmt.names:
                bound = alias.asname or alias.name.split(".")[0]
                origin = alias.name if alias.asname else bound
                module_globals.setdefault(bound, origin)
        elif isinstance(stmt, ast.ImportFrom):
            prefix = "." * stmt.level + (stmt.module or "")
            for alias in stmt.names:
                if alias.name == "*":
                    has_star = True
                    continue
                bound = alias.asname or alias.name
                origin = f"{prefix}.{alias.name}" if stmt.module else prefix + alias.name
                module_globals.setdefault(bound, origin)
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            definitions.add(stmt.name)
        elif isinstance(stmt, (ast.Assign, ast.AnnAssign, ast.AugAssign)):
            targets = stmt.targets if isinstance(stmt, ast.Assign) else [stmt.target]
            value = stmt.value
            calls = value is not None and any(
                isinstance(n, ast.Call) for n in ast.walk(value)
            )
            for target in targets:
                for name in _target_names(target):
                    if calls:
                        module_globals.setdefault(name, name)
                    else:
                        definitions.add(name)
        elif isinstance(stmt, (ast.For, ast.AsyncFor)):
            for name in _target_names(stmt.target):
                module_globals.setdefault(name, name)
        elif isinstance(stmt, (ast.With, ast.AsyncWith)):
            for item in stmt.items:
                if item.optional_vars is not None:
                    for name in _target_names(item.optional_vars):
                        module_globals.setdefault(name, name)
        elif isinstance(stmt, (ast.Try, ast.TryStar)):
            for handler in stmt.handlers:
                if handler.name:
                    module_globals.setdefault(handler.name, handler.name)

    for name in module_globals:
        definitions.discard(name)
    return module_globals, definitions, has_star


def _target_names(target: ast.expr) -> list[str]:
    if isinstance(target, ast.Name):
        return [target.id]
    if isinstance(target, (ast.Tuple, ast.List)):
        names: list[str] = []
        for elt in target.elts:
            names.extend(_target_names(elt))
        return names
    if isinstance(target, ast.Starred):
        return _target_names(target.value)
    return []


def _member_kind(node: ast.FunctionDef | ast.AsyncFunctionDef) -> str | None:
    names = [decorator_name(d) for d in node.decorator_list]
    if node.name == "__init__":
        return "constructor"
    if any(n in GETTER_DECORATORS or n.endswith(".getter") for n in names):
        return "getter"
    if any(n.endswith(".setter") for n in names):
        return "setter"
    if any(n.endswith(".deleter") for n in names):
        return None
    if node.name.startswith("__") and node.name.endswith("__"):
        return None
    return "method"


def _build_function(node, kind: str, source: str, decl_class):
    decorators = tuple(decorator_name(d) for d in node.decorator_list)
    positional = node.args.posonlyargs + node.args.args

    self_name = None
    if positional and not any(d in STATIC_DECORATORS for d in decorators):
        self_name = positional[0].arg

    param_kind = "constructor-param" if kind == "constructor" else kind
    params = _build_params(node.args, self_name, param_kind)
    global_names = _declared_globals(node)

    return decl_class(
        name=node.name,
        kind=kind,
        params=params,
        statements=tuple(_expression_statements(node.body, source)),
        is_async=isinstance(node, ast.AsyncFunctionDef),
        decorators=decorators,
        self_name=self_name,
        local_names=frozenset(_bound_names(node) - global_names),
        global_names=frozenset(global_names),
        lineno=node.lineno,
        is_generator=_is_generator(node),
    )


def _build_params(args: ast.arguments, self_name: str | None, kind: str) -> tuple:
    positional = args.posonlyargs + args.args
    defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
    defaults += list(args.defaults)

    params: list[ParamDecl] = []
    for index, (arg, default) in enumerate(zip(positional, defaults)):
        if index == 0 and self_name is not None and arg.arg == self_name:
            continue
        params.append(_param(arg, default, kind, keyword_only=False))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(_param(arg, default, kind, keyword_only=True))
    return tuple(params)


def _param(arg: ast.arg, default: ast.expr | None, kind: str, keyword_only: bool):
    return ParamDecl(
        name=arg.arg,
        declared_type=ast.unparse(arg.annotation) if arg.annotation else None,
        kind=kind,
        default=ast.unparse(default) if default is not None else None,
        keyword_only=keyword_only,
    )


def _dataclass_fields(class_node: ast.ClassDef) -> tuple[ParamDecl, ...]:
    params: list[ParamDecl] = []
    for stmt in class_node.body:
        if not (isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name)):
            continue
        annotation = ast.unparse(stmt.annotation)
        if annotation.startswith(("ClassVar", "typing.ClassVar")):
            continue
        default = None
        if stmt.value is not None and not isinstance(stmt.value, ast.Call):
            default = ast.unparse(stmt.value)
        params.append(
            ParamDecl(
                name=stmt.target.id,
                declared_type=annotation,
                kind="constructor-param",
                default=default,
            )
        )
    return tuple(params)


def _is_generator(node) -> bool:
    """True if the function body itself yields."""
    stack = list(node.body)
    while stack:
        child = stack.pop()
        if isinstance(child, (ast.Yield, ast.YieldFrom)):
            return True
        if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)):
            continue
        stack.extend(ast.iter_child_nodes(child))
    return False


def _declared_globals(node) -> set[str]:
    names: set[str] = set()
    for child in ast.walk(node):
        if isinstance(child, (ast.Global, ast.Nonlocal)):
            names.update(child.names)
    return names


def _bound_names(node) -> set[str]:
    """Every name bound anywhere in a function, parameters included."""
    names: set[str] = set()
    for child in ast.walk(node):
        if isinstance(child, ast.arg):
            names.add(child.arg)
        elif isinstance(child, ast.Name) and isinstance(child.ctx, (ast.Store, ast.Del)):
            names.add(child.id)
        elif isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            if child is not node:
                names.add(child.name)
        elif isinstance(child, IMPORT_NODES):
            for alias in child.names:
                names.add((alias.asname or alias.name).split(".")[0])
        elif isinstance(child, ast.ExceptHandler) and child.name:
            names.add(child.name)
        elif isinstance(child, (ast.MatchAs, ast.MatchStar)) and child.name:
            names.add(child.name)
        elif isinstance(child, ast.MatchMapping) and child.rest:
            names.add(child.rest)
    return names


def _expression_statements(body: list[ast.stmt], source: str) -> list[ExpressionStatement]:
    statements: list[ExpressionStatement] = []
    for node, role in _flatten(body):
        text = ast.get_source_segment(source, node) or ast.unparse(node)
        statements.append(
            ExpressionStatement(
                index=len(statements),
                lineno=node.lineno,
                end_lineno=getattr(node, "end_lineno", node.lineno) or node.lineno,
                source=text,
                node=node,
                role=role,
            )
        )
    return statements


def _flatten(body: list[ast.stmt]):
    """Yield (node, role) pairs in source order, entering control flow."""
    for stmt in body:
        if isinstance(
            stmt,
            (
                ast.Expr,
                ast.Assign,
                ast.AugAssign,
                ast.AnnAssign,
                ast.Return,
                ast.Raise,
                ast.Assert,
                ast.Delete,
            ),
        ):
            if isinstance(stmt, ast.Return) and stmt.value is None:
                continue
            if isinstance(stmt, ast.AnnAssign) and stmt.value is None:
                continue
            if isinstance(stmt, ast.Raise) and stmt.exc is None:
                continue
            yield stmt, "statement"
        elif isinstance(stmt, ast.If):
            yield stmt.test, "if-test"
            yield from _flatten(stmt.body)
            yield from _flatten(stmt.orelse)
        elif isinstance(stmt, ast.While):
            yield stmt.test, "while-test"
            yield from _flatten(stmt.body)
            yield from _flatten(stmt.orelse)
        elif isinstance(stmt, (ast.For, ast.AsyncFor)):
            role = "async-for-iter" if isinstance(stmt, ast.AsyncFor) else "for-iter"
            yield stmt.iter, role
            yield from _flatten(stmt.body)
            yield from _flatten(stmt.orelse)
        elif isinstance(stmt, (ast.With, ast.AsyncWith)):
            role = "async-with-item" if isinstance(stmt, ast.AsyncWith) else "with-item"
            for item in stmt.items:
                yield item.context_expr, role
            yield from _flatten(stmt.body)
        elif isinstance(stmt, (ast.Try, ast.TryStar)):
            yield from _flatten(stmt.body)
            for handler in stmt.handlers:
                yield from _flatten(handler.body)
            yield from _flatten(stmt.orelse)
            yield from _flatten(stmt.finalbody)
        elif isinstance(stmt, ast.Match):
            yield stmt.subject, "match-subject"
            for case in stmt.cases:
                if case.guard is not None:
                    yield case.guard, "match-guard"
                yield from _flatten(case.body)
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            yield from _flatten(stmt.body)


def _analyze_constructor(node, constructor: MethodDecl) -> tuple[frozenset, frozenset]:
    """Find attributes set in __init__ and which of them hold constructor args."""
    self_name = constructor.self_name
    param_names = {p.name for p in constructor.params}
    initialized: set[str] = set()
    dependencies: set[str] = set(param_names)

    if self_name is None:
        return frozenset(), frozenset()

    for child in ast.walk(node):
        if isinstance(child, ast.Attribute) and isinstance(child.ctx, ast.Store):
            if isinstance(child.value, ast.Name) and child.value.id == self_name:
                initialized.add(child.attr)

        if isinstance(child, ast.Assign):
            pairs = []
            for target in child.targets:
                pairs.extend(_assignment_pairs(target, child.value))
        elif isinstance(child, ast.AnnAssign) and child.value is not None:
            pairs = [(child.target, child.value)]
        else:
            continue

        for target, value in pairs:
            if not (
                isinstance(target, ast.Attribute)
                and isinstance(target.value, ast.Name)
                and target.value.id == self_name
            ):
                continue
            mentioned = {n.id for n in ast.walk(value) if isinstance(n, ast.Name)}
            if mentioned & param_names:
                dependencies.add(target.attr)

    return frozenset(initialized), frozenset(dependencies)


def _assignment_pairs(target: ast.expr, value: ast.expr) -> list[tuple[ast.expr, ast.expr]]:
    """Pair tuple targets with tuple values element-wise where possible."""
    if isinstance(target, (ast.Tuple, ast.List)):
        if isinstance(value, (ast.Tuple, ast.List)) and len(value.elts) == len(
            target.elts
        ):
            pairs = []
            for sub_target, sub_value in zip(target.elts, value.elts):
                pairs.extend(_assignment_pairs(sub_target, sub_value))
            return pairs
        return [(elt, value) for elt in target.elts]
    return [(target, value)]
