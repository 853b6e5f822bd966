"""Synthesize safe argument values from declared parameter types."""

import ast
import logging

from unit_skeleton.engine.mock_plan import SynthesizedValue
from unit_skeleton.engine.structure import ParamDecl

logger = logging.getLogger(__name__)

OBJECT_STUB = SynthesizedValue("MagicMock()", "object-stub")
CALLABLE_STUB = SynthesizedValue("lambda *args, **kwargs: None", "callable-stub")

# Canonical zero-like values, keyed by the last segment of the type name
PRIMITIVE_VALUES = {
    "str": SynthesizedValue("''", "literal"),
    "int": SynthesizedValue("0", "literal"),
    "float": SynthesizedValue("0.0", "literal"),
    "bool": SynthesizedValue("False", "literal"),
    "bytes": SynthesizedValue("b''", "literal"),
    "bytearray": SynthesizedValue("bytearray()", "literal"),
    "complex": SynthesizedValue("0j", "literal"),
    "None": SynthesizedValue("None", "literal"),
    "NoneType": SynthesizedValue("None", "literal"),
}

COLLECTION_VALUES = {
    **dict.fromkeys(
        [
            "list",
            "List",
            "Sequence",
            "MutableSequence",
            "Iterable",
            "Iterator",
            "Collection",
            "Generator",
            "deque",
            "Deque",
        ],
        SynthesizedValue("[]", "sequence"),
    ),
    **dict.fromkeys(["tuple", "Tuple"], SynthesizedValue("()", "sequence")),
    **dict.fromkeys(
        ["set", "Set", "frozenset", "FrozenSet", "AbstractSet", "MutableSet"],
        SynthesizedValue("set()", "sequence"),
    ),
    **dict.fromkeys(
        [
            "dict",
            "Dict",
            "Mapping",
            "MutableMapping",
            "OrderedDict",
            "defaultdict",
            "DefaultDict",
            "Counter",
        ],
        SynthesizedValue("{}", "mapping"),
    ),
}

CALLABLE_TYPES = frozenset({"Callable", "Coroutine", "Awaitable"})

# Wrappers whose first argument carries the real type
UNWRAP_TYPES = frozenset(
    {"Optional", "Annotated", "Final", "ClassVar", "Required", "NotRequired", "ReadOnly"}
)


def synthesize_value(param: ParamDecl) -> SynthesizedValue:
    """Pick a safe argument value for one parameter.

    Never fails: anything that cannot be resolved becomes a stub object.

    Args:
        param: The parameter declaration

    Returns:
        A SynthesizedValue holding Python source text
    """
    if param.declared_type:
        value = value_for_annotation(param.declared_type)
        logger.debug(f"Param {param.name}: {param.declared_type} -> {value.code}")
        return value
    if param.default is not None:
        value = value_for_default(param.default)
        logger.debug(f"Param {param.name} = {param.default} -> {value.code}")
        return value
    return OBJECT_STUB


def synthesize_parameters(params: tuple[ParamDecl, ...]) -> tuple[SynthesizedValue, ...]:
    """Synthesize one value per parameter, in declaration order."""
    return tuple(synthesize_value(param) for param in params)


def value_for_annotation(annotation: str) -> SynthesizedValue:
    """Map annotation source text to a zero-like value."""
    try:
        node = ast.parse(annotation, mode="eval").body
    except SyntaxError:
        logger.debug(f"Unparseable annotation {annotation!r}, using stub")
        return OBJECT_STUB
    return _value_for_node(node)


def _value_for_node(node: ast.expr) -> SynthesizedValue:
    if isinstance(node, ast.Constant):
        if node.value is None:
            return PRIMITIVE_VALUES["None"]
        if isinstance(node.value, str):
            # Forward reference written as a string
            return value_for_annotation(node.value)
        return OBJECT_STUB

    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _first_non_none([node.left, node.right])

    if isinstance(node, ast.Subscript):
        origin = _type_name(node.value)
        args = _subscript_args(node.slice)
        if origin == "Union":
            return _first_non_none(args)
        if origin in UNWRAP_TYPES and args:
            return _value_for_node(args[0])
        if origin == "Literal" and args:
            return SynthesizedValue(ast.unparse(args[0]), "literal")
        return _value_for_name(origin)

    return _value_for_name(_type_name(node))


def _value_for_name(name: str | None) -> SynthesizedValue:
    if name is None:
        return OBJECT_STUB
    if name in PRIMITIVE_VALUES:
        return PRIMITIVE_VALUES[name]
    if name in COLLECTION_VALUES:
        return COLLECTION_VALUES[name]
    if name in CALLABLE_TYPES:
        return CALLABLE_STUB
    return OBJECT_STUB


def _first_non_none(nodes: list[ast.expr]) -> SynthesizedValue:
    flat: list[ast.expr] = []
    for node in nodes:
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            flat.extend([node.left, node.right])
        else:
            flat.append(node)
    for node in flat:
        if isinstance(node, ast.Constant) and node.value is None:
            continue
        if _type_name(node) in ("None", "NoneType"):
            continue
        return _value_for_node(node)
    return PRIMITIVE_VALUES["None"]


def _type_name(node: ast.expr) -> str | None:
    """Last segment of a dotted type name ("typing.List" -> "List")."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Constant) and node.value is None:
        return "None"
    return None


def _subscript_args(node: ast.expr) -> list[ast.expr]:
    if isinstance(node, ast.Tuple):
        return list(node.elts)
    return [node]


def value_for_default(default: str) -> SynthesizedValue:
    """Infer a value conservatively from a literal default.

    The default's type decides the value; the default itself is not reused.
    A None default carries no type information and yields a stub object.
    """
    try:
        node = ast.parse(default, mode="eval").body
    except SyntaxError:
        return OBJECT_STUB

    if isinstance(node, ast.UnaryOp) and isinstance(node.operand, ast.Constant):
        node = node.operand

    if isinstance(node, ast.Constant):
        if node.value is None:
            return OBJECT_STUB
        # bool before int: bool is an int subclass
        for literal_type, key in (
            (bool, "bool"),
            (int, "int"),
            (float, "float"),
            (complex, "complex"),
            (str, "str"),
            (bytes, "bytes"),
        ):
            if isinstance(node.value, literal_type):
                return PRIMITIVE_VALUES[key]
        return OBJECT_STUB

    if isinstance(node, (ast.List, ast.ListComp)):
        return COLLECTION_VALUES["list"]
    if isinstance(node, ast.Tuple):
        return COLLECTION_VALUES["tuple"]
    if isinstance(node, (ast.Set, ast.SetComp)):
        return COLLECTION_VALUES["set"]
    if isinstance(node, (ast.Dict, ast.DictComp)):
        return COLLECTION_VALUES["dict"]
    if isinstance(node, ast.Lambda):
        return CALLABLE_STUB
    return OBJECT_STUB
