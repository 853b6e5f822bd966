"""Mock-inference engine: structure, sandbox, parameters and mock plans."""

from unit_skeleton.engine.inferencer import (
    KNOWN_GLOBALS,
    ExpressionClassificationWarning,
    FuncTestGen,
    get_constructor_mock_data,
    get_func_mock_data,
)
from unit_skeleton.engine.mock_plan import (
    FuncMockData,
    MockKind,
    MockPlanEntry,
    MockRegistry,
    SynthesizedValue,
)
from unit_skeleton.engine.parameters import (
    synthesize_parameters,
    synthesize_value,
    value_for_annotation,
    value_for_default,
)
from unit_skeleton.engine.sandbox import (
    MaterializationError,
    MaterializedClass,
    materialize,
    sanitize_source,
)
from unit_skeleton.engine.structure import (
    AccessorDecl,
    ExpressionStatement,
    MethodDecl,
    ParamDecl,
    ParseError,
    StructuralModel,
    extract_structure,
)

__all__ = [
    # Structure
    "ParamDecl",
    "ExpressionStatement",
    "MethodDecl",
    "AccessorDecl",
    "StructuralModel",
    "ParseError",
    "extract_structure",
    # Sandbox
    "MaterializedClass",
    "MaterializationError",
    "materialize",
    "sanitize_source",
    # Parameters
    "synthesize_value",
    "synthesize_parameters",
    "value_for_annotation",
    "value_for_default",
    # Mock plan
    "MockKind",
    "MockPlanEntry",
    "MockRegistry",
    "FuncMockData",
    "SynthesizedValue",
    # Inference
    "KNOWN_GLOBALS",
    "ExpressionClassificationWarning",
    "FuncTestGen",
    "get_func_mock_data",
    "get_constructor_mock_data",
]
