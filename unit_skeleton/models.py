"""Data models for analysis output."""

import json
from dataclasses import dataclass, field
from types import MappingProxyType

from unit_skeleton.classifier import ClassType
from unit_skeleton.engine.mock_plan import FuncMockData
from unit_skeleton.engine.structure import StructuralModel


@dataclass
class ClassAnalysis:
    """Complete mock plan of one class.

    Attributes:
        source_path: Path of the analyzed file
        module_path: Dotted import path used by the generated test
        class_type: Test convention the class is rendered with
        model: Structural model of the class
        constructor: Mock plan of the constructor
        accessors: Mock plans keyed "getter <name>" / "setter <name>"
        methods: Mock plans keyed by method name
        warnings: Non-fatal warnings from the sandbox and the inferencer
    """

    source_path: str
    module_path: str
    class_type: ClassType
    model: StructuralModel
    constructor: FuncMockData
    accessors: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    methods: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    warnings: tuple[str, ...] = ()

    def __post_init__(self):
        self.accessors = MappingProxyType(dict(self.accessors))
        self.methods = MappingProxyType(dict(self.methods))
        self.warnings = tuple(self.warnings)

    @property
    def class_name(self) -> str:
        return self.model.class_name

    def functions(self) -> list[FuncMockData]:
        """Accessor plans followed by method plans."""
        return list(self.accessors.values()) + list(self.methods.values())

    def all_warnings(self) -> list[str]:
        """Sandbox warnings followed by every skipped statement."""
        messages = list(self.warnings)
        for func in [self.constructor] + self.functions():
            messages.extend(f"{func.name}: {w}" for w in func.warnings)
        return messages

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "source_path": self.source_path,
            "module_path": self.module_path,
            "class_name": self.class_name,
            "class_type": self.class_type.value,
            "constructor": self.constructor.to_dict(),
            "accessors": {key: data.to_dict() for key, data in self.accessors.items()},
            "methods": {key: data.to_dict() for key, data in self.methods.items()},
            "warnings": self.all_warnings(),
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)
