"""Data models for per-function mock plans."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum


class MockKind(str, Enum):
    """What kind of stand-in a target path needs."""

    SPY = "spy-on-call"
    VALUE_STUB = "value-stub"
    OBJECT_STUB = "object-stub"


@dataclass(frozen=True)
class SynthesizedValue:
    """A synthesized argument value, kept as Python source text."""

    code: str
    kind: str  # "literal", "sequence", "mapping", "object-stub", "callable-stub"


@dataclass(frozen=True)
class MockPlanEntry:
    """A single external reference that needs a stand-in.

    Attributes:
        target_path: Dotted chain as written in the source, e.g. "self.api.save"
        kind: Spy, value stub or object stub
        declaration: Python expression used as the stand-in
        scope: "dependency", "global" or "property"
        is_async: True if the call was awaited
        arity: Number of arguments at the first call site (spies only)
        written: True if the path was an assignment target
        return_hint: Expression for the spy's return value, if inferred
    """

    target_path: str
    kind: MockKind
    declaration: str
    scope: str
    is_async: bool = False
    arity: int = 0
    written: bool = False
    return_hint: str | None = None

    @property
    def member_path(self) -> str:
        """The target path without its receiver ("self.api.save" -> "api.save")."""
        head, _, rest = self.target_path.partition(".")
        if self.scope == "global":
            return self.target_path
        return rest or head

    @property
    def root_name(self) -> str:
        return self.target_path.split(".", 1)[0]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "target_path": self.target_path,
            "kind": self.kind.value,
            "declaration": self.declaration,
            "scope": self.scope,
        }
        if self.is_async:
            result["is_async"] = True
        if self.kind is MockKind.SPY:
            result["arity"] = self.arity
        if self.written:
            result["written"] = True
        if self.return_hint is not None:
            result["return_hint"] = self.return_hint
        return result


class MockRegistry:
    """Insertion-ordered map of target path to MockPlanEntry.

    Registration is first-wins: re-registering a known key returns the
    existing entry and leaves order untouched.
    """

    def __init__(self):
        self._entries: dict[str, MockPlanEntry] = {}
        self._frozen = False

    def register(self, key: str, entry: MockPlanEntry) -> MockPlanEntry:
        """Register an entry unless the key is already present.

        Args:
            key: Target path (or property name) to register under
            entry: The entry to store

        Returns:
            The entry stored under the key after the call

        Raises:
            TypeError: If the registry has been frozen
        """
        if self._frozen:
            raise TypeError("MockRegistry is frozen")
        existing = self._entries.get(key)
        if existing is not None:
            return existing
        self._entries[key] = entry
        return entry

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, key: str) -> MockPlanEntry | None:
        return self._entries.get(key)

    def keys(self) -> list[str]:
        return list(self._entries)

    def values(self) -> list[MockPlanEntry]:
        return list(self._entries.values())

    def items(self) -> list[tuple[str, MockPlanEntry]]:
        return list(self._entries.items())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __getitem__(self, key: str) -> MockPlanEntry:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"MockRegistry({list(self._entries)!r})"

    def to_dict(self) -> dict:
        return {key: entry.to_dict() for key, entry in self._entries.items()}


@dataclass
class FuncMockData:
    """Mock plan for one constructor, accessor or method.

    One instance per analyzed function. It is mutated only while its own
    analysis pass runs and frozen before it is handed downstream.
    """

    name: str
    kind: str  # "constructor", "method", "getter", "setter"
    params: tuple[SynthesizedValue, ...] = ()
    props: MockRegistry = field(default_factory=MockRegistry)
    map: MockRegistry = field(default_factory=MockRegistry)
    globals: MockRegistry = field(default_factory=MockRegistry)
    warnings: list = field(default_factory=list)
    is_async: bool = False

    def freeze(self) -> None:
        """Make the mock plan read-only."""
        self.props.freeze()
        self.map.freeze()
        self.globals.freeze()
        self.warnings = tuple(self.warnings)

    @property
    def frozen(self) -> bool:
        return self.map.frozen

    def spies(self) -> list[MockPlanEntry]:
        """All spy entries in emission order (map first, then globals)."""
        return [
            entry
            for entry in self.map.values() + self.globals.values()
            if entry.kind is MockKind.SPY
        ]

    def global_symbols(self) -> list[str]:
        """Distinct root symbols of global entries, in first-seen order."""
        symbols: list[str] = []
        for entry in self.globals.values():
            if entry.root_name not in symbols:
                symbols.append(entry.root_name)
        return symbols

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "kind": self.kind,
            "params": [value.code for value in self.params],
            "props": self.props.to_dict(),
            "map": self.map.to_dict(),
            "globals": self.globals.to_dict(),
        }
        if self.is_async:
            result["is_async"] = True
        if self.warnings:
            result["warnings"] = [str(w) for w in self.warnings]
        return result
