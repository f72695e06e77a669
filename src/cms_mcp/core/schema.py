"""Declarative input schemas for tools.

A ``ToolSchema`` describes the arguments an action accepts. Schemas are
built once at registration time with ``SchemaBuilder`` and never mutated.

Example:
    schema = (
        SchemaBuilder()
        .string("handle", "Unique role handle", required=True)
        .string("title", "Display title", required=True)
        .array("permissions", "Capabilities granted by the role", items="string")
        .build()
    )

Structural defects (an array without an item specification, an empty
description, a required name with no matching property) are reported by
``ToolSchema.defects()``; ``SchemaBuilder.build()`` raises
``SchemaDefinitionError`` for any of them and the tool registry refuses
schemas that still carry one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union


class SchemaDefinitionError(ValueError):
    """Raised when a schema is structurally invalid at build time."""

    def __init__(self, defects: Sequence[str]):
        self.defects = list(defects)
        super().__init__("Invalid tool schema: " + "; ".join(self.defects))


class ParameterKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


SCALAR_KINDS = frozenset({ParameterKind.STRING, ParameterKind.INTEGER, ParameterKind.BOOLEAN})


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"

    def __bool__(self) -> bool:
        return False


NO_DEFAULT: Any = _NoDefault()
"""Sentinel marking a parameter without a default value."""


@dataclass(frozen=True, eq=False)
class ParameterSpec:
    """Contract for one parameter.

    Attributes:
        kind: JSON type of the value
        description: Text shown to the calling agent; must be non-empty
        enum: Permitted scalar values, when constrained
        item_spec: Element contract; mandatory for arrays
        default: Value substituted when the parameter is absent
        properties: Declared sub-properties for objects
        required_properties: Sub-properties that must be present
        additional_properties: Whether undeclared object keys are accepted
        minimum: Inclusive lower bound for integers
        maximum: Inclusive upper bound for integers
    """

    kind: ParameterKind
    description: str
    enum: Optional[Tuple[Any, ...]] = None
    item_spec: Optional["ParameterSpec"] = None
    default: Any = NO_DEFAULT
    properties: Optional[Mapping[str, "ParameterSpec"]] = None
    required_properties: FrozenSet[str] = frozenset()
    additional_properties: bool = True
    minimum: Optional[int] = None
    maximum: Optional[int] = None

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    def defects(self, path: str) -> List[str]:
        """Structural problems with this parameter, prefixed by ``path``."""
        problems: List[str] = []
        if not isinstance(self.description, str) or not self.description.strip():
            problems.append(f"parameter '{path}' has an empty description")

        if self.enum is not None:
            if not self.enum:
                problems.append(f"parameter '{path}' declares an empty enum")
            elif self.kind not in SCALAR_KINDS:
                problems.append(f"parameter '{path}' declares an enum on a non-scalar kind")
            elif any(isinstance(value, (dict, list, tuple, set)) for value in self.enum):
                problems.append(f"parameter '{path}' enum values must be scalars")

        if self.kind is ParameterKind.ARRAY:
            if self.item_spec is None:
                problems.append(f"array parameter '{path}' must declare an item specification")
            else:
                problems.extend(self.item_spec.defects(f"{path}[]"))
        elif self.item_spec is not None:
            problems.append(f"parameter '{path}' declares items but is not an array")

        if self.properties is not None:
            if self.kind is not ParameterKind.OBJECT:
                problems.append(f"parameter '{path}' declares properties but is not an object")
            for name, spec in self.properties.items():
                problems.extend(spec.defects(f"{path}.{name}"))
            for name in sorted(self.required_properties - set(self.properties)):
                problems.append(f"parameter '{path}' requires undeclared property '{name}'")
        elif self.required_properties:
            problems.append(f"parameter '{path}' requires properties but declares none")

        return problems

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.kind.value, "description": self.description}
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.item_spec is not None:
            schema["items"] = self.item_spec.to_json_schema()
        if self.kind is ParameterKind.OBJECT:
            if self.properties is not None:
                schema["properties"] = {
                    name: spec.to_json_schema() for name, spec in self.properties.items()
                }
                if self.required_properties:
                    schema["required"] = [
                        name for name in self.properties if name in self.required_properties
                    ]
            schema["additionalProperties"] = self.additional_properties
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        if self.has_default:
            schema["default"] = self.default
        return schema


ItemsArg = Union[ParameterSpec, ParameterKind, str, None]


def param(kind: Union[ParameterKind, str], description: str, **options: Any) -> ParameterSpec:
    """Shorthand constructor for nested item and property specs."""
    options = dict(options)
    if "enum" in options and options["enum"] is not None:
        options["enum"] = tuple(options["enum"])
    if "properties" in options and options["properties"] is not None:
        options["properties"] = MappingProxyType(dict(options["properties"]))
    if "required_properties" in options:
        options["required_properties"] = frozenset(options["required_properties"])
    return ParameterSpec(kind=ParameterKind(kind), description=description, **options)


@dataclass(frozen=True, eq=False)
class ToolSchema:
    """Declared shape of an action's input."""

    properties: Mapping[str, ParameterSpec] = field(default_factory=lambda: MappingProxyType({}))
    required: FrozenSet[str] = frozenset()

    def defects(self) -> List[str]:
        problems: List[str] = []
        for name, spec in self.properties.items():
            problems.extend(spec.defects(name))
        for name in sorted(self.required - set(self.properties)):
            problems.append(f"required parameter '{name}' is not declared")
        return problems

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {name: spec.to_json_schema() for name, spec in self.properties.items()},
            "additionalProperties": True,
        }
        required = [name for name in self.properties if name in self.required]
        if required:
            schema["required"] = required
        return schema


class SchemaBuilder:
    """Fluent builder for ``ToolSchema``."""

    def __init__(self) -> None:
        self._properties: Dict[str, ParameterSpec] = {}
        self._required: List[str] = []

    def parameter(self, name: str, spec: ParameterSpec, *, required: bool = False) -> "SchemaBuilder":
        self._properties[name] = spec
        if required and name not in self._required:
            self._required.append(name)
        elif not required and name in self._required:
            self._required.remove(name)
        return self

    def string(
        self,
        name: str,
        description: str,
        *,
        required: bool = False,
        enum: Optional[Iterable[str]] = None,
        default: Any = NO_DEFAULT,
    ) -> "SchemaBuilder":
        spec = param(ParameterKind.STRING, description, enum=enum, default=default)
        return self.parameter(name, spec, required=required)

    def integer(
        self,
        name: str,
        description: str,
        *,
        required: bool = False,
        default: Any = NO_DEFAULT,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
    ) -> "SchemaBuilder":
        spec = param(
            ParameterKind.INTEGER,
            description,
            default=default,
            minimum=minimum,
            maximum=maximum,
        )
        return self.parameter(name, spec, required=required)

    def boolean(
        self,
        name: str,
        description: str,
        *,
        required: bool = False,
        default: Any = NO_DEFAULT,
    ) -> "SchemaBuilder":
        return self.parameter(
            name, param(ParameterKind.BOOLEAN, description, default=default), required=required
        )

    def array(
        self,
        name: str,
        description: str,
        *,
        items: ItemsArg = None,
        required: bool = False,
        default: Any = NO_DEFAULT,
    ) -> "SchemaBuilder":
        """Declare an array parameter; ``items`` is mandatory at build time."""
        if isinstance(items, (ParameterKind, str)):
            item_spec: Optional[ParameterSpec] = param(items, f"{name} item")
        else:
            item_spec = items
        spec = param(ParameterKind.ARRAY, description, item_spec=item_spec, default=default)
        return self.parameter(name, spec, required=required)

    def object(
        self,
        name: str,
        description: str,
        *,
        properties: Optional[Mapping[str, ParameterSpec]] = None,
        required_properties: Iterable[str] = (),
        additional_properties: bool = True,
        required: bool = False,
        default: Any = NO_DEFAULT,
    ) -> "SchemaBuilder":
        spec = param(
            ParameterKind.OBJECT,
            description,
            properties=properties,
            required_properties=required_properties,
            additional_properties=additional_properties,
            default=default,
        )
        return self.parameter(name, spec, required=required)

    def include(self, fragment: ToolSchema) -> "SchemaBuilder":
        """Merge a shared fragment into this schema."""
        for name, spec in fragment.properties.items():
            self.parameter(name, spec, required=name in fragment.required)
        return self

    def build(self) -> ToolSchema:
        schema = ToolSchema(
            properties=MappingProxyType(dict(self._properties)),
            required=frozenset(self._required),
        )
        defects = schema.defects()
        if defects:
            raise SchemaDefinitionError(defects)
        return schema


def merge_schemas(schemas: Iterable[ToolSchema], *, required: Iterable[str] = ()) -> ToolSchema:
    """Union of several schemas' properties.

    The first declaration of a name wins. Only names listed in ``required``
    stay required, since each source schema applies to a different action.
    """
    properties: Dict[str, ParameterSpec] = {}
    for schema in schemas:
        for name, spec in schema.properties.items():
            properties.setdefault(name, spec)
    return ToolSchema(
        properties=MappingProxyType(properties),
        required=frozenset(name for name in required if name in properties),
    )


# ---------------------------------------------------------------------------
# Shared fragments
# ---------------------------------------------------------------------------


def handle_fragment(description: str = "Unique handle of the resource", *, required: bool = True) -> ToolSchema:
    return SchemaBuilder().string("handle", description, required=required).build()


def pagination_fragment(*, default_limit: int = 50, max_limit: int = 1000) -> ToolSchema:
    return (
        SchemaBuilder()
        .integer(
            "limit",
            "Maximum number of items to return",
            default=default_limit,
            minimum=1,
            maximum=max_limit,
        )
        .integer("offset", "Number of items to skip", default=0, minimum=0)
        .build()
    )


def dry_run_fragment() -> ToolSchema:
    return (
        SchemaBuilder()
        .boolean("dry_run", "Preview the change without applying it", default=False)
        .build()
    )


def confirm_fragment() -> ToolSchema:
    return (
        SchemaBuilder()
        .boolean("confirm", "Confirm a destructive operation", default=False)
        .build()
    )


def site_fragment() -> ToolSchema:
    return SchemaBuilder().string("site", "Site handle for multi-site installs").build()


def data_fragment(description: str = "Field values keyed by field handle", *, required: bool = False) -> ToolSchema:
    return SchemaBuilder().object("data", description, required=required).build()
