"""Argument validation and normalisation against a ``ToolSchema``.

``validate_arguments`` never raises for bad input. It returns an
``ArgumentValidationResult`` carrying either the normalised argument map or
every violation found, so callers get the complete picture in one round-trip.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from cms_mcp.core.responses import ErrorCode, ToolResponse, validation_error
from cms_mcp.core.schema import ParameterKind, ParameterSpec, ToolSchema

logger = logging.getLogger(__name__)

MISSING = "missing"
WRONG_TYPE = "type"
NOT_IN_ENUM = "enum"
OUT_OF_RANGE = "range"
UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Violation:
    """One problem with one argument."""

    field: str
    reason: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "reason": self.reason, "message": self.message}


@dataclass
class ArgumentValidationResult:
    """Outcome of validating raw arguments.

    Attributes:
        arguments: Normalised arguments (declared keys only, defaults applied)
        violations: Every violation found, in schema order
    """

    arguments: Dict[str, Any] = field(default_factory=dict)
    violations: List[Violation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def missing_fields(self) -> List[str]:
        return [v.field for v in self.violations if v.reason == MISSING]

    @property
    def invalid_fields(self) -> List[str]:
        seen: List[str] = []
        for violation in self.violations:
            if violation.reason != MISSING and violation.field not in seen:
                seen.append(violation.field)
        return seen

    @property
    def fields(self) -> List[str]:
        return self.missing_fields + [f for f in self.invalid_fields if f not in self.missing_fields]

    @property
    def message(self) -> str:
        parts = []
        if self.missing_fields:
            parts.append("Missing required fields: " + ", ".join(self.missing_fields))
        if self.invalid_fields:
            label = "Invalid arguments: " if not parts else "invalid arguments: "
            parts.append(label + ", ".join(self.invalid_fields))
        return "; ".join(parts)

    def to_response(self) -> ToolResponse:
        """Aggregate every violation into a single validation envelope."""
        code = ErrorCode.MISSING_REQUIRED if not self.invalid_fields else ErrorCode.VALIDATION_ERROR
        return validation_error(
            self.message,
            error_code=code,
            details={
                "violations": [v.to_dict() for v in self.violations],
                "fields": self.fields,
            },
            remediation="Fix the listed arguments and retry.",
        )


def _is_absent(value: Any) -> bool:
    return value is None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _kind_matches(kind: ParameterKind, value: Any) -> bool:
    if kind is ParameterKind.STRING:
        return isinstance(value, str)
    if kind is ParameterKind.INTEGER:
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if kind is ParameterKind.BOOLEAN:
        return isinstance(value, bool)
    if kind is ParameterKind.ARRAY:
        return isinstance(value, (list, tuple))
    if kind is ParameterKind.OBJECT:
        return isinstance(value, Mapping)
    return False


def _check_value(path: str, spec: ParameterSpec, value: Any, violations: List[Violation]) -> Any:
    """Check ``value`` against ``spec``; returns the normalised value."""
    if not _kind_matches(spec.kind, value):
        violations.append(
            Violation(path, WRONG_TYPE, f"'{path}' must be of type {spec.kind.value}")
        )
        return value

    if spec.kind is ParameterKind.INTEGER:
        value = int(value)
        if spec.minimum is not None and value < spec.minimum:
            violations.append(Violation(path, OUT_OF_RANGE, f"'{path}' must be >= {spec.minimum}"))
        if spec.maximum is not None and value > spec.maximum:
            violations.append(Violation(path, OUT_OF_RANGE, f"'{path}' must be <= {spec.maximum}"))

    if spec.enum is not None and value not in spec.enum:
        allowed = ", ".join(str(option) for option in spec.enum)
        violations.append(Violation(path, NOT_IN_ENUM, f"'{path}' must be one of: {allowed}"))

    if spec.kind is ParameterKind.ARRAY and spec.item_spec is not None:
        value = [
            _check_value(f"{path}[{index}]", spec.item_spec, item, violations)
            for index, item in enumerate(value)
        ]

    if spec.kind is ParameterKind.OBJECT and spec.properties is not None:
        normalised = dict(value)
        for name in spec.properties:
            if name in spec.required_properties and _is_blank(value.get(name)):
                violations.append(
                    Violation(f"{path}.{name}", MISSING, f"'{path}.{name}' is required")
                )
        for name, sub_value in value.items():
            sub_spec = spec.properties.get(name)
            if sub_spec is None:
                if not spec.additional_properties:
                    violations.append(
                        Violation(f"{path}.{name}", UNEXPECTED, f"'{path}.{name}' is not allowed")
                    )
                continue
            if sub_value is not None:
                normalised[name] = _check_value(f"{path}.{name}", sub_spec, sub_value, violations)
        value = normalised

    return value


def validate_arguments(schema: ToolSchema, raw: Optional[Mapping[str, Any]]) -> ArgumentValidationResult:
    """Validate and normalise ``raw`` against ``schema``.

    - Every missing required parameter is reported (no short-circuit).
      ``None`` and blank strings count as missing.
    - Present parameters are type- and enum-checked.
    - Defaults fill absent optional parameters.
    - Keys the schema does not declare are dropped.
    """
    result = ArgumentValidationResult()

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        result.violations.append(
            Violation("arguments", WRONG_TYPE, "Arguments must be a JSON object")
        )
        return result

    for name, spec in schema.properties.items():
        value = raw.get(name)
        if name in schema.required:
            if _is_blank(value):
                result.violations.append(Violation(name, MISSING, f"'{name}' is required"))
                continue
        elif _is_absent(value):
            if spec.has_default:
                result.arguments[name] = copy.deepcopy(spec.default)
            continue
        result.arguments[name] = _check_value(name, spec, value, result.violations)

    ignored = sorted(set(raw) - set(schema.properties))
    if ignored:
        logger.debug("Ignoring undeclared arguments: %s", ", ".join(map(str, ignored)))

    return result
