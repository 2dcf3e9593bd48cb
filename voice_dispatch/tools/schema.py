import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from voice_dispatch.core.errors import (
    ArgumentValidationError,
    MissingArgumentError,
    SchemaError,
)

KINDS = ("string", "integer", "number", "boolean", "array", "object")
NUMERIC_KINDS = ("integer", "number")

_INT_PATTERN = re.compile(r"^[+-]?\d+$")
_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"


NO_DEFAULT: Any = _NoDefault()


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    kind: str
    description: str | None = None
    required: bool = True
    default: Any = NO_DEFAULT
    nullable: bool = False
    enum: tuple[str, ...] | None = None
    items: Mapping[str, Any] | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    def to_wire_property(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.kind}
        if self.description:
            prop["description"] = self.description
        if self.enum is not None:
            prop["enum"] = list(self.enum)
        if self.has_default:
            prop["default"] = copy.deepcopy(self.default)
        if self.minimum is not None:
            prop["minimum"] = self.minimum
        if self.maximum is not None:
            prop["maximum"] = self.maximum
        if self.items is not None:
            prop["items"] = copy.deepcopy(dict(self.items))
        return prop


def _coerce_value(kind: str, value: Any, items: Mapping[str, Any] | None = None) -> Any:
    """
    Convert a JSON-decoded value into `kind`.
    Raises ValueError with a short reason when the value cannot be read as `kind`.
    """
    if kind == "string":
        if isinstance(value, str):
            return value
        raise ValueError(f"expected a string, got {type(value).__name__}")

    if kind == "integer":
        if isinstance(value, bool):
            raise ValueError("expected an integer, got a boolean")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and _INT_PATTERN.match(value.strip()):
            return int(value.strip())
        raise ValueError(f"expected an integer, got {value!r}")

    if kind == "number":
        if isinstance(value, bool):
            raise ValueError("expected a number, got a boolean")
        if isinstance(value, int):
            return value
        number = None
        if isinstance(value, float):
            number = value
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                pass
        if number is None:
            raise ValueError(f"expected a number, got {value!r}")
        if not math.isfinite(number):
            raise ValueError(f"expected a finite number, got {value!r}")
        return number

    if kind == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValueError(f"expected a boolean, got {value!r}")

    if kind == "array":
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            raise ValueError(f"expected an array, got {type(value).__name__}")
        element_kind = items.get("type") if items else None
        if element_kind not in KINDS:
            return list(value)
        result = []
        for index, element in enumerate(value):
            try:
                result.append(_coerce_value(element_kind, element, items.get("items")))
            except ValueError as e:
                raise ValueError(f"element {index}: {e}") from e
        return result

    if kind == "object":
        if isinstance(value, Mapping):
            return dict(value)
        raise ValueError(f"expected an object, got {type(value).__name__}")

    raise ValueError(f"unknown kind '{kind}'")


class ToolSchema:
    """
    Ordered parameter declarations for one tool.

    Declaration methods return the schema so calls can be chained:

        schema = (
            ToolSchema()
            .string("title", description="The todo title")
            .string("priority", enum=["low", "medium", "high"], default="medium")
        )
    """

    def __init__(self) -> None:
        self._params: dict[str, ParameterSpec] = {}
        self._frozen = False

    def declare(
        self,
        name: str,
        kind: str,
        description: str | None = None,
        *,
        enum: Sequence[str] | None = None,
        default: Any = NO_DEFAULT,
        minimum: int | float | None = None,
        maximum: int | float | None = None,
        items: Mapping[str, Any] | None = None,
        nullable: bool = False,
    ) -> "ToolSchema":
        """Add one parameter. Required iff it has no default and is not nullable."""
        if self._frozen:
            raise SchemaError(f"Cannot declare '{name}': schema is frozen")
        if not name or not isinstance(name, str):
            raise SchemaError(f"Invalid parameter name: {name!r}")
        if name in self._params:
            raise SchemaError(f"Parameter already declared: {name}")
        if kind not in KINDS:
            raise SchemaError(f"Unknown kind '{kind}' for parameter '{name}'. Allowed: {list(KINDS)}")

        enum_values: tuple[str, ...] | None = None
        if enum is not None:
            if kind != "string":
                raise SchemaError(f"Parameter '{name}': enum requires kind 'string', got '{kind}'")
            enum_values = tuple(enum)
            if not enum_values:
                raise SchemaError(f"Parameter '{name}': enum must not be empty")
            if not all(isinstance(v, str) for v in enum_values):
                raise SchemaError(f"Parameter '{name}': enum values must be strings")

        if items is not None and kind != "array":
            raise SchemaError(f"Parameter '{name}': items only apply to arrays")
        if (minimum is not None or maximum is not None) and kind not in NUMERIC_KINDS:
            raise SchemaError(f"Parameter '{name}': minimum/maximum only apply to numeric kinds")
        if minimum is not None and maximum is not None and minimum > maximum:
            raise SchemaError(f"Parameter '{name}': minimum {minimum} exceeds maximum {maximum}")

        if default is not NO_DEFAULT:
            try:
                default = _coerce_value(kind, default, items)
            except ValueError as e:
                raise SchemaError(f"Parameter '{name}': invalid default: {e}") from e
            if enum_values is not None and default not in enum_values:
                raise SchemaError(
                    f"Parameter '{name}': default {default!r} is not one of {list(enum_values)}"
                )
            if minimum is not None and default < minimum:
                raise SchemaError(f"Parameter '{name}': default {default!r} is below minimum {minimum}")
            if maximum is not None and default > maximum:
                raise SchemaError(f"Parameter '{name}': default {default!r} is above maximum {maximum}")

        self._params[name] = ParameterSpec(
            name=name,
            kind=kind,
            description=description,
            required=default is NO_DEFAULT and not nullable,
            default=default,
            nullable=nullable,
            enum=enum_values,
            items=copy.deepcopy(dict(items)) if items is not None else None,
            minimum=minimum,
            maximum=maximum,
        )
        return self

    def declare_optional(
        self,
        name: str,
        kind: str,
        description: str | None = None,
        *,
        default: Any = NO_DEFAULT,
        **options: Any,
    ) -> "ToolSchema":
        """
        Declare a parameter the model may omit.
        With a default, the default is substituted when absent; without one the
        parameter is nullable and the handler receives None.
        """
        nullable = options.pop("nullable", False) or default is NO_DEFAULT
        return self.declare(name, kind, description, default=default, nullable=nullable, **options)

    def string(self, name: str, description: str | None = None, **options: Any) -> "ToolSchema":
        return self.declare(name, "string", description, **options)

    def integer(self, name: str, description: str | None = None, **options: Any) -> "ToolSchema":
        return self.declare(name, "integer", description, **options)

    def number(self, name: str, description: str | None = None, **options: Any) -> "ToolSchema":
        return self.declare(name, "number", description, **options)

    def boolean(self, name: str, description: str | None = None, **options: Any) -> "ToolSchema":
        return self.declare(name, "boolean", description, **options)

    def array(self, name: str, description: str | None = None, **options: Any) -> "ToolSchema":
        return self.declare(name, "array", description, **options)

    def object(self, name: str, description: str | None = None, **options: Any) -> "ToolSchema":
        return self.declare(name, "object", description, **options)

    def freeze(self) -> "ToolSchema":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def parameters(self) -> tuple[ParameterSpec, ...]:
        return tuple(self._params.values())

    @property
    def required_names(self) -> list[str]:
        return [p.name for p in self._params.values() if p.required]

    def __len__(self) -> int:
        return len(self._params)

    def __contains__(self, name: object) -> bool:
        return name in self._params

    def __getitem__(self, name: str) -> ParameterSpec:
        return self._params[name]

    def to_wire_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {p.name: p.to_wire_property() for p in self._params.values()},
            "required": self.required_names,
        }

    def coerce_arguments(self, raw: Mapping[str, Any] | None) -> dict[str, Any]:
        """
        Validate and convert a model-supplied argument map into handler kwargs.

        Absent or null values fall back to the default, then to None for
        nullable parameters; required parameters raise MissingArgumentError.
        Keys that are not declared are ignored.
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ArgumentValidationError(
                "", f"Arguments must be an object, got {type(raw).__name__}"
            )

        coerced: dict[str, Any] = {}
        for spec in self._params.values():
            value = raw.get(spec.name)
            if value is None:
                if spec.nullable and spec.name in raw:
                    coerced[spec.name] = None
                elif spec.has_default:
                    coerced[spec.name] = copy.deepcopy(spec.default)
                elif spec.nullable:
                    coerced[spec.name] = None
                else:
                    raise MissingArgumentError(
                        spec.name, f"Missing required argument '{spec.name}'"
                    )
                continue
            coerced[spec.name] = self._coerce_present(spec, value)
        return coerced

    @staticmethod
    def _coerce_present(spec: ParameterSpec, value: Any) -> Any:
        try:
            result = _coerce_value(spec.kind, value, spec.items)
        except ValueError as e:
            raise ArgumentValidationError(
                spec.name, f"Invalid value for argument '{spec.name}': {e}"
            ) from e

        if spec.enum is not None and result not in spec.enum:
            raise ArgumentValidationError(
                spec.name,
                f"Invalid value for argument '{spec.name}': {result!r} is not one of {list(spec.enum)}",
            )
        if spec.minimum is not None and result < spec.minimum:
            raise ArgumentValidationError(
                spec.name,
                f"Invalid value for argument '{spec.name}': {result!r} is below minimum {spec.minimum}",
            )
        if spec.maximum is not None and result > spec.maximum:
            raise ArgumentValidationError(
                spec.name,
                f"Invalid value for argument '{spec.name}': {result!r} is above maximum {spec.maximum}",
            )
        return result
