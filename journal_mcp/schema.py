"""
Argument schemas for tools and prompts.

This module is the validation layer: each tool or prompt declares its
arguments as a mapping of :class:`Arg` nodes. An :class:`ArgsSchema` compiles
those nodes into a pydantic model used to validate untyped request payloads,
and serializes them to JSON Schema for ``tools/list`` introspection.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model
from pydantic_core import PydanticUndefined

from journal_mcp.error_handling.exceptions import SchemaValidationError

logger = logging.getLogger(__name__)

_MISSING = PydanticUndefined

_JSON_TYPES = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}


@dataclass
class Arg:
    """A single argument schema node."""
    type: str
    description: Optional[str] = None
    optional: bool = False
    nullable: bool = False
    default: Any = _MISSING
    items: Optional["Arg"] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Optional[List[Any]] = None

    def __post_init__(self):
        if self.type not in _JSON_TYPES and self.type != "array":
            raise ValueError(f"Unsupported argument type: {self.type}")
        if self.type == "array" and self.items is None:
            raise ValueError("Array arguments need an items schema")
        if self.has_default:
            self.optional = True

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    @property
    def required(self) -> bool:
        return not self.optional

    def annotation(self) -> Any:
        """Python type pydantic validates this node against."""
        if self.type == "array":
            base: Any = List[self.items.annotation()]
        elif self.enum is not None:
            base = Literal[tuple(self.enum)]
        else:
            base = _JSON_TYPES[self.type]
        if self.nullable:
            base = Optional[base]
        return base

    def field_info(self) -> Any:
        kwargs: Dict[str, Any] = {"description": self.description}
        if self.minimum is not None:
            kwargs["ge"] = self.minimum
        if self.maximum is not None:
            kwargs["le"] = self.maximum
        if self.has_default:
            kwargs["default"] = self.default
        elif self.optional:
            kwargs["default"] = None
        return Field(**kwargs)

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {}
        schema["type"] = [self.type, "null"] if self.nullable else self.type
        if self.type == "array":
            schema["items"] = self.items.to_json_schema()
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        if self.has_default:
            schema["default"] = self.default
        if self.description:
            schema["description"] = self.description
        return schema


def string(description: Optional[str] = None, **kwargs) -> Arg:
    return Arg("string", description, **kwargs)


def number(description: Optional[str] = None, **kwargs) -> Arg:
    return Arg("number", description, **kwargs)


def integer(description: Optional[str] = None, **kwargs) -> Arg:
    return Arg("integer", description, **kwargs)


def boolean(description: Optional[str] = None, **kwargs) -> Arg:
    return Arg("boolean", description, **kwargs)


def array(items: Arg, description: Optional[str] = None, **kwargs) -> Arg:
    return Arg("array", description, items=items, **kwargs)


def flag(description: Optional[str] = None, **kwargs) -> Arg:
    """A 0/1 integer, the storage representation of a boolean column."""
    return Arg("integer", description, minimum=0, maximum=1, **kwargs)


class ArgsSchema:
    """
    Compiled argument schema.

    Validation is strict: strings are never coerced into numbers and booleans
    are not accepted where numbers are expected. Unknown keys are dropped.
    """

    def __init__(self, fields: Optional[Mapping[str, Arg]] = None, name: str = "Arguments"):
        self.fields: Dict[str, Arg] = dict(fields or {})
        self.name = name
        self._model = self._build_model()

    def _build_model(self) -> Type[BaseModel]:
        definitions: Dict[str, Tuple[Any, Any]] = {
            key: (arg.annotation(), arg.field_info())
            for key, arg in self.fields.items()
        }
        model_name = "".join(part.capitalize() for part in self.name.replace("-", "_").split("_")) or "Arguments"
        return create_model(
            model_name,
            __config__=ConfigDict(strict=True, extra="ignore"),
            **definitions,
        )

    def validate(self, raw: Any) -> Dict[str, Any]:
        """
        Validate and coerce a raw argument payload.

        Args:
            raw: The untyped ``arguments`` object from the request

        Returns:
            Dict[str, Any]: Validated values. Optional fields that were not
            supplied are absent; fields with defaults are filled in.

        Raises:
            SchemaValidationError: If the payload does not match the schema
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise SchemaValidationError(
                f"Invalid arguments for {self.name}: expected an object",
                errors=[{"field": "", "message": "Input should be an object"}],
            )
        try:
            instance = self._model.model_validate(raw)
        except ValidationError as e:
            errors = [
                {
                    "field": ".".join(str(part) for part in err["loc"]),
                    "message": err["msg"],
                }
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            raise SchemaValidationError(f"Invalid arguments for {self.name}: {summary}", errors=errors)

        values = instance.model_dump()
        supplied = instance.model_fields_set
        return {
            key: value
            for key, value in values.items()
            if key in supplied or self.fields[key].has_default
        }

    def to_json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {key: arg.to_json_schema() for key, arg in self.fields.items()},
            "required": [key for key, arg in self.fields.items() if arg.required],
            "additionalProperties": False,
        }

    def to_prompt_arguments(self) -> List[Dict[str, Any]]:
        """Prompt argument listing as used by prompts/list."""
        arguments = []
        for key, arg in self.fields.items():
            entry: Dict[str, Any] = {"name": key, "required": arg.required}
            if arg.description:
                entry["description"] = arg.description
            arguments.append(entry)
        return arguments

    def __contains__(self, key: str) -> bool:
        return key in self.fields
