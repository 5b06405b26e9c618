"""
Parameter Schemas

This module provides the validator capability used for tool parameters and prompt arguments. Schemas are thin wrappers
around pydantic models: they validate and coerce an incoming payload and render the JSON Schema advertised in listings.

The two shapes the rest of the package distinguishes are:
- AnySchema, which accepts any payload unchanged
- ModelSchema, which validates a payload against named, typed fields
"""

from abc import ABC, abstractmethod
from typing import Any

import pydantic


class Schema(ABC):
    """Validator for the single argument object passed to an operation method."""

    @abstractmethod
    def parse(self, value: Any) -> Any:
        """
        Validate and coerce a payload.

        Args:
            value: The raw payload received from the client

        Returns:
            The value to pass to the operation method

        Raises:
            pydantic.ValidationError: If the payload does not match the schema
        """

    @abstractmethod
    def json_schema(self) -> dict[str, Any]:
        """Render this schema as JSON Schema."""

    @property
    def field_names(self) -> list[str]:
        return []


class AnySchema(Schema):
    """Accepts any payload and passes it through unmodified."""

    def parse(self, value: Any) -> Any:
        return value

    def json_schema(self) -> dict[str, Any]:
        return {"type": "object"}

    def __repr__(self) -> str:
        return "AnySchema()"


ANY_SCHEMA = AnySchema()
"""Shared accept-anything schema, the default for tools without declared or inferred parameters"""


class ModelSchema(Schema):
    """
    Validates payloads against a pydantic model.

    Attributes:
        model: The pydantic model class holding the fields
        as_dict: Whether parse() returns a plain dict instead of a model instance. Used for models the user never
                 named, such as inferred schemas and field mappings.
    """

    model: type[pydantic.BaseModel]
    as_dict: bool

    def __init__(self, model: type[pydantic.BaseModel], as_dict: bool = False) -> None:
        self.model = model
        self.as_dict = as_dict

    @property
    def field_names(self) -> list[str]:
        return list(self.model.model_fields)

    def parse(self, value: Any) -> Any:
        # A model without fields places no constraint on the payload
        if not self.model.model_fields:
            return value
        parsed = self.model.model_validate(value)
        return parsed.model_dump() if self.as_dict else parsed

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema()

    def __repr__(self) -> str:
        return f"ModelSchema({self.model.__name__}, as_dict={self.as_dict})"


def as_schema(value: Any, model_name: str = "Arguments") -> Schema | None:
    """
    Convert an explicit decorator argument into a Schema.

    Args:
        value: None, a Schema, a pydantic model class, or a mapping of field names to types
        model_name: Name of the generated model when value is a field mapping

    Returns:
        The schema, or None when value is None

    Raises:
        TypeError: If value is of an unsupported kind
    """
    if value is None or isinstance(value, Schema):
        return value
    if isinstance(value, type) and issubclass(value, pydantic.BaseModel):
        return ModelSchema(value)
    if isinstance(value, dict):
        fields: dict[str, Any] = {field: (annotation, ...) for field, annotation in value.items()}
        return ModelSchema(pydantic.create_model(model_name, **fields), as_dict=True)
    raise TypeError(f"Unsupported schema {value!r}: expected a pydantic model class, a Schema or a dict of field types")
