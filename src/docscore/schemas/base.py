"""Base schema classes."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SchemaBase(BaseModel):
    """Base class for immutable value schemas."""

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
    )


class WireSchema(BaseModel):
    """Base class for schemas exchanged with observers and HTTP clients.

    Field names are snake_case in Python and camelCase on the wire;
    both spellings are accepted on input.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)
