"""Static resources served through ``resources/list`` and ``resources/read``."""

import json
from collections.abc import Mapping, Sequence
from typing import Any

import pydantic_core
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

JSON_MIME_TYPE = "application/json"
TEXT_MIME_TYPE = "text/plain"


def is_structured(value: Any) -> bool:
    if isinstance(value, str | bytes | bytearray):
        return False
    return isinstance(value, Mapping | Sequence | set | frozenset | BaseModel)


def canonical_json(value: Any) -> str:
    """Compact JSON text with non-ASCII characters kept and key order preserved."""
    return json.dumps(
        pydantic_core.to_jsonable_python(value, fallback=str),
        ensure_ascii=False,
        separators=(",", ":"),
    )


class Resource(BaseModel):
    """A registered value addressable by URI."""

    model_config = ConfigDict(validate_default=True, arbitrary_types_allowed=True)

    uri: str = Field(description="URI of the resource")
    name: str | None = Field(description="Name of the resource", default=None)
    description: str = Field(description="Description of the resource", default="")
    value: Any = Field(default=None, exclude=True, description="The stored value")
    mime_type: str | None = Field(default=None, description="MIME type of the resource content")

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, uri: str) -> str:
        if not uri:
            raise ValueError("Resource uri must not be empty")
        return uri

    @field_validator("name", mode="before")
    @classmethod
    def set_default_name(cls, name: str | None, info: ValidationInfo) -> str:
        """Set default name from URI if not provided."""
        if name:
            return name
        if uri := info.data.get("uri"):
            return str(uri)
        raise ValueError("Either name or uri must be provided")

    @model_validator(mode="after")
    def infer_mime_type(self) -> "Resource":
        if self.mime_type is None:
            self.mime_type = JSON_MIME_TYPE if is_structured(self.value) else TEXT_MIME_TYPE
        return self

    def descriptor(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }

    def read(self) -> str:
        """Read the resource content as text."""
        if is_structured(self.value):
            return canonical_json(self.value)
        if isinstance(self.value, bytes | bytearray):
            return bytes(self.value).decode("utf-8", errors="replace")
        return str(self.value)
