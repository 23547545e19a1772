"""Metadata models written into containers as TOML files."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field

from dockhand.errors import MetadataEncodeError


class RunImageMetadata(BaseModel):
    """Run image a build should use, with optional registry mirrors."""

    model_config = ConfigDict(populate_by_name=True)

    image: str
    mirrors: list[str] = Field(default_factory=list)


class StackMetadata(BaseModel):
    """Contents of ``stack.toml``."""

    model_config = ConfigDict(populate_by_name=True)

    run_image: RunImageMetadata = Field(alias="run-image")


def encode_toml(value: BaseModel | Mapping[str, Any]) -> bytes:
    """Serialize a model or mapping to TOML.

    Pydantic models are dumped by alias with unset optionals dropped.

    Raises:
        MetadataEncodeError: If the value has no TOML representation.
    """
    if isinstance(value, BaseModel):
        data = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    elif isinstance(value, Mapping):
        data = dict(value)
    else:
        raise MetadataEncodeError(
            f"cannot encode {type(value).__name__} as TOML",
            operation="marshal_metadata",
        )

    try:
        return tomli_w.dumps(data).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise MetadataEncodeError(
            f"marshaling metadata: {e}",
            operation="marshal_metadata",
        ) from e
