# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Cached question/answer records and engine lifecycle states."""

import json
import math
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import CorruptRecord


class CacheState(str, Enum):
    """Lifecycle of a CacheEngine's in-memory index."""

    EMPTY = "empty"  # no index built in this process
    LOADING = "loading"  # rebuilding the index from the record store
    READY = "ready"


def now_millis() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def coerce_embedding(value: Any) -> list[float]:
    """Normalize a stored embedding into an ordered list of floats.

    Accepts the shapes older writers produced besides a plain list:
    a JSON-encoded string, a comma-separated string, or an index-keyed
    mapping such as {"0": 0.1, "1": 0.2} (typed arrays serialized as objects).
    """
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("[") or text.startswith("{"):
            value = json.loads(text)
        else:
            value = [part for part in text.split(",") if part.strip()]

    if isinstance(value, dict):
        try:
            ordered = sorted(value.items(), key=lambda item: int(item[0]))
        except (TypeError, ValueError) as e:
            raise ValueError(f"embedding mapping has non-integer keys: {e}") from e
        value = [v for _, v in ordered]

    if not isinstance(value, (list, tuple)):
        # numpy arrays and other iterables
        try:
            value = list(value)
        except TypeError as e:
            raise ValueError(f"embedding is not a sequence: {type(value).__name__}") from e

    try:
        floats = [float(v) for v in value]
    except (TypeError, ValueError) as e:
        raise ValueError(f"embedding has non-numeric components: {e}") from e
    if any(not math.isfinite(v) for v in floats):
        raise ValueError("embedding contains non-finite values")
    return floats


class EmbeddingRecord(BaseModel):
    """One cached question/answer pair.

    Attributes:
        id: Monotonic id assigned by the CacheEngine, never reused
        query: Original natural-language text
        embedding: Fixed-length vector for the query
        response: Cached answer, served verbatim on a hit
        timestamp: Creation time in epoch milliseconds (informational)
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="Record id")
    query: str = Field(..., description="Original query text")
    embedding: list[float] = Field(..., min_length=1, description="Query embedding")
    response: str = Field(..., description="Cached response text")
    timestamp: int = Field(default_factory=now_millis, description="Epoch millis")

    @field_validator("embedding", mode="before")
    @classmethod
    def normalize_embedding(cls, v: Any) -> list[float]:
        """Coerce serialized embeddings back into a float list."""
        if v is None:
            raise ValueError("embedding is missing")
        return coerce_embedding(v)

    @property
    def dimension(self) -> int:
        return len(self.embedding)

    def to_json(self) -> str:
        """Serialize for the record store."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str | bytes, record_id: Any = None) -> "EmbeddingRecord":
        """Decode a stored payload, raising CorruptRecord on bad data."""
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            raise CorruptRecord(
                f"Stored record {record_id} failed to decode: {e.error_count()} error(s)",
                record_id=record_id,
            ) from e
