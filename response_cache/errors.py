# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Response cache error codes and exception classes.

Every failure raised by the cache core carries a machine-readable code,
a human-readable message and optional debugging details:

```json
{
  "error": {
    "code": "DIMENSION_MISMATCH",
    "message": "Expected embedding of length 384, got 1536",
    "details": {"expected": 384, "actual": 1536}
  }
}
```
"""

from enum import Enum
from typing import Any


class CacheErrorCode(str, Enum):
    """Standard cache error codes."""

    # Caller errors
    DIMENSION_MISMATCH = "DIMENSION_MISMATCH"
    DUPLICATE_RECORD_ID = "DUPLICATE_RECORD_ID"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Durable storage consistency
    CORRUPT_RECORD = "CORRUPT_RECORD"

    # Index lifecycle
    UNINITIALIZED_INDEX = "UNINITIALIZED_INDEX"
    INDEX_ALREADY_INITIALIZED = "INDEX_ALREADY_INITIALIZED"

    # External collaborators
    PROVIDER_ERROR = "PROVIDER_ERROR"


class CacheError(Exception):
    """Base exception for response cache errors.

    Usage:
        raise CacheError(
            code=CacheErrorCode.CORRUPT_RECORD,
            message=f"Record {record_id} has no embedding",
            details={"record_id": record_id},
        )
    """

    def __init__(
        self,
        code: CacheErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        """Initialize cache error.

        Args:
            code: Error code (CacheErrorCode enum or string)
            message: Human-readable error message
            details: Additional context for debugging
        """
        self.code = code if isinstance(code, CacheErrorCode) else CacheErrorCode(code)
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


# =============================================================================
# Convenience Exception Classes


class DimensionMismatch(CacheError):
    """Vector length disagrees with the collection's fixed dimension."""

    def __init__(self, expected: int, actual: int, operation: str = "store"):
        super().__init__(
            code=CacheErrorCode.DIMENSION_MISMATCH,
            message=f"Invalid embedding size for {operation}. Expected {expected}, but got {actual}.",
            details={"expected": expected, "actual": actual, "operation": operation},
        )
        self.expected = expected
        self.actual = actual


class CorruptRecord(CacheError):
    """A stored record cannot be decoded into a well-formed embedding."""

    def __init__(self, message: str, record_id: Any = None):
        super().__init__(
            code=CacheErrorCode.CORRUPT_RECORD,
            message=message,
            details={"record_id": record_id},
        )
        self.record_id = record_id


class ProviderError(CacheError):
    """An embedding or generation provider call failed."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        details: dict[str, Any] = {"provider": provider}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(code=CacheErrorCode.PROVIDER_ERROR, message=message, details=details)
        self.provider = provider
        self.status_code = status_code


class UninitializedIndex(CacheError):
    """The vector index was used before initialize()."""

    def __init__(self, operation: str):
        super().__init__(
            code=CacheErrorCode.UNINITIALIZED_INDEX,
            message=f"Vector index must be initialized before {operation}",
            details={"operation": operation},
        )


class IndexAlreadyInitialized(CacheError):
    """initialize() was called on an index that is already live."""

    def __init__(self) -> None:
        super().__init__(
            code=CacheErrorCode.INDEX_ALREADY_INITIALIZED,
            message="Vector index is already initialized; build a new instance instead",
        )


class DuplicateRecordId(CacheError):
    """The record id is already present in the vector index."""

    def __init__(self, record_id: int):
        super().__init__(
            code=CacheErrorCode.DUPLICATE_RECORD_ID,
            message=f"Record id {record_id} already exists in the vector index",
            details={"record_id": record_id},
        )
        self.record_id = record_id


class ConfigurationError(CacheError):
    """Settings are inconsistent or incomplete."""

    def __init__(self, message: str, setting: str | None = None):
        super().__init__(
            code=CacheErrorCode.CONFIGURATION_ERROR,
            message=message,
            details={"setting": setting} if setting else None,
        )
