# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Result values of the protocol operations.
Expected failures (unknown ids, expiry, replay, ...) are returned, not raised.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class ErrorType(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"
    INVALID_AUTH_RESPONSE_PAYLOAD = "INVALID_AUTH_RESPONSE_PAYLOAD"
    REQUEST_ID_IS_NOT_FOUND = "REQUEST_ID_IS_NOT_FOUND"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    # Use case level
    CONFLICT = "CONFLICT"
    INVALID_PARAMETER = "INVALID_PARAMETER"


class OperationError(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: ErrorType
    subject: str | None = None
    identifier: str | None = None
    message: str | None = None
    cause: Any = None


class Result(BaseModel, Generic[T]):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    payload: T | None = None
    error: OperationError | None = None

    @classmethod
    def success(cls, payload: T = None) -> "Result[T]":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, type: ErrorType, subject: str | None = None, identifier: str | None = None, message: str | None = None, cause: Any = None) -> "Result[T]":
        return cls(ok=False, error=OperationError(type=type, subject=subject, identifier=identifier, message=message, cause=cause))

    @classmethod
    def of_error(cls, error: OperationError) -> "Result[T]":
        return cls(ok=False, error=error)
