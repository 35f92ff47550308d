"""Shared Pydantic schemas: camelCase wire models and response envelopes."""
from __future__ import annotations

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Base model exchanged with clients as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(BaseModel, Generic[DataT]):
    """Success envelope wrapping every endpoint payload."""

    success: Literal[True] = True
    data: DataT


class ErrorBody(BaseModel):
    code: str = Field(..., description="Stable machine-readable error code")
    message: str = Field(..., description="Human-readable explanation")


class ErrorResponse(BaseModel):
    """Failure envelope rendered by the application exception handlers."""

    success: Literal[False] = False
    error: ErrorBody


def strip_string(value: object) -> object:
    """Trim surrounding whitespace from string input; other values pass through."""
    return value.strip() if isinstance(value, str) else value
