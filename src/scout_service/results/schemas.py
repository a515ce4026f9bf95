"""Strict Pydantic schemas for result-processing tool inputs and outputs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid")


class SendEmailInput(StrictModel):
    to: str = Field(min_length=3, description="Recipient email address")
    subject: str = Field(description="Email subject line")
    html: str = Field(description="HTML email body")


class SendEmailOutput(StrictModel):
    delivered: bool
    status_code: int
    response: Any = None
    payment: dict[str, Any] | None = None
