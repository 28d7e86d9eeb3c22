"""Pydantic schemas for admin endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ExpirationTriggerRequest(BaseModel):
    """Body of a manual expiration trigger. An empty body is allowed."""

    reason: str | None = Field(
        None,
        min_length=1,
        max_length=100,
        description="Free-text run reason, defaults to manual-admin-trigger",
    )

    model_config = ConfigDict(extra="forbid")
