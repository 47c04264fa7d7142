"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from pydantic import BaseModel, Field


class UnreadCountResponse(BaseModel):
    """Unread counter returned by badge endpoints."""

    count: int = Field(..., ge=0, description="Number of unread messages.")


class StatusResponse(BaseModel):
    """Plain acknowledgement for mutations without a body."""

    status: str
