"""Pydantic schemas for API request/response validation.

The ingest response reuses the engine's tagged IngestResult union, so the
``kind`` field discriminates the JSON body exactly as it does in Python.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.orchestrator.models.ingest import IngestResult


class IngestRequest(BaseModel):
    """Schema for one inbound customer message."""

    tenant_id: str = Field(..., min_length=1, max_length=64, description="Tenant identifier")
    customer_key: str = Field(
        ..., min_length=1, max_length=64, description="Opaque customer identity"
    )
    text: str = Field(..., min_length=1, description="Message body")
    message_id: Optional[str] = Field(
        default=None, max_length=128, description="Channel message id, used for dedupe"
    )
    timestamp: Optional[datetime] = Field(
        default=None, description="Message time; defaults to receipt time"
    )
    forced_active_order_id: Optional[str] = Field(
        default=None, description="Pin linking and changes to this order"
    )
    edited: bool = Field(
        default=False, description="Message is an edit of an earlier message_id"
    )


class IngestResponse(BaseModel):
    """Schema wrapping the engine decision."""

    result: IngestResult


class HealthResponse(BaseModel):
    """Schema for the health endpoint."""

    status: str
    version: str
    uptime_seconds: int
    database: str
