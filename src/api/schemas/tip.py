"""
Pydantic v2 schemas for the Tip API.

Covers:
- Create tip request (the customer's tip decision, ``0`` for no tip)
- Tip response output
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class CreateTipRequest(BaseModel):
    """Request body for recording a tip on an in-progress order."""

    amount: int = Field(
        ge=0,
        strict=True,
        description="Tip amount in whole currency units (0 means no tip)",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class TipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: int
    created_at: datetime
