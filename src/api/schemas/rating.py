"""
Pydantic v2 schemas for order ratings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateRatingRequest(BaseModel):
    rating_value: int = Field(ge=1, le=5, strict=True, description="Stars, 1..5")
    review: Optional[str] = Field(default=None, max_length=2000)


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rating_value: int
    review: Optional[str] = None
    created_at: datetime
