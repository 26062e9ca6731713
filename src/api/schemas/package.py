"""
Pydantic v2 schemas for the service package catalog.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class PackageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: int
    estimated_duration: int


class PackageListOut(BaseModel):
    items: list[PackageOut]
