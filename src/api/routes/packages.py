"""
Service Package API Routes
==========================

Read-only catalog of bookable cleaning packages.

Routes:
  GET /api/v1/packages  -- Active packages, cheapest first
"""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import select

from src.api.deps import DBSession
from src.api.schemas.package import PackageListOut, PackageOut
from src.models.package import ServicePackage

router = APIRouter(prefix="/packages", tags=["Packages"])


@router.get(
    "",
    response_model=PackageListOut,
    summary="List active service packages",
)
async def list_packages(db: DBSession) -> PackageListOut:
    stmt = (
        select(ServicePackage)
        .where(ServicePackage.is_active.is_(True))
        .order_by(ServicePackage.price.asc(), ServicePackage.id.asc())
    )
    packages = (await db.execute(stmt)).scalars().all()
    return PackageListOut(items=[PackageOut.model_validate(p) for p in packages])
