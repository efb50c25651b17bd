"""
Public geo lookups - province and district pick lists
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from uuid import UUID

from wardbucket.core.database import get_db
from wardbucket.models import District, GeoRegion, Province, Structure
from wardbucket.schemas import (
    DistrictListResponse,
    DistrictSummary,
    ProvinceListResponse,
    ProvinceSummary,
)

router = APIRouter()


@router.get("/provinces", response_model=ProvinceListResponse)
async def list_provinces(db: AsyncSession = Depends(get_db)):
    """Provinces of the PNG structure, by name"""
    result = await db.execute(select(GeoRegion).where(GeoRegion.name == Structure.PNG.value))
    png_region = result.scalar_one_or_none()

    if not png_region:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="PNG region not found"
        )

    stmt = select(Province).where(Province.geo_region_id == png_region.id).order_by(Province.name)
    result = await db.execute(stmt)

    return ProvinceListResponse(provinces=[
        ProvinceSummary(id=p.id, name=p.name, code=p.code, geo_region_id=p.geo_region_id)
        for p in result.scalars().all()
    ])


@router.get("/districts", response_model=DistrictListResponse)
async def list_districts(
    province_id: UUID = Query(..., alias="provinceId"),
    db: AsyncSession = Depends(get_db)
):
    """Districts of one province, by name"""
    stmt = select(District).where(District.province_id == province_id).order_by(District.name)
    result = await db.execute(stmt)

    return DistrictListResponse(districts=[
        DistrictSummary(id=d.id, name=d.name, code=d.code, province_id=d.province_id)
        for d in result.scalars().all()
    ])
