"""
Pydantic schemas for API request/response validation
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from wardbucket.models import NodeKind, Structure


# Geo node requests (camelCase aliases match the admin UI payloads)
class GeoNodeCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    code: Optional[str] = Field(None, max_length=50)
    type: str = Field(..., min_length=1, description="Node type, e.g. province, district, village, section")
    parent_id: Optional[UUID] = Field(None, alias="parentId")
    region: Optional[Structure] = Field(None, description="Structure root used when parentId is omitted")

    @field_validator("region", mode="before")
    @classmethod
    def upper_region(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class GeoNodeUpdate(BaseModel):
    id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    code: Optional[str] = Field(None, max_length=50)


class GeoNodeDelete(BaseModel):
    id: UUID
    cascade: Optional[bool] = Field(None, description="Delete the whole subtree instead of refusing")


class GeoNodeMove(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_id: UUID = Field(..., alias="nodeId")
    new_parent_id: UUID = Field(..., alias="newParentId")


# Geo node responses
class GeoNode(BaseModel):
    id: UUID
    kind: NodeKind
    name: str
    code: Optional[str] = None
    path: str
    level: int
    order: int
    parent_id: Optional[UUID] = None

    @classmethod
    def from_record(cls, kind: NodeKind, record) -> "GeoNode":
        return cls(
            id=record.id,
            kind=kind,
            name=record.name,
            code=record.code,
            path=record.path,
            level=record.level,
            order=record.order,
            parent_id=record.parent_id,
        )


class GeoNodeResponse(BaseModel):
    message: str
    node: GeoNode


class GeoDeleteResponse(BaseModel):
    message: str
    deleted: int


class GeoTreeNode(GeoNode):
    """Node of the assembled forest; ``villages``/``sections`` are derived from live children."""
    children: List[GeoTreeNode] = Field(default_factory=list)
    villages: Optional[List[str]] = None
    sections: Optional[List[str]] = None


class GeoForestResponse(BaseModel):
    locations: List[GeoTreeNode]


class NodeMovement(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    node_id: UUID
    node_type: str
    old_parent_id: Optional[UUID] = None
    new_parent_id: UUID
    moved_by: UUID
    old_path: str
    new_path: str
    moved_at: datetime


# Public lookups
class ProvinceSummary(BaseModel):
    id: UUID
    name: str
    code: Optional[str] = None
    geo_region_id: UUID


class DistrictSummary(BaseModel):
    id: UUID
    name: str
    code: Optional[str] = None
    province_id: UUID


class ProvinceListResponse(BaseModel):
    provinces: List[ProvinceSummary]


class DistrictListResponse(BaseModel):
    districts: List[DistrictSummary]


# Error envelope
class ErrorDetail(BaseModel):
    code: str
    message: str
    request_id: str
    details: dict = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: ErrorDetail
