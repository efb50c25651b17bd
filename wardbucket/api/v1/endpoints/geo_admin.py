"""
Admin geo endpoints - manage the PNG / ABG / MKA hierarchy (ROOT only)
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from wardbucket.core.database import get_db
from wardbucket.core.security import Principal
from wardbucket.api.deps import require_root
from wardbucket.schemas import (
    GeoDeleteResponse,
    GeoForestResponse,
    GeoNode,
    GeoNodeCreate,
    GeoNodeDelete,
    GeoNodeMove,
    GeoNodeResponse,
    GeoNodeUpdate,
    NodeMovement,
)
from wardbucket.services.geo_tree import geo_tree_service
from wardbucket.services.tree_assembler import assemble_forest

router = APIRouter()


@router.post("/add", response_model=GeoNodeResponse, status_code=status.HTTP_201_CREATED)
async def add_node(
    payload: GeoNodeCreate,
    _root: Principal = Depends(require_root),
    db: AsyncSession = Depends(get_db)
):
    """Create a node under a parent, or at the top of a structure when parentId is omitted"""
    node = await geo_tree_service.add(
        db,
        name=payload.name,
        type=payload.type,
        code=payload.code,
        parent_id=payload.parent_id,
        structure=payload.region.value if payload.region else None,
    )
    response = GeoNodeResponse(
        message="Node created successfully",
        node=GeoNode.from_record(node.kind, node.record),
    )
    await db.commit()
    return response


@router.put("/update", response_model=GeoNodeResponse)
async def update_node(
    payload: GeoNodeUpdate,
    _root: Principal = Depends(require_root),
    db: AsyncSession = Depends(get_db)
):
    """Rename a node; descendant paths follow"""
    node = await geo_tree_service.update(db, payload.id, name=payload.name, code=payload.code)
    response = GeoNodeResponse(
        message="Node updated successfully",
        node=GeoNode.from_record(node.kind, node.record),
    )
    await db.commit()
    return response


@router.delete("/delete", response_model=GeoDeleteResponse)
async def delete_node(
    payload: GeoNodeDelete,
    _root: Principal = Depends(require_root),
    db: AsyncSession = Depends(get_db)
):
    """Delete a node (refused while it has children unless cascade is set)"""
    deleted = await geo_tree_service.delete(db, payload.id, cascade=payload.cascade)
    await db.commit()
    return GeoDeleteResponse(message="Node deleted successfully", deleted=deleted)


@router.put("/move", response_model=GeoNodeResponse)
async def move_node(
    payload: GeoNodeMove,
    root: Principal = Depends(require_root),
    db: AsyncSession = Depends(get_db)
):
    """Re-attach a node under a new parent and record the move"""
    node = await geo_tree_service.move(db, payload.node_id, payload.new_parent_id, root)
    response = GeoNodeResponse(
        message="Node moved successfully",
        node=GeoNode.from_record(node.kind, node.record),
    )
    await db.commit()
    return response


@router.get("/all-locations", response_model=GeoForestResponse)
async def list_all_locations(
    _root: Principal = Depends(require_root),
    db: AsyncSession = Depends(get_db)
):
    """Full forest of geo nodes with nested children"""
    return GeoForestResponse(locations=await assemble_forest(db))


@router.get("/history/{node_id}", response_model=List[NodeMovement])
async def node_history(
    node_id: UUID,
    _root: Principal = Depends(require_root),
    db: AsyncSession = Depends(get_db)
):
    """Movement history of a node, newest first"""
    rows = await geo_tree_service.history(db, node_id)
    return [NodeMovement.model_validate(row) for row in rows]
