"""
Record store for geo nodes, one interface parameterized by kind.

Every kind has its own table and parent column; this module hides that behind
find / find_by_name / create / update / delete keyed by ``NodeKind``.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wardbucket.core.exceptions import ConflictError
from wardbucket.models.geo import KIND_MODELS, GeoRegion, NodeKind

logger = logging.getLogger(__name__)


def model_for(kind):
    return KIND_MODELS[NodeKind(kind)]


def parent_field(kind, parent_kind) -> str:
    """Column on ``kind`` that references a parent of ``parent_kind``."""
    return model_for(kind).PARENT_FIELDS[NodeKind(parent_kind)]


class GeoNodeRepository:
    """Uniform CRUD over the per-kind tables bound to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(self, kind, node_id) -> Optional[Any]:
        return await self.db.get(model_for(kind), _as_uuid(node_id))

    async def find_by_name(self, kind, name: str, parent_kind, parent_id) -> Optional[Any]:
        """Lookup by the compound unique key (name, parent)."""
        model = model_for(kind)
        column = getattr(model, parent_field(kind, parent_kind))
        result = await self.db.execute(
            select(model).where(model.name == name, column == _as_uuid(parent_id))
        )
        return result.scalar_one_or_none()

    async def find_geo_region(self, name: str) -> Optional[GeoRegion]:
        result = await self.db.execute(select(GeoRegion).where(GeoRegion.name == name))
        return result.scalar_one_or_none()

    async def list_all(self, kind) -> List[Any]:
        model = model_for(kind)
        result = await self.db.execute(select(model))
        return list(result.scalars().all())

    async def children(self, parent_kind, parent_id) -> List[Any]:
        """Direct children of a node, across every kind that can reference it."""
        parent_kind = NodeKind(parent_kind)
        found = []
        for model in KIND_MODELS.values():
            field = getattr(model, "PARENT_FIELDS", {}).get(parent_kind)
            if field is None:
                continue
            result = await self.db.execute(
                select(model).where(getattr(model, field) == _as_uuid(parent_id))
            )
            found.extend(result.scalars().all())
        return found

    async def descendants(self, kinds, path: str) -> List[Any]:
        """Records of ``kinds`` whose path lies strictly under ``path``."""
        found = []
        for kind in kinds:
            model = model_for(kind)
            result = await self.db.execute(
                select(model)
                .where(model.path.startswith(path + "/", autoescape=True))
                .execution_options(populate_existing=True)
            )
            found.extend(result.scalars().all())
        return found

    async def create(self, kind, **fields) -> Any:
        record = model_for(kind)(**fields)
        self.db.add(record)
        await self.flush()
        return record

    async def update(self, record, **fields) -> Any:
        for key, value in fields.items():
            setattr(record, key, value)
        await self.flush()
        return record

    async def delete(self, record) -> None:
        await self.db.delete(record)
        await self.flush()

    async def flush(self) -> None:
        """Flush pending writes, reporting unique-key violations as conflicts."""
        try:
            await self.db.flush()
        except IntegrityError as e:
            logger.info(f"Geo write rejected by constraint: {e.orig}")
            raise ConflictError(
                "A node with this name already exists under the same parent",
                {"reason": str(e.orig)},
            )


def _as_uuid(value) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    return UUID(str(value))


def parent_fields_for(kind, parent_kind, parent_id) -> Dict[str, Optional[UUID]]:
    """
    Column values that attach a ``kind`` record to its parent. Every other
    parent reference of the kind is cleared, which matters for Location.
    """
    fields = {field: None for field in model_for(kind).PARENT_FIELDS.values()}
    fields[parent_field(kind, parent_kind)] = _as_uuid(parent_id)
    return fields
