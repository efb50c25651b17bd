"""
Tree assembler - rebuilds the full geo forest for display.

Loads every kind with one query each, links children to parents in memory and
sorts siblings by ``order``. Read only: nothing is cached between calls.
"""
from typing import Dict, List
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from wardbucket.core.exceptions import NotFoundError
from wardbucket.models import KIND_MODELS, NodeKind, Structure
from wardbucket.schemas import GeoTreeNode
from wardbucket.services.geo_repository import GeoNodeRepository

logger = logging.getLogger(__name__)

# Kinds whose Location children are also listed by name
LEAF_NAME_PROJECTIONS = {
    NodeKind.WARD: "villages",
    NodeKind.CONSTITUENCY: "villages",
    NodeKind.MKA_WARD: "sections",
}


def _sort_key(node: GeoTreeNode):
    return (node.order, node.name)


async def assemble_forest(db: AsyncSession) -> List[GeoTreeNode]:
    """
    Build the PNG, ABG and MKA trees.

    Raises:
        NotFoundError: one of the fixed structure roots is missing
    """
    repo = GeoNodeRepository(db)
    nodes: Dict[UUID, GeoTreeNode] = {}

    for kind in KIND_MODELS:
        for record in await repo.list_all(kind):
            nodes[record.id] = GeoTreeNode.from_record(kind, record)

    root_names = {n.name for n in nodes.values() if n.kind == NodeKind.GEO_REGION}
    missing = [s.value for s in Structure if s.value not in root_names]
    if missing:
        raise NotFoundError(f"Region {', '.join(missing)} not found", {"missing": missing})

    roots: List[GeoTreeNode] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None:
            parent.children.append(node)
        else:
            if node.kind != NodeKind.GEO_REGION:
                logger.warning(f"Orphaned {node.kind.value} {node.path} ({node.id}) listed at root")
            roots.append(node)

    for node in nodes.values():
        node.children.sort(key=_sort_key)
        projection = LEAF_NAME_PROJECTIONS.get(node.kind)
        if projection:
            setattr(node, projection, [c.name for c in node.children if c.kind == NodeKind.LOCATION])

    roots.sort(key=_sort_key)
    logger.debug(f"Assembled geo forest with {len(nodes)} nodes")
    return roots
