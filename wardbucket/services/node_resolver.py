"""
Node resolution service - finds which kind an opaque node id belongs to.

Ids are not kind-tagged, so the resolver probes each kind's table in a fixed
priority order and returns the first hit.
"""
from dataclasses import dataclass
from typing import Any, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from wardbucket.core.exceptions import NotFoundError
from wardbucket.models.geo import GeoRegion, NodeKind, Structure
from wardbucket.services.geo_hierarchy import structures_for
from wardbucket.services.geo_repository import GeoNodeRepository

logger = logging.getLogger(__name__)

RESOLUTION_ORDER: Tuple[NodeKind, ...] = (
    NodeKind.PROVINCE,
    NodeKind.DISTRICT,
    NodeKind.LLG,
    NodeKind.WARD,
    NodeKind.LOCATION,
    NodeKind.REGION,
    NodeKind.ABG_DISTRICT,
    NodeKind.CONSTITUENCY,
    NodeKind.MKA_REGION,
    NodeKind.MKA_WARD,
)


@dataclass
class ResolvedNode:
    """A record together with the kind it was found under."""
    kind: NodeKind
    record: Any

    @property
    def id(self) -> UUID:
        return self.record.id

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def path(self) -> str:
        return self.record.path

    @property
    def level(self) -> int:
        return self.record.level

    @property
    def parent_id(self) -> Optional[UUID]:
        return self.record.parent_id

    @property
    def structure(self) -> Structure:
        """Structure the node lives in; taken from the path root when the kind is shared."""
        if isinstance(self.record, GeoRegion):
            return Structure(self.record.name)
        candidates = structures_for(self.kind)
        if len(candidates) == 1:
            return candidates[0]
        return Structure(self.path.split("/", 1)[0])


class NodeResolver:
    """
    Resolves node ids to (kind, record) pairs.
    """

    async def resolve(self, db: AsyncSession, node_id) -> ResolvedNode:
        """
        Find a node of any of the ten non-root kinds.

        Raises:
            NotFoundError: no kind has a record with this id
        """
        node = await self._probe(GeoNodeRepository(db), node_id, RESOLUTION_ORDER)
        if node is None:
            raise NotFoundError(f"Node {node_id} not found", {"id": str(node_id)})
        return node

    async def resolve_parent(self, db: AsyncSession, node_id) -> ResolvedNode:
        """Like ``resolve`` but also accepts a GeoRegion root as the answer."""
        node = await self._probe(
            GeoNodeRepository(db), node_id, RESOLUTION_ORDER + (NodeKind.GEO_REGION,)
        )
        if node is None:
            raise NotFoundError(f"Parent node {node_id} not found", {"id": str(node_id)})
        return node

    async def resolve_geo_region(self, db: AsyncSession, structure) -> ResolvedNode:
        name = Structure(structure).value
        region = await GeoNodeRepository(db).find_geo_region(name)
        if region is None:
            raise NotFoundError(f"Region {name} not found", {"region": name})
        return ResolvedNode(NodeKind.GEO_REGION, region)

    async def _probe(self, repo: GeoNodeRepository, node_id, kinds) -> Optional[ResolvedNode]:
        try:
            node_id = node_id if isinstance(node_id, UUID) else UUID(str(node_id))
        except ValueError:
            logger.debug(f"Not a node id: {node_id!r}")
            return None

        for kind in kinds:
            record = await repo.find(kind, node_id)
            if record is not None:
                return ResolvedNode(kind, record)
        return None


# Global instance
node_resolver = NodeResolver()
