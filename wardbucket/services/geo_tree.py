"""
Geo tree service - add, rename, delete and move nodes of the geo hierarchy.

Every operation runs inside the caller's transaction (one request, one
session) and flushes before returning, so a failure anywhere rolls back all
of its writes: child insert, descendant path rewrites and history rows.
"""
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession

from wardbucket.core.config import settings
from wardbucket.core.exceptions import (
    ConflictError,
    InvalidMoveError,
    InvalidTypeError,
    MissingFieldError,
    NodeHasChildrenError,
    NotFoundError,
    ParentNotFoundError,
    ParentPathUndeterminedError,
    ValidationError,
)
from wardbucket.core.locks import lock_subtree
from wardbucket.core.monitoring import track_geo_operation
from wardbucket.core.security import Principal
from wardbucket.models import NodeKind, NodeMovementHistory, Structure
from wardbucket.services.geo_hierarchy import (
    allowed_child_types,
    allowed_move_parent_types,
    descendant_types,
    resolve_type,
)
from wardbucket.services.geo_paths import (
    build_path,
    clean_name,
    is_within,
    last_segment,
    rebase_path,
    rename_path,
)
from wardbucket.services.geo_repository import GeoNodeRepository, parent_fields_for
from wardbucket.services.node_resolver import ResolvedNode, node_resolver

logger = logging.getLogger(__name__)


def _default_order(code: Optional[str]) -> int:
    """Sibling order follows a numeric code; anything else sorts first."""
    if code and code.strip().isdigit():
        return int(code)
    return 0


class GeoTreeService:
    """
    Mutations of the geo hierarchy.
    """

    async def add(
        self,
        db: AsyncSession,
        name: str,
        type: str,
        code: Optional[str] = None,
        parent_id=None,
        structure: Optional[str] = None,
        order: Optional[int] = None,
    ) -> ResolvedNode:
        """
        Create a node under ``parent_id``, or directly under the GeoRegion
        named ``structure`` when no parent is given.

        Raises:
            MissingFieldError: name or type missing, or neither parent nor structure given
            ParentNotFoundError: parent id (or structure root) does not exist
            InvalidTypeError: type is not a valid child of the parent
            ConflictError: a sibling with the same name exists
        """
        name = clean_name(name)
        if not type:
            raise MissingFieldError("type")
        structure = structure.strip().upper() if structure else None

        parent = await self._resolve_add_parent(db, parent_id, structure)
        parent_structure = parent.structure
        if structure and structure != parent_structure.value:
            raise ValidationError(
                f"Parent belongs to {parent_structure.value}, not {structure}",
                {"region": structure, "parent_id": str(parent.id)},
            )

        kind = resolve_type(parent_structure, type)
        if kind not in allowed_child_types(parent_structure, parent.kind):
            raise InvalidTypeError(
                f"A {kind.value} cannot be added under a {parent.kind.value}",
                {"type": type, "parent_type": parent.kind.value},
            )

        repo = GeoNodeRepository(db)
        if await repo.find_by_name(kind, name, parent.kind, parent.id) is not None:
            raise ConflictError(
                f"'{name}' already exists under {parent.path}",
                {"name": name, "parent_id": str(parent.id)},
            )

        record = await repo.create(
            kind,
            name=name,
            code=code,
            path=build_path(parent.path, name),
            level=parent.level + 1,
            order=order if order is not None else _default_order(code),
            **parent_fields_for(kind, parent.kind, parent.id),
        )

        logger.info(f"Added {kind.value} {record.path} ({record.id})")
        track_geo_operation("add", kind.value)
        return ResolvedNode(kind, record)

    async def update(
        self,
        db: AsyncSession,
        node_id,
        name: str,
        code: Optional[str] = None,
    ) -> ResolvedNode:
        """
        Rename a node (and optionally change its code). The new path is
        pushed down to every descendant in the same transaction.

        A ``code`` of None leaves the stored code untouched.
        """
        name = clean_name(name)
        node = await node_resolver.resolve(db, node_id)
        await self._lock_fresh(db, node)
        record = node.record
        repo = GeoNodeRepository(db)

        if name != record.name:
            sibling = await repo.find_by_name(node.kind, name, record.parent_kind, record.parent_id)
            if sibling is not None and sibling.id != record.id:
                raise ConflictError(
                    f"'{name}' already exists next to {record.path}",
                    {"name": name, "parent_id": str(record.parent_id)},
                )

        old_path = record.path
        new_path = rename_path(old_path, name)
        changes = {"name": name, "path": new_path}
        if code is not None:
            changes["code"] = code
        await repo.update(record, **changes)

        rewritten = 0
        if new_path != old_path:
            rewritten = await self._rewrite_descendants(repo, node, old_path, new_path, 0)

        logger.info(f"Updated {node.kind.value} {old_path} -> {new_path} ({rewritten} descendants rewritten)")
        track_geo_operation("update", node.kind.value)
        return node

    async def delete(self, db: AsyncSession, node_id, cascade: Optional[bool] = None) -> int:
        """
        Delete a node.

        Without cascade a node that still has children is refused with
        NodeHasChildrenError; with cascade the whole subtree goes, leaves
        first. Returns the number of records deleted.
        """
        if cascade is None:
            cascade = settings.GEO_DELETE_CASCADE

        node = await node_resolver.resolve(db, node_id)
        await self._lock_fresh(db, node)
        repo = GeoNodeRepository(db)

        subtree = await self._collect_subtree(repo, node)
        if len(subtree) > 1 and not cascade:
            raise NodeHasChildrenError(
                f"{node.path} still has {len(subtree) - 1} descendant(s)",
                {"id": str(node.id), "descendants": len(subtree) - 1},
            )

        # Deepest first so no row is ever left pointing at a deleted parent
        for record in reversed(subtree):
            await repo.delete(record)

        logger.info(f"Deleted {node.kind.value} {node.path} ({len(subtree)} records)")
        track_geo_operation("delete", node.kind.value)
        return len(subtree)

    async def move(
        self,
        db: AsyncSession,
        node_id,
        new_parent_id,
        principal: Principal,
    ) -> ResolvedNode:
        """
        Re-attach a node under a new parent, keeping its name.

        Writes exactly one NodeMovementHistory row; the row and the path
        rewrites share the caller's transaction, so the history entry exists
        if and only if the move commits.

        Raises:
            NotFoundError: node or new parent does not exist
            InvalidMoveError: move into itself, a descendant or another structure (Location
                excepted), or the parent kind is not allowed
            ParentPathUndeterminedError: the new parent has no usable path
            ConflictError: the new parent already has a child with this name
        """
        node = await node_resolver.resolve(db, node_id)
        if str(new_parent_id) == str(node.id):
            raise InvalidMoveError("A node cannot be moved into itself", {"id": str(node.id)})

        parent = await node_resolver.resolve_parent(db, new_parent_id)
        await self._lock_fresh(db, node, parent)

        parent_path = parent.path
        if not parent_path:
            raise ParentPathUndeterminedError(
                "Parent path could not be determined", {"parent_id": str(parent.id)}
            )

        old_path = node.path
        if is_within(parent_path, old_path):
            raise InvalidMoveError(
                f"Cannot move {old_path} under its own descendant {parent_path}",
                {"id": str(node.id), "parent_id": str(parent.id)},
            )

        if node.kind != NodeKind.LOCATION and parent.structure != node.structure:
            raise InvalidMoveError(
                f"A {node.kind.value} cannot leave the {node.structure.value} hierarchy",
                {"type": node.kind.value, "region": parent.structure.value},
            )
        if parent.kind not in allowed_move_parent_types(node.kind, node.structure):
            raise InvalidMoveError(
                f"A {node.kind.value} cannot be moved under a {parent.kind.value}",
                {"type": node.kind.value, "parent_type": parent.kind.value},
            )

        repo = GeoNodeRepository(db)
        sibling = await repo.find_by_name(node.kind, node.name, parent.kind, parent.id)
        if sibling is not None and sibling.id != node.id:
            raise ConflictError(
                f"'{node.name}' already exists under {parent_path}",
                {"name": node.name, "parent_id": str(parent.id)},
            )

        record = node.record
        new_path = build_path(parent_path, last_segment(old_path))
        level_delta = parent.level + 1 - record.level

        db.add(NodeMovementHistory(
            node_id=record.id,
            node_type=node.kind.value,
            old_parent_id=record.parent_id,
            new_parent_id=parent.id,
            moved_by=principal.user_id,
            old_path=old_path,
            new_path=new_path,
        ))

        await repo.update(
            record,
            path=new_path,
            level=parent.level + 1,
            **parent_fields_for(node.kind, parent.kind, parent.id),
        )
        rewritten = await self._rewrite_descendants(repo, node, old_path, new_path, level_delta)

        logger.info(
            f"Moved {node.kind.value} {old_path} -> {new_path} by {principal.user_id} "
            f"({rewritten} descendants rewritten)"
        )
        track_geo_operation("move", node.kind.value)
        return node

    async def history(self, db: AsyncSession, node_id) -> List[NodeMovementHistory]:
        """Movement history of a node, newest first."""
        try:
            node_uuid = node_id if isinstance(node_id, UUID) else UUID(str(node_id))
        except ValueError:
            raise NotFoundError(f"Node {node_id} not found", {"id": str(node_id)})

        result = await db.execute(
            select(NodeMovementHistory)
            .where(NodeMovementHistory.node_id == node_uuid)
            .order_by(NodeMovementHistory.moved_at.desc())
        )
        return list(result.scalars().all())

    async def _resolve_add_parent(self, db: AsyncSession, parent_id, structure) -> ResolvedNode:
        try:
            if parent_id:
                return await node_resolver.resolve_parent(db, parent_id)
            if not structure:
                raise MissingFieldError("region")
            try:
                Structure(structure)
            except ValueError:
                raise ParentNotFoundError(f"Region {structure} not found", {"region": structure})
            return await node_resolver.resolve_geo_region(db, structure)
        except NotFoundError as e:
            raise ParentNotFoundError("Parent node not found", e.details)

    async def _lock_fresh(self, db: AsyncSession, *nodes: ResolvedNode) -> None:
        """
        Lock the structure roots of ``nodes``, then reload their records so
        every check that follows sees what committed before the lock.
        """
        paths = [node.path for node in nodes]
        await lock_subtree(db, *paths)
        for node in nodes:
            node_id = str(node.id)
            try:
                await db.refresh(node.record)
            except InvalidRequestError:
                raise NotFoundError(f"Node {node_id} not found", {"id": node_id})

        # A Location may have changed structure while we waited
        fresh = [node.path for node in nodes]
        if fresh != paths:
            await lock_subtree(db, *fresh)

    async def _collect_subtree(self, repo: GeoNodeRepository, node: ResolvedNode) -> list:
        """The node's record followed by every descendant, breadth first."""
        subtree = [node.record]
        frontier = [(node.kind, node.record)]
        while frontier:
            kind, record = frontier.pop(0)
            for child in await repo.children(kind, record.id):
                subtree.append(child)
                frontier.append((child.KIND, child))
        return subtree

    async def _rewrite_descendants(
        self,
        repo: GeoNodeRepository,
        node: ResolvedNode,
        old_path: str,
        new_path: str,
        level_delta: int,
    ) -> int:
        """Swap the ``old_path`` prefix for ``new_path`` on every descendant."""
        descendants = await repo.descendants(descendant_types(node.kind), old_path)
        for record in descendants:
            record.path = rebase_path(record.path, old_path, new_path)
            record.level += level_delta
        if descendants:
            await repo.flush()
        return len(descendants)


# Global instance
geo_tree_service = GeoTreeService()
