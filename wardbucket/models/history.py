"""
SQLAlchemy model for the node movement audit ledger
"""
from sqlalchemy import Column, String, DateTime, Uuid, event
from datetime import datetime, timezone
import uuid

from wardbucket.core.database import Base


class NodeMovementHistory(Base):
    """
    One row per successful move. Append only: rows are never updated or
    deleted by the application.
    """
    __tablename__ = "node_movement_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    node_id = Column(Uuid, nullable=False, index=True)
    node_type = Column(String(32), nullable=False)
    old_parent_id = Column(Uuid, nullable=True)
    new_parent_id = Column(Uuid, nullable=False)
    moved_by = Column(Uuid, nullable=False, index=True)  # principal user id
    old_path = Column(String(1000), nullable=False)
    new_path = Column(String(1000), nullable=False)
    moved_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    def __repr__(self):
        return f"<NodeMovementHistory(node_id={self.node_id}, {self.old_path} -> {self.new_path})>"


@event.listens_for(NodeMovementHistory, "before_update")
def _refuse_update(mapper, connection, target):
    raise RuntimeError("Node movement history is append-only")


@event.listens_for(NodeMovementHistory, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise RuntimeError("Node movement history is append-only")
