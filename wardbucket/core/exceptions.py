"""
Error taxonomy for the geo hierarchy.

Services raise these; the API layer renders them with a stable ``code``.
"""
from typing import Any, Dict, Optional


class GeoError(Exception):
    """Base class for every error reported to callers."""

    code = "geo_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(GeoError):
    code = "validation_error"
    status_code = 400


class MissingFieldError(ValidationError):
    code = "missing_field"

    def __init__(self, field: str):
        super().__init__(f"{field} is required", {"field": field})


class InvalidTypeError(ValidationError):
    code = "invalid_type"


class ParentNotFoundError(ValidationError):
    """Parent of a node being added does not exist (reported as a bad request)."""
    code = "parent_not_found"


class NotFoundError(GeoError):
    code = "not_found"
    status_code = 404


class ConflictError(GeoError):
    code = "conflict"
    status_code = 409


class NodeHasChildrenError(ConflictError):
    code = "node_has_children"


class InvalidMoveError(GeoError):
    code = "invalid_move"
    status_code = 400


class InternalError(GeoError):
    code = "internal_error"
    status_code = 500


class ParentPathUndeterminedError(InternalError):
    code = "parent_path_undetermined"
