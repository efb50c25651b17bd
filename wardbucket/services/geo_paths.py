"""
Materialized path helpers.

A node's path is its ancestors' names joined with "/", starting at the
structure root and ending with the node's own name, e.g. ``PNG/Morobe/Lae``.
"""

from typing import Optional

from wardbucket.core.exceptions import MissingFieldError, ValidationError

SEPARATOR = "/"


def build_path(parent_path: str, name: str) -> str:
    return f"{parent_path}{SEPARATOR}{name}"


def last_segment(path: str) -> str:
    return path.rsplit(SEPARATOR, 1)[-1]


def parent_path_of(path: str) -> str:
    """Path with the last segment dropped ('' for a single segment)."""
    if SEPARATOR not in path:
        return ""
    return path.rsplit(SEPARATOR, 1)[0]


def rename_path(path: str, new_name: str) -> str:
    """Replace the last segment of ``path`` with ``new_name``."""
    parent = parent_path_of(path)
    return build_path(parent, new_name) if parent else new_name


def is_within(path: str, ancestor_path: str) -> bool:
    """True if ``path`` equals ``ancestor_path`` or lies underneath it."""
    return path == ancestor_path or path.startswith(ancestor_path + SEPARATOR)


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """
    Swap the ``old_prefix`` of a descendant path for ``new_prefix``.

    >>> rebase_path("PNG/Morobe/Lae/Ahi", "PNG/Morobe/Lae", "PNG/Madang/Lae")
    'PNG/Madang/Lae/Ahi'
    """
    if not is_within(path, old_prefix):
        raise ValueError(f"{path!r} is not under {old_prefix!r}")
    return new_prefix + path[len(old_prefix):]


def clean_name(name: Optional[str]) -> str:
    """
    Trimmed node name, safe to use as a path segment.

    Raises:
        MissingFieldError: name is empty
        ValidationError: name contains the path separator
    """
    name = (name or "").strip()
    if not name:
        raise MissingFieldError("name")
    if SEPARATOR in name:
        raise ValidationError(f"Name may not contain '{SEPARATOR}'", {"name": name})
    return name
