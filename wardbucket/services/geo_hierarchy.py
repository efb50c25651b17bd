"""
Static hierarchy rules for the three national structures.

Each structure is a fixed chain of kinds from its GeoRegion root down to the
Location leaf. Parent/child rules are derived from those chains, so adding a
level means editing one tuple.
"""
from typing import Dict, FrozenSet, Tuple

from wardbucket.core.exceptions import InvalidTypeError
from wardbucket.models.geo import NodeKind, Structure

STRUCTURE_CHAINS: Dict[Structure, Tuple[NodeKind, ...]] = {
    Structure.PNG: (
        NodeKind.GEO_REGION,
        NodeKind.PROVINCE,
        NodeKind.DISTRICT,
        NodeKind.LLG,
        NodeKind.WARD,
        NodeKind.LOCATION,
    ),
    Structure.ABG: (
        NodeKind.GEO_REGION,
        NodeKind.REGION,
        NodeKind.ABG_DISTRICT,
        NodeKind.CONSTITUENCY,
        NodeKind.LOCATION,
    ),
    Structure.MKA: (
        NodeKind.GEO_REGION,
        NodeKind.MKA_REGION,
        NodeKind.MKA_WARD,
        NodeKind.LOCATION,
    ),
}

# Names the admin UI uses for each level, relative to a structure
TYPE_ALIASES: Dict[Structure, Dict[str, NodeKind]] = {
    Structure.PNG: {
        "province": NodeKind.PROVINCE,
        "district": NodeKind.DISTRICT,
        "llg": NodeKind.LLG,
        "ward": NodeKind.WARD,
        "village": NodeKind.LOCATION,
        "location": NodeKind.LOCATION,
    },
    Structure.ABG: {
        "region": NodeKind.REGION,
        "district": NodeKind.ABG_DISTRICT,
        "abg_district": NodeKind.ABG_DISTRICT,
        "constituency": NodeKind.CONSTITUENCY,
        "village": NodeKind.LOCATION,
        "location": NodeKind.LOCATION,
    },
    Structure.MKA: {
        "region": NodeKind.MKA_REGION,
        "llg": NodeKind.MKA_REGION,
        "mka_region": NodeKind.MKA_REGION,
        "ward": NodeKind.MKA_WARD,
        "mka_ward": NodeKind.MKA_WARD,
        "section": NodeKind.LOCATION,
        "location": NodeKind.LOCATION,
    },
}


def _chain(structure) -> Tuple[NodeKind, ...]:
    try:
        return STRUCTURE_CHAINS[Structure(structure)]
    except ValueError:
        raise InvalidTypeError(f"Unknown structure '{structure}'")


def _position(structure, kind) -> Tuple[Tuple[NodeKind, ...], int]:
    chain = _chain(structure)
    try:
        kind = NodeKind(kind)
    except ValueError:
        raise InvalidTypeError(f"Unknown node type '{kind}'")
    if kind not in chain:
        raise InvalidTypeError(f"{kind.value} is not part of the {Structure(structure).value} hierarchy")
    return chain, chain.index(kind)


def allowed_parent_types(structure, kind) -> FrozenSet[NodeKind]:
    chain, index = _position(structure, kind)
    return frozenset(chain[index - 1:index]) if index > 0 else frozenset()


def allowed_child_types(structure, kind) -> FrozenSet[NodeKind]:
    chain, index = _position(structure, kind)
    return frozenset(chain[index + 1:index + 2])


def structures_for(kind) -> Tuple[Structure, ...]:
    """Structures whose chain contains ``kind`` (GeoRegion and Location are in all three)."""
    kind = NodeKind(kind)
    return tuple(s for s, chain in STRUCTURE_CHAINS.items() if kind in chain)


def allowed_move_parent_types(kind, structure) -> FrozenSet[NodeKind]:
    """
    Parent kinds a node of ``structure`` may be re-attached to.

    Only a Location may leave its structure: it takes the union across
    structures, so it can move between a Ward, a Constituency and an MkaWard.
    Every other kind keeps the single parent kind its own chain gives it.
    """
    kind = NodeKind(kind)
    if kind != NodeKind.LOCATION:
        return allowed_parent_types(structure, kind)
    parents = set()
    for candidate in structures_for(kind):
        parents |= allowed_parent_types(candidate, kind)
    return frozenset(parents)


def descendant_types(kind) -> Tuple[NodeKind, ...]:
    """Every kind that can appear below ``kind``, nearest first."""
    kind = NodeKind(kind)
    found = []
    for structure in structures_for(kind):
        chain = STRUCTURE_CHAINS[structure]
        for child in chain[chain.index(kind) + 1:]:
            if child not in found:
                found.append(child)
    return tuple(found)


def resolve_type(structure, type_name: str) -> NodeKind:
    """Map an admin type name (``village``, ``district``...) or a kind value to a kind."""
    chain = _chain(structure)
    key = (type_name or "").strip().lower()
    kind = TYPE_ALIASES[Structure(structure)].get(key)
    if kind is None:
        try:
            kind = NodeKind(key)
        except ValueError:
            raise InvalidTypeError(f"Invalid node type '{type_name}'")
    if kind not in chain or kind == NodeKind.GEO_REGION:
        raise InvalidTypeError(f"Invalid node type '{type_name}' for {Structure(structure).value}")
    return kind
