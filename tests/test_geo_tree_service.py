"""
Tests for GeoTreeService: add, update, delete and move.
"""
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update

from wardbucket.core.exceptions import (
    ConflictError,
    InvalidMoveError,
    InvalidTypeError,
    MissingFieldError,
    NodeHasChildrenError,
    NotFoundError,
    ParentNotFoundError,
    ValidationError,
)
from wardbucket.core.monitoring import metrics
from wardbucket.models import LLG, District, Location, NodeKind, NodeMovementHistory, Province, Ward
from wardbucket.services import geo_tree
from wardbucket.services.geo_repository import GeoNodeRepository
from wardbucket.services.geo_tree import geo_tree_service
from wardbucket.services.node_resolver import node_resolver
from wardbucket.services.tree_assembler import assemble_forest


def _find(forest, *names):
    """Walk the assembled forest by node names."""
    nodes = forest
    node = None
    for name in names:
        node = next(n for n in nodes if n.name == name)
        nodes = node.children
    return node


class TestAdd:

    async def test_province_under_structure_root(self, db, roots):
        morobe = await geo_tree_service.add(db, name="Morobe", code="7", type="province", structure="PNG")

        assert morobe.kind == NodeKind.PROVINCE
        assert morobe.path == "PNG/Morobe"
        assert morobe.level == 1
        assert morobe.record.order == 7
        assert morobe.record.geo_region_id == roots["PNG"].id

    async def test_child_under_parent(self, db, png_tree):
        lae = png_tree["lae"]
        assert lae.kind == NodeKind.DISTRICT
        assert lae.path == "PNG/Morobe/Lae"
        assert lae.level == 2
        assert lae.record.province_id == png_tree["morobe"].id

    async def test_village_is_a_location(self, db, png_tree):
        butibam = png_tree["butibam"]
        assert butibam.kind == NodeKind.LOCATION
        assert butibam.path == "PNG/Morobe/Lae/Ahi LLG/Ward 1/Butibam"
        assert butibam.level == 5
        assert butibam.record.ward_id == png_tree["ward"].id
        assert butibam.record.constituency_id is None

    async def test_structure_name_is_case_insensitive(self, db, roots):
        node = await geo_tree_service.add(db, name="North", code="1", type="region", structure="abg")
        assert node.kind == NodeKind.REGION
        assert node.path == "ABG/North"

    async def test_abg_district_resolved_from_parent(self, db, roots):
        north = await geo_tree_service.add(db, name="North", code="1", type="region", structure="ABG")
        buka = await geo_tree_service.add(db, name="Buka", code="11", type="district", parent_id=north.id)

        assert buka.kind == NodeKind.ABG_DISTRICT
        assert buka.path == "ABG/North/Buka"

    async def test_name_is_trimmed(self, db, roots):
        node = await geo_tree_service.add(db, name="  Oro  ", code="9", type="province", structure="PNG")
        assert node.name == "Oro"
        assert node.path == "PNG/Oro"

    async def test_non_numeric_code_defaults_order_to_zero(self, db, roots):
        node = await geo_tree_service.add(db, name="Enga", code="EN", type="province", structure="PNG")
        assert node.record.order == 0

    async def test_missing_name(self, db, roots):
        with pytest.raises(MissingFieldError):
            await geo_tree_service.add(db, name="  ", type="province", structure="PNG")

    async def test_name_with_separator(self, db, roots):
        with pytest.raises(ValidationError):
            await geo_tree_service.add(db, name="East/West", type="province", structure="PNG")

    async def test_missing_parent_and_region(self, db, roots):
        with pytest.raises(MissingFieldError):
            await geo_tree_service.add(db, name="Morobe", type="province")

    async def test_unknown_parent(self, db, roots):
        with pytest.raises(ParentNotFoundError):
            await geo_tree_service.add(db, name="Lae", type="district", parent_id=uuid4())

    async def test_unknown_region(self, db, roots):
        with pytest.raises(ParentNotFoundError):
            await geo_tree_service.add(db, name="Lae", type="province", structure="XYZ")

    async def test_region_must_match_parent(self, db, png_tree):
        with pytest.raises(ValidationError):
            await geo_tree_service.add(
                db, name="Buka", type="district", parent_id=png_tree["morobe"].id, structure="ABG"
            )

    async def test_type_not_allowed_under_parent(self, db, png_tree):
        with pytest.raises(InvalidTypeError):
            await geo_tree_service.add(db, name="Lae West", type="ward", parent_id=png_tree["morobe"].id)

    async def test_type_from_other_structure(self, db, png_tree):
        with pytest.raises(InvalidTypeError):
            await geo_tree_service.add(db, name="X", type="constituency", parent_id=png_tree["morobe"].id)

    async def test_duplicate_sibling_conflicts(self, db, png_tree):
        with pytest.raises(ConflictError):
            await geo_tree_service.add(db, name="Lae", type="district", parent_id=png_tree["morobe"].id)

    async def test_same_name_under_other_parent_is_allowed(self, db, png_tree):
        lae = await geo_tree_service.add(db, name="Lae", type="district", parent_id=png_tree["madang"].id)
        assert lae.path == "PNG/Madang/Lae"

    async def test_unique_constraint_reported_as_conflict(self, db, roots):
        repo = GeoNodeRepository(db)
        fields = {"path": "PNG/Morobe", "level": 1, "order": 7, "geo_region_id": roots["PNG"].id}
        await repo.create(NodeKind.PROVINCE, name="Morobe", **fields)

        with pytest.raises(ConflictError):
            await repo.create(NodeKind.PROVINCE, name="Morobe", **fields)
        await db.rollback()

    async def test_records_metric(self, db, roots):
        await geo_tree_service.add(db, name="Morobe", code="7", type="province", structure="PNG")
        assert metrics.get_counter(
            "geo.operations.total", tags={"operation": "add", "kind": "province"}
        ) == 1


class TestUpdate:

    async def test_rename_rewrites_descendant_paths(self, db, png_tree):
        await geo_tree_service.update(db, png_tree["morobe"].id, name="Morobe Province")
        await db.commit()

        lae = await node_resolver.resolve(db, png_tree["lae"].id)
        butibam = await node_resolver.resolve(db, png_tree["butibam"].id)
        assert lae.path == "PNG/Morobe Province/Lae"
        assert butibam.path == "PNG/Morobe Province/Lae/Ahi LLG/Ward 1/Butibam"
        assert butibam.level == 5

    async def test_sibling_prefix_is_not_rewritten(self, db, png_tree):
        morobe_east = await geo_tree_service.add(db, name="Morobe East", type="province", structure="PNG")
        await geo_tree_service.update(db, png_tree["morobe"].id, name="Huon")

        assert morobe_east.path == "PNG/Morobe East"

    async def test_code_is_kept_when_omitted(self, db, png_tree):
        node = await geo_tree_service.update(db, png_tree["lae"].id, name="Lae Urban")
        assert node.record.code == "701"

    async def test_code_is_changed_when_given(self, db, png_tree):
        node = await geo_tree_service.update(db, png_tree["lae"].id, name="Lae", code="799")
        assert node.record.code == "799"
        assert node.path == "PNG/Morobe/Lae"

    async def test_rename_to_sibling_name_conflicts(self, db, png_tree):
        with pytest.raises(ConflictError):
            await geo_tree_service.update(db, png_tree["morobe"].id, name="Madang")

    async def test_unknown_node(self, db, roots):
        with pytest.raises(NotFoundError):
            await geo_tree_service.update(db, uuid4(), name="Anything")

    async def test_empty_name(self, db, png_tree):
        with pytest.raises(MissingFieldError):
            await geo_tree_service.update(db, png_tree["lae"].id, name="")


class TestDelete:

    async def test_leaf_is_deleted(self, db, png_tree):
        deleted = await geo_tree_service.delete(db, png_tree["yalu"].id)
        await db.commit()

        assert deleted == 1
        with pytest.raises(NotFoundError):
            await node_resolver.resolve(db, png_tree["yalu"].id)

    async def test_villages_projection_follows_deletes(self, db, png_tree):
        await geo_tree_service.delete(db, png_tree["yalu"].id)
        await db.commit()

        forest = await assemble_forest(db)
        ward = _find(forest, "PNG", "Morobe", "Lae", "Ahi LLG", "Ward 1")
        assert ward.villages == ["Butibam"]

    async def test_node_with_children_is_refused(self, db, png_tree):
        with pytest.raises(NodeHasChildrenError) as exc_info:
            await geo_tree_service.delete(db, png_tree["lae"].id, cascade=False)

        assert exc_info.value.details["descendants"] == 4
        assert await node_resolver.resolve(db, png_tree["lae"].id)

    async def test_default_policy_refuses(self, db, png_tree):
        with pytest.raises(NodeHasChildrenError):
            await geo_tree_service.delete(db, png_tree["ward"].id)

    async def test_cascade_removes_subtree(self, db, png_tree):
        deleted = await geo_tree_service.delete(db, png_tree["lae"].id, cascade=True)
        await db.commit()

        assert deleted == 5
        remaining = (await db.execute(select(Location))).scalars().all()
        assert remaining == []
        assert await node_resolver.resolve(db, png_tree["morobe"].id)

    async def test_unknown_node(self, db, roots):
        with pytest.raises(NotFoundError):
            await geo_tree_service.delete(db, uuid4())


class TestMove:

    async def test_district_moves_to_other_province(self, db, png_tree, root_principal):
        await geo_tree_service.move(db, png_tree["lae"].id, png_tree["madang"].id, root_principal)
        await db.commit()

        lae = await node_resolver.resolve(db, png_tree["lae"].id)
        assert lae.path == "PNG/Madang/Lae"
        assert lae.level == 2
        assert lae.record.province_id == png_tree["madang"].id

        yalu = await node_resolver.resolve(db, png_tree["yalu"].id)
        assert yalu.path == "PNG/Madang/Lae/Ahi LLG/Ward 1/Yalu"

    async def test_move_writes_one_history_row(self, db, png_tree, root_principal):
        await geo_tree_service.move(db, png_tree["lae"].id, png_tree["madang"].id, root_principal)
        await db.commit()

        rows = await geo_tree_service.history(db, png_tree["lae"].id)
        assert len(rows) == 1
        row = rows[0]
        assert row.node_type == "district"
        assert row.old_parent_id == png_tree["morobe"].id
        assert row.new_parent_id == png_tree["madang"].id
        assert row.moved_by == root_principal.user_id
        assert row.old_path == "PNG/Morobe/Lae"
        assert row.new_path == "PNG/Madang/Lae"

    async def test_history_is_newest_first(self, db, png_tree, root_principal):
        await geo_tree_service.move(db, png_tree["lae"].id, png_tree["madang"].id, root_principal)
        await geo_tree_service.move(db, png_tree["lae"].id, png_tree["morobe"].id, root_principal)
        await db.commit()

        rows = await geo_tree_service.history(db, png_tree["lae"].id)
        assert [r.new_path for r in rows] == ["PNG/Morobe/Lae", "PNG/Madang/Lae"]

    async def test_into_own_descendant_is_refused(self, db, png_tree, root_principal):
        with pytest.raises(InvalidMoveError):
            await geo_tree_service.move(db, png_tree["morobe"].id, png_tree["lae"].id, root_principal)

        history = (await db.execute(select(NodeMovementHistory))).scalars().all()
        assert history == []

    async def test_into_itself_is_refused(self, db, png_tree, root_principal):
        with pytest.raises(InvalidMoveError):
            await geo_tree_service.move(db, png_tree["lae"].id, png_tree["lae"].id, root_principal)

    async def test_parent_kind_must_be_allowed(self, db, png_tree, root_principal):
        with pytest.raises(InvalidMoveError):
            await geo_tree_service.move(db, png_tree["lae"].id, png_tree["ward"].id, root_principal)

    async def test_province_stays_in_its_structure(self, db, roots, png_tree, root_principal):
        with pytest.raises(InvalidMoveError):
            await geo_tree_service.move(db, png_tree["morobe"].id, roots["ABG"].id, root_principal)

        morobe = await node_resolver.resolve(db, png_tree["morobe"].id)
        assert morobe.path == "PNG/Morobe"

    async def test_mka_region_stays_in_its_structure(self, db, roots, mka_tree, root_principal):
        with pytest.raises(InvalidMoveError):
            await geo_tree_service.move(db, mka_tree["motu"].id, roots["PNG"].id, root_principal)

        history = (await db.execute(select(NodeMovementHistory))).scalars().all()
        assert history == []

    async def test_unknown_parent(self, db, png_tree, root_principal):
        with pytest.raises(NotFoundError):
            await geo_tree_service.move(db, png_tree["lae"].id, uuid4(), root_principal)

    async def test_checks_run_on_rows_read_after_locking(
        self, db, png_tree, root_principal, monkeypatch
    ):
        calls = []

        async def lock_while_morobe_is_renamed(session, *paths):
            calls.append(("lock", paths))
            if len(calls) > 1:
                return
            # Another writer renamed Morobe to Huon before our lock was granted
            for model in (District, LLG, Ward, Location):
                await session.execute(
                    update(model)
                    .where(model.path.startswith("PNG/Morobe/"))
                    .values(path=func.replace(model.path, "PNG/Morobe/", "PNG/Huon/"))
                    .execution_options(synchronize_session=False)
                )
            await session.execute(
                update(Province)
                .where(Province.id == png_tree["morobe"].id)
                .values(name="Huon", path="PNG/Huon")
                .execution_options(synchronize_session=False)
            )

        real_refresh = db.refresh

        async def recording_refresh(instance, *args, **kwargs):
            calls.append(("refresh", instance.id))
            return await real_refresh(instance, *args, **kwargs)

        monkeypatch.setattr(geo_tree, "lock_subtree", lock_while_morobe_is_renamed)
        monkeypatch.setattr(db, "refresh", recording_refresh)

        await geo_tree_service.move(db, png_tree["lae"].id, png_tree["madang"].id, root_principal)
        await db.commit()

        assert calls[0] == ("lock", ("PNG/Morobe/Lae", "PNG/Madang"))
        assert [c[0] for c in calls[1:3]] == ["refresh", "refresh"]

        row = (await geo_tree_service.history(db, png_tree["lae"].id))[0]
        assert row.old_path == "PNG/Huon/Lae"
        assert row.new_path == "PNG/Madang/Lae"

        yalu = await node_resolver.resolve(db, png_tree["yalu"].id)
        assert yalu.path == "PNG/Madang/Lae/Ahi LLG/Ward 1/Yalu"

    async def test_rename_locks_before_reading(self, db, png_tree, monkeypatch):
        calls = []

        async def recording_lock(session, *paths):
            calls.append("lock")

        real_refresh = db.refresh

        async def recording_refresh(instance, *args, **kwargs):
            calls.append("refresh")
            return await real_refresh(instance, *args, **kwargs)

        monkeypatch.setattr(geo_tree, "lock_subtree", recording_lock)
        monkeypatch.setattr(db, "refresh", recording_refresh)

        await geo_tree_service.update(db, png_tree["lae"].id, name="Lae City")

        assert calls == ["lock", "refresh"]

    async def test_name_clash_under_new_parent(self, db, png_tree, root_principal):
        await geo_tree_service.add(db, name="Lae", type="district", parent_id=png_tree["madang"].id)
        with pytest.raises(ConflictError):
            await geo_tree_service.move(db, png_tree["lae"].id, png_tree["madang"].id, root_principal)

    async def test_location_moves_across_structures(self, db, png_tree, mka_tree, root_principal):
        await geo_tree_service.move(db, png_tree["butibam"].id, mka_tree["hanuabada"].id, root_principal)
        await db.commit()

        butibam = await node_resolver.resolve(db, png_tree["butibam"].id)
        assert butibam.path == "MKA/Motu/Hanuabada/Butibam"
        assert butibam.level == 3
        assert butibam.record.ward_id is None
        assert butibam.record.mka_ward_id == mka_tree["hanuabada"].id

    async def test_move_to_current_parent_is_recorded(self, db, png_tree, root_principal):
        await geo_tree_service.move(db, png_tree["ahi"].id, png_tree["lae"].id, root_principal)
        await db.commit()

        ward = await node_resolver.resolve(db, png_tree["ward"].id)
        assert ward.path == "PNG/Morobe/Lae/Ahi LLG/Ward 1"
        assert ward.level == 4

        rows = await geo_tree_service.history(db, png_tree["ahi"].id)
        assert len(rows) == 1
        assert rows[0].old_path == rows[0].new_path

    async def test_history_is_append_only(self, db, png_tree, root_principal):
        await geo_tree_service.move(db, png_tree["lae"].id, png_tree["madang"].id, root_principal)
        await db.commit()

        row = (await geo_tree_service.history(db, png_tree["lae"].id))[0]
        row.new_path = "PNG/Elsewhere"
        with pytest.raises(RuntimeError):
            await db.flush()

    async def test_history_of_unknown_id_is_empty(self, db, roots):
        assert await geo_tree_service.history(db, uuid4()) == []

    async def test_history_of_malformed_id(self, db, roots):
        with pytest.raises(NotFoundError):
            await geo_tree_service.history(db, "nope")


class TestScenario:

    async def test_add_then_move_district_between_provinces(self, db, roots, root_principal):
        morobe = await geo_tree_service.add(db, name="Morobe", code="7", type="province", structure="PNG")
        assert (morobe.path, morobe.level) == ("PNG/Morobe", 1)

        lae = await geo_tree_service.add(db, name="Lae", code="701", type="district", parent_id=morobe.id)
        assert (lae.path, lae.level) == ("PNG/Morobe/Lae", 2)

        madang = await geo_tree_service.add(db, name="Madang", code="5", type="province", structure="PNG")
        await geo_tree_service.move(db, lae.id, madang.id, root_principal)
        assert lae.path == "PNG/Madang/Lae"
        assert len(await geo_tree_service.history(db, lae.id)) == 1

        with pytest.raises(InvalidMoveError):
            await geo_tree_service.move(db, morobe.id, lae.id, root_principal)

        await db.commit()
        provinces = (await db.execute(select(Province).order_by(Province.name))).scalars().all()
        assert [p.path for p in provinces] == ["PNG/Madang", "PNG/Morobe"]
