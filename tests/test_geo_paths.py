"""
Unit tests for materialized path helpers.
"""
import pytest

from wardbucket.core.exceptions import MissingFieldError, ValidationError
from wardbucket.services.geo_paths import (
    build_path,
    clean_name,
    is_within,
    last_segment,
    parent_path_of,
    rebase_path,
    rename_path,
)


class TestBuildPath:

    def test_appends_name_to_parent(self):
        assert build_path("PNG/Morobe", "Lae") == "PNG/Morobe/Lae"

    def test_geo_region_synthetic_path(self):
        assert build_path("PNG", "Morobe") == "PNG/Morobe"


class TestSegments:

    def test_last_segment(self):
        assert last_segment("PNG/Morobe/Lae") == "Lae"
        assert last_segment("PNG") == "PNG"

    def test_parent_path_of(self):
        assert parent_path_of("PNG/Morobe/Lae") == "PNG/Morobe"
        assert parent_path_of("PNG") == ""

    def test_rename_replaces_only_last_segment(self):
        assert rename_path("PNG/Morobe/Lae", "Lae Urban") == "PNG/Morobe/Lae Urban"

    def test_rename_single_segment(self):
        assert rename_path("PNG", "ABG") == "ABG"


class TestIsWithin:

    def test_equal_paths(self):
        assert is_within("PNG/Morobe", "PNG/Morobe")

    def test_descendant(self):
        assert is_within("PNG/Morobe/Lae/Ahi", "PNG/Morobe")

    def test_sibling_sharing_a_prefix_is_not_within(self):
        assert not is_within("PNG/Morobe East", "PNG/Morobe")

    def test_ancestor_is_not_within(self):
        assert not is_within("PNG", "PNG/Morobe")


class TestRebasePath:

    def test_moves_descendant_under_new_prefix(self):
        assert rebase_path("PNG/Morobe/Lae/Ahi", "PNG/Morobe/Lae", "PNG/Madang/Lae") == "PNG/Madang/Lae/Ahi"

    def test_rebases_node_itself(self):
        assert rebase_path("PNG/Morobe", "PNG/Morobe", "PNG/Morobe Province") == "PNG/Morobe Province"

    def test_rejects_path_outside_prefix(self):
        with pytest.raises(ValueError):
            rebase_path("PNG/Madang", "PNG/Morobe", "PNG/X")


class TestCleanName:

    def test_trims_whitespace(self):
        assert clean_name("  Lae  ") == "Lae"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_empty_name_is_missing(self, name):
        with pytest.raises(MissingFieldError):
            clean_name(name)

    def test_separator_is_rejected(self):
        with pytest.raises(ValidationError):
            clean_name("Lae/Nawae")
