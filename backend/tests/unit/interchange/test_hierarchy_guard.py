"""
Unit tests for the hierarchy cycle guard.
"""

import pytest

from secudo.services.interchange.hierarchy import (
    NodeLink,
    ParentRejection,
    check_parent_assignment,
    mapping_lookup,
    would_create_cycle,
)

PROJECT = "p1"


def forest(**links):
    """node id -> (parent id, category) for project p1"""
    return mapping_lookup({node_id: NodeLink(PROJECT, parent, category) for node_id, (parent, category) in links.items()})


@pytest.fixture
def plant():
    """site > hall > cell, plus a root component and a node of another project"""
    lookup = {
        "site": NodeLink(PROJECT, None, "Container"),
        "hall": NodeLink(PROJECT, "site", "Container"),
        "cell": NodeLink(PROJECT, "hall", "Container"),
        "plc": NodeLink(PROJECT, "cell", "Component"),
        "loose": NodeLink(PROJECT, None, "Component"),
        "foreign": NodeLink("p2", None, "Container"),
    }
    return mapping_lookup(lookup)


@pytest.mark.unit
class TestWouldCreateCycle:
    """Test the ancestor walk."""

    def test_self_parent_is_a_cycle(self, plant) -> None:
        assert would_create_cycle(PROJECT, "hall", "hall", plant) is True

    def test_descendant_as_parent_is_a_cycle(self, plant) -> None:
        """Moving site under cell would make site its own ancestor."""
        assert would_create_cycle(PROJECT, "site", "cell", plant) is True

    def test_unrelated_container_is_allowed(self, plant) -> None:
        assert would_create_cycle(PROJECT, "loose", "cell", plant) is False

    def test_missing_chain_link_counts_as_cycle(self) -> None:
        lookup = forest(a=("ghost", "Container"))
        assert would_create_cycle(PROJECT, "x", "a", lookup) is True

    def test_foreign_project_counts_as_cycle(self, plant) -> None:
        assert would_create_cycle(PROJECT, "loose", "foreign", plant) is True

    def test_existing_loop_terminates(self) -> None:
        """A corrupt stored chain a -> b -> a must not hang the walk."""
        lookup = forest(a=("b", "Container"), b=("a", "Container"))
        assert would_create_cycle(PROJECT, "x", "a", lookup) is True


@pytest.mark.unit
class TestCheckParentAssignment:
    """Test the rejection reasons."""

    def test_valid_assignment(self, plant) -> None:
        assert check_parent_assignment(PROJECT, "loose", "hall", plant) is None

    def test_self_parent(self, plant) -> None:
        assert check_parent_assignment(PROJECT, "cell", "cell", plant) is ParentRejection.SELF_PARENT

    def test_unknown_parent(self, plant) -> None:
        assert check_parent_assignment(PROJECT, "loose", "nowhere", plant) is ParentRejection.UNRESOLVED_PARENT

    def test_parent_in_other_project(self, plant) -> None:
        assert check_parent_assignment(PROJECT, "loose", "foreign", plant) is ParentRejection.UNRESOLVED_PARENT

    def test_component_cannot_hold_children(self, plant) -> None:
        assert check_parent_assignment(PROJECT, "loose", "plc", plant) is ParentRejection.NON_CONTAINER_PARENT

    def test_cycle(self, plant) -> None:
        assert check_parent_assignment(PROJECT, "hall", "cell", plant) is ParentRejection.CYCLE
