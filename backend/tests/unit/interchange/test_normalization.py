"""
Unit tests for defensive readers and enum normalizers.
"""

from datetime import datetime

import pytest

from secudo.services.interchange.models import (
    AnswerType,
    AssetType,
    ComponentDataRole,
    EdgeDirection,
    FlowDirection,
    NodeCategory,
    QuestionTargetType,
)
from secudo.services.interchange.normalization import (
    clamp_rating,
    normalize_answer_target_type,
    normalize_answer_type,
    normalize_asset_type,
    normalize_component_data_role,
    normalize_edge_direction,
    normalize_flow_direction,
    normalize_node_category,
    normalize_question_target_type,
    read_datetime,
    read_number,
    text_or_default,
)


@pytest.mark.unit
class TestRatings:
    """Test 1..10 rating clamping."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (7, 7),
            (7.5, 8),
            (2.4, 2),
            (0, 1),
            (-3, 1),
            (11, 10),
            (None, 5),
            ("9", 5),
            (True, 5),
            (float("nan"), 5),
            (float("inf"), 5),
        ],
    )
    def test_clamp_rating(self, raw, expected) -> None:
        assert clamp_rating(raw) == expected

    def test_read_number_rejects_bool(self) -> None:
        assert read_number(False) is None
        assert read_number(3) == 3.0


@pytest.mark.unit
class TestEnumNormalizers:
    """Test lenient enum parsing with defaults."""

    def test_node_category(self) -> None:
        assert normalize_node_category("container") is NodeCategory.CONTAINER
        assert normalize_node_category("System") is NodeCategory.CONTAINER
        assert normalize_node_category("Component") is NodeCategory.COMPONENT
        assert normalize_node_category(None) is NodeCategory.COMPONENT

    def test_edge_direction(self) -> None:
        assert normalize_edge_direction("b_to_a") is EdgeDirection.B_TO_A
        assert normalize_edge_direction("BIDIRECTIONAL") is EdgeDirection.BIDIRECTIONAL
        assert normalize_edge_direction("sideways") is EdgeDirection.A_TO_B

    def test_flow_direction(self) -> None:
        assert normalize_flow_direction("TargetToSource") is FlowDirection.TARGET_TO_SOURCE
        assert normalize_flow_direction("bidirectional") is FlowDirection.BIDIRECTIONAL
        assert normalize_flow_direction(3) is FlowDirection.SOURCE_TO_TARGET

    def test_component_data_role(self) -> None:
        assert normalize_component_data_role("processes") is ComponentDataRole.PROCESSES
        assert normalize_component_data_role("owns") is ComponentDataRole.STORES

    def test_asset_type_is_optional(self) -> None:
        assert normalize_asset_type("dataobject") is AssetType.DATA_OBJECT
        assert normalize_asset_type("Host") is None

    def test_question_target_type(self) -> None:
        assert normalize_question_target_type("edge") is QuestionTargetType.EDGE
        assert normalize_question_target_type("node") is QuestionTargetType.NONE

    def test_answer_target_accepts_legacy_node(self) -> None:
        assert normalize_answer_target_type("Node") is QuestionTargetType.COMPONENT
        assert normalize_answer_target_type("Component") is QuestionTargetType.COMPONENT
        assert normalize_answer_target_type("elsewhere") is None

    def test_answer_type(self) -> None:
        assert normalize_answer_type("multiselect") is AnswerType.MULTI_SELECT
        assert normalize_answer_type("") is AnswerType.YES_NO


@pytest.mark.unit
class TestScalars:
    def test_read_datetime_accepts_zulu_and_offsets(self) -> None:
        assert read_datetime("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0, 0)
        assert read_datetime("2024-05-01T12:00:00+02:00") == datetime(2024, 5, 1, 10, 0, 0)

    def test_read_datetime_rejects_garbage(self) -> None:
        assert read_datetime("yesterday") is None
        assert read_datetime(1714557600) is None

    def test_text_or_default(self) -> None:
        assert text_or_default("PLC", "Node") == "PLC"
        assert text_or_default("   ", "Node") == "Node"
        assert text_or_default(None, "Node") == "Node"
