"""Tests for exposure-chain document models."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from exposure_chain.models import (
    SOMEONE,
    YOU,
    ChainNode,
    ChainVisualization,
    Interaction,
    MaskedLabel,
    NamedLabel,
    Notification,
    PrivacyLevel,
    Report,
    ReportStatus,
    TestResult,
    TestStatus,
    UserIdentity,
    generate_id,
)


def nodes(count: int) -> list[ChainNode]:
    return [ChainNode(label=SOMEONE) for _ in range(count - 1)] + [
        ChainNode(label=YOU, is_current_user=True)
    ]


def make_notification(**overrides) -> Notification:
    fields = {
        "recipient_id": "r" * 64,
        "report_id": "rpt_1",
        "chain_visualization": ChainVisualization(nodes=nodes(3), paths=[nodes(3)]),
        "chain_path": ["a", "b", "c"],
        "chain_paths": [["a", "b", "c"]],
        "hop_depth": 2,
    }
    fields.update(overrides)
    return Notification(**fields)


class TestGenerateId:
    def test_prefix(self):
        assert generate_id("ntf").startswith("ntf_")

    def test_unique(self):
        assert generate_id("rpt") != generate_id("rpt")


class TestPrivacyLevel:
    @pytest.mark.parametrize(
        ("level", "sti", "date"),
        [
            (PrivacyLevel.FULL, True, True),
            (PrivacyLevel.STI_ONLY, True, False),
            (PrivacyLevel.DATE_ONLY, False, True),
            (PrivacyLevel.ANONYMOUS, False, False),
        ],
    )
    def test_disclosure(self, level, sti, date):
        assert level.discloses_sti is sti
        assert level.discloses_date is date


class TestInteraction:
    def test_frozen(self):
        interaction = Interaction(
            owner_id="o", partner_identity="p", recorded_at=datetime(2026, 1, 1, tzinfo=UTC)
        )
        assert interaction.id.startswith("int_")
        with pytest.raises(ValidationError):
            interaction.owner_id = "x"


class TestUserIdentity:
    @pytest.mark.parametrize(("token", "expected"), [("abc", True), ("  ", False), (None, False)])
    def test_has_push_token(self, token, expected):
        identity = UserIdentity(
            interaction_identity="i",
            notification_identity="n",
            chain_identity="c",
            push_token=token,
        )
        assert identity.has_push_token is expected


class TestChainNode:
    def test_label_round_trips_through_discriminator(self):
        node = ChainNode(label=NamedLabel(username="bob"))
        restored = ChainNode.model_validate(node.model_dump(mode="json"))
        assert restored.label == NamedLabel(username="bob")

        masked = ChainNode.model_validate({"label": {"kind": "masked", "marker": "you"}})
        assert masked.label == YOU

    def test_unknown_marker_rejected(self):
        with pytest.raises(ValidationError):
            MaskedLabel(marker="everyone")

    def test_defaults(self):
        node = ChainNode(label=SOMEONE)
        assert node.test_status == TestStatus.UNKNOWN
        assert node.tested_positive_for == []
        assert node.date is None


class TestNotification:
    """Path and visualization must agree."""

    def test_valid(self):
        notification = make_notification()
        assert notification.id.startswith("ntf_")
        assert notification.is_read is False
        assert notification.is_deleted is False

    def test_path_length_mismatch(self):
        with pytest.raises(ValidationError, match="visualization has 3 nodes"):
            make_notification(chain_path=["a", "c"], hop_depth=1)

    def test_missing_visualization_path(self):
        with pytest.raises(ValidationError, match="visualization paths"):
            make_notification(chain_visualization=ChainVisualization(nodes=nodes(3)))

    def test_hop_depth_must_match_shortest_path(self):
        with pytest.raises(ValidationError, match="hop_depth"):
            make_notification(hop_depth=3)

    def test_longer_secondary_path(self):
        notification = make_notification(
            chain_visualization=ChainVisualization(nodes=nodes(3), paths=[nodes(3), nodes(4)]),
            chain_paths=[["a", "b", "c"], ["a", "d", "b", "c"]],
        )
        assert notification.chain_members == ["a", "b", "c", "d"]

    def test_check_integrity_after_mutation(self):
        notification = make_notification()
        notification.chain_paths.append(["a", "x", "c"])
        with pytest.raises(ValueError):
            notification.check_integrity()

    def test_touch(self):
        notification = make_notification()
        before = notification.updated_at
        notification.touch()
        assert notification.updated_at >= before

    def test_all_node_lists(self):
        viz = ChainVisualization(nodes=nodes(2), paths=[nodes(2)])
        assert len(viz.all_node_lists()) == 2


class TestReport:
    def test_defaults(self):
        report = Report(
            reporter_id="r",
            reporter_interaction_identity="i",
            test_result=TestResult.NEGATIVE,
        )
        assert report.id.startswith("rpt_")
        assert report.status == ReportStatus.PENDING
        assert report.reporter_display_name == "Someone"
        assert report.sti_types == []

    def test_extra_fields_rejected(self):
        with pytest.raises(ValidationError):
            Report(
                reporter_id="r",
                reporter_interaction_identity="i",
                test_result="positive",
                unexpected=True,
            )
