"""Unit tests for cluster threshold alerting."""

import pytest

from services.patterns.alerts import ThresholdPolicy
from services.patterns import config
from shared.schemas import Cluster, Department


def _cluster(department: str, size: int, alert_sent: bool = False, keywords: list[str] | None = None) -> Cluster:
    return Cluster(
        id=7,
        department=department,
        keywords=keywords if keywords is not None else ["vpn", "keeps", "disconnecting", "morning"],
        centroid_embedding=[1.0, 0.0],
        member_ticket_ids=list(range(1, size + 1)),
        alert_sent=alert_sent,
    )


class TestThresholdFor:
    @pytest.mark.parametrize(
        ("department", "expected"),
        [("IT", 5), ("HR", 3), ("Finance", 3), ("Admin", 4), ("Facilities", 4)],
    )
    def test_department_thresholds(self, department: str, expected: int) -> None:
        assert ThresholdPolicy().threshold_for(department) == expected

    def test_unknown_department_uses_default(self) -> None:
        assert ThresholdPolicy().threshold_for("Legal") == 3

    def test_custom_thresholds(self) -> None:
        policy = ThresholdPolicy(thresholds={"IT": 2}, default_threshold=9)
        assert policy.threshold_for("IT") == 2
        assert policy.threshold_for("HR") == 9

    @pytest.mark.parametrize("department", list(Department))
    def test_every_department_configured(self, department: Department) -> None:
        assert department.value in config.CLUSTER_SIZE_THRESHOLDS

    def test_department_enum_lookup(self) -> None:
        policy = ThresholdPolicy()
        assert policy.threshold_for(Department.FINANCE) == 3
        assert policy.threshold_for(Department.IT) == 5

    def test_custom_thresholds_keyed_by_enum(self) -> None:
        policy = ThresholdPolicy(thresholds={Department.FINANCE: 7})
        assert policy.threshold_for("Finance") == 7


class TestShouldAlert:
    def test_below_threshold(self) -> None:
        assert not ThresholdPolicy().should_alert(_cluster("IT", 4))

    def test_at_threshold(self) -> None:
        assert ThresholdPolicy().should_alert(_cluster("IT", 5))

    def test_already_alerted(self) -> None:
        assert not ThresholdPolicy().should_alert(_cluster("IT", 8, alert_sent=True))


class TestSeverity:
    @pytest.mark.parametrize(
        ("count", "expected"),
        [(3, "medium"), (6, "medium"), (7, "high"), (9, "high"), (10, "critical"), (25, "critical")],
    )
    def test_severity_bands(self, count: int, expected: str) -> None:
        assert ThresholdPolicy.severity_for(count).value == expected


class TestBuildAlert:
    def test_message_uses_first_three_keywords(self) -> None:
        alert = ThresholdPolicy().build_alert(_cluster("HR", 3))
        assert alert.message == (
            "3 similar tickets detected in HR department regarding: vpn, keeps, disconnecting"
        )
        assert alert.cluster_id == 7
        assert alert.department == "HR"
        assert alert.alert_type == "threshold_exceeded"
        assert alert.severity == "medium"
        assert alert.acknowledged is False

    def test_fewer_keywords(self) -> None:
        alert = ThresholdPolicy().build_alert(_cluster("HR", 3, keywords=["payroll"]))
        assert alert.message.endswith("regarding: payroll")
