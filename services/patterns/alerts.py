"""
Cluster Threshold Alerts
Decides when a growing cluster deserves its one-time pattern alert
"""

from typing import Optional, Union

from shared.schemas import AlertSeverity, AlertType, Cluster, Department, PatternAlert

from . import config


def _department_key(department: Union[str, Department]) -> str:
    # Department members hash by name, so look up by value
    return department.value if isinstance(department, Department) else department


class ThresholdPolicy:
    """
    Department-specific size thresholds for pattern alerts.

    A cluster gets at most one alert: the first merge that brings it to its
    department threshold flips alert_sent, and later growth never alerts again.
    """

    def __init__(
        self,
        thresholds: Optional[dict[str, int]] = None,
        default_threshold: int = config.DEFAULT_CLUSTER_SIZE_THRESHOLD,
    ):
        source = config.CLUSTER_SIZE_THRESHOLDS if thresholds is None else thresholds
        self.thresholds = {_department_key(d): size for d, size in source.items()}
        self.default_threshold = default_threshold

    def threshold_for(self, department: Union[str, Department]) -> int:
        return self.thresholds.get(_department_key(department), self.default_threshold)

    def should_alert(self, cluster: Cluster) -> bool:
        """True when the cluster has reached its threshold and was never alerted"""
        return (
            not cluster.alert_sent
            and cluster.member_count >= self.threshold_for(cluster.department)
        )

    @staticmethod
    def severity_for(member_count: int) -> AlertSeverity:
        if member_count >= 10:
            return AlertSeverity.CRITICAL
        if member_count >= 7:
            return AlertSeverity.HIGH
        return AlertSeverity.MEDIUM

    def build_alert(self, cluster: Cluster) -> PatternAlert:
        """Threshold-exceeded alert for a cluster (not yet persisted)"""
        count = cluster.member_count
        topics = ", ".join(cluster.keywords[:3])
        return PatternAlert(
            cluster_id=cluster.id,
            alert_type=AlertType.THRESHOLD_EXCEEDED,
            severity=self.severity_for(count),
            message=(
                f"{count} similar tickets detected in {cluster.department} "
                f"department regarding: {topics}"
            ),
            department=cluster.department,
        )
