"""Pattern Detector exceptions"""


class PatternDetectorError(Exception):
    """Base class for pattern detector failures"""


class NotFoundError(PatternDetectorError, LookupError):
    """A referenced record does not exist"""

    kind = "Record"

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"{self.kind} {record_id} not found")


class ClusterNotFoundError(NotFoundError):
    kind = "Cluster"


class AlertNotFoundError(NotFoundError):
    kind = "Pattern alert"


class SpamDetectionNotFoundError(NotFoundError):
    kind = "Spam detection"


class IncidentNotFoundError(NotFoundError):
    kind = "Incident ticket"


class StoreConflictError(PatternDetectorError):
    """Concurrent writers kept winning an optimistic update"""


class SpamCheckError(PatternDetectorError):
    """A spam check failed after some detections were already stored"""

    def __init__(self, ticket_id: int, detections: list):
        self.ticket_id = ticket_id
        self.detections = detections
        super().__init__(f"Spam check for ticket {ticket_id} failed")
