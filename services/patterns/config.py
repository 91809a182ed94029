"""
Pattern Detector configuration
Tunables and backend settings read from the environment
"""

import os

from shared.schemas.ticket import Department

# Clustering
SIMILARITY_THRESHOLD = float(os.getenv("PATTERN_SIMILARITY_THRESHOLD", "0.85"))

# Alerting: cluster size that triggers a one-time alert, per department
CLUSTER_SIZE_THRESHOLDS = {
    Department.IT.value: 5,
    Department.HR.value: 3,
    Department.FINANCE.value: 3,
    Department.ADMIN.value: 4,
    Department.FACILITIES.value: 4,
}
DEFAULT_CLUSTER_SIZE_THRESHOLD = 3
ALERT_LOOKBACK_HOURS = int(os.getenv("ALERT_LOOKBACK_HOURS", "24"))
TOP_RECURRING_LIMIT = 10

# Spam detection
SPAM_RAPID_SUBMISSION_THRESHOLD = int(os.getenv("SPAM_RAPID_SUBMISSION_THRESHOLD", "3"))
SPAM_TIME_WINDOW_MINUTES = int(os.getenv("SPAM_TIME_WINDOW_MINUTES", "5"))
SPAM_DUPLICATE_THRESHOLD = float(os.getenv("SPAM_DUPLICATE_THRESHOLD", "0.95"))

# Storage backend: "memory" or "arango"
PATTERN_STORE = os.getenv("PATTERN_STORE", "memory")
ARANGODB_HOST = os.getenv("ARANGODB_HOST", "localhost")
ARANGODB_PORT = int(os.getenv("ARANGODB_PORT", "8529"))
ARANGODB_DB = os.getenv("ARANGODB_DB", "helpdesk")
ARANGODB_USER = os.getenv("ARANGODB_USER", "root")
ARANGODB_PASSWORD = os.getenv("ARANGODB_PASSWORD", "")

# Embeddings
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
EMBED_MODEL = os.getenv("EMBED_MODEL", "qwen3-embedding:8b")
EMBED_DIMENSION = int(os.getenv("EMBED_DIMENSION", "4096"))
EMBED_USE_LOCAL = os.getenv("EMBED_USE_LOCAL", "false").lower() in ("1", "true", "yes")
