"""Model exports for the refresh scheduler."""

from .payload import PAYLOAD_DATABASE, PAYLOAD_INDIVIDUAL, PAYLOAD_TYPES, JobPayload
from .stats import RefreshStats

__all__ = [
    "JobPayload",
    "PAYLOAD_DATABASE",
    "PAYLOAD_INDIVIDUAL",
    "PAYLOAD_TYPES",
    "RefreshStats",
]
