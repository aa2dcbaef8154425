"""Job provider backends (async submit + poll booking APIs)."""

from .base import JobProvider, JobStatus
from .block import BlockJobProvider

__all__ = ["BlockJobProvider", "JobProvider", "JobStatus"]
