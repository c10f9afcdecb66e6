"""
Deal Tracker — Pipeline Error Kinds

Every failure that can abort a pipeline attempt is tagged with an ErrorKind.
The orchestrator reads the kind, not the exception class, to decide between
a delayed retry and the terminal failure path.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT_NETWORK = "transient_network"   # Fetch retries exhausted
    MALFORMED_INPUT = "malformed_input"       # Truncated/invalid snapshot JSON
    DATA_QUALITY = "data_quality"             # Snapshot parsed but unusable
    PERSISTENCE = "persistence"               # Open batch rolled back
    NOTIFICATION = "notification"             # Sink rejected a delivery
    CONFIGURATION = "configuration"           # Cannot succeed without operator action
    UNEXPECTED = "unexpected"


class PipelineError(Exception):
    """Base class for classified pipeline failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class FetchError(PipelineError):
    """A bulk download failed after exhausting its retry budget."""

    kind = ErrorKind.TRANSIENT_NETWORK


class SnapshotParseError(PipelineError):
    """A snapshot on disk is not a JSON document with a ``data`` object."""

    kind = ErrorKind.MALFORMED_INPUT


class DataQualityError(PipelineError):
    kind = ErrorKind.DATA_QUALITY


class NotificationError(PipelineError):
    kind = ErrorKind.NOTIFICATION


class ConfigurationError(PipelineError):
    kind = ErrorKind.CONFIGURATION
