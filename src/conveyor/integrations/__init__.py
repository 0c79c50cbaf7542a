"""External collaborators: version control, processes, artifacts, reports."""

from conveyor.integrations.base import (
    ArchiveResult,
    ArtifactStorage,
    CheckoutResult,
    Collaborators,
    ProcessExecutor,
    ProcessResult,
    PublishResult,
    ReportPublisher,
    VersionControl,
)

__all__ = [
    "ArchiveResult",
    "ArtifactStorage",
    "CheckoutResult",
    "Collaborators",
    "ProcessExecutor",
    "ProcessResult",
    "PublishResult",
    "ReportPublisher",
    "VersionControl",
]
