"""Membership provisioning with replication-aware retries."""

from m365provision.provisioning.activity import ActivityEntry, ActivityLog
from m365provision.provisioning.classifier import classify_label, classify_labels, format_label
from m365provision.provisioning.coordinator import BatchCoordinator
from m365provision.provisioning.engine import AssignmentEngine
from m365provision.provisioning.models import (
    AssignmentOutcome,
    AssignmentRequest,
    AssignmentStatus,
    BatchResult,
    GrantResult,
    Identity,
    RetryPlan,
    RetryPolicy,
    TargetKind,
    TargetRef,
)
from m365provision.provisioning.retry import is_transient_error, retry_with_backoff
from m365provision.provisioning.snapshot import TenantSnapshot

__all__ = [
    "ActivityEntry",
    "ActivityLog",
    "AssignmentEngine",
    "AssignmentOutcome",
    "AssignmentRequest",
    "AssignmentStatus",
    "BatchCoordinator",
    "BatchResult",
    "GrantResult",
    "Identity",
    "RetryPlan",
    "RetryPolicy",
    "TargetKind",
    "TargetRef",
    "TenantSnapshot",
    "classify_label",
    "classify_labels",
    "format_label",
    "is_transient_error",
    "retry_with_backoff",
]
