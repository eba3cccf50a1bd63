"""Data model for membership provisioning."""

from dataclasses import dataclass, field
from enum import Enum

FIRST_PASS = 1
SECOND_PASS = 2


class TargetKind(Enum):
    """Kind of membership or permission target."""

    SECURITY_GROUP = "security_group"
    M365_GROUP = "m365_group"
    MAIL_ENABLED_SECURITY_GROUP = "mail_enabled_security_group"
    DISTRIBUTION_LIST = "distribution_list"
    SHARED_MAILBOX = "shared_mailbox"

    @property
    def is_exchange(self) -> bool:
        """Check if the target is managed through Exchange Online."""
        return self in (TargetKind.DISTRIBUTION_LIST, TargetKind.SHARED_MAILBOX)

    @property
    def is_group(self) -> bool:
        """Check if membership is added through the directory service."""
        return not self.is_exchange


class AssignmentStatus(Enum):
    """Status of an assignment attempt."""

    SUCCEEDED = "succeeded"
    FAILED_PERMANENT = "failed_permanent"
    DEFERRED_FOR_RETRY = "deferred_for_retry"
    MANUAL_TASK_REQUIRED = "manual_task_required"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Deferred outcomes are resolved again in the second pass."""
        return self is not AssignmentStatus.DEFERRED_FOR_RETRY


class GrantResult(Enum):
    """Result of a mailbox permission grant."""

    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class Identity:
    """A directory principal that assignments are applied to."""

    id: str
    principal_name: str
    display_name: str = ""


@dataclass(frozen=True)
class TargetRef:
    """A resolved group, distribution list, or shared mailbox."""

    id: str
    display_name: str
    address: str | None = None


@dataclass(frozen=True)
class AssignmentRequest:
    """One desired membership or permission grant."""

    target_name: str
    target_kind: TargetKind
    label: str | None = None


@dataclass
class AssignmentOutcome:
    """Result of processing one AssignmentRequest."""

    target_name: str
    target_kind: TargetKind
    status: AssignmentStatus
    detail: str | None = None
    attempts: int = 0
    pass_number: int = FIRST_PASS

    @property
    def succeeded(self) -> bool:
        """Check if the assignment was applied."""
        return self.status is AssignmentStatus.SUCCEEDED


@dataclass
class RetryPlan:
    """Attempt bookkeeping for one request within one pass."""

    pass_number: int
    max_attempts: int
    delay_seconds: float
    attempts: int = 0


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed retry timings for replication lag.

    Both passes together fit inside the 5-10 minute replication window
    operators are told to allow.
    """

    first_pass_attempts: int = 3
    first_pass_delay_seconds: float = 30.0
    second_pass_attempts: int = 2
    second_pass_delay_seconds: float = 15.0
    propagation_delay_seconds: float = 15.0

    def plan_for(self, pass_number: int) -> RetryPlan:
        """Create a fresh RetryPlan for the given pass."""
        if pass_number == FIRST_PASS:
            return RetryPlan(
                pass_number=FIRST_PASS,
                max_attempts=self.first_pass_attempts,
                delay_seconds=self.first_pass_delay_seconds,
            )
        if pass_number == SECOND_PASS:
            return RetryPlan(
                pass_number=SECOND_PASS,
                max_attempts=self.second_pass_attempts,
                delay_seconds=self.second_pass_delay_seconds,
            )
        raise ValueError(f"Unknown retry pass: {pass_number}")


@dataclass
class BatchResult:
    """Terminal outcomes of a batch run, in submission order."""

    identity: Identity
    outcomes: list[AssignmentOutcome] = field(default_factory=list)
    second_pass_ran: bool = False

    def _count(self, status: AssignmentStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def total_succeeded(self) -> int:
        """Count of applied assignments."""
        return self._count(AssignmentStatus.SUCCEEDED)

    @property
    def total_failed(self) -> int:
        """Count of permanently failed assignments."""
        return self._count(AssignmentStatus.FAILED_PERMANENT)

    @property
    def total_manual(self) -> int:
        """Count of assignments left for manual follow-up."""
        return self._count(AssignmentStatus.MANUAL_TASK_REQUIRED)

    @property
    def total_cancelled(self) -> int:
        """Count of assignments skipped by operator cancellation."""
        return self._count(AssignmentStatus.CANCELLED)

    @property
    def action_items(self) -> list[AssignmentOutcome]:
        """Outcomes that need operator attention."""
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def all_succeeded(self) -> bool:
        """Check if every assignment was applied."""
        return not self.action_items

    def summary_lines(self) -> list[str]:
        """Render counts and action items for display."""
        lines = [
            f"Assignments for {self.identity.principal_name}: "
            f"{self.total_succeeded} succeeded, "
            f"{self.total_failed} failed, "
            f"{self.total_manual} manual task(s)",
        ]
        if self.total_cancelled:
            lines.append(f"{self.total_cancelled} cancelled by operator")
        for outcome in self.action_items:
            label = outcome.status.value.replace("_", " ").upper()
            lines.append(
                f"  [{label}] {outcome.target_name} ({outcome.target_kind.value}): "
                f"{outcome.detail or 'no detail'}"
            )
        return lines
