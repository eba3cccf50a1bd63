"""Apply a single assignment with replication-aware retries."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from m365provision.core.errors import ServiceError
from m365provision.provisioning.models import (
    FIRST_PASS,
    AssignmentOutcome,
    AssignmentRequest,
    AssignmentStatus,
    Identity,
    RetryPlan,
    RetryPolicy,
    TargetKind,
    TargetRef,
)
from m365provision.provisioning.ports import ActivitySink, DirectoryService, MailboxService
from m365provision.provisioning.retry import SleepFn, is_transient_exception, retry_with_backoff
from m365provision.provisioning.snapshot import TenantSnapshot

logger = logging.getLogger(__name__)

# Activity statuses
ATTEMPT = "attempt"
RETRY = "retry"
SUCCEEDED = "succeeded"
FAILED = "failed"
DEFERRED = "deferred"
MANUAL = "manual"

CATEGORIES: dict[TargetKind, str] = {
    TargetKind.SECURITY_GROUP: "Security Group",
    TargetKind.M365_GROUP: "Microsoft 365 Group",
    TargetKind.MAIL_ENABLED_SECURITY_GROUP: "Mail-Enabled Security Group",
    TargetKind.DISTRIBUTION_LIST: "Distribution List",
    TargetKind.SHARED_MAILBOX: "Shared Mailbox",
}

NOT_FOUND_DETAILS: dict[TargetKind, str] = {
    TargetKind.DISTRIBUTION_LIST: "distribution list not found.",
    TargetKind.SHARED_MAILBOX: "shared mailbox not found.",
}
GROUP_NOT_FOUND = "group not found."
ALREADY_MEMBER = "already a member"


class TargetNotFoundError(Exception):
    """The requested target does not exist in the tenant snapshot."""


class AssignmentEngine:
    """Apply AssignmentRequests against the directory and mailbox services."""

    def __init__(
        self,
        directory: DirectoryService,
        mailbox: MailboxService | None = None,
        activity: ActivitySink | None = None,
        policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            directory: Service used for security and Microsoft 365 groups
            mailbox: Service used for distribution lists and shared mailboxes
            activity: Sink receiving attempt and outcome entries
            policy: Retry timings (defaults to the fixed policy)
            sleep: Awaitable sleep used between attempts
        """
        self.directory = directory
        self.mailbox = mailbox
        self.activity = activity
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def log_activity(self, category: str, status: str, detail: str) -> None:
        """Forward an entry to the activity sink without letting it fail the run."""
        if self.activity is None:
            return
        try:
            self.activity(category, status, detail)
        except Exception as e:
            logger.warning(f"Activity sink failed for [{category}] {status}: {e}")

    async def apply(
        self,
        identity: Identity,
        request: AssignmentRequest,
        snapshot: TenantSnapshot,
        pass_number: int = FIRST_PASS,
    ) -> AssignmentOutcome:
        """Apply one request within one retry pass.

        Args:
            identity: Principal receiving the membership or permission
            request: What to assign
            snapshot: Tenant listings used to resolve the target
            pass_number: 1 for the first pass, 2 for the second

        Returns:
            AssignmentOutcome; DEFERRED_FOR_RETRY only when the first pass
            ran out of attempts on replication errors
        """
        category = CATEGORIES[request.target_kind]
        plan = self.policy.plan_for(pass_number)

        def outcome(status: AssignmentStatus, detail: str | None) -> AssignmentOutcome:
            return AssignmentOutcome(
                target_name=request.target_name,
                target_kind=request.target_kind,
                status=status,
                detail=detail,
                attempts=plan.attempts,
                pass_number=pass_number,
            )

        try:
            operation = self._build_operation(identity, request, snapshot, plan, category)
        except TargetNotFoundError as e:
            self.log_activity(category, FAILED, f"{request.target_name}: {e}")
            return outcome(AssignmentStatus.FAILED_PERMANENT, str(e))

        def on_retry(retry_plan: RetryPlan, exc: BaseException) -> None:
            self.log_activity(
                category,
                RETRY,
                f"{request.target_name}: attempt {retry_plan.attempts}/{retry_plan.max_attempts} "
                f"(pass {retry_plan.pass_number}) failed with replication lag, "
                f"waiting {retry_plan.delay_seconds:g}s: {exc}",
            )

        try:
            detail = await retry_with_backoff(
                operation,
                plan=plan,
                sleep=self.sleep,
                on_retry=on_retry,
            )
        except ServiceError as e:
            if not is_transient_exception(e):
                self.log_activity(category, FAILED, f"{request.target_name}: {e.message}")
                return outcome(AssignmentStatus.FAILED_PERMANENT, e.message)
            if pass_number == FIRST_PASS:
                self.log_activity(
                    category,
                    DEFERRED,
                    f"{request.target_name}: still not visible after {plan.attempts} attempts, "
                    "deferring to second pass",
                )
                return outcome(AssignmentStatus.DEFERRED_FOR_RETRY, e.message)
            self.log_activity(
                category,
                MANUAL,
                f"{request.target_name}: assign {identity.principal_name} manually "
                f"once replication completes ({e.message})",
            )
            return outcome(AssignmentStatus.MANUAL_TASK_REQUIRED, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error assigning {request.target_name}")
            self.log_activity(category, FAILED, f"{request.target_name}: {e}")
            return outcome(AssignmentStatus.FAILED_PERMANENT, str(e))

        self.log_activity(category, SUCCEEDED, f"{request.target_name}: {detail}")
        return outcome(AssignmentStatus.SUCCEEDED, detail)

    def _build_operation(
        self,
        identity: Identity,
        request: AssignmentRequest,
        snapshot: TenantSnapshot,
        plan: RetryPlan,
        category: str,
    ) -> Callable[[], Awaitable[str]]:
        """Resolve the target and return a coroutine function for one attempt."""
        kind = request.target_kind

        if kind.is_group:
            group = snapshot.resolve_group(request.target_name)
            if group is None:
                raise TargetNotFoundError(GROUP_NOT_FOUND)
            return self._group_operation(identity, group, plan, category)

        if self.mailbox is None:
            raise TargetNotFoundError(f"no mailbox service configured for {category}")

        if kind is TargetKind.DISTRIBUTION_LIST:
            dl = snapshot.resolve_distribution_list(request.target_name)
            if dl is None:
                raise TargetNotFoundError(NOT_FOUND_DETAILS[kind])
            return self._distribution_list_operation(identity, dl, plan, category)

        mailbox = snapshot.resolve_shared_mailbox(request.target_name)
        if mailbox is None:
            raise TargetNotFoundError(NOT_FOUND_DETAILS[kind])
        return self._shared_mailbox_operation(identity, mailbox, plan, category)

    def _log_attempt(self, category: str, target: TargetRef, plan: RetryPlan) -> None:
        self.log_activity(
            category,
            ATTEMPT,
            f"{target.display_name}: attempt {plan.attempts}/{plan.max_attempts} "
            f"(pass {plan.pass_number})",
        )

    def _group_operation(
        self,
        identity: Identity,
        group: TargetRef,
        plan: RetryPlan,
        category: str,
    ) -> Callable[[], Awaitable[str]]:
        async def attempt() -> str:
            self._log_attempt(category, group, plan)
            await self.directory.add_group_member(group, identity.id)
            return f"added {identity.principal_name} to {group.display_name}"

        return attempt

    def _distribution_list_operation(
        self,
        identity: Identity,
        dl: TargetRef,
        plan: RetryPlan,
        category: str,
    ) -> Callable[[], Awaitable[str]]:
        mailbox = self.mailbox
        principal = identity.principal_name

        async def attempt() -> str:
            self._log_attempt(category, dl, plan)
            members = await mailbox.list_distribution_list_members(dl)
            if principal.lower() in {m.lower() for m in members}:
                return ALREADY_MEMBER
            await mailbox.add_distribution_list_member(dl, principal)
            return f"added {principal} to {dl.display_name}"

        return attempt

    def _shared_mailbox_operation(
        self,
        identity: Identity,
        shared: TargetRef,
        plan: RetryPlan,
        category: str,
    ) -> Callable[[], Awaitable[str]]:
        mailbox = self.mailbox
        principal = identity.principal_name
        grants = {
            "FullAccess": mailbox.grant_full_access,
            "SendAs": mailbox.grant_send_as,
        }
        # Grants that already went through are not re-issued on later attempts
        pending = list(grants)
        applied: list[str] = []

        async def attempt() -> str:
            self._log_attempt(category, shared, plan)
            errors: list[ServiceError] = []
            for name in list(pending):
                try:
                    result = await grants[name](shared, principal)
                except ServiceError as e:
                    logger.warning(f"{name} grant on {shared.display_name} failed: {e.message}")
                    errors.append(e)
                    continue
                pending.remove(name)
                applied.append(f"{name} {result.value}")
            if errors:
                # A permanent failure ends the assignment even if the other grant is lagging
                permanent = [e for e in errors if not is_transient_exception(e)]
                raise (permanent or errors)[0]
            return f"{', '.join(applied)} for {principal}"

        return attempt
