"""Batch processing of assignments with a deferred second pass.

Pass 1 applies every request with the longer first-pass policy. Requests
that are still blocked by replication lag are deferred and retried together
in pass 2 with the shorter policy; whatever is left after that becomes a
manual task for the operator.
"""

import asyncio
import logging
from collections.abc import Iterable

from m365provision.provisioning.classifier import classify_labels
from m365provision.provisioning.engine import CATEGORIES, AssignmentEngine
from m365provision.provisioning.models import (
    FIRST_PASS,
    SECOND_PASS,
    AssignmentOutcome,
    AssignmentRequest,
    AssignmentStatus,
    BatchResult,
    Identity,
)
from m365provision.provisioning.snapshot import TenantSnapshot

logger = logging.getLogger(__name__)

CANCELLED_DETAIL = "cancelled by operator"


class BatchCoordinator:
    """Run a batch of assignments for one identity."""

    def __init__(self, engine: AssignmentEngine) -> None:
        """Initialize the coordinator.

        Args:
            engine: Engine that applies individual requests
        """
        self.engine = engine
        self._cancel = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next assignment starts."""
        if not self._cancel.is_set():
            logger.warning("Cancellation requested, finishing current assignment")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancel.is_set()

    async def run_labels(self, identity: Identity, labels: Iterable[str]) -> BatchResult:
        """Classify display labels and run the resulting requests.

        Blank and separator labels produce no outcome.
        """
        return await self.run(identity, classify_labels(labels))

    async def run(self, identity: Identity, requests: list[AssignmentRequest]) -> BatchResult:
        """Apply all requests and return one terminal outcome per request.

        A cancellation request applies to the run in progress (or the next
        one, if none is running) and is cleared when that run returns.

        Args:
            identity: Principal receiving the assignments
            requests: Requests to apply; order does not affect results

        Returns:
            BatchResult with outcomes in request order
        """
        try:
            return await self._run(identity, requests)
        finally:
            self._cancel.clear()

    async def _run(self, identity: Identity, requests: list[AssignmentRequest]) -> BatchResult:
        result = BatchResult(identity=identity)
        if not requests:
            return result

        logger.info(f"Processing {len(requests)} assignment(s) for {identity.principal_name}")

        snapshot = await TenantSnapshot.load(
            self.engine.directory,
            self.engine.mailbox,
            include_groups=any(r.target_kind.is_group for r in requests),
            include_mailboxes=any(r.target_kind.is_exchange for r in requests),
        )

        outcomes: list[AssignmentOutcome | None] = [None] * len(requests)
        propagation_done = False

        # Pass 1
        for index, request in enumerate(requests):
            if self.cancelled:
                break
            lookup_error = snapshot.lookup_error(request.target_kind)
            if lookup_error is not None:
                outcomes[index] = self._terminal(
                    request,
                    AssignmentStatus.FAILED_PERMANENT,
                    f"tenant lookup failed: {lookup_error}",
                )
                continue
            if request.target_kind.is_exchange and not propagation_done:
                await self._wait_for_propagation()
                propagation_done = True
                if self.cancelled:
                    break
            outcomes[index] = await self.engine.apply(identity, request, snapshot, FIRST_PASS)

        # Pass 2, only over what was deferred
        deferred = [
            i
            for i, o in enumerate(outcomes)
            if o is not None and o.status is AssignmentStatus.DEFERRED_FOR_RETRY
        ]
        if deferred and not self.cancelled:
            logger.info(f"Second pass for {len(deferred)} deferred assignment(s)")
            result.second_pass_ran = True
            for index in deferred:
                if self.cancelled:
                    break
                outcomes[index] = await self.engine.apply(
                    identity, requests[index], snapshot, SECOND_PASS
                )

        for index, request in enumerate(requests):
            current = outcomes[index]
            if current is None or not current.status.is_terminal:
                outcomes[index] = self._terminal(
                    request, AssignmentStatus.CANCELLED, CANCELLED_DETAIL
                )

        result.outcomes = [o for o in outcomes if o is not None]
        for line in result.summary_lines():
            logger.info(line)
        return result

    async def _wait_for_propagation(self) -> None:
        delay = self.engine.policy.propagation_delay_seconds
        if delay <= 0:
            return
        logger.info(f"Waiting {delay:g}s for the new account to reach Exchange Online")
        self.engine.log_activity(
            "Exchange Online", "waiting", f"allowing {delay:g}s for directory propagation"
        )
        await self.engine.sleep(delay)

    def _terminal(
        self,
        request: AssignmentRequest,
        status: AssignmentStatus,
        detail: str,
    ) -> AssignmentOutcome:
        self.engine.log_activity(
            CATEGORIES[request.target_kind],
            "cancelled" if status is AssignmentStatus.CANCELLED else "failed",
            f"{request.target_name}: {detail}",
        )
        return AssignmentOutcome(
            target_name=request.target_name,
            target_kind=request.target_kind,
            status=status,
            detail=detail,
        )
