import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum

from gcping.core.exceptions import ConflictError, PartialFailure, ProvisioningError
from gcping.core.region_store import RegionStore
from gcping.core.utils import setup_logger
from gcping.providers.provider_base import CloudProvider
from gcping.providers.provider_types import (
    DeploymentPlan,
    ObservedState,
    Operation,
    OperationKind,
    RegionSet,
    RegionStatus,
)

logger = setup_logger(name="core.reconciler")

# kind -> kinds that must run first when both are planned for the same region
DEPENDENCIES: dict[OperationKind, set[OperationKind]] = {
    OperationKind.RESERVE_ADDRESS: set(),
    OperationKind.DELETE_INSTANCE: set(),
    OperationKind.CREATE_INSTANCE: {OperationKind.RESERVE_ADDRESS, OperationKind.DELETE_INSTANCE},
    OperationKind.RELEASE_ADDRESS: {OperationKind.DELETE_INSTANCE},
}


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


@dataclass
class RegionResult:
    region: str
    outcome: Outcome
    reason: str | None = None
    applied: list[Operation] = field(default_factory=list)


@dataclass
class ReconcileReport:
    plan: DeploymentPlan
    results: list[RegionResult] = field(default_factory=list)

    def _with(self, outcome: Outcome) -> list[RegionResult]:
        return [r for r in self.results if r.outcome == outcome]

    @property
    def succeeded(self) -> list[RegionResult]:
        return self._with(Outcome.SUCCESS)

    @property
    def failed(self) -> list[RegionResult]:
        return self._with(Outcome.FAILED)

    @property
    def pending(self) -> list[RegionResult]:
        return self._with(Outcome.PENDING)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.pending

    def result_for(self, region_id: str) -> RegionResult | None:
        return next((r for r in self.results if r.region == region_id), None)

    def raise_for_failures(self) -> None:
        """Raise PartialFailure if any region failed"""
        if self.failed:
            raise PartialFailure(self)


def order_operations(operations: Iterable[Operation]) -> list[Operation]:
    """
    Order one region's operations so every kind runs after the kinds it
    depends on. Independent operations keep their relative order.
    """
    remaining = list(operations)
    ordered: list[Operation] = []
    while remaining:
        pending_kinds = {op.kind for op in remaining}
        ready = next(
            (op for op in remaining if not (DEPENDENCIES[op.kind] & pending_kinds)),
            None,
        )
        if ready is None:
            raise ValueError(f"Cyclic operation dependencies: {remaining}")
        remaining.remove(ready)
        ordered.append(ready)
    return ordered


def compute_plan(
    desired: RegionSet,
    observed: ObservedState,
    replace: Iterable[str] = (),
) -> DeploymentPlan:
    """
    Compute the operations that converge observed infrastructure to the
    desired region set.

    Desired regions come first in desired order, followed by removed regions
    in lexicographic order. A converged state yields an empty plan.
    """
    replace = set(replace)
    for region_id in sorted(replace - set(desired.ids())):
        logger.warning(f"Ignoring replacement of {region_id}: not a desired region")

    operations: list[Operation] = []

    for region in desired:
        region_id = region.id
        address = observed.addresses.get(region_id)
        instance = observed.instances.get(region_id)
        ip = address.ip if address else None
        region_ops = []

        if address is None:
            region_ops.append(Operation(OperationKind.RESERVE_ADDRESS, region_id))

        misbound = (
            instance is not None
            and address is not None
            and instance.nat_ip is not None
            and instance.nat_ip != address.ip
        )
        needs_instance = (
            instance is None
            or not instance.running
            or address is None
            or misbound
            or region_id in replace
        )
        if needs_instance:
            if instance is not None:
                region_ops.append(Operation(OperationKind.DELETE_INSTANCE, region_id, ip))
            region_ops.append(Operation(OperationKind.CREATE_INSTANCE, region_id, ip))

        operations.extend(order_operations(region_ops))

    for region_id in sorted(observed.regions() - set(desired.ids())):
        address = observed.addresses.get(region_id)
        ip = address.ip if address else None
        region_ops = []
        if region_id in observed.instances:
            region_ops.append(Operation(OperationKind.DELETE_INSTANCE, region_id, ip))
        if address is not None:
            region_ops.append(Operation(OperationKind.RELEASE_ADDRESS, region_id, ip))
        operations.extend(order_operations(region_ops))

    return DeploymentPlan(operations)


class Reconciler:
    """
    Applies deployment plans against the provisioning collaborator.

    Regions are provisioned concurrently, at most `concurrency` at a time;
    the operations of one region always run in order on a single worker.
    Errors are captured per region and never abort the run.
    """

    def __init__(
        self,
        provider: CloudProvider,
        store: RegionStore,
        concurrency: int = 4,
        soft_deadline: float = 900.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.provider = provider
        self.store = store
        self.concurrency = concurrency
        self.soft_deadline = soft_deadline

    def plan(self, region_set: RegionSet, replace: Iterable[str] = ()) -> DeploymentPlan:
        observed = self.store.observe()
        return compute_plan(region_set, observed, replace)

    def reconcile(
        self,
        region_set: RegionSet,
        replace: Iterable[str] = (),
        cancel_event: threading.Event | None = None,
    ) -> ReconcileReport:
        """
        Observe provider state, plan, and apply.

        Only a failure to observe the provider propagates; per-region errors
        end up in the report.
        """
        observed = self.store.observe()
        self.store.sync(region_set, observed)
        plan = compute_plan(region_set, observed, replace)
        if plan.is_empty:
            logger.info("Infrastructure already converged, nothing to do")
        else:
            logger.info(f"Applying {len(plan)} operations across {len(plan.regions())} regions")

        report = self.apply(plan, cancel_event)

        # Desired regions without operations are already converged
        planned = set(plan.regions())
        converged = [
            RegionResult(region_id, Outcome.SUCCESS)
            for region_id in region_set.ids()
            if region_id not in planned
        ]
        region_order = dict.fromkeys(region_set.ids() + plan.regions())
        order = {region_id: i for i, region_id in enumerate(region_order)}
        report.results = sorted(converged + report.results, key=lambda r: order[r.region])
        return report

    def apply(
        self,
        plan: DeploymentPlan,
        cancel_event: threading.Event | None = None,
    ) -> ReconcileReport:
        by_region = plan.by_region()
        if not by_region:
            return ReconcileReport(plan)

        cancel_event = cancel_event or threading.Event()
        deadline_passed = threading.Event()

        def should_stop() -> bool:
            return cancel_event.is_set() or deadline_passed.is_set()

        # One slot per region, written only by that region's worker
        slots = {
            region_id: RegionResult(region_id, Outcome.PENDING, reason="not started")
            for region_id in by_region
        }

        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="reconcile")
        futures = {
            executor.submit(self._run_region, region_id, operations, slots, should_stop): region_id
            for region_id, operations in by_region.items()
        }
        done, not_done = wait(futures, timeout=self.soft_deadline)
        for future in done:
            error = future.exception()
            if error is not None:
                region_id = futures[future]
                logger.error(f"Worker for {region_id} crashed: {error}", exc_info=error)
                slots[region_id] = RegionResult(
                    region_id, Outcome.FAILED, reason=str(error), applied=list(slots[region_id].applied)
                )
        if not_done:
            deadline_passed.set()
            logger.warning(
                f"Soft deadline of {self.soft_deadline}s passed with "
                f"{len(not_done)} regions unfinished"
            )
        # In-flight provider calls finish in the background
        executor.shutdown(wait=False, cancel_futures=True)

        results = []
        for region_id in by_region:
            result = slots[region_id]
            if result.outcome == Outcome.PENDING and result.reason in ("not started", "in progress"):
                if cancel_event.is_set():
                    result = RegionResult(region_id, Outcome.PENDING, "cancelled", list(result.applied))
                elif deadline_passed.is_set():
                    result = RegionResult(region_id, Outcome.PENDING, "deadline exceeded", list(result.applied))
            results.append(result)

        report = ReconcileReport(plan, results)
        logger.info(
            f"Reconciliation finished: {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} failed, {len(report.pending)} pending"
        )
        return report

    def _run_region(
        self,
        region_id: str,
        operations: list[Operation],
        slots: dict[str, RegionResult],
        should_stop: Callable[[], bool],
    ) -> None:
        applied: list[Operation] = []
        address = next((op.address for op in operations if op.address), None)
        slots[region_id] = RegionResult(region_id, Outcome.PENDING, reason="in progress", applied=applied)
        status = self.store.status_of(region_id) or (
            RegionStatus.ADDRESS_RESERVED if address else RegionStatus.ABSENT
        )

        for op in operations:
            if should_stop():
                slots[region_id] = RegionResult(
                    region_id,
                    Outcome.PENDING,
                    reason=f"stopped before {op.kind.value}",
                    applied=applied,
                )
                return

            try:
                new_status, new_address = self._apply_operation(op, address)
                applied.append(op)
                self.store.record(region_id, new_status, address=new_address)
            except ProvisioningError as e:
                self._fail(region_id, op, str(e), status, address, applied, slots)
                return
            except Exception as e:
                logger.error(f"Unexpected error during {op}: {e}", exc_info=True)
                self._fail(region_id, op, str(e), status, address, applied, slots)
                return
            status, address = new_status, new_address

        slots[region_id] = RegionResult(region_id, Outcome.SUCCESS, applied=applied)

    def _fail(
        self,
        region_id: str,
        op: Operation,
        reason: str,
        status: RegionStatus,
        address: str | None,
        applied: list[Operation],
        slots: dict[str, RegionResult],
    ) -> None:
        """Mark the region failed, keeping the status it had before op."""
        logger.error(f"{op} failed: {reason}")
        slots[region_id] = RegionResult(region_id, Outcome.FAILED, reason=reason, applied=applied)
        self.store.record(region_id, status, address=address, error=reason)

    def _apply_operation(
        self, op: Operation, address: str | None
    ) -> tuple[RegionStatus, str | None]:
        """Run one provider call; returns the region's resulting status and address"""
        region_id = op.region
        logger.info(f"Applying {op}")

        if op.kind == OperationKind.RESERVE_ADDRESS:
            try:
                reserved = self.provider.reserve_address(region_id)
            except ConflictError:
                logger.info(f"Address for {region_id} already reserved, reusing it")
                reserved = self.provider.get_address(region_id)
            return RegionStatus.ADDRESS_RESERVED, reserved.ip

        if op.kind == OperationKind.CREATE_INSTANCE:
            if address is None:
                raise ProvisioningError(f"No reserved address to bind {region_id} to", region_id)
            try:
                self.provider.create_instance(region_id, address)
            except ConflictError:
                logger.info(f"Instance {region_id} already exists")
            return RegionStatus.INSTANCE_RUNNING, address

        if op.kind == OperationKind.DELETE_INSTANCE:
            try:
                self.provider.delete_instance(region_id)
            except ConflictError:
                logger.info(f"Instance {region_id} already deleted")
            if address is None:
                return RegionStatus.ABSENT, None
            return RegionStatus.ADDRESS_RESERVED, address

        if op.kind == OperationKind.RELEASE_ADDRESS:
            try:
                self.provider.release_address(region_id)
            except ConflictError:
                logger.info(f"Address for {region_id} already released")
            return RegionStatus.DELETED, None

        raise ValueError(f"Unknown operation kind: {op.kind}")
