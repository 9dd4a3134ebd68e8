"""Order lifecycle state machine.

Workflows are fixed stage sequences selected by order type. ``LifecycleEngine``
applies one action (advance, hold, cancel, retry, escalate, rollback) to a
``LifecycleState`` and returns a ``LifecycleResult`` describing what changed,
including the events to persist. The engine is pure: side effects happen in
the two hooks it is given.

- ``gate(stage)`` runs before an order leaves ``stage`` and raises
  ``StageFailed`` when the stage's work cannot be completed.
- ``on_cancel(state)`` runs before an order is cancelled.

Persistence, notifications and the meaning of each gate live in
``apps.orders.workflow``.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from .domain import OrderType

ON_HOLD = "ON_HOLD"
CANCELLED = "CANCELLED"
DELIVERED = "DELIVERED"
TERMINAL_STAGES = frozenset({DELIVERED, CANCELLED})

MAX_RETRIES = 3

ACTIONS = ("advance", "hold", "cancel", "retry", "escalate", "rollback")


class StageFailed(Exception):
    """Raised by a gate when the work of a stage fails."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class WorkflowStage:
    name: str
    responsible: str
    requires_payment: bool = False

    @property
    def automatic(self) -> bool:
        return self.responsible == "auto_approval"


@dataclass(frozen=True)
class Workflow:
    """An ordered list of stages plus the metrics used for estimates."""

    key: str
    name: str
    stages: tuple
    average_completion_hours: int
    # Stages from which an order can no longer be cancelled
    shipping_stage: str

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self.stages]

    def stage(self, name: str) -> Optional[WorkflowStage]:
        for s in self.stages:
            if s.name == name:
                return s
        return None

    def index(self, name: str) -> int:
        return self.stage_names.index(name)

    def next_stage(self, name: str) -> Optional[str]:
        names = self.stage_names
        if name not in names:
            return None
        i = names.index(name)
        return names[i + 1] if i + 1 < len(names) else None

    def previous_stage(self, name: str) -> Optional[str]:
        names = self.stage_names
        if name not in names:
            return None
        i = names.index(name)
        return names[i - 1] if i > 0 else None

    def payment_stage(self) -> str:
        return next(s.name for s in self.stages if s.requires_payment)

    def fulfillment_stage(self) -> str:
        """First stage after payment."""
        return self.next_stage(self.payment_stage())


STANDARD_WORKFLOW = Workflow(
    key="STANDARD_ORDER",
    name="Standard Order Workflow",
    stages=(
        WorkflowStage("DRAFT", "customer"),
        WorkflowStage("PENDING_APPROVAL", "supplier"),
        WorkflowStage("PAYMENT_PROCESSING", "payment_processor", requires_payment=True),
        WorkflowStage("FULFILLMENT_READY", "warehouse"),
        WorkflowStage("IN_FULFILLMENT", "warehouse"),
        WorkflowStage("SHIPPED", "carrier"),
        WorkflowStage(DELIVERED, "customer"),
    ),
    average_completion_hours=72,
    shipping_stage="SHIPPED",
)

RUSH_WORKFLOW = Workflow(
    key="RUSH_ORDER",
    name="Rush Order Workflow",
    stages=(
        WorkflowStage("DRAFT", "customer"),
        WorkflowStage("IMMEDIATE_APPROVAL", "auto_approval"),
        WorkflowStage("PRIORITY_PAYMENT", "payment_processor", requires_payment=True),
        WorkflowStage("PRIORITY_FULFILLMENT", "warehouse"),
        WorkflowStage("EXPEDITED_SHIPPING", "carrier"),
        WorkflowStage(DELIVERED, "customer"),
    ),
    average_completion_hours=24,
    shipping_stage="EXPEDITED_SHIPPING",
)


def workflow_for(order_type) -> Workflow:
    """Rush orders get the rush workflow, every other type the standard one."""
    value = order_type.value if isinstance(order_type, OrderType) else str(order_type)
    return RUSH_WORKFLOW if value == OrderType.RUSH.value else STANDARD_WORKFLOW


@dataclass
class LifecycleState:
    stage: str
    held_from: str = ""
    stage_failed: bool = False
    failure_code: str = ""
    retry_count: int = 0
    escalated: bool = False


@dataclass
class EventRecord:
    event_type: str
    from_stage: str
    to_stage: str
    reason: str = ""
    source: str = "user"
    severity: str = "info"
    metadata: dict = field(default_factory=dict)


@dataclass
class LifecycleResult:
    success: bool
    action: str
    previous_stage: str
    current_stage: str
    next_stage: Optional[str] = None
    estimated_completion: Optional[datetime] = None
    actions: list = field(default_factory=list)
    error: Optional[str] = None
    events: List[EventRecord] = field(default_factory=list)
    processing_time_ms: int = 0
    stages_processed: int = 0
    automations_triggered: int = 0

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "action": self.action,
            "previous_stage": self.previous_stage,
            "current_stage": self.current_stage,
            "next_stage": self.next_stage,
            "estimated_completion": (
                self.estimated_completion.isoformat() if self.estimated_completion else None
            ),
            "actions": self.actions,
            "error": self.error,
            "metadata": {
                "processing_time_ms": self.processing_time_ms,
                "stages_processed": self.stages_processed,
                "automations_triggered": self.automations_triggered,
            },
        }


def _no_gate(stage: str) -> None:
    return None


def _no_cancel(state: LifecycleState) -> None:
    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleEngine:
    """Apply lifecycle actions to an order's state within one workflow."""

    def __init__(
        self,
        workflow: Workflow,
        gate: Callable[[str], None] = _no_gate,
        on_cancel: Callable[[LifecycleState], None] = _no_cancel,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.workflow = workflow
        self.gate = gate
        self.on_cancel = on_cancel
        self.clock = clock

    def apply(
        self,
        state: LifecycleState,
        action: str,
        reason: str,
        target_stage: Optional[str] = None,
        auto_progress: bool = True,
    ) -> LifecycleResult:
        """Apply ``action`` to ``state`` in place.

        Rejected actions leave ``state`` untouched and return a result with
        ``success=False`` and an error code. A failing gate is not a
        rejection: the stage is marked failed, which is itself recorded.

        Raises:
            ValueError: ``UNKNOWN_ACTION`` for an action outside ``ACTIONS``.
        """
        if action not in ACTIONS:
            raise ValueError("UNKNOWN_ACTION")

        started = time.perf_counter()
        previous = state.stage
        result = LifecycleResult(success=True, action=action, previous_stage=previous, current_stage=previous)

        handler = getattr(self, f"_{action}")
        handler(state, reason, target_stage, auto_progress, result)

        result.current_stage = state.stage
        result.next_stage = self._next_for(state)
        result.estimated_completion = self.estimate_completion(state)
        result.actions = self.stage_actions(state)
        result.processing_time_ms = int((time.perf_counter() - started) * 1000)
        return result

    # ---- actions ----
    def _advance(self, state, reason, target_stage, auto_progress, result):
        if state.stage in TERMINAL_STAGES:
            return self._reject(result, "INVALID_TRANSITION")

        if state.stage == ON_HOLD:
            if target_stage and target_stage != state.held_from:
                return self._reject(result, "PREREQUISITE_NOT_MET")
            resumed = state.held_from
            result.events.append(EventRecord("resumed", ON_HOLD, resumed, reason))
            state.stage, state.held_from = resumed, ""
            result.stages_processed += 1
            return

        if state.stage_failed:
            return self._reject(result, "STAGE_FAILED")

        nxt = self.workflow.next_stage(state.stage)
        if nxt is None:
            return self._reject(result, "INVALID_TRANSITION")
        if target_stage and target_stage != nxt:
            return self._reject(result, "PREREQUISITE_NOT_MET")

        if not self._leave_stage(state, reason, result, source="user"):
            return
        if auto_progress:
            self._auto_progress(state, result)

    def _hold(self, state, reason, target_stage, auto_progress, result):
        if state.stage in TERMINAL_STAGES or state.stage == ON_HOLD:
            return self._reject(result, "INVALID_TRANSITION")
        result.events.append(EventRecord("held", state.stage, ON_HOLD, reason, severity="warning"))
        state.held_from, state.stage = state.stage, ON_HOLD
        result.stages_processed += 1

    def _cancel(self, state, reason, target_stage, auto_progress, result):
        if state.stage in TERMINAL_STAGES:
            return self._reject(result, "INVALID_TRANSITION")
        effective = state.held_from if state.stage == ON_HOLD else state.stage
        if self.workflow.index(effective) >= self.workflow.index(self.workflow.shipping_stage):
            return self._reject(result, "INVALID_TRANSITION")

        self.on_cancel(state)
        result.events.append(EventRecord("cancelled", state.stage, CANCELLED, reason, severity="warning"))
        state.stage, state.held_from = CANCELLED, ""
        state.stage_failed, state.failure_code = False, ""
        result.stages_processed += 1

    def _retry(self, state, reason, target_stage, auto_progress, result):
        if not state.stage_failed:
            return self._reject(result, "NOTHING_TO_RETRY")
        if state.retry_count >= MAX_RETRIES:
            return self._reject(result, "RETRY_LIMIT_EXCEEDED")

        if self._leave_stage(state, reason, result, source="system", retrying=True):
            if auto_progress:
                self._auto_progress(state, result)
            return

        state.retry_count += 1
        if state.retry_count >= MAX_RETRIES:
            self._escalate_state(state, f"retry limit reached: {state.failure_code}", result, source="system")
            result.error = "RETRY_LIMIT_EXCEEDED"

    def _escalate(self, state, reason, target_stage, auto_progress, result):
        if state.stage in TERMINAL_STAGES:
            return self._reject(result, "INVALID_TRANSITION")
        self._escalate_state(state, reason, result, source="user")

    def _rollback(self, state, reason, target_stage, auto_progress, result):
        if state.stage in TERMINAL_STAGES or state.stage == ON_HOLD:
            return self._reject(result, "INVALID_TRANSITION")
        prev = self.workflow.previous_stage(state.stage)
        if prev is None:
            return self._reject(result, "INVALID_TRANSITION")
        if target_stage and target_stage != prev:
            return self._reject(result, "PREREQUISITE_NOT_MET")
        result.events.append(EventRecord("rolled_back", state.stage, prev, reason, severity="warning"))
        self._enter(state, prev)
        result.stages_processed += 1

    # ---- helpers ----
    def _leave_stage(self, state, reason, result, source, retrying=False) -> bool:
        """Run the gate of the current stage and move to the next one."""
        current = state.stage
        try:
            self.gate(current)
        except StageFailed as e:
            state.stage_failed, state.failure_code = True, e.code
            result.events.append(
                EventRecord(
                    "stage_failed",
                    current,
                    current,
                    reason,
                    source=source,
                    severity="error",
                    metadata={"code": e.code, "retry": retrying},
                )
            )
            result.success, result.error = False, e.code
            return False

        nxt = self.workflow.next_stage(current)
        event_type = "retried" if retrying else "advanced"
        result.events.append(EventRecord(event_type, current, nxt, reason, source=source))
        self._enter(state, nxt)
        result.stages_processed += 1
        return True

    def _auto_progress(self, state, result) -> None:
        while state.stage not in TERMINAL_STAGES:
            stage = self.workflow.stage(state.stage)
            if stage is None or not stage.automatic:
                return
            if not self._leave_stage(state, "auto approval", result, source="system"):
                return
            result.automations_triggered += 1

    def _escalate_state(self, state, reason, result, source) -> None:
        state.escalated = True
        result.events.append(
            EventRecord("escalated", state.stage, state.stage, reason, source=source, severity="critical")
        )

    @staticmethod
    def _enter(state: LifecycleState, stage: str) -> None:
        state.stage = stage
        state.stage_failed, state.failure_code, state.retry_count = False, "", 0

    @staticmethod
    def _reject(result: LifecycleResult, code: str) -> None:
        result.success, result.error = False, code

    def _next_for(self, state: LifecycleState) -> Optional[str]:
        if state.stage == ON_HOLD:
            return state.held_from
        return self.workflow.next_stage(state.stage)

    def estimate_completion(self, state: LifecycleState) -> Optional[datetime]:
        """``now + average hours * remaining stages / total stages``."""
        if state.stage == CANCELLED:
            return None
        stage = state.held_from if state.stage == ON_HOLD else state.stage
        names = self.workflow.stage_names
        if stage not in names:
            return None
        remaining = len(names) - 1 - names.index(stage)
        hours = self.workflow.average_completion_hours * remaining / len(names)
        return self.clock() + timedelta(hours=hours)

    def stage_actions(self, state: LifecycleState) -> list:
        if state.stage in TERMINAL_STAGES or state.stage == ON_HOLD:
            return []
        stage = self.workflow.stage(state.stage)
        return [
            {
                "id": f"action_{uuid.uuid4().hex[:12]}",
                "type": "automated" if stage and stage.automatic else "manual",
                "description": f"Process {state.stage} stage",
                "status": "failed" if state.stage_failed else "pending",
                "retry_count": state.retry_count,
                "max_retries": MAX_RETRIES,
            }
        ]
