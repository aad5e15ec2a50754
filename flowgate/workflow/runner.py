"""Driving loop for FLOWGATE.

The runner is the only component that calls the executor and the only
caller of the store's write path. Each step:

1. plans the dispatch for the task's current state
2. claims the in-flight state when the phase has one
3. runs the phase and waits for its terminal outcome
4. applies the outcome and persists the new state

Auto mode repeats this for the head of the scheduler's ranked ready list
until nothing is ready, a task pauses or a phase fails.
"""

import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum

from flowgate.integrations.errors import ExecutorTimeoutError
from flowgate.integrations.executor import PhaseExecutor
from flowgate.utils.console import (
    print_error,
    print_info,
    print_step,
    print_success,
    print_transition,
    print_warning,
)
from flowgate.utils.errors import FlowgateError, PhaseFailedError
from flowgate.utils.logging import log_dispatch
from flowgate.workflow.dependencies import (
    can_start,
    completed_task_ids,
    find_dependency_cycles,
    find_unknown_dependencies,
    unmet_dependencies,
)
from flowgate.workflow.epics import completed_epics
from flowgate.workflow.scheduler import ExclusionReason, Scheduler
from flowgate.workflow.states import Action, WorkflowState, is_terminal
from flowgate.workflow.store import TaskStore
from flowgate.workflow.tasks import Task
from flowgate.workflow.transitions import PhaseOutcome, apply_outcome, plan_dispatch

# Design review phases that backend-only tasks pass without running
BACKEND_SKIPPED_ACTIONS: frozenset[Action] = frozenset({Action.REVIEW_UX, Action.REVIEW_UI})


class StepStatus(Enum):
    """What happened to a task in one runner step."""

    ADVANCED = "advanced"
    DONE = "done"
    FAILED = "failed"  # reached INTEGRATION_FAILED or PR_FAILED
    PAUSED = "paused"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class StepResult:
    """Result of one runner step for one task."""

    task_id: str
    status: StepStatus
    from_state: WorkflowState
    to_state: WorkflowState
    message: str = ""


@dataclass
class AutoRunSummary:
    """Outcome of an auto-mode run.

    Attributes:
        completed: Task ids that reached DONE during the run
        reviewed_epics: Epics that had an epic review run
        stopped_at: Task that stopped the run, if any
        reason: Why the run ended
    """

    completed: list[str] = field(default_factory=list)
    reviewed_epics: list[str] = field(default_factory=list)
    stopped_at: str | None = None
    reason: str = ""


def dependency_warnings(tasks: Sequence[Task]) -> list[str]:
    """Describe dependency cycles and unknown dependency ids.

    Both leave tasks permanently unready; the scheduler itself stays
    silent about them, so the runner and the CLI report them.
    """
    warnings: list[str] = []
    for cycle in find_dependency_cycles(tasks):
        warnings.append(f"Dependency cycle: {' -> '.join(cycle + [cycle[0]])}")
    for task_id, missing in find_unknown_dependencies(tasks).items():
        warnings.append(f"{task_id} depends on unknown task(s): {', '.join(missing)}")
    return warnings


class WorkflowRunner:
    """Drives tasks through their phases.

    Attributes:
        store: Task store (snapshot reads and the single write path)
        executor: Performs the phase work
        default_breakpoints: States at which runs pause unless forced
        max_iterations: Step limit for one task run
        epic_review: Run the epic-review action for newly completed epics
    """

    def __init__(
        self,
        store: TaskStore,
        executor: PhaseExecutor,
        *,
        scheduler: Scheduler | None = None,
        default_breakpoints: frozenset[WorkflowState] = frozenset(),
        max_iterations: int = 20,
        epic_review: bool = False,
        force: bool = False,
    ) -> None:
        self.store = store
        self.executor = executor
        self._scheduler = scheduler
        self.default_breakpoints = default_breakpoints
        self.max_iterations = max_iterations
        self.epic_review = epic_review
        self.force = force

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is not None:
            return self._scheduler
        return Scheduler(self.store.epic_order())

    def _pause(self, task: Task, message: str) -> StepResult:
        print_warning(f"{task.id}: {message}")
        state = task.workflow_state
        return StepResult(task.id, StepStatus.PAUSED, state, state, message)

    def run_step(self, task: Task) -> StepResult:
        """Run one phase for ``task`` and persist the resulting state.

        Raises:
            PhaseFailedError: If the phase failed with no failure terminal;
                the task is put on a breakpoint first.
            InvalidTransitionError: If the executor reported an outcome the
                state table cannot route.
        """
        state = task.workflow_state

        if task.is_done:
            return StepResult(task.id, StepStatus.DONE, state, state, "already complete")
        if task.breakpoint:
            return self._pause(task, f"breakpoint set at {state.value}")
        if is_terminal(state):
            print_error(f"{task.id}: in terminal failure state {state.value}")
            return StepResult(task.id, StepStatus.FAILED, state, state, "terminal failure")
        if not self.force and state in self.default_breakpoints:
            return self._pause(task, f"default breakpoint at {state.value} (use --force)")
        if state is WorkflowState.PR_READY and task.skip_github:
            return self._pause(task, "skip_github set; commit and open the PR manually")

        plan = plan_dispatch(state)
        if plan is None:
            return self._pause(task, f"waiting for an external outcome at {state.value}")

        if task.is_backend_only and plan.action in BACKEND_SKIPPED_ACTIONS:
            new_state = apply_outcome(task.id, plan.outcome_state, PhaseOutcome.ACCEPTED)
            print_info(f"SKIP {task.id}: {plan.action.value} (backend-only task)")
            self.store.save_state(task.id, new_state, reason=f"skipped {plan.action.value}")
            return StepResult(task.id, StepStatus.ADVANCED, state, new_state, "skipped")

        agent = plan.action.agent
        if plan.claim_state is not None:
            self.store.save_state(
                task.id, plan.claim_state, agent=agent, reason=f"{plan.action.value} started"
            )

        print_step(f"{task.id}: {plan.action.value} ({agent} agent)")
        log_dispatch(task.id, plan.action.value, plan.fresh_context)
        try:
            result = self.executor.run_phase(
                plan.action, task.id, fresh_context=plan.fresh_context
            )
            outcome = result.outcome
        except ExecutorTimeoutError as e:
            print_warning(f"{task.id}: {e}")
            outcome = PhaseOutcome.FAILED

        # The agent may have moved the task itself (e.g. to TESTS_REVISION_NEEDED)
        expected = plan.outcome_state
        recorded = self.store.get(task.id).workflow_state
        if recorded is not expected:
            new_state = recorded
            reason = f"set by {plan.action.value}"
            self.store.save_state(
                task.id, new_state, agent=agent, reason=reason, from_state=expected
            )
        else:
            try:
                new_state = apply_outcome(task.id, plan.outcome_state, outcome)
            except PhaseFailedError:
                self.store.set_breakpoint(task.id, True)
                raise
            reason = outcome.value
            self.store.save_state(task.id, new_state, agent=agent, reason=reason)

        if new_state is WorkflowState.DONE:
            print_success(f"{task.id}: DONE")
            status = StepStatus.DONE
        elif is_terminal(new_state):
            print_error(f"{task.id}: {expected.value} -> {new_state.value}")
            status = StepStatus.FAILED
        else:
            print_transition(task.id, expected, new_state)
            status = StepStatus.ADVANCED
        return StepResult(task.id, status, state, new_state, reason)

    def run_task(self, task_id: str) -> list[StepResult]:
        """Run ``task_id`` until it is DONE, fails, pauses or hits the step limit."""
        task = self.store.get(task_id)
        tasks = self.store.load_all()
        if not task.is_done and not can_start(task, completed_task_ids(tasks)):
            unmet = unmet_dependencies(task, completed_task_ids(tasks))
            print_warning(f"{task_id}: waiting on dependencies: {', '.join(unmet)}")
            state = task.workflow_state
            return [StepResult(task_id, StepStatus.BLOCKED, state, state, "unmet dependencies")]
        return self._drive(task)

    def _drive(self, task: Task) -> list[StepResult]:
        results: list[StepResult] = []
        for _ in range(self.max_iterations):
            result = self.run_step(task)
            results.append(result)
            if result.status is not StepStatus.ADVANCED:
                return results
            task = self.store.get(task.id)
        print_warning(f"{task.id}: stopped after {self.max_iterations} steps")
        return results

    def report_outcome(self, task_id: str, outcome: PhaseOutcome) -> WorkflowState:
        """Apply an externally reported outcome for the task's current phase.

        The outcome lands where ``run_step`` would put it: for a state whose
        phase claims an in-flight state, it is applied to that in-flight
        state (DRAFT accepted -> ANALYZED, ANALYZED rejected -> ANALYZING).

        Raises:
            PhaseFailedError: If ``failed`` has no failure terminal here; the
                task is put on a breakpoint first.
            InvalidTransitionError: If the outcome cannot be routed.
        """
        task = self.store.get(task_id)
        plan = plan_dispatch(task.workflow_state)
        target = plan.outcome_state if plan else task.workflow_state
        try:
            new_state = apply_outcome(task_id, target, outcome)
        except PhaseFailedError:
            self.store.set_breakpoint(task_id, True)
            raise
        self.store.save_state(task_id, new_state, reason=f"reported {outcome.value}")
        return new_state

    def _review_new_epics(
        self, tasks: Sequence[Task], seen: set[str], summary: AutoRunSummary
    ) -> bool:
        """Announce newly completed epics; return True if an epic review ran."""
        ran = False
        for epic in sorted(completed_epics(tasks) - seen, key=self.scheduler.epic_order.key):
            seen.add(epic)
            print_success(f"All tasks in epic {epic} completed")
            if not self.epic_review:
                continue
            print_step(f"Epic review for {epic}")
            result = self.executor.run_phase(Action.EPIC_REVIEW, epic, fresh_context=False)
            summary.reviewed_epics.append(epic)
            ran = True
            if result.outcome is PhaseOutcome.FAILED:
                print_warning(f"Epic review failed for {epic}")
        return ran

    def _report_idle(self, tasks: Sequence[Task], summary: AutoRunSummary) -> None:
        if tasks and all(t.is_done for t in tasks):
            summary.reason = "all tasks complete"
            print_success("All tasks complete")
            return

        summary.reason = "no ready tasks"
        print_info("No ready tasks")
        for blocked in self.scheduler.blocked(tasks):
            detail = blocked.reason.value
            if blocked.reason is ExclusionReason.UNMET_DEPENDENCY:
                detail = f"waiting on {', '.join(blocked.unmet)}"
            print_info(f"  {blocked.task.id} [{blocked.task.workflow_state.value}]: {detail}")
        for warning in dependency_warnings(tasks):
            print_warning(warning)

    def run_auto(self, parallel: int = 1) -> AutoRunSummary:
        """Run ready tasks in scheduler order until the pipeline stalls.

        With ``parallel`` > 1, the ready tasks of the head epic run side by
        side, never crossing into a later epic.

        Raises:
            PhaseFailedError: If a phase fails with no failure terminal.
        """
        summary = AutoRunSummary()
        reviewed = completed_epics(self.store.load_all())

        while True:
            tasks = self.store.load_all()
            if self._review_new_epics(tasks, reviewed, summary):
                # Epic review may add follow-up tasks
                tasks = self.store.load_all()

            if parallel > 1:
                batch = self.scheduler.concurrent_batch(tasks, limit=parallel)
            else:
                head = self.scheduler.next_task(tasks)
                batch = [head] if head else []

            if not batch:
                self._report_idle(tasks, summary)
                return summary

            if len(batch) == 1:
                outcomes = {batch[0].id: self._drive(batch[0])[-1]}
            else:
                outcomes = self._run_batch(batch)

            for task_id, last in outcomes.items():
                if last.status is StepStatus.DONE:
                    summary.completed.append(task_id)
            stalled = [r for r in outcomes.values() if r.status is not StepStatus.DONE]
            if stalled:
                summary.stopped_at = stalled[0].task_id
                summary.reason = stalled[0].message or stalled[0].status.value
                return summary

    def _run_batch(self, batch: Sequence[Task]) -> dict[str, StepResult]:
        """Drive one epic's ready tasks concurrently."""
        results: dict[str, StepResult] = {}
        errors: list[FlowgateError] = []
        stop_flag = threading.Event()

        print_info(f"Running {len(batch)} tasks of epic {batch[0].epic} in parallel")

        def drive_one(task: Task) -> StepResult | None:
            if stop_flag.is_set():
                return None
            # Eligibility may have changed since the batch was computed
            fresh = self.store.load_all()
            current = next((t for t in fresh if t.id == task.id), None)
            if (
                current is None
                or current.breakpoint
                or not can_start(current, completed_task_ids(fresh))
            ):
                return None
            return self._drive(current)[-1]

        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = {pool.submit(drive_one, task): task for task in batch}
            for future in as_completed(futures):
                task = futures[future]
                try:
                    result = future.result()
                except FlowgateError as e:
                    print_error(f"[PARALLEL] {task.id}: {e}")
                    errors.append(e)
                    stop_flag.set()
                    continue
                if result is None:
                    print_info(f"[PARALLEL] Skipped: {task.id}")
                    continue
                results[task.id] = result

        if errors:
            raise errors[0]
        return results


__all__ = [
    "BACKEND_SKIPPED_ACTIONS",
    "StepStatus",
    "StepResult",
    "AutoRunSummary",
    "WorkflowRunner",
    "dependency_warnings",
]
