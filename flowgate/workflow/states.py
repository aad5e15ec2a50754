"""Workflow state table for FLOWGATE.

This module is the single source of truth for the phase pipeline:

- WorkflowState: the closed set of 24 workflow states
- StateCategory: actionable, in-flight or terminal
- Action: the phase actions an executor can be asked to perform
- get_next_state / get_required_action: the two total lookup tables

Both tables are validated when the module is imported, so a missing or
inconsistent entry fails at startup rather than in the middle of a run.
"""

from enum import Enum

from flowgate.utils.errors import ConfigurationError, InvalidTransitionError


class WorkflowState(Enum):
    """Phase a task is currently in."""

    BACKLOG = "BACKLOG"
    BREAKING_DOWN = "BREAKING_DOWN"
    DRAFT = "DRAFT"
    ANALYZING = "ANALYZING"
    ANALYZED = "ANALYZED"
    UX_REVIEW = "UX_REVIEW"
    PLAN_REVIEW = "PLAN_REVIEW"
    APPROVED = "APPROVED"
    WRITING_TESTS = "WRITING_TESTS"
    TESTS_READY = "TESTS_READY"
    TESTS_REVISION_NEEDED = "TESTS_REVISION_NEEDED"
    IMPLEMENTING = "IMPLEMENTING"
    IMPLEMENTED = "IMPLEMENTED"
    UI_REVIEW = "UI_REVIEW"
    CODE_REVIEW = "CODE_REVIEW"
    QA_REVIEW = "QA_REVIEW"
    INTEGRATION_TESTING = "INTEGRATION_TESTING"
    INTEGRATION_FAILED = "INTEGRATION_FAILED"
    DOCS_UPDATE = "DOCS_UPDATE"
    PR_READY = "PR_READY"
    PR_CREATED = "PR_CREATED"
    PR_REVIEW = "PR_REVIEW"
    PR_FAILED = "PR_FAILED"
    DONE = "DONE"


class StateCategory(Enum):
    """How the driver treats a state."""

    ACTIONABLE = "actionable"  # one action dispatches the phase
    IN_FLIGHT = "in_flight"  # phase work is underway or awaiting an outcome
    TERMINAL = "terminal"  # no successor


class Action(Enum):
    """Phase actions understood by the executor.

    The value is the command key passed to the executor.
    """

    PLAN = "plan"
    ANALYZE = "analyze"
    REVIEW_UX = "review-ux"
    REVIEW_PLAN = "review-plan"
    WRITE_TESTS = "write-tests"
    IMPLEMENT = "implement"
    REVIEW_UI = "review-ui"
    REVIEW_CODE = "review-code"
    QA = "qa"
    INTEGRATION_VERIFY = "integration-verify"
    UPDATE_DOCS = "update-docs"
    COMMIT_AND_PR = "commit-and-pr"
    EPIC_REVIEW = "epic-review"

    @property
    def agent(self) -> str:
        """Name of the agent role that performs this action."""
        return _ACTION_AGENTS[self]

    @property
    def resumable(self) -> bool:
        """Whether the action may be re-run for a task found mid-phase."""
        return self not in _NON_RESUMABLE


_ACTION_AGENTS: dict[Action, str] = {
    Action.PLAN: "pm",
    Action.ANALYZE: "analyst",
    Action.REVIEW_UX: "designer",
    Action.REVIEW_PLAN: "architect",
    Action.WRITE_TESTS: "developer",
    Action.IMPLEMENT: "developer",
    Action.REVIEW_UI: "designer",
    Action.REVIEW_CODE: "reviewer",
    Action.QA: "qa",
    Action.INTEGRATION_VERIFY: "qa",
    Action.UPDATE_DOCS: "writer",
    Action.COMMIT_AND_PR: "git-agent",
    Action.EPIC_REVIEW: "pm",
}

# Re-running these can repeat an external side effect (a second commit and PR)
_NON_RESUMABLE: frozenset[Action] = frozenset({Action.COMMIT_AND_PR})

S = WorkflowState

INITIAL_STATE = S.DRAFT
TERMINAL_SUCCESS = S.DONE

_DEFAULT_NEXT: dict[WorkflowState, WorkflowState | None] = {
    S.BACKLOG: S.BREAKING_DOWN,
    S.BREAKING_DOWN: S.DRAFT,
    S.DRAFT: S.ANALYZING,
    S.ANALYZING: S.ANALYZED,
    S.ANALYZED: S.UX_REVIEW,
    S.UX_REVIEW: S.PLAN_REVIEW,
    S.PLAN_REVIEW: S.APPROVED,
    S.APPROVED: S.WRITING_TESTS,
    S.WRITING_TESTS: S.TESTS_READY,
    S.TESTS_READY: S.IMPLEMENTING,
    S.TESTS_REVISION_NEEDED: S.TESTS_READY,
    S.IMPLEMENTING: S.IMPLEMENTED,
    S.IMPLEMENTED: S.UI_REVIEW,
    S.UI_REVIEW: S.CODE_REVIEW,
    S.CODE_REVIEW: S.QA_REVIEW,
    S.QA_REVIEW: S.INTEGRATION_TESTING,
    S.INTEGRATION_TESTING: S.DOCS_UPDATE,
    S.INTEGRATION_FAILED: None,
    S.DOCS_UPDATE: S.PR_READY,
    S.PR_READY: S.PR_CREATED,
    S.PR_CREATED: S.DONE,
    S.PR_REVIEW: S.DONE,
    S.PR_FAILED: None,
    S.DONE: None,
}

_REJECTION_NEXT: dict[WorkflowState, WorkflowState] = {
    S.UX_REVIEW: S.ANALYZING,
    S.PLAN_REVIEW: S.ANALYZING,
    S.UI_REVIEW: S.IMPLEMENTING,
    S.CODE_REVIEW: S.IMPLEMENTING,
    S.QA_REVIEW: S.IMPLEMENTING,
    S.INTEGRATION_TESTING: S.INTEGRATION_FAILED,
}

_ACTIONS: dict[WorkflowState, Action] = {
    S.BACKLOG: Action.PLAN,
    S.DRAFT: Action.ANALYZE,
    S.ANALYZED: Action.REVIEW_UX,
    S.PLAN_REVIEW: Action.REVIEW_PLAN,
    S.APPROVED: Action.WRITE_TESTS,
    S.TESTS_READY: Action.IMPLEMENT,
    S.TESTS_REVISION_NEEDED: Action.WRITE_TESTS,
    S.IMPLEMENTED: Action.REVIEW_UI,
    S.CODE_REVIEW: Action.REVIEW_CODE,
    S.QA_REVIEW: Action.QA,
    S.INTEGRATION_TESTING: Action.INTEGRATION_VERIFY,
    S.DOCS_UPDATE: Action.UPDATE_DOCS,
    S.PR_READY: Action.COMMIT_AND_PR,
}

_IN_FLIGHT: frozenset[WorkflowState] = frozenset(
    {
        S.BREAKING_DOWN,
        S.ANALYZING,
        S.UX_REVIEW,
        S.WRITING_TESTS,
        S.IMPLEMENTING,
        S.UI_REVIEW,
        S.PR_CREATED,
        S.PR_REVIEW,
    }
)

_TERMINAL: frozenset[WorkflowState] = frozenset({S.DONE, S.INTEGRATION_FAILED, S.PR_FAILED})


def state_category(state: WorkflowState) -> StateCategory:
    """Return the category of a workflow state."""
    if state in _TERMINAL:
        return StateCategory.TERMINAL
    if state in _IN_FLIGHT:
        return StateCategory.IN_FLIGHT
    if state in _ACTIONS:
        return StateCategory.ACTIONABLE
    raise ConfigurationError(f"Workflow state has no category: {state}")


def is_terminal(state: WorkflowState) -> bool:
    """True for DONE, INTEGRATION_FAILED and PR_FAILED."""
    return state in _TERMINAL


def is_review_state(state: WorkflowState) -> bool:
    """True for the states that accept a ``rejected`` outcome."""
    return state in _REJECTION_NEXT


def get_next_state(state: WorkflowState, rejected: bool = False) -> WorkflowState | None:
    """Look up the successor of a state.

    Args:
        state: Current workflow state
        rejected: Whether the phase outcome was a rejection

    Returns:
        The successor state, or None for terminal states (regardless of
        ``rejected``).

    Raises:
        InvalidTransitionError: If ``rejected`` is set for a non-terminal
            state that has no rejection path.
        ConfigurationError: If ``state`` is not a WorkflowState.
    """
    if not isinstance(state, WorkflowState):
        raise ConfigurationError(f"Unknown workflow state: {state!r}")
    if state in _TERMINAL:
        return None
    if rejected:
        if state not in _REJECTION_NEXT:
            raise InvalidTransitionError(
                f"State {state.value} does not accept a rejected outcome",
                state=state.value,
            )
        return _REJECTION_NEXT[state]
    return _DEFAULT_NEXT[state]


def get_required_action(state: WorkflowState) -> Action | None:
    """Return the action for an actionable state, None otherwise."""
    if not isinstance(state, WorkflowState):
        raise ConfigurationError(f"Unknown workflow state: {state!r}")
    return _ACTIONS.get(state)


def owning_state(state: WorkflowState) -> WorkflowState | None:
    """Return the actionable state whose action drives ``state``.

    For an in-flight state this is the actionable predecessor whose
    default successor is ``state``; re-dispatching its action resumes the
    phase. Returns None when no action owns the state (e.g. PR_REVIEW,
    which waits for an external outcome).
    """
    for source in _ACTIONS:
        if _DEFAULT_NEXT[source] is state:
            return source
    return None


def parse_workflow_state(value: str, context: str = "workflow_state") -> WorkflowState:
    """Parse a workflow state name.

    Raises:
        ConfigurationError: If ``value`` is not a workflow state name.
    """
    normalized = str(value).strip().upper()
    try:
        return WorkflowState(normalized)
    except ValueError:
        raise ConfigurationError(f"Invalid {context} value: {value!r}") from None


def _happy_path() -> tuple[WorkflowState, ...]:
    path = [INITIAL_STATE]
    while (nxt := _DEFAULT_NEXT[path[-1]]) is not None:
        path.append(nxt)
    return tuple(path)


def validate_state_table() -> None:
    """Check that the transition and action tables are total and consistent.

    Raises:
        ConfigurationError: On the first inconsistency found.
    """
    for state in WorkflowState:
        if state not in _DEFAULT_NEXT:
            raise ConfigurationError(f"State {state.value} missing from transition table")
        categories = [state in _ACTIONS, state in _IN_FLIGHT, state in _TERMINAL]
        if sum(categories) != 1:
            raise ConfigurationError(f"State {state.value} must have exactly one category")
        if state in _TERMINAL:
            if _DEFAULT_NEXT[state] is not None or state in _REJECTION_NEXT:
                raise ConfigurationError(f"Terminal state {state.value} has a successor")
        elif _DEFAULT_NEXT[state] is None:
            raise ConfigurationError(f"Non-terminal state {state.value} has no successor")

    for state, target in _REJECTION_NEXT.items():
        if target is _DEFAULT_NEXT[state]:
            raise ConfigurationError(
                f"Rejection successor of {state.value} equals its default successor"
            )

    for state in _IN_FLIGHT:
        owners = [s for s in _ACTIONS if _DEFAULT_NEXT[s] is state]
        if len(owners) > 1:
            raise ConfigurationError(f"In-flight state {state.value} has several owners")

    if _happy_path()[-1] is not TERMINAL_SUCCESS:
        raise ConfigurationError("Default path from the initial state does not reach DONE")


validate_state_table()

HAPPY_PATH: tuple[WorkflowState, ...] = _happy_path()

# Board display order
STATE_ORDER: tuple[WorkflowState, ...] = tuple(WorkflowState)

__all__ = [
    "WorkflowState",
    "StateCategory",
    "Action",
    "INITIAL_STATE",
    "TERMINAL_SUCCESS",
    "HAPPY_PATH",
    "STATE_ORDER",
    "state_category",
    "is_terminal",
    "is_review_state",
    "get_next_state",
    "get_required_action",
    "owning_state",
    "parse_workflow_state",
    "validate_state_table",
]
