"""
Result types returned by TraversalEngine operations.

Every engine operation returns one of these values. Conditions such as a
dangling reference or back() at the root are outcomes, not exceptions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from clinical_tree.contracts import LogEntry, Node, RecommendationItem


class SessionStatus(str, Enum):
    """Navigation state of a session."""
    ACTIVE = "active"
    TERMINAL = "terminal"
    ERROR = "error"


class Outcome(str, Enum):
    """
    What a single operation did.

    ADVANCED: cursor moved to the next question
    INFORMATIONAL: selection recorded, cursor did not move
    GUIDANCE: terminal node reached, recommendations collected
    NO_RECOMMENDATIONS: dead end or empty terminal, single info item
    DANGLING_REFERENCE / MISSING_NODE: error outcomes
    WENT_BACK / RESTARTED: navigation resets
    """
    ADVANCED = "advanced"
    INFORMATIONAL = "informational"
    GUIDANCE = "guidance"
    NO_RECOMMENDATIONS = "no_recommendations"
    DANGLING_REFERENCE = "dangling_reference"
    MISSING_NODE = "missing_node"
    WENT_BACK = "went_back"
    RESTARTED = "restarted"


class ErrorKind(str, Enum):
    DANGLING_REFERENCE = "dangling_reference"
    MISSING_NODE = "missing_node"
    EMPTY_TERMINAL = "empty_terminal"
    INVALID_BACK = "invalid_back"


@dataclass(frozen=True)
class EngineError:
    """
    Error tag attached to a session or result.

    Attributes:
        kind: Error taxonomy entry
        node_id: Offending node id (unresolved reference, missing cursor,
                 or the terminal node that yielded nothing)
    """
    kind: ErrorKind
    node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'node_id': self.node_id}


@dataclass(frozen=True)
class NavigationView:
    """
    What the presentation layer needs to render the current step.

    Attributes:
        status: Session status
        node_id: Cursor id ("root" sentinel for the root)
        node: Node under the cursor (None only when it cannot be resolved)
        step_number: len(history), 1 on the root
        can_go_back: Whether back() is legal
        has_next_step: Node offers a traversable answer or option
        is_terminal: Node is a terminal guidance node
        recommendations: Collected items once an outcome is reached
        error: Error tag for ERROR sessions (and empty terminals)
    """
    status: SessionStatus
    node_id: str
    node: Optional[Node]
    step_number: int
    can_go_back: bool
    has_next_step: bool
    is_terminal: bool
    recommendations: Optional[Tuple[RecommendationItem, ...]] = None
    error: Optional[EngineError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'node_id': self.node_id,
            'node': self.node.to_dict() if self.node is not None else None,
            'step_number': self.step_number,
            'can_go_back': self.can_go_back,
            'has_next_step': self.has_next_step,
            'is_terminal': self.is_terminal,
            'recommendations': (
                [item.to_dict() for item in self.recommendations]
                if self.recommendations is not None else None
            ),
            'error': self.error.to_dict() if self.error is not None else None,
        }


@dataclass(frozen=True)
class StepResult:
    """
    Successful operation result.

    Returned by: choose, choose_index, back, restart

    Attributes:
        outcome: What the operation did
        view: Navigation view after the operation
        log_entry: Entry appended by a choice (None for back/restart)
    """
    outcome: Outcome
    view: NavigationView
    log_entry: Optional[LogEntry] = None

    @property
    def status(self) -> SessionStatus:
        return self.view.status

    def to_dict(self) -> Dict[str, Any]:
        return {
            'outcome': self.outcome.value,
            'view': self.view.to_dict(),
            'log_entry': self.log_entry.to_dict() if self.log_entry is not None else None,
        }


@dataclass(frozen=True)
class IllegalOperation:
    """
    Operation rejected by the engine (invalid lifecycle transition).

    Examples:
    - choose when the session already reached an outcome
    - back at the root
    - report_text before an outcome is reached

    Nothing in the session changes when this is returned.

    Attributes:
        operation: Name of the rejected operation
        reason: Human-readable explanation
        error: Error tag when the rejection maps to the taxonomy
    """
    operation: str
    reason: str
    error: Optional[EngineError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'reason': self.reason,
            'error': self.error.to_dict() if self.error is not None else None,
        }
