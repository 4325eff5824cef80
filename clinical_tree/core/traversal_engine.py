"""
Traversal Engine - Navigation state machine for one consultation

Responsibilities:
- Hold the cursor, the visited history and the audit log
- Apply choices, back-navigation and restarts
- Detect terminal nodes, dead ends and dangling references
- Collect recommendations on terminal outcomes
- Serialize the report once an outcome is reached

Design principles:
- One engine per consultation, never shared between callers
- History and log are append-only sequences, truncated together on back()
- Every operation returns a StepResult or an IllegalOperation; conditions
  such as a dangling reference are outcomes, not exceptions
- The tree document is read-only and may be shared by many engines

Invariants (hold after every operation):
- history[0] == "root"
- len(log) == len(history) - 1
- log[i] was produced on node history[i]
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from clinical_tree.contracts import (
    ROOT_NODE_ID,
    Answer,
    LogEntry,
    Node,
    PatientContext,
    RecommendationItem,
    TreeDocument,
)
from clinical_tree.core.node_classifier import NodeClassifier, NodeRole
from clinical_tree.core.recommendation_collector import (
    collect_recommendations,
    dangling_reference_notice,
    info_notice,
)
from clinical_tree.core.report_serializer import serialize_report
from clinical_tree.results import (
    EngineError,
    ErrorKind,
    IllegalOperation,
    NavigationView,
    Outcome,
    SessionStatus,
    StepResult,
)
from clinical_tree.utils.helpers import format_timestamp

logger = logging.getLogger(__name__)

DEFAULT_QUESTION_TEXT = "Choose an option"

OperationResult = Union[StepResult, IllegalOperation]


@dataclass(frozen=True)
class SessionState:
    """
    Per-consultation cursor, history, log and outcome.

    Immutable snapshot; the engine replaces it on every transition.

    Attributes:
        current_node_id: Node presented while ACTIVE ("root" sentinel first)
        history: Visited node ids, earliest first
        log: Audit trail, one entry per choice
        recommendations: None until an outcome is reached
        status: ACTIVE, TERMINAL or ERROR
        error: Error tag for ERROR (and empty-terminal) outcomes
    """
    current_node_id: str = ROOT_NODE_ID
    history: Tuple[str, ...] = (ROOT_NODE_ID,)
    log: Tuple[LogEntry, ...] = ()
    recommendations: Optional[Tuple[RecommendationItem, ...]] = None
    status: SessionStatus = SessionStatus.ACTIVE
    error: Optional[EngineError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_node_id': self.current_node_id,
            'history': list(self.history),
            'log': [entry.to_dict() for entry in self.log],
            'recommendations': (
                [item.to_dict() for item in self.recommendations]
                if self.recommendations is not None else None
            ),
            'status': self.status.value,
            'error': self.error.to_dict() if self.error is not None else None,
        }


class TraversalEngine:
    """
    Walks one patient through a tree document.

    Usage:
        engine = TraversalEngine(document, patient)
        view = engine.current_view()
        result = engine.choose(view.node.answers[0])
        if result.status is SessionStatus.TERMINAL:
            text = engine.report_text()
    """

    def __init__(
        self,
        document: TreeDocument,
        patient: Optional[PatientContext] = None,
        title: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize engine over a fully loaded document.

        Args:
            document: Parsed tree document (read-only, shareable)
            patient: Patient context (defaults to "not specified")
            title: Questionnaire title for the report (defaults to metadata)
            clock: Wall-clock source for log and report timestamps

        Raises:
            TypeError: If document or patient have the wrong type
        """
        if not isinstance(document, TreeDocument):
            raise TypeError("document must be TreeDocument instance")
        if patient is None:
            patient = PatientContext()
        if not isinstance(patient, PatientContext):
            raise TypeError("patient must be PatientContext instance")

        self.document = document
        self.patient = patient
        self.title = title or document.metadata.title
        self.clock = clock
        self.classifier = NodeClassifier(document)
        self.state = SessionState()

        logger.info(f"Traversal engine initialized for '{self.title}' ({len(document.nodes)} nodes)")

    # ========================
    # Inspection
    # ========================

    @property
    def history(self) -> Tuple[str, ...]:
        return self.state.history

    @property
    def log(self) -> Tuple[LogEntry, ...]:
        return self.state.log

    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def recommendations(self) -> Optional[Tuple[RecommendationItem, ...]]:
        return self.state.recommendations

    def current_view(self) -> NavigationView:
        """
        Node to present plus navigability flags.

        A cursor that cannot be resolved is reported as a MISSING_NODE
        error view; the session itself is left untouched so restart() or
        back() can recover.
        """
        state = self.state
        node = self.document.get_node(state.current_node_id)

        if node is None:
            return NavigationView(
                status=SessionStatus.ERROR,
                node_id=state.current_node_id,
                node=None,
                step_number=len(state.history),
                can_go_back=len(state.history) > 1,
                has_next_step=False,
                is_terminal=False,
                recommendations=state.recommendations,
                error=state.error or EngineError(ErrorKind.MISSING_NODE, state.current_node_id),
            )

        role = self.classifier.role_of(state.current_node_id, node)
        return NavigationView(
            status=state.status,
            node_id=state.current_node_id,
            node=node,
            step_number=len(state.history),
            can_go_back=len(state.history) > 1,
            has_next_step=role is NodeRole.QUESTION,
            is_terminal=role is NodeRole.TERMINAL,
            recommendations=state.recommendations,
            error=state.error,
        )

    # ========================
    # Operations
    # ========================

    def choose(self, answer: Union[Answer, Mapping[str, Any]]) -> OperationResult:
        """
        Apply a user choice on the current node.

        The log entry is appended before any transition. Then:
        - no next_node_id: current node terminal -> TERMINAL, otherwise
          the selection is informational and the cursor stays put
        - next_node_id not in the document -> ERROR(DANGLING_REFERENCE)
        - destination terminal -> TERMINAL with collected recommendations
        - destination dead end -> TERMINAL with a "no recommendations" notice
        - otherwise -> ACTIVE on the destination

        Args:
            answer: Answer/option of the current node (dicts with 'text'
                    and optional 'next_node_id' are accepted)

        Returns:
            StepResult, or IllegalOperation when the session is not ACTIVE
            or the answer is malformed
        """
        if isinstance(answer, Mapping):
            if not isinstance(answer.get('text'), str):
                return IllegalOperation('choose', "answer must carry a 'text' string")
            answer = Answer(text=answer['text'], next_node_id=answer.get('next_node_id') or None)
        elif not isinstance(answer, Answer):
            return IllegalOperation('choose', f"answer must be Answer, got {type(answer).__name__}")

        state = self.state
        if state.status is not SessionStatus.ACTIVE:
            return self._not_active()

        current = self.document.get_node(state.current_node_id)
        if current is None:
            return self._missing_node(state)

        entry = self._build_log_entry(state, current, answer)
        log = state.log + (entry,)

        if not answer.next_node_id:
            return self._choose_without_destination(current, answer, entry, log)

        history = state.history + (answer.next_node_id,)
        destination = self.document.resolve_destination(answer.next_node_id)

        if destination is None:
            logger.warning(
                f"Dangling reference from '{state.current_node_id}': "
                f"next_node_id '{answer.next_node_id}' not found"
            )
            error = EngineError(ErrorKind.DANGLING_REFERENCE, answer.next_node_id)
            self.state = replace(
                state,
                history=history,
                log=log,
                recommendations=(dangling_reference_notice(answer.next_node_id),),
                status=SessionStatus.ERROR,
                error=error,
            )
            return self._result(Outcome.DANGLING_REFERENCE, entry)

        role = self.classifier.role_of(answer.next_node_id, destination)

        if role is NodeRole.QUESTION:
            self.state = replace(state, current_node_id=answer.next_node_id, history=history, log=log)
            logger.debug(f"Step {entry.step}: '{state.current_node_id}' -> '{answer.next_node_id}'")
            return self._result(Outcome.ADVANCED, entry)

        if role is NodeRole.TERMINAL:
            return self._reach_terminal(answer.next_node_id, destination, history, log, entry)

        logger.warning(f"Dead end at '{answer.next_node_id}': no next step and no qualifying guidance")
        self.state = replace(
            state,
            history=history,
            log=log,
            recommendations=(info_notice(),),
            status=SessionStatus.TERMINAL,
        )
        return self._result(Outcome.NO_RECOMMENDATIONS, entry)

    def choose_index(self, index: int, from_options: bool = False) -> OperationResult:
        """
        Choose by position on the current node.

        Args:
            index: 0-indexed position in answers (or options)
            from_options: Pick from `options` instead of `answers`

        Returns:
            Result of choose(), or IllegalOperation for an unknown
            position or an informational option
        """
        if self.state.status is not SessionStatus.ACTIVE:
            return self._not_active()

        current = self.document.get_node(self.state.current_node_id)
        if current is None:
            return self._missing_node(self.state)

        choices = current.options if from_options else current.answers
        kind = "option" if from_options else "answer"

        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(choices):
            return IllegalOperation('choose', f"No {kind} at position {index!r} (node has {len(choices)})")

        choice = choices[index]
        if from_options and not choice.selectable:
            return IllegalOperation('choose', f"Option {index} is informational and cannot be selected")

        return self.choose(choice)

    def back(self) -> OperationResult:
        """
        Undo the last choice.

        History and log shrink by exactly one together; any outcome is
        cleared and the session returns to ACTIVE.

        Returns:
            StepResult, or IllegalOperation(INVALID_BACK) at the root
        """
        state = self.state
        if len(state.history) <= 1:
            return IllegalOperation(
                'back',
                "Already at the root; nothing to go back to",
                error=EngineError(ErrorKind.INVALID_BACK, ROOT_NODE_ID),
            )

        history = state.history[:-1]
        self.state = SessionState(
            current_node_id=history[-1],
            history=history,
            log=state.log[:-1],
        )
        logger.debug(f"Back to '{history[-1]}' (step {len(history)})")
        return self._result(Outcome.WENT_BACK)

    def restart(self) -> StepResult:
        """Reset to the initial state, keeping document and patient context."""
        self.state = SessionState()
        logger.info(f"Session restarted for '{self.title}'")
        return self._result(Outcome.RESTARTED)

    def report_text(self, generated_at: Optional[Union[datetime, str]] = None) -> Union[str, IllegalOperation]:
        """
        Serialize the consultation report.

        Args:
            generated_at: Generation timestamp (defaults to the clock)

        Returns:
            Report text, or IllegalOperation while the session is ACTIVE
        """
        state = self.state
        if state.status is SessionStatus.ACTIVE:
            return IllegalOperation('report', "Report is available once the consultation reaches an outcome")

        if generated_at is None:
            generated_at = self.clock()

        return serialize_report(
            metadata=self.document.metadata,
            patient=self.patient,
            log=state.log,
            recommendations=state.recommendations,
            generated_at=generated_at,
            title=self.title,
        )

    # ========================
    # Private Helpers
    # ========================

    def _build_log_entry(self, state: SessionState, node: Node, answer: Answer) -> LogEntry:
        """Entry for a choice on `node`, numbered from the snapshot the choice started on."""
        clinical_info = node.clinical_info.flatten() if node.clinical_info is not None else None
        return LogEntry(
            step=len(state.log) + 1,
            question=node.question or DEFAULT_QUESTION_TEXT,
            answer=answer.text,
            timestamp=format_timestamp(self.clock()),
            node_id=state.current_node_id,
            source_reference=node.source_reference,
            clinical_info=clinical_info,
        )

    def _choose_without_destination(
        self,
        current: Node,
        answer: Answer,
        entry: LogEntry,
        log: Tuple[LogEntry, ...],
    ) -> StepResult:
        """
        Selection without next_node_id.

        The cursor id is pushed again so the history keeps one entry per
        log entry and back() undoes the selection like any other step.
        """
        state = self.state
        history = state.history + (state.current_node_id,)

        if self.classifier.is_terminal(state.current_node_id, current):
            return self._reach_terminal(state.current_node_id, current, history, log, entry)

        self.state = replace(state, history=history, log=log)
        logger.debug(f"Step {entry.step}: informational selection '{answer.text}' on '{state.current_node_id}'")
        return self._result(Outcome.INFORMATIONAL, entry)

    def _reach_terminal(
        self,
        node_id: str,
        node: Node,
        history: Tuple[str, ...],
        log: Tuple[LogEntry, ...],
        entry: LogEntry,
    ) -> StepResult:
        recommendations = collect_recommendations(node)
        error = None
        outcome = Outcome.GUIDANCE

        if not recommendations:
            logger.warning(f"Terminal node '{node_id}' yielded no recommendation items")
            recommendations = (info_notice(),)
            error = EngineError(ErrorKind.EMPTY_TERMINAL, node_id)
            outcome = Outcome.NO_RECOMMENDATIONS

        self.state = replace(
            self.state,
            history=history,
            log=log,
            recommendations=recommendations,
            status=SessionStatus.TERMINAL,
            error=error,
        )
        logger.info(f"Terminal node '{node_id}' reached after {len(log)} steps: {len(recommendations)} items")
        return self._result(outcome, entry)

    def _not_active(self) -> IllegalOperation:
        return IllegalOperation(
            'choose',
            f"Session already reached an outcome ({self.state.status.value}); go back or restart",
            error=self.state.error,
        )

    def _missing_node(self, state: SessionState) -> StepResult:
        """Unresolvable cursor: handled like a dangling reference, nothing logged."""
        logger.warning(f"Current node '{state.current_node_id}' cannot be resolved")
        self.state = replace(
            state,
            recommendations=(dangling_reference_notice(state.current_node_id),),
            status=SessionStatus.ERROR,
            error=EngineError(ErrorKind.MISSING_NODE, state.current_node_id),
        )
        return self._result(Outcome.MISSING_NODE)

    def _result(self, outcome: Outcome, entry: Optional[LogEntry] = None) -> StepResult:
        return StepResult(outcome=outcome, view=self.current_view(), log_entry=entry)
