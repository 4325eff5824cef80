"""
Test Traversal Engine - navigation state machine

Covers the ordering invariants (history[0] == "root",
len(log) == len(history) - 1), back/restart behavior, terminal, dead end
and dangling-reference outcomes.

Run with: pytest tests/test_traversal_engine.py -v
"""

import pytest

from clinical_tree.contracts import Answer, LogEntry, PatientContext, RecommendationType
from clinical_tree.core.recommendation_collector import NO_RECOMMENDATIONS_TEXT
from clinical_tree.core.traversal_engine import SessionState, TraversalEngine
from clinical_tree.results import (
    ErrorKind,
    IllegalOperation,
    Outcome,
    SessionStatus,
    StepResult,
)
from clinical_tree.utils.tree_loader import parse_tree_document


def assert_invariants(engine):
    assert engine.history[0] == "root"
    assert len(engine.log) == len(engine.history) - 1
    for i, entry in enumerate(engine.log):
        assert entry.step == i + 1
        assert entry.node_id == engine.history[i]


# =============================================================================
# Construction and initial state
# =============================================================================

class TestInitialState:

    def test_initial_state(self, engine):
        assert engine.state == SessionState()
        assert engine.history == ("root",)
        assert engine.log == ()
        assert engine.status is SessionStatus.ACTIVE
        assert engine.recommendations is None

    def test_initial_view(self, engine):
        view = engine.current_view()

        assert view.node_id == "root"
        assert view.node.question == "Q1"
        assert view.step_number == 1
        assert not view.can_go_back
        assert view.has_next_step
        assert not view.is_terminal
        assert view.error is None

    def test_rejects_raw_dict_document(self):
        with pytest.raises(TypeError, match="TreeDocument"):
            TraversalEngine({"root": {"question": "Q1"}})

    def test_rejects_wrong_patient_type(self, sample_document):
        with pytest.raises(TypeError, match="PatientContext"):
            TraversalEngine(sample_document, patient={"gender": "male"})

    def test_title_defaults_to_metadata(self, sample_document):
        assert TraversalEngine(sample_document).title == "Ankle fractures"
        assert TraversalEngine(sample_document, title="Custom").title == "Custom"


# =============================================================================
# Scenarios
# =============================================================================

class TestScenarios:

    def test_terminal_guidance_reached(self, clock, stamp):
        """Single choice into a terminal node collects its recommendations."""
        document = parse_tree_document({
            "root": {"question": "Q1", "answers": [{"text": "Yes", "next_node_id": "n1"}]},
            "nodes": {"n1": {"recommendations": ["Rest 2 weeks"]}},
        })
        engine = TraversalEngine(document, clock=clock)

        result = engine.choose({"text": "Yes", "next_node_id": "n1"})

        assert isinstance(result, StepResult)
        assert result.outcome is Outcome.GUIDANCE
        assert engine.status is SessionStatus.TERMINAL
        assert [item.to_dict() for item in engine.recommendations] == [
            {'type': 'recommendation', 'text': 'Rest 2 weeks'}
        ]
        assert engine.log == (
            LogEntry(step=1, question="Q1", answer="Yes", timestamp=stamp, node_id="root"),
        )
        assert engine.history == ("root", "n1")
        assert_invariants(engine)

    def test_dangling_reference(self, engine):
        result = engine.choose_index(2)

        assert result.outcome is Outcome.DANGLING_REFERENCE
        assert engine.status is SessionStatus.ERROR
        assert engine.state.error.kind is ErrorKind.DANGLING_REFERENCE
        assert engine.state.error.node_id == "ghost"
        assert len(engine.log) == 1
        assert engine.recommendations[0].type is RecommendationType.ERROR
        assert '"ghost"' in engine.recommendations[0].text
        assert_invariants(engine)

    def test_back_after_two_choices(self, engine):
        engine.choose_index(0)
        history_before = engine.history
        node_before = engine.state.current_node_id

        engine.choose_index(1, from_options=True)
        result = engine.back()

        assert result.outcome is Outcome.WENT_BACK
        assert engine.history == history_before
        assert engine.state.current_node_id == node_before == "q2"
        assert engine.status is SessionStatus.ACTIVE
        assert engine.recommendations is None
        assert_invariants(engine)

    def test_critical_rules_only_node_yields_no_recommendations(self, engine):
        result = engine.choose_index(4)

        assert result.outcome is Outcome.NO_RECOMMENDATIONS
        assert engine.status is SessionStatus.TERMINAL
        assert len(engine.recommendations) == 1
        assert engine.recommendations[0].type is RecommendationType.INFO
        assert engine.recommendations[0].text == NO_RECOMMENDATIONS_TEXT
        assert all(item.type is not RecommendationType.CRITICAL_RULE for item in engine.recommendations)
        assert_invariants(engine)


# =============================================================================
# choose
# =============================================================================

class TestChoose:

    def test_log_entry_built_from_current_node(self, engine, stamp):
        result = engine.choose_index(0)

        assert result.outcome is Outcome.ADVANCED
        assert result.log_entry == LogEntry(
            step=1,
            question="Q1",
            answer="Yes",
            timestamp=stamp,
            node_id="root",
            source_reference="Sec 1",
            clinical_info="Objective: Confirm | Evidence level: C",
        )
        assert engine.state.current_node_id == "q2"
        assert result.view.node.question == "Q2"
        assert result.view.step_number == 2
        assert result.view.can_go_back

    def test_full_path_with_structured_guidance(self, engine):
        engine.choose_index(0)
        result = engine.choose_index(2, from_options=True)

        assert result.outcome is Outcome.GUIDANCE
        assert [item.type for item in engine.recommendations] == [
            RecommendationType.RECOMMENDATION,
            RecommendationType.KEY_RECOMMENDATION,
            RecommendationType.TREATMENT_PROTOCOL,
            RecommendationType.CRITICAL_RULE,
            RecommendationType.RISK_FACTOR,
        ]
        assert engine.log[1].question == "Q2"
        assert engine.log[1].answer == "Unstable"
        assert engine.history == ("root", "q2", "surgery")
        assert_invariants(engine)

    def test_dead_end(self, engine):
        result = engine.choose_index(3)

        assert result.outcome is Outcome.NO_RECOMMENDATIONS
        assert engine.status is SessionStatus.TERMINAL
        assert engine.state.error is None
        assert engine.recommendations[0].text == NO_RECOMMENDATIONS_TEXT

    def test_informational_selection_keeps_cursor(self, engine):
        engine.choose_index(0)

        result = engine.choose(Answer("Classification note"))

        assert result.outcome is Outcome.INFORMATIONAL
        assert engine.status is SessionStatus.ACTIVE
        assert engine.state.current_node_id == "q2"
        assert engine.history == ("root", "q2", "q2")
        assert engine.log[-1].answer == "Classification note"
        assert_invariants(engine)

        engine.back()
        assert engine.history == ("root", "q2")
        assert engine.state.current_node_id == "q2"
        assert_invariants(engine)

    def test_selection_without_destination_on_terminal_node(self, clock):
        document = parse_tree_document({
            "root": {
                "question": "Read and confirm",
                "options": [{"text": "Acknowledge"}],
                "recommendations": ["R"],
            },
        })
        engine = TraversalEngine(document, clock=clock)

        result = engine.choose(Answer("Acknowledge"))

        assert result.outcome is Outcome.GUIDANCE
        assert engine.status is SessionStatus.TERMINAL
        assert engine.recommendations[0].text == "R"
        assert engine.history == ("root", "root")
        assert_invariants(engine)

    def test_choose_after_outcome_is_illegal(self, engine):
        engine.choose_index(1)
        state = engine.state

        result = engine.choose_index(0)

        assert isinstance(result, IllegalOperation)
        assert result.operation == 'choose'
        assert engine.state is state

    def test_choose_after_error_is_illegal(self, engine):
        engine.choose_index(2)

        result = engine.choose(Answer("Yes", "q2"))

        assert isinstance(result, IllegalOperation)
        assert result.error.kind is ErrorKind.DANGLING_REFERENCE
        assert len(engine.log) == 1

    def test_malformed_answer(self, engine):
        assert isinstance(engine.choose("Yes"), IllegalOperation)
        assert isinstance(engine.choose({"next_node_id": "q2"}), IllegalOperation)
        assert engine.state == SessionState()

    def test_empty_terminal(self, engine, monkeypatch):
        monkeypatch.setattr(
            "clinical_tree.core.traversal_engine.collect_recommendations",
            lambda node: (),
        )

        result = engine.choose_index(1)

        assert result.outcome is Outcome.NO_RECOMMENDATIONS
        assert engine.status is SessionStatus.TERMINAL
        assert engine.state.error.kind is ErrorKind.EMPTY_TERMINAL
        assert engine.state.error.node_id == "n1"
        assert engine.recommendations[0].type is RecommendationType.INFO

    def test_cycles_need_no_special_handling(self, clock):
        document = parse_tree_document({
            "root": {"question": "Start", "answers": [{"text": "Go", "next_node_id": "a"}]},
            "nodes": {
                "a": {"question": "A", "answers": [{"text": "To B", "next_node_id": "b"}]},
                "b": {"question": "B", "answers": [{"text": "To A", "next_node_id": "a"}]},
            },
        })
        engine = TraversalEngine(document, clock=clock)

        for _ in range(5):
            engine.choose_index(0)

        assert engine.status is SessionStatus.ACTIVE
        assert engine.history == ("root", "a", "b", "a", "b", "a")
        assert_invariants(engine)


class TestChooseIndex:

    def test_out_of_range(self, engine):
        result = engine.choose_index(9)

        assert isinstance(result, IllegalOperation)
        assert "position 9" in result.reason
        assert engine.state == SessionState()

    def test_negative_and_bool_rejected(self, engine):
        assert isinstance(engine.choose_index(-1), IllegalOperation)
        assert isinstance(engine.choose_index(True), IllegalOperation)

    def test_informational_option_rejected(self, engine):
        engine.choose_index(0)

        result = engine.choose_index(0, from_options=True)

        assert isinstance(result, IllegalOperation)
        assert "informational" in result.reason
        assert len(engine.log) == 1


# =============================================================================
# back / restart
# =============================================================================

class TestBackAndRestart:

    def test_back_at_root_is_invalid(self, engine):
        result = engine.back()

        assert isinstance(result, IllegalOperation)
        assert result.error.kind is ErrorKind.INVALID_BACK
        assert engine.state == SessionState()

    def test_back_after_choose_round_trip(self, engine):
        before = engine.state

        engine.choose_index(0)
        engine.back()

        assert engine.state == before

    def test_back_clears_dangling_error(self, engine):
        engine.choose_index(2)

        result = engine.back()

        assert result.status is SessionStatus.ACTIVE
        assert engine.state == SessionState()

    def test_restart_is_idempotent(self, engine):
        engine.choose_index(0)
        engine.choose_index(1, from_options=True)

        engine.restart()
        once = engine.state
        result = engine.restart()

        assert result.outcome is Outcome.RESTARTED
        assert engine.state == once == SessionState()

    def test_restart_keeps_patient(self, sample_document, clock):
        patient = PatientContext(gender="female", age=42, weight=70)
        engine = TraversalEngine(sample_document, patient, clock=clock)

        engine.choose_index(1)
        engine.restart()

        assert engine.patient is patient
        assert engine.document is sample_document

    def test_invariants_over_operation_sequence(self, engine):
        operations = [
            lambda: engine.choose_index(0),
            lambda: engine.choose(Answer("Classification note")),
            engine.back,
            engine.back,
            engine.back,
            lambda: engine.choose_index(2),
            lambda: engine.choose_index(0),
            engine.back,
            lambda: engine.choose_index(0),
            lambda: engine.choose_index(2, from_options=True),
            engine.restart,
            lambda: engine.choose_index(4),
        ]
        for operation in operations:
            operation()
            assert_invariants(engine)


# =============================================================================
# Missing cursor and sharing
# =============================================================================

class TestMissingNode:

    def _engine_on_vanished_node(self, sample_document, clock, stamp):
        engine = TraversalEngine(sample_document, clock=clock)
        engine.state = SessionState(
            current_node_id="vanished",
            history=("root", "vanished"),
            log=(LogEntry(step=1, question="Q1", answer="Yes", timestamp=stamp, node_id="root"),),
        )
        return engine

    def test_view_reports_missing_node(self, sample_document, clock, stamp):
        engine = self._engine_on_vanished_node(sample_document, clock, stamp)

        view = engine.current_view()

        assert view.status is SessionStatus.ERROR
        assert view.node is None
        assert view.error.kind is ErrorKind.MISSING_NODE

    def test_choose_on_missing_node(self, sample_document, clock, stamp):
        engine = self._engine_on_vanished_node(sample_document, clock, stamp)

        result = engine.choose(Answer("Anything", "q2"))

        assert result.outcome is Outcome.MISSING_NODE
        assert engine.status is SessionStatus.ERROR
        assert len(engine.log) == 1
        assert engine.recommendations[0].type is RecommendationType.ERROR

        engine.restart()
        assert engine.status is SessionStatus.ACTIVE


class TestSharedDocument:

    def test_engines_on_one_document_are_independent(self, sample_document, clock):
        first = TraversalEngine(sample_document, clock=clock)
        second = TraversalEngine(sample_document, clock=clock)

        first.choose_index(1)

        assert first.status is SessionStatus.TERMINAL
        assert second.state == SessionState()
        assert second.current_view().node_id == "root"


# =============================================================================
# Report
# =============================================================================

class TestReportText:

    def test_report_unavailable_while_active(self, engine):
        result = engine.report_text()

        assert isinstance(result, IllegalOperation)
        assert result.operation == 'report'

    def test_report_after_outcome(self, engine, stamp):
        engine.choose_index(1)

        text = engine.report_text()

        assert f"COMPLETED: {stamp}" in text
        assert f"Step 1 [{stamp}]" in text
        assert "1. [RECOMMENDATION] Rest 2 weeks" in text

    def test_report_after_error(self, engine):
        engine.choose_index(2)

        text = engine.report_text(generated_at="01.01.2027, 00:00:00")

        assert "COMPLETED: 01.01.2027, 00:00:00" in text
        assert '[ERROR] Diagnosis complete. Node "ghost" was not found in the data.' in text


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
