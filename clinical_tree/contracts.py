"""
Semantic contracts for the clinical decision tree navigator.

This module defines immutable data structures shared by the classifier,
the recommendation collector, the traversal engine and the report
serializer. These are NOT validators - they define shape and semantics.
Structural checks on raw JSON belong to the tree loader.

Design principles:
- Frozen dataclasses (immutable after creation)
- Tuples instead of lists, read-only mappings instead of dicts
- No dependencies on other project modules
- Field names match the tree document keys exactly

Contents:
- TreeMetadata, ClinicalInfo, Answer, Node, TreeDocument: the tree document
- TreatmentProtocol, TherapeuticMeasure, PreventionMeasure, CriticalRule:
  structured guidance records
- RecommendationType, RecommendationItem: the flattened recommendation list
- LogEntry: one audit trail entry
- PatientContext: opaque patient data embedded in the report

Usage:
    from clinical_tree.contracts import TreeDocument, Node, RecommendationItem
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

ROOT_NODE_ID = "root"
NOT_SPECIFIED = "not_specified"


def _compact(record) -> Dict[str, Any]:
    """Dict of the record's populated fields, in declaration order."""
    result = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if value is None:
            continue
        result[f.name] = list(value) if isinstance(value, tuple) else value
    return result


# ========================
# Tree Document
# ========================

@dataclass(frozen=True)
class TreeMetadata:
    """
    Descriptive document fields, passed through verbatim to the report.

    Attributes:
        title: Questionnaire title
        subtitle: Optional subtitle
        source_document: Citation of the clinical guideline the tree encodes
        year: Guideline year (kept as authored, int or str)
        version: Document version string
    """
    title: str = ""
    subtitle: Optional[str] = None
    source_document: Optional[str] = None
    year: Optional[Union[int, str]] = None
    version: Optional[str] = None


@dataclass(frozen=True)
class ClinicalInfo:
    """Explanatory text attached to a question node."""
    objective: Optional[str] = None
    evidence: Optional[str] = None

    def flatten(self) -> Optional[str]:
        """
        Render as the single string stored in the audit log.

        Returns:
            'Objective: ... | Evidence level: ...' with absent parts
            omitted, or None when both parts are empty.
        """
        parts = []
        if self.objective:
            parts.append(f"Objective: {self.objective}")
        if self.evidence:
            parts.append(f"Evidence level: {self.evidence}")
        return " | ".join(parts) or None


@dataclass(frozen=True)
class Answer:
    """
    One entry of a node's `answers` or `options` sequence.

    An option without next_node_id is informational only: it is listed
    but never offered as a traversable choice.
    """
    text: str
    next_node_id: Optional[str] = None

    @property
    def selectable(self) -> bool:
        return bool(self.next_node_id)

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class TreatmentProtocol:
    """Structured treatment protocol record (all fields optional)."""
    type: Optional[str] = None
    location: Optional[str] = None
    anatomical_note: Optional[str] = None
    detailed_description: Optional[str] = None
    surgical_method: Optional[str] = None
    alternative: Optional[str] = None
    implementation: Optional[str] = None
    indications: Optional[str] = None
    contraindications: Optional[str] = None
    objectives: Optional[Tuple[str, ...]] = None
    timing: Optional[str] = None
    weight_bearing: Optional[str] = None
    progression: Optional[str] = None
    immobilization: Optional[str] = None
    rehabilitation: Optional[str] = None
    method: Optional[str] = None
    age_specifics: Optional[str] = None
    indication: Optional[str] = None
    early_phase: Optional[str] = None
    late_phase: Optional[str] = None
    phase_description: Optional[str] = None
    measures: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class TherapeuticMeasure:
    measure: Optional[str] = None
    timing: Optional[str] = None
    details: Optional[str] = None
    implementation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class PreventionMeasure:
    measure: Optional[str] = None
    implementation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class CriticalRule:
    rule: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


GuidanceRecord = Union[TreatmentProtocol, TherapeuticMeasure, PreventionMeasure, CriticalRule]


@dataclass(frozen=True)
class Node:
    """
    One question, classification or guidance point of a tree.

    The `type` tag documents intent only. Behavior is decided by the
    structural fields (see core.node_classifier).
    """
    id: str
    type: str = ""
    question: Optional[str] = None
    source_reference: Optional[str] = None
    clinical_info: Optional[ClinicalInfo] = None
    answers: Tuple[Answer, ...] = ()
    options: Tuple[Answer, ...] = ()
    recommendations: Tuple[str, ...] = ()
    key_recommendations: Tuple[str, ...] = ()
    detailed_recommendations: Tuple[str, ...] = ()
    treatment_protocols: Tuple[TreatmentProtocol, ...] = ()
    therapeutic_measures: Tuple[TherapeuticMeasure, ...] = ()
    prevention_measures: Tuple[PreventionMeasure, ...] = ()
    critical_rules: Tuple[CriticalRule, ...] = ()
    risk_factors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe projection used by the web surface."""
        result: Dict[str, Any] = {'id': self.id, 'type': self.type}
        if self.question is not None:
            result['question'] = self.question
        if self.source_reference is not None:
            result['source_reference'] = self.source_reference
        if self.clinical_info is not None:
            result['clinical_info'] = _compact(self.clinical_info)
        result['answers'] = [a.to_dict() for a in self.answers]
        result['options'] = [
            {**o.to_dict(), 'selectable': o.selectable} for o in self.options
        ]
        return result


@dataclass(frozen=True)
class TreeDocument:
    """
    Immutable graph of nodes describing one diagnostic pathway.

    Edges are `next_node_id` strings looked up in `nodes`; no object links
    are materialized, so cyclic graphs need no special handling and one
    document can be shared read-only by any number of sessions.

    Attributes:
        root: Entry node, addressed by the sentinel id "root"
        nodes: Read-only mapping node id -> Node ("root" key reserved)
        metadata: Descriptive fields for the report
    """
    root: Node
    nodes: Mapping[str, Node] = field(default_factory=dict)
    metadata: TreeMetadata = field(default_factory=TreeMetadata)

    def __post_init__(self):
        if not isinstance(self.nodes, MappingProxyType):
            object.__setattr__(self, 'nodes', MappingProxyType(dict(self.nodes)))

    def get_node(self, node_id: str) -> Optional[Node]:
        """
        Resolve a cursor position, honoring the "root" sentinel.

        Returns:
            Node, or None if node_id is unknown
        """
        if node_id == ROOT_NODE_ID:
            return self.root
        return self.nodes.get(node_id)

    def resolve_destination(self, next_node_id: str) -> Optional[Node]:
        """Resolve an answer edge. Only the `nodes` mapping is consulted."""
        return self.nodes.get(next_node_id)


# ========================
# Recommendations
# ========================

class RecommendationType(str, Enum):
    """
    Discriminant of a flattened recommendation item.

    INFO and ERROR are never produced from guidance fields; the engine
    uses them for its own notices (dead end, empty terminal, dangling
    reference).
    """
    RECOMMENDATION = "recommendation"
    KEY_RECOMMENDATION = "key_recommendation"
    DETAILED_RECOMMENDATION = "detailed_recommendation"
    TREATMENT_PROTOCOL = "treatment_protocol"
    THERAPEUTIC_MEASURE = "therapeutic_measure"
    PREVENTION_MEASURE = "prevention_measure"
    CRITICAL_RULE = "critical_rule"
    RISK_FACTOR = "risk_factor"
    INFO = "info"
    ERROR = "error"


TEXT_RECOMMENDATION_TYPES = frozenset({
    RecommendationType.RECOMMENDATION,
    RecommendationType.KEY_RECOMMENDATION,
    RecommendationType.DETAILED_RECOMMENDATION,
})


@dataclass(frozen=True)
class RecommendationItem:
    """
    One renderable unit of clinical guidance.

    Exactly one of `text` (plain text kinds) or `data` (structured kinds)
    is set. Structured records are carried untouched.
    """
    type: RecommendationType
    text: Optional[str] = None
    data: Optional[GuidanceRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.type.value}
        if self.data is not None:
            result['data'] = self.data.to_dict()
        else:
            result['text'] = self.text
        return result


# ========================
# Audit trail and patient
# ========================

@dataclass(frozen=True)
class LogEntry:
    """
    One audit trail entry, appended per user choice before the engine moves.

    Attributes:
        step: 1-indexed position in the log
        question: Question of the node the choice was made on
        answer: Text of the chosen answer or option
        timestamp: Wall-clock time of the choice (formatted)
        node_id: Cursor id of the node the choice was made on
        source_reference: Node citation, if any
        clinical_info: Flattened ClinicalInfo, if any
    """
    step: int
    question: str
    answer: str
    timestamp: str
    node_id: str
    source_reference: Optional[str] = None
    clinical_info: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class PatientContext:
    """
    Patient data supplied once per session.

    The engine never inspects it; the report serializer embeds it verbatim.
    A gender of NOT_SPECIFIED means the intake form was skipped.
    """
    gender: str = NOT_SPECIFIED
    age: int = 0
    weight: int = 0
    chronic_diseases: str = ""

    @property
    def is_specified(self) -> bool:
        return self.gender != NOT_SPECIFIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'gender': self.gender,
            'age': self.age,
            'weight': self.weight,
            'chronic_diseases': self.chronic_diseases,
        }
