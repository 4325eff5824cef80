"""
Report Serializer - Deterministic text report of a finished consultation

Responsibilities:
- Render questionnaire metadata and the generation timestamp
- Render patient data (only when it was actually supplied)
- Render the full audit trail in log order
- Render every recommendation item with its discriminant's template

Design principles:
- Pure function (same inputs, same text)
- Faithful expansion: no reordering, deduplication or summarizing
- The generation timestamp is an input, never read from the clock here
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Union

from clinical_tree.contracts import (
    TEXT_RECOMMENDATION_TYPES,
    LogEntry,
    PatientContext,
    RecommendationItem,
    RecommendationType,
    TreeMetadata,
)
from clinical_tree.utils.helpers import format_timestamp

logger = logging.getLogger(__name__)

HEAVY_RULE = "=" * 59
LIGHT_RULE = "-" * 59

GENDER_LABELS = {
    'male': 'Male',
    'female': 'Female',
}

# (field, label) in rendering order; objectives are rendered separately
TREATMENT_PROTOCOL_FIELDS = (
    ('type', 'Type'),
    ('location', 'Location'),
    ('anatomical_note', 'Anatomical note'),
    ('detailed_description', 'Detailed description'),
    ('surgical_method', 'Surgical method'),
    ('alternative', 'Alternative'),
    ('implementation', 'Implementation'),
    ('indications', 'Indications'),
    ('contraindications', 'Contraindications'),
    ('timing', 'Timing'),
    ('weight_bearing', 'Weight bearing'),
    ('progression', 'Progression'),
    ('immobilization', 'Immobilization'),
    ('rehabilitation', 'Rehabilitation'),
    ('method', 'Method'),
    ('age_specifics', 'Age specifics'),
    ('indication', 'Indication'),
    ('early_phase', 'Early phase'),
    ('late_phase', 'Late phase'),
    ('phase_description', 'Phase description'),
    ('measures', 'Measures'),
)

THERAPEUTIC_MEASURE_FIELDS = (
    ('measure', 'Measure'),
    ('timing', 'Timing'),
    ('details', 'Details'),
    ('implementation', 'Implementation'),
)

PREVENTION_MEASURE_FIELDS = (
    ('measure', 'Measure'),
    ('implementation', 'Implementation'),
)

CRITICAL_RULE_FIELDS = (
    ('rule', 'Rule'),
    ('warning', 'Warning'),
)


def serialize_report(
    metadata: TreeMetadata,
    patient: PatientContext,
    log: Sequence[LogEntry],
    recommendations: Optional[Sequence[RecommendationItem]],
    generated_at: Union[datetime, str],
    title: Optional[str] = None,
) -> str:
    """
    Render a consultation report.

    Args:
        metadata: Tree document metadata (verbatim)
        patient: Patient context; suppressed when not specified
        log: Audit trail in step order
        recommendations: Collected items, or None if no outcome yet
        generated_at: Generation time (datetime or preformatted string)
        title: Questionnaire title override (defaults to metadata.title)

    Returns:
        str: Report text ending with a newline
    """
    lines: List[str] = []
    lines += _render_header(metadata, generated_at, title)

    if patient.is_specified:
        lines += _render_patient(patient)

    lines += _render_log(log)

    if recommendations:
        lines += _render_recommendations(recommendations)

    lines += [
        LIGHT_RULE,
        "End of report",
        LIGHT_RULE,
    ]

    logger.debug(f"Report rendered: {len(log)} steps, {len(recommendations or ())} recommendations")
    return "\n".join(lines) + "\n"


# ========================
# Sections
# ========================

def _render_header(metadata, generated_at, title) -> List[str]:
    if isinstance(generated_at, datetime):
        generated_at = format_timestamp(generated_at)

    lines = [
        HEAVY_RULE,
        "           CLINICAL DECISION SUPPORT LOG",
        HEAVY_RULE,
        "",
        f"QUESTIONNAIRE: {title or metadata.title}",
    ]
    if metadata.subtitle:
        lines.append(f"SUBTITLE: {metadata.subtitle}")
    if metadata.source_document:
        lines.append(f"SOURCE: {metadata.source_document}")
    if metadata.year:
        lines.append(f"YEAR: {metadata.year}")
    if metadata.version:
        lines.append(f"VERSION: {metadata.version}")
    lines.append(f"COMPLETED: {generated_at}")
    lines.append("")
    return lines


def _render_patient(patient: PatientContext) -> List[str]:
    gender = GENDER_LABELS.get(patient.gender, patient.gender)
    return [
        LIGHT_RULE,
        "PATIENT DATA",
        LIGHT_RULE,
        f"Gender: {gender}",
        f"Age: {patient.age} years",
        f"Weight: {patient.weight} kg",
        f"Chronic diseases: {patient.chronic_diseases or 'Not specified'}",
        "",
    ]


def _render_log(log: Sequence[LogEntry]) -> List[str]:
    lines = [
        LIGHT_RULE,
        "DIAGNOSTIC PATH",
        LIGHT_RULE,
        "",
    ]
    for entry in log:
        lines.append(f"Step {entry.step} [{entry.timestamp}]")
        lines.append(f"  Node: {entry.node_id}")
        if entry.source_reference:
            lines.append(f"  Source: {entry.source_reference}")
        lines.append(f"  Question: {entry.question}")
        lines.append(f"  Answer: {entry.answer}")
        if entry.clinical_info:
            lines.append(f"  Clinical info: {entry.clinical_info}")
        lines.append("")
    return lines


def _render_recommendations(recommendations: Sequence[RecommendationItem]) -> List[str]:
    lines = [
        HEAVY_RULE,
        "FINAL CLINICAL RECOMMENDATIONS",
        HEAVY_RULE,
        "",
    ]
    for index, item in enumerate(recommendations, 1):
        render = _RENDERERS.get(item.type, _render_text)
        lines += render(index, item)
        lines.append("")
    return lines


# ========================
# Per-discriminant templates
# ========================

def _record_fields(record, labels) -> List[str]:
    return [
        f"   {label}: {getattr(record, name)}"
        for name, label in labels
        if getattr(record, name)
    ]


def _render_text(index: int, item: RecommendationItem) -> List[str]:
    return [f"{index}. [{item.type.value.upper()}] {item.text}"]


def _render_treatment_protocol(index: int, item: RecommendationItem) -> List[str]:
    protocol = item.data
    lines = [f"{index}. TREATMENT PROTOCOL"]
    lines += _record_fields(protocol, TREATMENT_PROTOCOL_FIELDS)
    if isinstance(protocol.objectives, tuple) and protocol.objectives:
        lines.append("   Surgical objectives:")
        lines += [f"     - {objective}" for objective in protocol.objectives]
    return lines


def _render_therapeutic_measure(index: int, item: RecommendationItem) -> List[str]:
    return [f"{index}. THERAPEUTIC MEASURE"] + _record_fields(item.data, THERAPEUTIC_MEASURE_FIELDS)


def _render_prevention_measure(index: int, item: RecommendationItem) -> List[str]:
    return [f"{index}. PREVENTION MEASURE"] + _record_fields(item.data, PREVENTION_MEASURE_FIELDS)


def _render_critical_rule(index: int, item: RecommendationItem) -> List[str]:
    return [f"{index}. CRITICAL RULE / CONTRAINDICATION"] + _record_fields(item.data, CRITICAL_RULE_FIELDS)


def _render_risk_factor(index: int, item: RecommendationItem) -> List[str]:
    return [f"{index}. RISK FACTOR: {item.text}"]


_RENDERERS: Dict[RecommendationType, Callable[[int, RecommendationItem], List[str]]] = {
    **{kind: _render_text for kind in TEXT_RECOMMENDATION_TYPES},
    RecommendationType.TREATMENT_PROTOCOL: _render_treatment_protocol,
    RecommendationType.THERAPEUTIC_MEASURE: _render_therapeutic_measure,
    RecommendationType.PREVENTION_MEASURE: _render_prevention_measure,
    RecommendationType.CRITICAL_RULE: _render_critical_rule,
    RecommendationType.RISK_FACTOR: _render_risk_factor,
    RecommendationType.INFO: _render_text,
    RecommendationType.ERROR: _render_text,
}
