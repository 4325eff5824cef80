"""
Recommendation Collector - Flatten guidance fields into one ordered list

Emission order is fixed and independent of how fields appear in the
source document:

    recommendations -> key_recommendations -> detailed_recommendations
    -> treatment_protocols -> therapeutic_measures -> prevention_measures
    -> critical_rules -> risk_factors

Each field contributes its items in array order. Structured records are
carried untouched; rendering their fields is the report serializer's job.
"""

from typing import Tuple

from clinical_tree.contracts import Node, RecommendationItem, RecommendationType

# (node field, discriminant, carries structured record)
COLLECTION_ORDER = (
    ('recommendations', RecommendationType.RECOMMENDATION, False),
    ('key_recommendations', RecommendationType.KEY_RECOMMENDATION, False),
    ('detailed_recommendations', RecommendationType.DETAILED_RECOMMENDATION, False),
    ('treatment_protocols', RecommendationType.TREATMENT_PROTOCOL, True),
    ('therapeutic_measures', RecommendationType.THERAPEUTIC_MEASURE, True),
    ('prevention_measures', RecommendationType.PREVENTION_MEASURE, True),
    ('critical_rules', RecommendationType.CRITICAL_RULE, True),
    ('risk_factors', RecommendationType.RISK_FACTOR, False),
)

NO_RECOMMENDATIONS_TEXT = "Diagnosis complete. No recommendations found."


def collect_recommendations(node: Node) -> Tuple[RecommendationItem, ...]:
    """
    Flatten a node's guidance fields.

    Args:
        node: Node to collect from (normally a terminal node)

    Returns:
        Tuple of RecommendationItem in collection order; empty when the
        node carries no guidance at all
    """
    items = []
    for field_name, item_type, structured in COLLECTION_ORDER:
        for value in getattr(node, field_name):
            if structured:
                items.append(RecommendationItem(type=item_type, data=value))
            else:
                items.append(RecommendationItem(type=item_type, text=value))
    return tuple(items)


def info_notice(text: str = NO_RECOMMENDATIONS_TEXT) -> RecommendationItem:
    return RecommendationItem(type=RecommendationType.INFO, text=text)


def dangling_reference_notice(node_id: str) -> RecommendationItem:
    return RecommendationItem(
        type=RecommendationType.ERROR,
        text=f'Diagnosis complete. Node "{node_id}" was not found in the data.',
    )
