"""Shared fixtures: small tree documents and a fixed clock."""

import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from clinical_tree.utils.tree_loader import parse_tree_document

FIXED_NOW = datetime(2026, 10, 18, 14, 3, 5)
FIXED_STAMP = "18.10.2026, 14:03:05"


def fixed_clock():
    return FIXED_NOW


# Two questions, then terminal guidance; plus every edge the engine handles:
# dangling reference, dead end, critical-rules-only node, informational option.
SAMPLE_TREE = {
    "metadata": {
        "title": "Ankle fractures",
        "subtitle": "Adults",
        "source_document": "Guideline 12",
        "year": "2024",
        "version": "1.0",
    },
    "root": {
        "question": "Q1",
        "source_reference": "Sec 1",
        "clinical_info": {"objective": "Confirm", "evidence": "C"},
        "answers": [
            {"text": "Yes", "next_node_id": "q2"},
            {"text": "Straight to guidance", "next_node_id": "n1"},
            {"text": "Broken link", "next_node_id": "ghost"},
            {"text": "Dead end", "next_node_id": "dead"},
            {"text": "Rules only", "next_node_id": "rules_only"},
        ],
    },
    "nodes": {
        "q2": {
            "id": "q2",
            "type": "classification",
            "question": "Q2",
            "options": [
                {"text": "Classification note"},
                {"text": "Stable", "next_node_id": "n1"},
                {"text": "Unstable", "next_node_id": "surgery"},
            ],
        },
        "n1": {"id": "n1", "type": "recommendation", "recommendations": ["Rest 2 weeks"]},
        "surgery": {
            "id": "surgery",
            "recommendations": ["R1"],
            "key_recommendations": ["K1"],
            "treatment_protocols": [{"type": "Operative", "objectives": ["Restore length"]}],
            "critical_rules": [{"rule": "No surgery through blisters", "warning": "Wound necrosis"}],
            "risk_factors": ["Smoking"],
        },
        "dead": {"id": "dead", "type": "note"},
        "rules_only": {
            "id": "rules_only",
            "critical_rules": [{"rule": "Do not weight bear", "warning": "Displacement"}],
        },
    },
}


@pytest.fixture
def sample_document():
    return parse_tree_document(SAMPLE_TREE)


@pytest.fixture
def engine(sample_document):
    from clinical_tree.core.traversal_engine import TraversalEngine
    return TraversalEngine(sample_document, clock=fixed_clock)


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def stamp():
    return FIXED_STAMP


@pytest.fixture
def tree_data():
    """Deep copy of the sample tree, safe to modify per test."""
    import copy
    return copy.deepcopy(SAMPLE_TREE)
