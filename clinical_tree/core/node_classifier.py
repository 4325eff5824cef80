"""
Node Classifier - Stateless role detection for tree nodes

Responsibilities:
- Decide whether a node offers a further selectable step
- Decide whether a node is a terminal guidance node
- Recognize dead ends (no next step, no qualifying guidance)

Design principles:
- Pure functions: all input comes from the node
- Structural fields decide, the `type` tag never does
- critical_rules and risk_factors alone never make a node terminal

NodeClassifier wraps the pure functions with a per-document cache keyed
by node id. Binding a different document drops the cache.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from clinical_tree.contracts import Node, TreeDocument

logger = logging.getLogger(__name__)

# Guidance fields that qualify a node as terminal
TERMINAL_GUIDANCE_FIELDS = (
    'recommendations',
    'key_recommendations',
    'detailed_recommendations',
    'treatment_protocols',
    'therapeutic_measures',
    'prevention_measures',
)


class NodeRole(str, Enum):
    """
    QUESTION: has a next step, keep asking
    TERMINAL: no next step, carries qualifying guidance
    DEAD_END: no next step and nothing to recommend
    """
    QUESTION = "question"
    TERMINAL = "terminal"
    DEAD_END = "dead_end"


def has_next_step(node: Node) -> bool:
    """
    Check whether a node offers a traversable choice.

    True when `answers` is non-empty, or at least one option carries a
    non-empty next_node_id. Informational options do not count.
    """
    if node.answers:
        return True
    return any(option.next_node_id for option in node.options)


def has_terminal_guidance(node: Node) -> bool:
    return any(getattr(node, name) for name in TERMINAL_GUIDANCE_FIELDS)


def is_terminal(node: Optional[Node]) -> bool:
    """
    Check whether a node is a terminal guidance node.

    Args:
        node: Node to inspect (None is never terminal)

    Returns:
        True if the node has no next step and at least one qualifying
        guidance field is non-empty
    """
    if node is None:
        return False
    if has_next_step(node):
        return False
    return has_terminal_guidance(node)


def classify(node: Node) -> NodeRole:
    if has_next_step(node):
        return NodeRole.QUESTION
    if has_terminal_guidance(node):
        return NodeRole.TERMINAL
    return NodeRole.DEAD_END


class NodeClassifier:
    """
    Classification cache bound to one tree document.

    Documents are immutable for the lifetime of a session, so caching by
    node id is safe as long as the cache is dropped on rebind.
    """

    def __init__(self, document: Optional[TreeDocument] = None):
        self._document: Optional[TreeDocument] = None
        self._roles: Dict[str, NodeRole] = {}
        if document is not None:
            self.bind(document)

    def bind(self, document: TreeDocument) -> None:
        """
        Bind to a document, dropping cached roles of any previous one.

        Args:
            document: Tree document to classify nodes of

        Raises:
            TypeError: If document is not a TreeDocument
        """
        if not isinstance(document, TreeDocument):
            raise TypeError("document must be TreeDocument instance")

        if document is not self._document:
            if self._roles:
                logger.debug(f"Dropping {len(self._roles)} cached node roles (document changed)")
            self._roles = {}
            self._document = document

    def role_of(self, node_id: str, node: Node) -> NodeRole:
        """Role of a node of the bound document, cached by id."""
        role = self._roles.get(node_id)
        if role is None:
            role = classify(node)
            self._roles[node_id] = role
        return role

    def is_terminal(self, node_id: str, node: Node) -> bool:
        return self.role_of(node_id, node) is NodeRole.TERMINAL

    def has_next_step(self, node_id: str, node: Node) -> bool:
        return self.role_of(node_id, node) is NodeRole.QUESTION

    @property
    def cached_count(self) -> int:
        return len(self._roles)
