"""
Tree loader - Parse tree documents and the questionnaire catalog

Responsibilities:
- Convert parsed JSON into immutable TreeDocument contracts
- Read tree documents from disk (UTF-8 JSON)
- List available questionnaires and load them by id

Design principles:
- Structural checks only (objects where objects are expected, a root,
  no reserved "root" key); no clinical or schema validation
- Unknown fields are ignored, never rejected
- Malformed list entries are skipped with a warning, the rest is kept
- Loaded documents are cached and shared read-only between sessions
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from clinical_tree.contracts import (
    ROOT_NODE_ID,
    Answer,
    ClinicalInfo,
    CriticalRule,
    Node,
    PreventionMeasure,
    TherapeuticMeasure,
    TreatmentProtocol,
    TreeDocument,
    TreeMetadata,
)

logger = logging.getLogger(__name__)


class TreeDocumentError(ValueError):
    """Tree document is structurally unusable."""


# ========================
# Document parsing
# ========================

def parse_tree_document(data: Any) -> TreeDocument:
    """
    Build a TreeDocument from parsed JSON.

    Args:
        data: Parsed JSON object with 'root', optional 'nodes' and 'metadata'

    Returns:
        TreeDocument

    Raises:
        TreeDocumentError: If the document is not an object, has no root
            object, has non-object nodes, or uses the reserved "root" key
    """
    if not isinstance(data, dict):
        raise TreeDocumentError("Tree document must be a JSON object")

    if not isinstance(data.get('root'), dict):
        raise TreeDocumentError("Tree document missing 'root' node object")

    raw_nodes = data.get('nodes')
    if raw_nodes is None:
        raw_nodes = {}
    if not isinstance(raw_nodes, dict):
        raise TreeDocumentError("'nodes' must be an object mapping node ids to nodes")

    if ROOT_NODE_ID in raw_nodes:
        raise TreeDocumentError(f"Node key '{ROOT_NODE_ID}' is reserved for the root node")

    root = _parse_node(data['root'], ROOT_NODE_ID)
    nodes = {node_id: _parse_node(raw, node_id) for node_id, raw in raw_nodes.items()}
    metadata = _parse_metadata(data.get('metadata'))

    logger.info(f"Parsed tree document '{metadata.title}' with {len(nodes)} nodes")
    return TreeDocument(root=root, nodes=nodes, metadata=metadata)


def load_tree_document(path) -> TreeDocument:
    """
    Read and parse a tree document file.

    Args:
        path: Path to a UTF-8 JSON file

    Raises:
        FileNotFoundError: If the file doesn't exist
        TreeDocumentError: If the file is not valid JSON or not a usable tree
    """
    tree_file = Path(path)
    if not tree_file.exists():
        raise FileNotFoundError(f"Tree document not found: {path}")

    with open(tree_file, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise TreeDocumentError(f"Tree document {tree_file.name} is not valid JSON: {e}") from e

    return parse_tree_document(data)


def _parse_metadata(raw: Any) -> TreeMetadata:
    if not isinstance(raw, dict):
        return TreeMetadata()
    return TreeMetadata(
        title=raw.get('title') or "",
        subtitle=raw.get('subtitle'),
        source_document=raw.get('source_document'),
        year=raw.get('year'),
        version=raw.get('version'),
    )


def _parse_node(raw: Any, node_id: str) -> Node:
    if not isinstance(raw, dict):
        raise TreeDocumentError(f"Node '{node_id}' must be an object")

    clinical_info = None
    if isinstance(raw.get('clinical_info'), dict):
        clinical_info = ClinicalInfo(
            objective=raw['clinical_info'].get('objective'),
            evidence=raw['clinical_info'].get('evidence'),
        )

    return Node(
        id=raw.get('id') or node_id,
        type=raw.get('type') or "",
        question=raw.get('question'),
        source_reference=raw.get('source_reference'),
        clinical_info=clinical_info,
        answers=_parse_answers(raw, 'answers', node_id),
        options=_parse_answers(raw, 'options', node_id),
        recommendations=_string_list(raw, 'recommendations', node_id),
        key_recommendations=_string_list(raw, 'key_recommendations', node_id),
        detailed_recommendations=_string_list(raw, 'detailed_recommendations', node_id),
        treatment_protocols=_record_list(raw, 'treatment_protocols', TreatmentProtocol, node_id),
        therapeutic_measures=_record_list(raw, 'therapeutic_measures', TherapeuticMeasure, node_id),
        prevention_measures=_record_list(raw, 'prevention_measures', PreventionMeasure, node_id),
        critical_rules=_record_list(raw, 'critical_rules', CriticalRule, node_id),
        risk_factors=_string_list(raw, 'risk_factors', node_id),
    )


def _list_field(raw: dict, key: str, node_id: str) -> list:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"Node '{node_id}': '{key}' is not a list, ignored")
        return []
    return value


def _parse_answers(raw: dict, key: str, node_id: str) -> Tuple[Answer, ...]:
    answers = []
    for i, item in enumerate(_list_field(raw, key, node_id)):
        if not isinstance(item, dict) or not isinstance(item.get('text'), str):
            logger.warning(f"Node '{node_id}': {key}[{i}] has no text, skipped")
            continue
        answers.append(Answer(text=item['text'], next_node_id=item.get('next_node_id') or None))
    return tuple(answers)


def _string_list(raw: dict, key: str, node_id: str) -> Tuple[str, ...]:
    items = []
    for i, item in enumerate(_list_field(raw, key, node_id)):
        if not isinstance(item, str):
            logger.warning(f"Node '{node_id}': {key}[{i}] is not a string, skipped")
            continue
        items.append(item)
    return tuple(items)


def _record_list(raw: dict, key: str, record_class, node_id: str) -> tuple:
    known = {f.name for f in fields(record_class)}
    records = []
    for i, item in enumerate(_list_field(raw, key, node_id)):
        if not isinstance(item, dict):
            logger.warning(f"Node '{node_id}': {key}[{i}] is not an object, skipped")
            continue
        values = {name: value for name, value in item.items() if name in known}
        if 'objectives' in values:
            values['objectives'] = _objectives(values['objectives'], key, i, node_id)
        records.append(record_class(**values))
    return tuple(records)


def _objectives(value: Any, key: str, index: int, node_id: str) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if not isinstance(value, list):
        logger.warning(f"Node '{node_id}': {key}[{index}].objectives is not a list, ignored")
        return None
    return tuple(str(objective) for objective in value)


# ========================
# Questionnaire catalog
# ========================

@dataclass(frozen=True)
class QuestionnaireEntry:
    """One selectable questionnaire of the catalog."""
    id: str
    title: str
    description: str
    file: str

    def to_dict(self) -> Dict[str, str]:
        return {'id': self.id, 'title': self.title, 'description': self.description}


class QuestionnaireCatalog:
    """
    Available questionnaires and their tree documents.

    Catalog file layout:
        {"questionnaires": [
            {"id": "ankle-fracture", "title": "...", "description": "...",
             "file": "trees/ankle_fracture.json"}
        ]}

    Tree file paths are relative to the catalog file's directory.
    """

    def __init__(self, catalog_path):
        """
        Load the catalog.

        Args:
            catalog_path: Path to the catalog JSON file

        Raises:
            FileNotFoundError: If the catalog doesn't exist
            ValueError: If the catalog is malformed or has duplicate ids
        """
        self.catalog_path = Path(catalog_path)
        if not self.catalog_path.exists():
            raise FileNotFoundError(f"Questionnaire catalog not found: {catalog_path}")

        with open(self.catalog_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        raw_entries = data.get('questionnaires') if isinstance(data, dict) else None
        if not isinstance(raw_entries, list):
            raise ValueError("Catalog missing 'questionnaires' list")

        self._entries: Dict[str, QuestionnaireEntry] = {}
        for raw in raw_entries:
            missing = [key for key in ('id', 'title', 'file') if not raw.get(key)]
            if missing:
                raise ValueError(f"Catalog entry missing required keys: {missing}")
            if raw['id'] in self._entries:
                raise ValueError(f"Duplicate questionnaire id: {raw['id']}")
            self._entries[raw['id']] = QuestionnaireEntry(
                id=raw['id'],
                title=raw['title'],
                description=raw.get('description', ""),
                file=raw['file'],
            )

        self._documents: Dict[str, TreeDocument] = {}
        logger.info(f"Questionnaire catalog loaded: {len(self._entries)} questionnaires")

    def list_entries(self) -> List[QuestionnaireEntry]:
        return list(self._entries.values())

    def get(self, questionnaire_id: str) -> Optional[QuestionnaireEntry]:
        return self._entries.get(questionnaire_id)

    def load_document(self, questionnaire_id: str) -> TreeDocument:
        """
        Load (once) and return a questionnaire's tree document.

        Raises:
            KeyError: If the id is not in the catalog
            FileNotFoundError: If the tree file is missing
            TreeDocumentError: If the tree file is unusable
        """
        entry = self._entries.get(questionnaire_id)
        if entry is None:
            logger.warning(f"Unknown questionnaire requested: {questionnaire_id}")
            raise KeyError(questionnaire_id)

        document = self._documents.get(questionnaire_id)
        if document is None:
            document = load_tree_document(self.catalog_path.parent / entry.file)
            self._documents[questionnaire_id] = document
        return document
