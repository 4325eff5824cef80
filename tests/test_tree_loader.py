"""
Test Tree Loader - document parsing and questionnaire catalog

Run with: pytest tests/test_tree_loader.py -v
"""

import json

import pytest

from clinical_tree.contracts import Answer, TreatmentProtocol
from clinical_tree.utils.tree_loader import (
    QuestionnaireCatalog,
    TreeDocumentError,
    load_tree_document,
    parse_tree_document,
)


class TestParseTreeDocument:

    def test_sample_tree(self, tree_data):
        document = parse_tree_document(tree_data)

        assert document.root.id == "root"
        assert document.root.question == "Q1"
        assert document.root.clinical_info.flatten() == "Objective: Confirm | Evidence level: C"
        assert document.root.answers[0] == Answer("Yes", "q2")
        assert set(document.nodes) == {"q2", "n1", "surgery", "dead", "rules_only"}
        assert document.metadata.title == "Ankle fractures"
        assert document.metadata.version == "1.0"

    def test_structured_records(self, tree_data):
        surgery = parse_tree_document(tree_data).nodes["surgery"]

        assert surgery.treatment_protocols == (
            TreatmentProtocol(type="Operative", objectives=("Restore length",)),
        )
        assert surgery.critical_rules[0].warning == "Wound necrosis"
        assert surgery.risk_factors == ("Smoking",)

    def test_informational_option_has_no_destination(self, tree_data):
        q2 = parse_tree_document(tree_data).nodes["q2"]

        assert q2.options[0].next_node_id is None
        assert not q2.options[0].selectable
        assert q2.options[1].selectable

    def test_unknown_fields_ignored(self, tree_data):
        tree_data["nodes"]["n1"]["layout_hint"] = "wide"
        tree_data["nodes"]["surgery"]["treatment_protocols"][0]["color"] = "red"

        document = parse_tree_document(tree_data)

        assert document.nodes["n1"].recommendations == ("Rest 2 weeks",)
        assert document.nodes["surgery"].treatment_protocols[0].type == "Operative"

    def test_id_defaults_to_key(self):
        document = parse_tree_document({"root": {}, "nodes": {"n1": {"recommendations": ["R"]}}})

        assert document.nodes["n1"].id == "n1"
        assert document.root.id == "root"

    def test_malformed_entries_skipped(self):
        document = parse_tree_document({
            "root": {
                "answers": [{"text": "Ok", "next_node_id": "n1"}, "broken", {"next_node_id": "n1"}],
                "recommendations": "not a list",
            },
        })

        assert document.root.answers == (Answer("Ok", "n1"),)
        assert document.root.recommendations == ()

    def test_objectives_must_be_a_list(self):
        document = parse_tree_document({"root": {"treatment_protocols": [
            {"type": "A", "objectives": "Restore length"},
            {"type": "B", "objectives": ["Restore length", 2]},
        ]}})

        first, second = document.root.treatment_protocols
        assert first.objectives is None
        assert second.objectives == ("Restore length", "2")

    def test_empty_next_node_id_is_informational(self):
        document = parse_tree_document({"root": {"options": [{"text": "Note", "next_node_id": ""}]}})

        assert document.root.options[0].next_node_id is None

    def test_nodes_are_read_only(self, tree_data):
        document = parse_tree_document(tree_data)

        with pytest.raises(TypeError):
            document.nodes["extra"] = document.root

    @pytest.mark.parametrize("data, message", [
        ([], "must be a JSON object"),
        ({"nodes": {}}, "missing 'root'"),
        ({"root": {}, "nodes": []}, "'nodes' must be an object"),
        ({"root": {}, "nodes": {"root": {}}}, "reserved"),
        ({"root": {}, "nodes": {"n1": "text"}}, "Node 'n1' must be an object"),
    ])
    def test_structural_errors(self, data, message):
        with pytest.raises(TreeDocumentError, match=message):
            parse_tree_document(data)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_tree_document({})


class TestLoadTreeDocument:

    def test_load_from_file(self, tmp_path, tree_data):
        path = tmp_path / "tree.json"
        path.write_text(json.dumps(tree_data, ensure_ascii=False), encoding='utf-8')

        document = load_tree_document(path)

        assert document.metadata.title == "Ankle fractures"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_tree_document(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "tree.json"
        path.write_text("{not json", encoding='utf-8')

        with pytest.raises(TreeDocumentError, match="not valid JSON"):
            load_tree_document(path)


@pytest.fixture
def catalog_path(tmp_path, tree_data):
    (tmp_path / "trees").mkdir()
    (tmp_path / "trees" / "ankle.json").write_text(json.dumps(tree_data), encoding='utf-8')
    catalog = {
        "questionnaires": [
            {"id": "ankle", "title": "Ankle fractures", "description": "Ankles", "file": "trees/ankle.json"},
            {"id": "broken", "title": "Broken", "file": "trees/missing.json"},
        ]
    }
    path = tmp_path / "questionnaires.json"
    path.write_text(json.dumps(catalog), encoding='utf-8')
    return path


class TestQuestionnaireCatalog:

    def test_list_entries(self, catalog_path):
        catalog = QuestionnaireCatalog(catalog_path)

        entries = catalog.list_entries()

        assert [entry.id for entry in entries] == ["ankle", "broken"]
        assert entries[0].to_dict() == {'id': 'ankle', 'title': 'Ankle fractures', 'description': 'Ankles'}
        assert entries[1].description == ""

    def test_documents_loaded_once(self, catalog_path):
        catalog = QuestionnaireCatalog(catalog_path)

        first = catalog.load_document("ankle")
        second = catalog.load_document("ankle")

        assert first is second

    def test_unknown_id(self, catalog_path):
        catalog = QuestionnaireCatalog(catalog_path)

        assert catalog.get("unknown") is None
        with pytest.raises(KeyError):
            catalog.load_document("unknown")

    def test_missing_tree_file(self, catalog_path):
        catalog = QuestionnaireCatalog(catalog_path)

        with pytest.raises(FileNotFoundError):
            catalog.load_document("broken")

    def test_missing_catalog(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            QuestionnaireCatalog(tmp_path / "nope.json")

    def test_duplicate_ids(self, tmp_path):
        path = tmp_path / "questionnaires.json"
        entry = {"id": "a", "title": "A", "file": "a.json"}
        path.write_text(json.dumps({"questionnaires": [entry, entry]}), encoding='utf-8')

        with pytest.raises(ValueError, match="Duplicate"):
            QuestionnaireCatalog(path)

    def test_missing_required_keys(self, tmp_path):
        path = tmp_path / "questionnaires.json"
        path.write_text(json.dumps({"questionnaires": [{"id": "a"}]}), encoding='utf-8')

        with pytest.raises(ValueError, match="missing required keys"):
            QuestionnaireCatalog(path)


class TestBundledData:
    """The questionnaires shipped in data/ load and are navigable."""

    def test_bundled_catalog(self):
        from pathlib import Path
        data_dir = Path(__file__).resolve().parent.parent / "data"
        catalog = QuestionnaireCatalog(data_dir / "questionnaires.json")

        for entry in catalog.list_entries():
            document = catalog.load_document(entry.id)
            assert document.root.question
            assert document.metadata.title == entry.title


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
