"""Tests for dirty tracking."""

import random

from flowcanvas.core.change_detector import ChangeDetector, is_dirty, snapshot
from flowcanvas.models.core import Position


class TestSnapshot:
    """Test cases for graph fingerprints."""

    def test_order_insensitive(self, store, chain):
        """Test that permuting nodes and edges keeps the fingerprint."""
        nodes, edges = store.nodes, store.edges
        expected = snapshot(nodes, edges)

        rng = random.Random(7)
        for _ in range(5):
            shuffled_nodes = list(nodes)
            shuffled_edges = list(edges)
            rng.shuffle(shuffled_nodes)
            rng.shuffle(shuffled_edges)
            assert snapshot(shuffled_nodes, shuffled_edges) == expected

    def test_position_and_overlay_do_not_count(self, store, chain):
        """Test that moving nodes or running the workflow is not a change."""
        query, _, _ = chain
        before = snapshot(store.nodes, store.edges)

        store.move_node(query.id, Position(x=1, y=2))
        store.set_execution_overlay([query.id], [store.edges[0].id])
        store.set_node_result(query.id, {"response": "hi"})

        assert snapshot(store.nodes, store.edges) == before

    def test_parameters_count(self, store, chain):
        """Test that a parameter edit changes the fingerprint."""
        _, llm, _ = chain
        before = snapshot(store.nodes, store.edges)
        store.update_node_parameters(llm.id, {"temperature": 0.2})
        assert snapshot(store.nodes, store.edges) != before

    def test_edges_count(self, store, chain):
        """Test that removing an edge changes the fingerprint."""
        before = snapshot(store.nodes, store.edges)
        store.disconnect(store.edges[0].id)
        assert snapshot(store.nodes, store.edges) != before

    def test_is_dirty(self):
        """Test the comparison helper."""
        assert is_dirty("abc", None) is True
        assert is_dirty("abc", "abc") is False
        assert is_dirty("abc", "def") is True


class TestChangeDetector:
    """Test cases for the saved-state lifecycle."""

    def test_new_workflow_dirty_once_it_has_content(self, store):
        """Test that an empty unsaved workflow is clean and any node dirties it."""
        detector = ChangeDetector()
        assert detector.has_unsaved_changes(store.nodes, store.edges) is False

        store.add_node("QueryNode")
        assert detector.has_unsaved_changes(store.nodes, store.edges) is True

    def test_commit_then_edit_then_revert(self, store, chain):
        """Test the dirty, commit and revert cycle."""
        _, llm, _ = chain
        detector = ChangeDetector()
        detector.commit(store.nodes, store.edges)
        assert detector.has_unsaved_changes(store.nodes, store.edges) is False

        store.update_node_parameters(llm.id, {"temperature": 1.5})
        assert detector.has_unsaved_changes(store.nodes, store.edges) is True

        store.update_node_parameters(llm.id, {"temperature": 0.7})
        assert detector.has_unsaved_changes(store.nodes, store.edges) is False

    def test_hydration_suppresses_changes(self, store, chain):
        """Test that nothing is dirty while a load is in progress."""
        detector = ChangeDetector()
        detector.begin_hydration()
        assert detector.has_unsaved_changes(store.nodes, store.edges) is False

        detector.end_hydration(store.nodes, store.edges)
        assert detector.has_unsaved_changes(store.nodes, store.edges) is False

    def test_unsaved_load_stays_dirty_until_commit(self, store, chain):
        """Test that a template load counts as unsaved even without edits."""
        detector = ChangeDetector()
        detector.begin_hydration()
        detector.end_hydration(store.nodes, store.edges, mark_unsaved=True)
        assert detector.has_unsaved_changes(store.nodes, store.edges) is True

        detector.commit(store.nodes, store.edges)
        assert detector.has_unsaved_changes(store.nodes, store.edges) is False

    def test_reset(self, store, chain):
        """Test that reset forgets the baseline."""
        detector = ChangeDetector()
        detector.commit(store.nodes, store.edges)
        detector.reset()
        assert detector.baseline is None
        assert detector.has_unsaved_changes(store.nodes, store.edges) is True

    def test_commit_fingerprint_taken_before_edit(self, store, chain):
        """Test that edits after the committed fingerprint remain unsaved."""
        _, llm, _ = chain
        detector = ChangeDetector()
        fingerprint = snapshot(store.nodes, store.edges)

        store.update_node_parameters(llm.id, {"temperature": 1.5})
        detector.commit_fingerprint(fingerprint)

        assert detector.baseline == fingerprint
        assert detector.has_unsaved_changes(store.nodes, store.edges) is True
