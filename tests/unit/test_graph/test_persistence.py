"""Tests for export/import, graph files, and clustering."""

import json
from datetime import datetime, timezone

import pytest

from storylines.core.errors import InvalidInputError, ParseError
from storylines.graph import persistence
from storylines.graph.clustering import CLUSTER_COLORS, cluster_stats, detect_clusters
from storylines.graph.models import SummaryPending, SummaryReady
from storylines.graph.store import GraphStore


@pytest.mark.asyncio
class TestExportImport:
    async def test_export_is_json_serializable(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        exported = persistence.export_graph(store.snapshot(), exported_at=datetime(2024, 1, 1, tzinfo=timezone.utc))

        assert json.loads(json.dumps(exported)) == exported
        assert exported["metadata"]["node_count"] == 4
        assert exported["metadata"]["edge_count"] == 3
        assert exported["metadata"]["version"] == persistence.EXPORT_VERSION
        assert exported["nodes"]["book:Dune"]["publication_year"] == 1965

    async def test_round_trip_goes_through_merge(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        await store.set_external_key("book:Dune", "/works/OL1W")
        await store.set_summary("book:Dune", SummaryReady(summary="s", analysis="a"))
        await store.set_summary("theme:Ecology", SummaryPending())
        exported = persistence.export_graph(store.snapshot())

        restored = GraphStore()
        result = await persistence.import_graph(restored, exported)

        assert set(restored.nodes) == set(store.nodes)
        assert {e.key for e in restored.edges} == {e.key for e in store.edges}
        assert len(result.new_ids) == 4
        dune = restored.get_node("book:Dune")
        assert dune.external_key == "/works/OL1W"
        assert dune.summary == SummaryReady(summary="s", analysis="a")
        assert restored.get_node("theme:Ecology").summary.state == "unrequested"
        assert dune.initial_position is None

    async def test_summaries_follow_type_and_label(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}, {"label": "Dune", "type": "theme"}])
        await store.set_summary("theme:Dune", SummaryReady(summary="Sand seas.", analysis="Motif."))
        exported = persistence.export_graph(store.snapshot())

        restored = GraphStore()
        await persistence.import_graph(restored, exported)

        assert restored.get_node("theme:Dune").summary == SummaryReady(summary="Sand seas.", analysis="Motif.")
        assert restored.get_node("book:Dune").summary.state == "unrequested"

    async def test_import_into_populated_graph_merges(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"][:2])
        result = await persistence.import_graph(store, sample_batch)

        assert len(store) == 4
        assert sorted(result.new_ids) == ["theme:Ecology", "theme:Messianism"]

    async def test_import_rejects_non_objects(self, store):
        with pytest.raises(InvalidInputError):
            await persistence.import_graph(store, ["not", "a", "document"])
        with pytest.raises(InvalidInputError):
            await persistence.import_graph(store, {"nodes": "nope"})

    async def test_save_and_load(self, tmp_path, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        path = await persistence.save_graph(store.snapshot(), tmp_path / "nested" / "graph.json")

        restored = GraphStore()
        await persistence.load_graph(restored, path)
        assert len(restored) == 4

    async def test_read_json_errors(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope")

        with pytest.raises(ParseError):
            await persistence.read_json(bad)
        with pytest.raises(FileNotFoundError):
            await persistence.read_json(tmp_path / "missing.json")

    async def test_graph_summary(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        text = persistence.graph_summary(store.snapshot())

        assert "Total: 4 nodes, 3 connections" in text
        assert "Featured Books:" in text
        assert "Dune (1965)" in text


@pytest.mark.asyncio
class TestClustering:
    async def test_connected_components(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        await store.add_batch(
            [{"label": "Emma", "type": "book"}, {"label": "Jane Austen", "type": "author"}],
            [{"source": "Jane Austen", "target": "Emma"}],
        )
        await store.add_batch([{"label": "Solitude", "type": "theme"}])

        result = detect_clusters(store.nodes, store.edges)

        assert len(result.clusters) == 3
        first, second, third = result.clusters
        assert set(first.nodes) == {"book:Dune", "author:Frank Herbert", "theme:Ecology", "theme:Messianism"}
        assert first.label == "Messianism"
        assert second.label == "Jane Austen cluster"
        assert third.label == "Solitude"
        assert first.color == CLUSTER_COLORS[0]
        assert result.node_to_cluster["book:Emma"] == second.id

    async def test_label_falls_back_to_type(self, store):
        await store.add_batch([{"label": "Emma", "type": "book"}])
        assert detect_clusters(store.nodes, store.edges).clusters[0].label == "Book cluster"

    async def test_stats_of_nothing(self):
        assert cluster_stats([])["total_clusters"] == 0

    async def test_stats_for_clusters(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        await store.add_batch([{"label": "Emma", "type": "book"}])
        stats = cluster_stats(detect_clusters(store.nodes, store.edges).clusters)

        assert stats == {"total_clusters": 2, "average_size": 2.5, "largest": 4, "smallest": 1}
