"""Tests for the graph store and batch merger."""

import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from storylines.core import constants
from storylines.graph.models import (
    ORIGIN,
    EntityInput,
    GroundingSource,
    SummaryPending,
    SummaryReady,
)
from storylines.graph.store import GraphStore, node_size


def run(coro):
    return asyncio.run(coro)


# =============================================================================
# Test Strategies
# =============================================================================

labels = st.sampled_from(["Dune", "Emma", "Beloved", "Ulysses", "Solaris", "Exile", "Memory", "Le Guin"])
types_ = st.sampled_from(["book", "author", "theme"])
optional_text = st.one_of(st.none(), st.text(min_size=1, max_size=10).filter(lambda s: s.strip() == s))

entities = st.fixed_dictionaries(
    {"label": labels, "type": types_},
    optional={"description": optional_text, "publication_year": st.one_of(st.none(), st.integers(1000, 2024))},
)
edges = st.fixed_dictionaries({"source": labels, "target": labels})
batches = st.tuples(st.lists(entities, max_size=6), st.lists(edges, max_size=8))


class TestBatchProperties:
    @settings(max_examples=60, deadline=None)
    @given(sequence=st.lists(batches, min_size=1, max_size=6))
    def test_no_dangling_or_duplicate_edges(self, sequence):
        async def scenario():
            store = GraphStore(clock=lambda: 1)
            for batch_entities, batch_edges in sequence:
                await store.add_batch(batch_entities, batch_edges)
            return store

        store = run(scenario())
        keys = [edge.key for edge in store.edges]

        assert len(keys) == len(set(keys))
        for edge in store.edges:
            assert edge.source in store.nodes
            assert edge.target in store.nodes
            assert edge.source != edge.target

    @settings(max_examples=60, deadline=None)
    @given(first=entities, second=entities)
    def test_merge_is_idempotent_and_never_clobbers(self, first, second):
        second = dict(second, label=first["label"], type=first["type"])

        async def scenario():
            store = GraphStore(clock=lambda: 1)
            await store.add_batch([first])
            before = store.get_node(EntityInput.model_validate(first).id)
            await store.add_batch([second])
            await store.add_batch([first])
            return store, before

        store, before = run(scenario())
        assert len(store) == 1
        after = next(iter(store.nodes.values()))
        for field_name in ("description", "publication_year"):
            if getattr(before, field_name) is not None:
                assert getattr(after, field_name) == getattr(before, field_name)
        assert after.position == before.position

    @given(degrees=st.lists(st.integers(0, 500), min_size=2, max_size=20))
    def test_size_is_monotone_and_bounded(self, degrees):
        ordered = sorted(degrees)
        sizes = [node_size(d) for d in ordered]

        assert sizes == sorted(sizes)
        for size in sizes:
            assert constants.NODE_MIN_SIZE <= size <= constants.NODE_MAX_SIZE


@pytest.mark.asyncio
class TestAddBatch:
    async def test_two_nodes_and_one_edge(self, store):
        result = await store.add_batch(
            [{"label": "Dune", "type": "book"}, {"label": "Frank Herbert", "type": "author"}],
            [{"source": "Frank Herbert", "target": "Dune"}],
        )

        assert len(store) == 2
        assert len(store.edges) == 1
        assert result.primary_id == "book:Dune"
        assert result.new_ids == ["book:Dune", "author:Frank Herbert"]
        for node in store.nodes.values():
            assert node.size > constants.NODE_BASE_SIZE

    async def test_merge_fills_missing_fields_only(self, store):
        await store.add_batch([{"label": "Dune", "type": "book", "description": "First."}])
        result = await store.add_batch([{
            "label": "Dune", "type": "book", "description": "Second.",
            "publicationYear": "1965", "apiKey": "/works/OL1W",
        }])
        node = store.get_node("book:Dune")

        assert result.new_ids == []
        assert node.description == "First."
        assert node.publication_year == 1965
        assert node.external_key == "/works/OL1W"

    async def test_same_label_different_type_are_distinct(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}, {"label": "Dune", "type": "theme"}])
        assert set(store.nodes) == {"book:Dune", "theme:Dune"}

    async def test_edges_resolve_against_existing_nodes(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}])
        await store.add_batch(
            [{"label": "Frank Herbert", "type": "author"}],
            [{"source": "Frank Herbert", "target": "Dune"}, {"source": "Frank Herbert", "target": "Nobody"}],
        )

        assert store.has_edge("author:Frank Herbert", "book:Dune")
        assert len(store.edges) == 1

    async def test_reverse_edge_is_a_duplicate(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        await store.add_batch(sample_batch["nodes"][:1], [{"source": "Ecology", "target": "Dune"}])

        assert len(store.edges) == 3
        assert store.degree("book:Dune") == 3

    async def test_self_loops_are_skipped(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}], [{"source": "Dune", "target": "Dune"}])
        assert store.edges == ()

    async def test_malformed_batch_is_a_no_op(self, store):
        assert (await store.add_batch(None)).new_ids == []
        assert (await store.add_batch([{"type": "book"}])).primary_id is None
        assert (await store.add_batch([{"label": "", "type": "book"}])).new_ids == []
        assert len(store) == 0

    async def test_malformed_edges_are_skipped_individually(self, store):
        await store.add_batch(
            [{"label": "A", "type": "book"}, {"label": "B", "type": "author"}],
            [{"source": "A"}, "nonsense", {"source": "B", "target": "A"}],
        )
        assert len(store.edges) == 1

    async def test_positions_are_assigned_once(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}])
        position = store.get_node("book:Dune").position
        await store.add_batch([{"label": "Emma", "type": "book"}, {"label": "Dune", "type": "book"}])

        assert store.get_node("book:Dune").position == position
        assert store.get_node("book:Emma").position != position

    async def test_source_position_and_bootstrap(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}], source_position=(1.0, 2.0, 3.0), timestamp=5)
        await store.add_batch([{"label": "Emma", "type": "book"}], timestamp=constants.BOOTSTRAP_TIMESTAMP)

        assert store.get_node("book:Dune").initial_position == (1.0, 2.0, 3.0)
        assert store.get_node("book:Dune").last_updated == 5
        assert store.get_node("book:Emma").initial_position is None

    async def test_timestamp_falls_back_to_latest_query_then_clock(self, store):
        await store.add_batch([{"label": "A", "type": "book"}])
        store.mark_query(777)
        await store.add_batch([{"label": "B", "type": "book"}])

        assert store.get_node("book:A").last_updated == 1_000
        assert store.get_node("book:B").last_updated == 777
        assert store.get_node("book:B").initial_position == ORIGIN

    async def test_grounding_sources_attach_to_new_primary_only(self, store):
        sources = [GroundingSource(uri="https://example.org/dune", title="Dune")]
        await store.add_batch(
            [{"label": "Dune", "type": "book"}, {"label": "Frank Herbert", "type": "author"}],
            grounding_sources=sources,
        )

        assert store.get_node("book:Dune").grounding_sources == tuple(sources)
        assert store.get_node("author:Frank Herbert").grounding_sources is None

    async def test_colors_by_type(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        book = store.get_node("book:Dune")
        author = store.get_node("author:Frank Herbert")

        assert book.color == constants.NODE_COLORS["book"]
        assert author.color != book.color


@pytest.mark.asyncio
class TestSingleFieldWrites:
    async def test_external_key_fills_only_when_missing(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}])

        assert await store.set_external_key("book:Dune", "/works/OL1W")
        assert not await store.set_external_key("book:Dune", "/works/OTHER")
        assert store.get_node("book:Dune").external_key == "/works/OL1W"

    async def test_writes_to_unknown_nodes_are_ignored(self, store):
        assert not await store.set_image_url("book:Nope", "https://x")
        assert not await store.set_summary("book:Nope", SummaryPending())

    async def test_summary_transitions(self, store):
        await store.add_batch([{"label": "Dune", "type": "book"}])
        await store.set_summary("book:Dune", SummaryPending())
        await store.set_summary("book:Dune", SummaryReady(summary="s", analysis="a"))

        assert store.get_node("book:Dune").summary == SummaryReady(summary="s", analysis="a")

    async def test_connect(self, store):
        await store.add_batch([{"label": "A", "type": "book"}, {"label": "B", "type": "theme"}])

        assert await store.connect("book:A", "theme:B")
        assert not await store.connect("theme:B", "book:A")
        assert not await store.connect("book:A", "book:Missing")
        assert store.get_node("book:A").size > constants.NODE_BASE_SIZE

    async def test_snapshot_is_immutable(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        snapshot = store.snapshot()
        await store.add_batch([{"label": "Emma", "type": "book"}])

        assert "book:Emma" not in snapshot.nodes
        with pytest.raises(TypeError):
            snapshot.nodes["book:Emma"] = None

    async def test_reset(self, sample_batch, store):
        await store.add_batch(sample_batch["nodes"], sample_batch["edges"])
        store.mark_query(5)
        await store.reset()

        assert len(store) == 0
        assert store.edges == ()
        assert store.latest_query_timestamp is None
