"""Tests for input validation and lenient JSON extraction."""

import pytest

from storylines.core.errors import InvalidInputError, ParseError
from storylines.utils.json_parsing import parse_llm_json
from storylines.utils.validation import (
    MAX_QUERY_LENGTH,
    sanitize_input,
    validate_node_id,
    validate_search_query,
)


class TestValidateSearchQuery:
    def test_trims_whitespace(self):
        assert validate_search_query("  Dune  ") == "Dune"

    @pytest.mark.parametrize("query", ["", "   ", None, 42])
    def test_rejects_empty_or_non_string(self, query):
        with pytest.raises(InvalidInputError):
            validate_search_query(query)

    def test_rejects_too_long(self):
        with pytest.raises(InvalidInputError, match="too long"):
            validate_search_query("a" * (MAX_QUERY_LENGTH + 1))

    @pytest.mark.parametrize(
        "query",
        ["<script>alert(1)</script>", "javascript:void(0)", "dune onclick=run()", "eval(1)"],
    )
    def test_rejects_markup(self, query):
        with pytest.raises(InvalidInputError):
            validate_search_query(query)


class TestSanitizeInput:
    def test_strips_tags_and_collapses_whitespace(self):
        assert sanitize_input("  <b>Dune</b>   by Frank Herbert ") == "Dune by Frank Herbert"

    def test_removes_script_blocks(self):
        assert sanitize_input("Dune<script>alert('x')</script>") == "Dune"

    def test_non_string(self):
        assert sanitize_input(None) == ""


class TestValidateNodeId:
    def test_accepts_known_types(self):
        assert validate_node_id("book:Dune") == "book:Dune"
        assert validate_node_id("author:Ursula K. Le Guin")

    @pytest.mark.parametrize("node_id", ["", "Dune", "movie:Dune", "book:"])
    def test_rejects_malformed(self, node_id):
        with pytest.raises(InvalidInputError):
            validate_node_id(node_id)


class TestParseLlmJson:
    def test_plain_object(self):
        assert parse_llm_json('{"themes": ["exile"]}') == {"themes": ["exile"]}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"summary": "s", "analysis": "a"}\n```\nEnjoy!'
        assert parse_llm_json(text) == {"summary": "s", "analysis": "a"}

    def test_object_surrounded_by_prose(self):
        text = 'Sure! {"nodes": [], "edges": []} Hope that helps.'
        assert parse_llm_json(text) == {"nodes": [], "edges": []}

    def test_bare_array_falls_back_to_whole_text(self):
        assert parse_llm_json("[1, 2]") == [1, 2]

    @pytest.mark.parametrize("text", ["", "   ", "no json here", '{"broken": '])
    def test_invalid_raises_parse_error_with_raw_text(self, text):
        with pytest.raises(ParseError) as exc_info:
            parse_llm_json(text)
        assert exc_info.value.raw_text == text
