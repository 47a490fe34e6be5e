"""Prompt builders and structured-output schemas for the generative service.

Each builder returns the full prompt text for one kind of request. The
schemas double as Gemini ``response_schema`` values and as validators for the
parsed JSON that comes back.
"""

from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from storylines.graph.models import BookData, Node


# =============================================================================
# Response schemas
# =============================================================================

class NodeSchema(BaseModel):
    label: str
    type: str
    description: str = ""
    publicationYear: Optional[int] = None


class EdgeSchema(BaseModel):
    source: str
    target: str


class GraphSchema(BaseModel):
    nodes: List[NodeSchema] = Field(default_factory=list)
    edges: List[EdgeSchema] = Field(default_factory=list)
    commentary: str = ""


class ConnectionSchema(GraphSchema):
    path: List[str] = Field(default_factory=list)


class ThemesSchema(BaseModel):
    themes: List[str] = Field(default_factory=list)


class SummarySchema(BaseModel):
    summary: str
    analysis: str


class RecommendationSchema(BaseModel):
    title: str
    author: str = ""


class RecommendationsSchema(BaseModel):
    recommendations: List[RecommendationSchema] = Field(default_factory=list)


_RAW_JSON_RULES = """\
Do not wrap the JSON in markdown backticks or any other text.
Only return the raw JSON object."""

_NODE_FIELDS = """\
  - "label": The display name (e.g., "Frank Herbert", "Dune", "Existentialism").
  - "type": One of "author", "book", or "theme".
  - "description": A concise but insightful one-sentence description.
  - "publicationYear": For "book" nodes, the year of first publication (integer). Null for other types."""


# =============================================================================
# Builders
# =============================================================================

def query_prompt(query: str) -> str:
    """Initial search: a small interconnected set around the user's query."""
    return f"""\
You are a literary scholar powering a visual exploration engine. Find a small, interconnected set of books, authors, and themes related to the user's query.

The user's query is: "{query}"

Respond with a single valid JSON object: {{ "nodes": [], "edges": [], "commentary": "" }}.

- "nodes": 5 to 8 related nodes. The first node must be the primary subject of the query. Each node has:
{_NODE_FIELDS}
- "edges": Edges connecting nodes by label, each with "source" and "target".
- "commentary": One thoughtful sentence (under 30 words) on the most interesting connection you found.

Focus on the quality and insight of the connections.
{_RAW_JSON_RULES}
"""


def find_connection_prompt(start: Node, end: Node) -> str:
    """Path query between two existing nodes."""
    return f"""\
You are an expert in literary history, criticism, and theory acting as a literary detective. Find the most insightful path between two nodes.

Connect:
- Start node: {{ label: "{start.label}", type: "{start.type}" }}
- End node: {{ label: "{end.label}", type: "{end.type}" }}

The path should be non-obvious and tell a story. It may pass through shared themes, literary movements, direct influences, historical events, or other authors and books.

Respond with a single valid JSON object: {{ "nodes": [], "edges": [], "path": [], "commentary": "" }}.

- "nodes": Only the NEW intermediate nodes needed for the path. Do NOT include the start or end nodes. Each node has:
{_NODE_FIELDS}
- "edges": Every edge on the path, each with "source" and "target" node labels.
- "path": The ORDERED list of node labels from the start node to the end node.
- "commentary": Under 40 words explaining the logic and significance of the path.

Rules:
1. "path" MUST begin with "{start.label}" and end with "{end.label}".
2. Every two consecutive labels in "path" MUST have a matching edge in "edges".
3. Only create nodes and edges that are essential to the connection.
{_RAW_JSON_RULES}
"""


def extract_themes_prompt(label: str, text: str) -> str:
    return f"""\
You extract themes for a literary exploration engine. Identify the key literary, philosophical, or artistic themes in the text below.

The text describes: "{label}".

Text: "{text}"

Respond with a single valid JSON object: {{ "themes": [] }}.

- "themes": 2 to 4 strings, each a concise but nuanced theme label of 1 to 4 words.
- Prefer specific themes such as "Gothic Alienation" or "Technology vs. Humanity" over generic ones such as "Love" or "Death".

{_RAW_JSON_RULES}
"""


def create_summary_prompt(node: Node) -> str:
    """On-demand summary and analysis for one node. Empty for unknown node types."""
    if node.type == "book":
        context = f'The user has selected the book "{node.label}"'
        if node.publication_year:
            context += f" (published {node.publication_year})"
        request = "Provide a concise plot summary in 'summary' and its major themes in 'analysis'."
    elif node.type == "author":
        context = f'The user has selected the author "{node.label}"'
        request = "Provide a brief biography in 'summary' and an analysis of their literary style in 'analysis'."
    elif node.type == "theme":
        context = f'The user has selected the literary theme "{node.label}"'
        request = (
            "Explain this concept in depth in 'summary' and its significance in literature, "
            "with examples, in 'analysis'."
        )
    else:
        return ""

    if node.description:
        context += f', described as: "{node.description}"'

    return f"""\
You are a literary scholar. {context}.

{request}

Respond with a single valid JSON object: {{ "summary": "", "analysis": "" }}.
- "summary": One concise paragraph.
- "analysis": One concise paragraph.
{_RAW_JSON_RULES}
"""


def create_expansion_prompt(node: Node) -> str:
    """Expansion of one node into 2 to 4 new neighbors. Empty for unknown node types."""
    if node.type == "book":
        context = f'The user is expanding the book "{node.label}"'
        if node.publication_year:
            context += f" (published {node.publication_year})"
        request = (
            "Find one or two other notable books by the same author, and one thematically similar "
            "book by a different author. Provide nodes for these books and for the author of the "
            "similar book. If there is a strong shared theme, add a 'theme' node linking the similar "
            f'books back to "{node.label}".'
        )
    elif node.type == "author":
        context = f'The user is expanding the author "{node.label}"'
        request = (
            f'Find one author who directly influenced "{node.label}" and one author directly '
            f'influenced BY "{node.label}". Provide nodes for both authors and one quintessential '
            "work of each."
        )
    elif node.type == "theme":
        context = f'The user is expanding the literary theme "{node.label}"'
        request = "Find one quintessential book, and its author, that perfectly exemplify this theme."
    else:
        return ""

    return f"""\
You are a literary scholar acting as a literary detective. {context}. Find the most compelling new connections.

{request}

Respond with a single valid JSON object: {{ "nodes": [], "edges": [], "commentary": "" }}.

- "nodes": 2 to 4 NEW nodes. Do NOT include "{node.label}" itself. Each node has:
{_NODE_FIELDS}
- "edges": Edges connecting the new nodes to "{node.label}" and to each other where relevant, each with "source" and "target" labels.
- "commentary": One thoughtful sentence (under 30 words) about the new connections.

Every new node must be meaningfully connected back to "{node.label}".
{_RAW_JSON_RULES}
"""


def create_book_grid_prompt(locked: Sequence[BookData], excluded: Sequence[str], count: int) -> str:
    """Ask for exactly ``count`` recommendations shaped by the locked books."""
    favorites = "\n".join(f'- "{book.title}" by {book.author}' for book in locked)
    exclusions = "\n".join(f"- {identity}" for identity in excluded) or "- (none)"

    return f"""\
You are a librarian helping a user build a personal "Top 100" book wall.

The user has locked in these books as favorites:
{favorites}

Recommend {count} new, diverse, and interesting books: a mix of well-known classics and hidden gems that match the user's taste while broadening their horizons.

Do NOT recommend any of these books, which are already on the wall or were dismissed:
{exclusions}

Respond with a single valid JSON object: {{ "recommendations": [] }}.

- "recommendations": Exactly {count} objects, each with "title" (full title) and "author" (full name).

Keep the list diverse: suggest related themes, influential works, or contrasting works, not only more of the same genre.
{_RAW_JSON_RULES}
"""
