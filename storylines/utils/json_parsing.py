"""Extract a JSON object from generative model output.

Models sometimes wrap structured output in a ```json fence or surround it
with prose even when JSON output was requested.
"""

import json
import logging
import re
from typing import Any

from storylines.core.errors import ParseError

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"```json\s*(.*?)\s*```|(\{.*\})", re.DOTALL)


def parse_llm_json(text: str) -> Any:
    """Parse the first fenced JSON block or outermost ``{...}`` object in ``text``.

    Raises:
        ParseError: If no valid JSON could be extracted; carries the raw text
    """
    if not text or not text.strip():
        raise ParseError("Model response is empty.", raw_text=text)

    match = _JSON_BLOCK.search(text)
    candidate = (match.group(1) or match.group(2)) if match else text

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse model response as JSON: %s", e)
        raise ParseError(f"No valid JSON found in model response: {e}", raw_text=text) from e
