# --- hexvis_lib/sanitizer.py ---
"""
Turns a vision model's free-form answer into a TileConnections value.

The answer goes through RESPONSE_TRANSFORMS in order (each a plain str -> str
function), then the first-to-last brace span is parsed as JSON and the
`connections` object is validated against the direction table.
"""
import json
import logging
import re
from typing import Any, Callable, Dict, Sequence, Tuple

from hexvis_lib.directions import DIRECTIONS, Direction
from hexvis_lib.errors import ParseError
from hexvis_lib.schema import CONNECTION_TYPES, UNKNOWN_CONNECTION, TileConnections

log_parse = logging.getLogger("hexvis.parse")

EXCERPT_CHARS = 200

# (opening tag, closing tag) pairs whose whole block is model "thinking".
# Some models open with <think> and close with </redacted_reasoning>.
REASONING_TAGS: Tuple[Tuple[str, str], ...] = (
    ("think", "redacted_reasoning"),
    ("think", "think"),
    ("thinking", "thinking"),
    ("reasoning", "reasoning"),
    ("redacted_reasoning", "redacted_reasoning"),
)


def _compile_reasoning_patterns() -> Tuple["re.Pattern", ...]:
    # One pattern per opening tag. Each block ends at the nearest closer that
    # opening tag accepts, so mixed and plain blocks in one answer never
    # swallow the text between them.
    closers: Dict[str, list] = {}
    for open_tag, close_tag in REASONING_TAGS:
        closers.setdefault(open_tag, []).append(close_tag)
    return tuple(
        re.compile(rf"<{open_tag}>.*?</(?:{'|'.join(tags)})>", re.IGNORECASE | re.DOTALL)
        for open_tag, tags in closers.items()
    )


_REASONING_PATTERNS = _compile_reasoning_patterns()
_FENCE_PATTERN = re.compile(r"```[\w-]*[ \t]*\n?")


def _excerpt(text: str) -> str:
    text = text.strip()
    if len(text) <= EXCERPT_CHARS:
        return text
    return text[:EXCERPT_CHARS] + "..."


def strip_reasoning_blocks(text: str) -> str:
    """Removes every known reasoning block, tags and content included."""
    for pattern in _REASONING_PATTERNS:
        text = pattern.sub("", text)
    return text


def strip_code_fences(text: str) -> str:
    """Removes ``` fence markers (and any language hint), keeping their content."""
    return _FENCE_PATTERN.sub("", text)


RESPONSE_TRANSFORMS: Tuple[Callable[[str], str], ...] = (
    strip_reasoning_blocks,
    strip_code_fences,
)


def extract_object_candidate(text: str, original: str) -> str:
    """
    Returns the span from the first '{' to the last '}' inclusive.

    Raises:
        ParseError: No braces, or the last '}' does not follow the first '{'.
    """
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last <= first:
        raise ParseError("No JSON object found in vision model response", _excerpt(original))
    return text[first : last + 1].strip()


def parse_object(candidate: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse vision model response: {e}", _excerpt(candidate)) from e
    if not isinstance(parsed, dict):
        raise ParseError("Vision model response is not a JSON object", _excerpt(candidate))
    return parsed


def validate_connections(
    parsed: Dict[str, Any], directions: Sequence[Direction] = DIRECTIONS
) -> TileConnections:
    """
    Keeps only well-formed entries of `parsed["connections"]`.

    Null, missing and "unknown" values mean no connection. Any other value
    outside the connection types is dropped rather than failing the tile.
    """
    raw = parsed.get("connections")
    if not isinstance(raw, dict):
        if raw is not None:
            log_parse.debug("Ignoring non-object 'connections' field: %r", raw)
        raw = {}

    edges = {}
    for direction in directions:
        value = raw.get(direction.name)
        if value is None or value == UNKNOWN_CONNECTION:
            continue
        if isinstance(value, str) and value in CONNECTION_TYPES:
            edges[direction.name] = value
        else:
            log_parse.debug("Dropping invalid value for %s: %r", direction.name, value)
    return TileConnections(edges)


def parse_connections(raw_text: str, directions: Sequence[Direction] = DIRECTIONS) -> TileConnections:
    """
    Sanitizes and validates a raw model answer.

    Args:
        raw_text: The model's message content, as returned by the client.
        directions: The key domain; the canonical table by default.

    Returns:
        The connection map for the tile.

    Raises:
        ParseError: No object could be extracted or parsed.
    """
    text = raw_text or ""
    for transform in RESPONSE_TRANSFORMS:
        text = transform(text)
    candidate = extract_object_candidate(text, raw_text or "")
    log_parse.debug("Cleaned content for parsing: %s", candidate[:EXCERPT_CHARS])
    connections = validate_connections(parse_object(candidate), directions)
    log_parse.info("Parsed connections: %s", connections.to_dict())
    return connections
