"""Resilient recovery of JSON payloads from text-generation output.

Model output is expected to carry a JSON object or array but frequently
arrives wrapped in markdown fences, surrounded by prose, or with trailing
commas. Recovery runs an ordered chain, cheapest and most precise first:

1. direct parse of the trimmed text
2. fence/prose/trailing-comma cleanup, then parse
3. bracket-balanced boundary extraction
4. regex extraction of the largest ``{...}`` or ``[...]`` span
5. the caller-supplied default

None of the public functions raise.
"""

import copy
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Union

from intake_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?")
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")
_COMMENT_LINE_PATTERN = re.compile(r"^\s*//.*$", re.MULTILINE)
_OBJECT_SPAN_PATTERN = re.compile(r"\{[\s\S]*\}")
_ARRAY_SPAN_PATTERN = re.compile(r"\[[\s\S]*\]")

_OPENERS = "{["
_CLOSERS = {"{": "}", "[": "]"}
MAX_BOUNDARY_ATTEMPTS = 20


@dataclass
class ParseOutcome:
    """Result of a recovery attempt.

    Attributes:
        value: Parsed value, or a copy of the default
        recovered: False when the default was returned
        strategy: Name of the strategy that succeeded
    """
    value: Any
    recovered: bool
    strategy: Optional[str] = None


def strip_markdown_fences(text: str) -> str:
    """Remove ```json / ``` markers wherever they appear."""
    return _FENCE_PATTERN.sub("", text)


def strip_prose_lines(text: str) -> str:
    """Drop leading lines before the first JSON-looking line and trailing lines after the last."""
    lines = text.splitlines()
    start = next(
        (i for i, line in enumerate(lines) if line.lstrip()[:1] in ("{", "[")),
        None,
    )
    if start is None:
        return text.strip()

    end = next(
        (i for i in range(len(lines) - 1, start - 1, -1) if lines[i].rstrip()[-1:] in ("}", "]")),
        None,
    )
    if end is None:
        return "\n".join(lines[start:]).strip()
    return "\n".join(lines[start:end + 1]).strip()


def remove_trailing_commas(text: str) -> str:
    """Remove commas directly preceding a closing brace or bracket."""
    return _TRAILING_COMMA_PATTERN.sub(r"\1", text)


def clean_json_text(text: str) -> str:
    """Apply every textual cleanup step used by the second strategy."""
    cleaned = strip_markdown_fences(text)
    cleaned = _COMMENT_LINE_PATTERN.sub("", cleaned)
    cleaned = strip_prose_lines(cleaned)
    return remove_trailing_commas(cleaned)


def find_json_boundaries(text: str, start: int = 0) -> Tuple[int, int]:
    """Find the first JSON opener at or after ``start`` and its matching closer.

    The scan tracks nesting depth and skips over string literals. When the
    structure never closes, the last occurrence of the matching closer is used.

    Returns:
        (start_index, end_index) inclusive, or (-1, -1) if nothing was found
    """
    candidates = [i for i in (text.find("{", start), text.find("[", start)) if i != -1]
    if not candidates:
        return -1, -1

    begin = min(candidates)
    closer = _CLOSERS[text[begin]]
    depth = 0
    in_string = False
    escaped = False

    for index in range(begin, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _OPENERS:
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return begin, index

    end = text.rfind(closer)
    if end <= begin:
        return begin, -1
    return begin, end


def _is_expected(value: Any, expected_type: Optional[type]) -> bool:
    return expected_type is None or isinstance(value, expected_type)


def _load_candidate(candidate: str, expected_type: Optional[type]) -> Any:
    for attempt in (candidate, remove_trailing_commas(candidate)):
        try:
            value = json.loads(attempt)
        except ValueError:
            continue
        if _is_expected(value, expected_type):
            return value
        raise TypeError(f"Candidate parsed as {type(value).__name__}")
    raise ValueError("Candidate is not valid JSON")


def _parse_direct(text: str, expected_type: Optional[type] = None) -> Any:
    return json.loads(text.strip())


def _parse_cleaned(text: str, expected_type: Optional[type] = None) -> Any:
    return json.loads(clean_json_text(text))


def _parse_boundaries(text: str, expected_type: Optional[type] = None) -> Any:
    stripped = strip_markdown_fences(text)
    position = 0
    for _ in range(MAX_BOUNDARY_ATTEMPTS):
        begin, end = find_json_boundaries(stripped, position)
        if begin == -1:
            break
        if end != -1:
            try:
                return _load_candidate(stripped[begin:end + 1], expected_type)
            except (ValueError, TypeError):
                pass
        position = begin + 1
    raise ValueError("No parseable JSON boundaries found")


def _parse_regex_span(text: str, expected_type: Optional[type] = None) -> Any:
    stripped = strip_markdown_fences(text)
    spans: List[str] = []
    for pattern in (_OBJECT_SPAN_PATTERN, _ARRAY_SPAN_PATTERN):
        match = pattern.search(stripped)
        if match:
            spans.append(match.group(0))

    for span in sorted(spans, key=len, reverse=True):
        try:
            return _load_candidate(span, expected_type)
        except (ValueError, TypeError):
            continue
    raise ValueError("No JSON span matched")


_STRATEGIES: List[Tuple[str, Callable[[str, Optional[type]], Any]]] = [
    ("direct", _parse_direct),
    ("cleaned", _parse_cleaned),
    ("boundaries", _parse_boundaries),
    ("regex_span", _parse_regex_span),
]


def recover_json(
    text: Union[str, bytes, None],
    default: Any = None,
    expected_type: Optional[type] = None,
) -> ParseOutcome:
    """Run the recovery chain and report which strategy succeeded.

    Args:
        text: Raw model output
        default: Value returned (deep-copied) when every strategy fails
        expected_type: Optional type the parsed value must have; a value of
            another type is treated as a failure

    Returns:
        ParseOutcome with the parsed value or a copy of the default
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")

    if not isinstance(text, str) or not text.strip():
        return ParseOutcome(value=copy.deepcopy(default), recovered=False)

    for name, strategy in _STRATEGIES:
        try:
            value = strategy(text, expected_type)
        except (ValueError, TypeError, RecursionError):
            continue

        if not _is_expected(value, expected_type):
            LOGGER.debug(
                "Parsed JSON has unexpected type, trying next strategy",
                extra={
                    "strategy": name,
                    "expected": expected_type.__name__,
                    "actual": type(value).__name__,
                }
            )
            continue

        if name != "direct":
            LOGGER.debug(f"Recovered JSON using '{name}' strategy")
        return ParseOutcome(value=value, recovered=True, strategy=name)

    LOGGER.warning(
        "Failed to recover JSON from response, using default",
        extra={"response_preview": text[:200]}
    )
    return ParseOutcome(value=copy.deepcopy(default), recovered=False)


def parse_json_safely(text: Union[str, bytes, None], default: Any = None) -> Any:
    """Parse JSON from text, handling common LLM formatting issues.

    Args:
        text: The text containing JSON
        default: Value returned when nothing can be recovered

    Returns:
        Parsed JSON value, or a deep copy of ``default``
    """
    return recover_json(text, default).value
