"""Response repair: turn free-form model text into validated records.

Model output is located with a greedy bracket-matching scan, parsed, and
validated record by record. A record that is missing fields or carries
wrong-shaped values is defaulted rather than rejected; only array-level
failures (nothing structured found, or a span that does not parse) raise.

Record models opt into repair by declaring a ``mode="before"`` model
validator built from the ``coerce_*`` helpers below. The validation
context carries ``kind`` and ``index`` so positional ids can be derived.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from castwright.exceptions import MalformedOutputError, NoStructuredOutputError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from pydantic import ValidationInfo

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

NEUTRAL_SCORE = 5
SCORE_MIN = 1
SCORE_MAX = 10

_OPENERS = {"[": "]", "{": "}"}
_CLOSERS = {"]", "}"}
_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
# Keys whose presence marks an object as a record rather than a wrapper.
_RECORD_MARKERS = ("id", "name", "text")


# ---------------------------------------------------------------------------
# Locating structured output
# ---------------------------------------------------------------------------


def _balanced_end(text: str, start: int) -> int | None:
    """Return the index just past the bracket group opened at ``start``.

    Strings and escapes are honoured so braces inside quoted values do
    not affect nesting. Returns ``None`` if the group never closes or a
    closer does not match its opener.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in _CLOSERS:
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return i + 1
    return None


def _is_truncated_json(fragment: str) -> bool:
    """Return True if ``fragment`` reads as JSON cut off at its end."""
    try:
        json.loads(fragment)
    except json.JSONDecodeError as exc:
        return exc.msg.startswith("Unterminated string") or exc.pos >= len(fragment.rstrip())
    return True


def _candidate_spans(text: str) -> Iterator[str]:
    """Yield top-level bracket groups in order of appearance.

    An unterminated group that is valid JSON up to the end of the text is
    truncated output: the remainder is yielded and the scan ends, so it
    surfaces as a parse failure. An unterminated bracket in prose is
    skipped instead; its remainder is yielded last so it is still reported
    when nothing after it parses.
    """
    pos = 0
    stray: str | None = None
    while pos < len(text):
        starts = [i for i in (text.find("[", pos), text.find("{", pos)) if i != -1]
        if not starts:
            break
        start = min(starts)
        end = _balanced_end(text, start)
        if end is None:
            if _is_truncated_json(text[start:]):
                yield text[start:]
                return
            if stray is None:
                stray = text[start:]
            pos = start + 1
            continue
        yield text[start:end]
        pos = end
    if stray is not None:
        yield stray


def extract_json_span(text: str) -> str | None:
    """Return the first JSON array/object substring in ``text``.

    Code fences are searched first. Among candidate bracket groups the
    first one that parses wins; if none parse, the first candidate is
    returned so the caller can report it as malformed.

    Args:
        text: Raw model output.

    Returns:
        The JSON substring, or ``None`` if the text holds no brackets.
    """
    sources: list[str] = [m.group(1) for m in _JSON_FENCE_RE.finditer(text)]
    sources.append(text)

    first: str | None = None
    for source in sources:
        for span in _candidate_spans(source):
            if first is None:
                first = span
            try:
                json.loads(span)
            except json.JSONDecodeError:
                continue
            return span
    return first


def parse_structured(raw_text: str) -> Any:
    """Locate and parse the structured payload in ``raw_text``.

    Args:
        raw_text: Raw model output.

    Returns:
        The decoded JSON array or object.

    Raises:
        NoStructuredOutputError: If no JSON array/object is present.
        MalformedOutputError: If the located span does not parse.
    """
    span = extract_json_span(raw_text or "")
    if span is None:
        raise NoStructuredOutputError(
            "No JSON array or object found in model output", raw_text=raw_text
        )
    try:
        return json.loads(span)
    except json.JSONDecodeError as exc:
        raise MalformedOutputError(
            f"Model output is not valid JSON: {exc.msg} at position {exc.pos}",
            raw_text=raw_text,
        ) from exc


# ---------------------------------------------------------------------------
# Field coercion helpers (used by record model validators)
# ---------------------------------------------------------------------------


def record_position(info: ValidationInfo, default_kind: str) -> tuple[str, int]:
    """Return ``(kind, index)`` from the validation context."""
    context = info.context if isinstance(info.context, dict) else {}
    return str(context.get("kind", default_kind)), int(context.get("index", 0))


def coerce_id(value: Any, kind: str, index: int) -> str:
    """Keep a usable id, otherwise derive ``"{kind}-{index+1}"``."""
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        text = str(value).strip()
        if text:
            return text
    return f"{kind}-{index + 1}"


def coerce_str(value: Any, default: str) -> str:
    """Keep a non-blank string, otherwise return ``default``."""
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def coerce_optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def coerce_score(value: Any) -> int:
    """Coerce a 1..10 score; anything unusable becomes the neutral 5."""
    if isinstance(value, bool):
        return NEUTRAL_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return NEUTRAL_SCORE
    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return NEUTRAL_SCORE
        return max(SCORE_MIN, min(SCORE_MAX, round(value)))
    return NEUTRAL_SCORE


def coerce_str_list(value: Any, default: Sequence[str]) -> list[str]:
    """Keep a list of strings; a non-list becomes ``list(default)``."""
    if not isinstance(value, list):
        return list(default)
    return [item if isinstance(item, str) else str(item) for item in value if item is not None]


def pick(data: dict[str, Any], *keys: str) -> Any:
    """Return the first present value among ``keys`` (alias or field name)."""
    for key in keys:
        if key in data:
            return data[key]
    return None


def coerce_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Record-level repair
# ---------------------------------------------------------------------------


def _as_record_list(payload: Any, key: str | None, raw_text: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if key is not None and isinstance(payload.get(key), list):
            return payload[key]
        if any(marker in payload for marker in _RECORD_MARKERS):
            return [payload]
        lists = [v for v in payload.values() if isinstance(v, list)]
        if len(lists) == 1 and all(isinstance(item, dict) for item in lists[0]):
            return lists[0]
        return [payload]
    raise MalformedOutputError(
        f"Expected a JSON array, got {type(payload).__name__}", raw_text=raw_text
    )


def repair_record(model: type[M], item: Any, *, kind: str, index: int) -> M:
    """Validate one record, substituting a fully defaulted one on failure."""
    context = {"kind": kind, "index": index}
    data = item if isinstance(item, dict) else {}
    try:
        return model.model_validate(data, context=context)
    except ValidationError as exc:
        logger.warning(
            "record_defaulted",
            kind=kind,
            index=index,
            error_count=exc.error_count(),
        )
        return model.model_validate({}, context=context)


def repair_records(
    raw_text: str,
    model: type[M],
    *,
    kind: str,
    key: str | None = None,
    fallback: Sequence[M] | None = None,
) -> list[M]:
    """Parse ``raw_text`` into a list of ``model`` records.

    Args:
        raw_text: Raw model output.
        model: Record model declaring its repair validators.
        kind: Record kind used for positional ids (``topic``, ``speaker``...).
        key: Preferred key when the payload is an object wrapping an array.
        fallback: Value returned instead of raising on array-level failure.

    Returns:
        Repaired records in their original order.

    Raises:
        NoStructuredOutputError: If nothing structured was found and no
            fallback was declared.
        MalformedOutputError: If the payload does not parse and no
            fallback was declared.
    """
    try:
        payload = parse_structured(raw_text)
        items = _as_record_list(payload, key, raw_text)
    except (NoStructuredOutputError, MalformedOutputError) as exc:
        if fallback is None:
            raise
        logger.warning(
            "repair_fallback_used",
            kind=kind,
            reason=type(exc).__name__,
            detail=str(exc),
            fallback_count=len(fallback),
        )
        return list(fallback)

    records = [
        repair_record(model, item, kind=kind, index=index)
        for index, item in enumerate(items)
    ]
    logger.debug("records_repaired", kind=kind, count=len(records))
    return records


def fit_count(records: Sequence[M], expected: int, factory: Callable[[int], M]) -> list[M]:
    """Pad with ``factory(index)`` records or truncate to ``expected``."""
    fitted = list(records[:expected])
    while len(fitted) < expected:
        fitted.append(factory(len(fitted)))
    if len(records) != expected:
        logger.info("record_count_corrected", produced=len(records), expected=expected)
    return fitted
