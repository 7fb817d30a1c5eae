from __future__ import annotations

"""Extract tool calls embedded in generated text.

The grammar is deliberately narrow::

    <sktool><TOOL_ID><message>...</message><expirationDays>N</expirationDays></TOOL_ID></sktool>

Text is split into tag tokens by a small lexer and fed through a two-state
machine (outside an envelope / inside one). Anything that is not a tag token
is text. Malformed spans are logged and skipped; ``parse_tool_calls`` never
raises.
"""

from dataclasses import dataclass
from enum import Enum
import logging
import re
from typing import Iterator

from .models import ToolCall

logger = logging.getLogger(__name__)

ENVELOPE = "sktool"
STRING_PARAMS = (
    "message",
    "query",
    "url",
    "channel",
    "phone",
    "to",
    "subject",
    "filename",
    "content",
)
INT_PARAMS = {"expirationDays": (7, 1, 14)}
KNOWN_PARAMS = frozenset(STRING_PARAMS) | frozenset(INT_PARAMS)

_TAG = re.compile(r"<(/?)([A-Za-z_][A-Za-z0-9_.-]*)\s*>")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class TokenKind(Enum):
    OPEN = "open"
    CLOSE = "close"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    name: str
    start: int
    end: int


class _State(Enum):
    OUTSIDE = 0
    IN_ENVELOPE = 1


def tokenize(text: str) -> Iterator[Token]:
    """Yield the opening and closing tag tokens of ``text`` in order."""
    for match in _TAG.finditer(text):
        kind = TokenKind.CLOSE if match.group(1) else TokenKind.OPEN
        yield Token(kind, match.group(2), match.start(), match.end())


def parse_int_param(name: str, raw: str) -> int:
    """Leading-integer scan with a default, clamped to the parameter's range."""
    default, low, high = INT_PARAMS[name]
    match = _LEADING_INT.match(raw)
    if not match:
        return default
    return max(low, min(high, int(match.group(1))))


def _extract_params(text: str, tokens: list[Token]) -> dict[str, str | int]:
    params: dict[str, str | int] = {}
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.kind is TokenKind.OPEN and tok.name in KNOWN_PARAMS:
            close = next(
                (
                    j
                    for j in range(i + 1, len(tokens))
                    if tokens[j].kind is TokenKind.CLOSE and tokens[j].name == tok.name
                ),
                None,
            )
            if close is None:
                i += 1
                continue
            raw = text[tok.end : tokens[close].start].strip()
            if tok.name in INT_PARAMS:
                params[tok.name] = parse_int_param(tok.name, raw)
            else:
                params[tok.name] = raw
            i = close + 1
            continue
        i += 1
    return params


def _build_call(text: str, start: int, end: int, tokens: list[Token]) -> ToolCall | None:
    raw = text[start:end]
    if not tokens or tokens[0].kind is not TokenKind.OPEN:
        logger.warning("tool envelope without tool name at offset %d", start)
        return None
    head = tokens[0]
    return ToolCall(
        tool_id=head.name,
        params=_extract_params(text, tokens[1:]),
        raw_source=raw,
    )


def parse_tool_calls(text: str | None) -> list[ToolCall]:
    """Return every well-formed tool call in ``text`` in source order."""
    if not text:
        return []
    calls: list[ToolCall] = []
    try:
        state = _State.OUTSIDE
        start = 0
        inner: list[Token] = []
        for tok in tokenize(text):
            if state is _State.OUTSIDE:
                if tok.kind is TokenKind.OPEN and tok.name == ENVELOPE:
                    state = _State.IN_ENVELOPE
                    start = tok.start
                    inner = []
                continue
            if tok.name == ENVELOPE:
                if tok.kind is TokenKind.CLOSE:
                    call = _build_call(text, start, tok.end, inner)
                    if call is not None:
                        calls.append(call)
                    state = _State.OUTSIDE
                # a nested opening envelope is plain text
                continue
            inner.append(tok)
        if state is _State.IN_ENVELOPE:
            logger.warning("unterminated tool envelope at offset %d", start)
    except Exception:  # noqa: BLE001
        logger.exception("tool call parsing failed")
    logger.debug("parsed %d tool calls", len(calls))
    return calls


def format_tool_call(tool_id: str, params: dict[str, object] | None = None) -> str:
    """Build canonical markup for ``tool_id`` with ``params``."""
    body = "".join(f"<{k}>{v}</{k}>" for k, v in (params or {}).items())
    return f"<{ENVELOPE}><{tool_id}>{body}</{tool_id}></{ENVELOPE}>"


__all__ = [
    "ENVELOPE",
    "KNOWN_PARAMS",
    "Token",
    "TokenKind",
    "tokenize",
    "parse_int_param",
    "parse_tool_calls",
    "format_tool_call",
]
