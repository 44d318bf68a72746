from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

from cryptowick.services.series_expression import (
    CallNode,
    ExprNode,
    IdentNode,
    NumberNode,
)


@dataclass(frozen=True)
class Token:
    kind: str
    text: str


# Order matters: the first pattern that matches at the cursor wins.
_TOKEN_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("IDENT", re.compile(r"[A-Za-z][A-Za-z0-9]+")),
    ("NUMBER", re.compile(r"\d+(\.\d*)?|\.\d+")),
    ("LPAREN", re.compile(r"\(")),
    ("RPAREN", re.compile(r"\)")),
    ("COMMA", re.compile(r",")),
)


@dataclass
class LexerState:
    text: str
    pos: int = 0
    errors: List[str] = field(default_factory=list)


def tokenize(text: str, errors: Optional[List[str]] = None) -> Optional[List[Token]]:
    """Split `text` into tokens, or return None when it cannot be tokenized.

    Diagnostics are appended to `errors` when provided.
    """

    state = LexerState(text=text)
    tokens: List[Token] = []

    while state.pos < len(state.text):
        ch = state.text[state.pos]
        if ch.isspace():
            state.pos += 1
            continue

        for kind, pattern in _TOKEN_PATTERNS:
            match = pattern.match(state.text, state.pos)
            if match is not None:
                break
        else:
            state.errors.append(f"Encountered unexpected character '{ch}'.")
            break

        state.pos = match.end()
        if kind == "NUMBER" and state.text.startswith(".", state.pos):
            state.errors.append(f"Malformed number literal near '{match.group(0)}.'.")
            break
        tokens.append(Token(kind, match.group(0)))

    if errors is not None:
        errors.extend(state.errors)
    return None if state.errors else tokens


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------


# Deepest call nesting the parser accepts; deeper formulas are rejected.
MAX_NESTING_DEPTH = 100


@dataclass
class ParserState:
    tokens: List[Token]
    index: int = 0
    depth: int = 0
    errors: List[str] = field(default_factory=list)


def _peek(state: ParserState) -> Optional[Token]:
    if state.index >= len(state.tokens):
        return None
    return state.tokens[state.index]


def _expect(state: ParserState, kind: str) -> bool:
    tok = _peek(state)
    if tok is None:
        state.errors.append(f"Expected {kind} but reached the end of the expression.")
        return False
    if tok.kind != kind:
        state.errors.append(f"Expected {kind} but found '{tok.text}'.")
        return False
    state.index += 1
    return True


# Grammar:
# expression := (IDENT | NUMBER) ('(' arg_list ')')*
# arg_list   := <empty> | expression (',' expression)*


def _parse_expression(state: ParserState) -> Optional[ExprNode]:
    tok = _peek(state)
    if tok is None:
        state.errors.append("Unexpected end of expression.")
        return None

    node: ExprNode
    if tok.kind == "IDENT":
        node = IdentNode(tok.text)
    elif tok.kind == "NUMBER":
        value = float(tok.text)
        if math.isinf(value):
            state.errors.append(f"Number literal '{tok.text[:16]}...' is out of range.")
            return None
        node = NumberNode(value)
    else:
        state.errors.append(f"Unexpected token '{tok.text}'.")
        return None
    state.index += 1

    # Each call suffix nests the AST one level, whether chained or in an argument.
    base_depth = state.depth
    try:
        while True:
            nxt = _peek(state)
            if nxt is None or nxt.kind != "LPAREN":
                return node
            state.depth += 1
            if state.depth > MAX_NESTING_DEPTH:
                state.errors.append(
                    f"Expression nests deeper than {MAX_NESTING_DEPTH} calls."
                )
                return None
            args = _parse_call_args(state)
            if args is None:
                return None
            node = CallNode(node, args)
    finally:
        state.depth = base_depth


def _parse_call_args(state: ParserState) -> Optional[List[ExprNode]]:
    if not _expect(state, "LPAREN"):
        return None

    args: List[ExprNode] = []
    nxt = _peek(state)
    if nxt is not None and nxt.kind == "RPAREN":
        state.index += 1
        return args

    while True:
        arg = _parse_expression(state)
        if arg is None:
            return None
        args.append(arg)

        nxt = _peek(state)
        if nxt is not None and nxt.kind == "COMMA":
            state.index += 1
            continue
        if not _expect(state, "RPAREN"):
            return None
        return args


def parse_expression(
    text: str, errors: Optional[List[str]] = None
) -> Optional[ExprNode]:
    """Parse a series formula such as ``sub(close, sma(16, close))``.

    Returns None when the formula is rejected; diagnostics are appended to
    `errors`. Name and arity checks happen at evaluation time.
    """

    diagnostics: List[str] = []
    tokens = tokenize(text, diagnostics)
    node: Optional[ExprNode] = None
    if tokens is not None:
        state = ParserState(tokens=tokens)
        node = _parse_expression(state)
        if node is not None and state.index < len(tokens):
            state.errors.append(
                f"Unexpected token '{tokens[state.index].text}' at end of expression."
            )
            node = None
        diagnostics.extend(state.errors)

    if errors is not None:
        errors.extend(diagnostics)
    return node


__all__ = [
    "LexerState",
    "MAX_NESTING_DEPTH",
    "ParserState",
    "Token",
    "parse_expression",
    "tokenize",
]
