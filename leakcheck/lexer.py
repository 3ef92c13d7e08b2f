"""
leakcheck.lexer
===============

Tokenizer for the C++ subset the front-end cares about.

The token grammar is a Parsimonious PEG.  Every input character is
matched by some alternative (``stray`` catches whatever nothing else
does), so tokenizing never fails on odd input; it only degrades.

Whitespace, comments and preprocessor lines are dropped.  Comments of the
form ``// leakcheck-suppress kind[,kind...]`` are kept aside as inline
suppressions keyed by the line they cover: their own line, and the line
below when nothing precedes the comment on its line.

Typical usage::

    from leakcheck.lexer import Lexer

    lexer = Lexer(source_text)
    tokens = lexer.tokenize()
    for tok in tokens:
        print(tok.line, tok.type.name, tok.value)
"""

from __future__ import annotations

import bisect
import enum
import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

class TokenType(enum.Enum):
    EOF         = "eof"
    IDENT       = "ident"
    NUMBER      = "number"
    STRING      = "string"
    KEYWORD     = "keyword"
    OPERATOR    = "operator"
    PUNCTUATION = "punctuation"


KEYWORDS: FrozenSet[str] = frozenset({
    "class", "struct", "public", "private", "protected", "new", "delete",
    "virtual", "const", "static", "void", "int", "char", "float", "double",
    "bool", "long", "short", "unsigned", "signed", "if", "else", "for",
    "while", "do", "return", "nullptr", "NULL", "this", "template",
    "typename", "namespace", "using", "switch", "case", "default", "try",
    "catch",
})


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    line: int = 0
    column: int = 0

    def is_(self, value: str) -> bool:
        return self.value == value and self.type is not TokenType.STRING

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------

LEXER_GRAMMAR = Grammar(r'''
    source        = item*
    item          = ws / line_comment / block_comment / preproc / string_lit
                  / char_lit / scope_op / ident / number / operator / punct
                  / stray

    ws            = ~r"\s+"
    line_comment  = ~r"//[^\n]*"
    block_comment = ~r"/\*.*?(?:\*/|\Z)"s
    preproc       = ~r"#(?:\\\r?\n|[^\n])*"
    string_lit    = ~r'"(?:\\.|[^"\\\n])*"?'
    char_lit      = ~r"'(?:\\.|[^'\\\n])*'?"
    scope_op      = "::"
    ident         = ~r"[A-Za-z_][A-Za-z0-9_]*"
    number        = ~r"[0-9][0-9A-Za-z_.]*"
    operator      = ~r"->|==|!=|<=|>=|&&|\|\||\+\+|--|\+=|-=|\*=|/=|[-+*/=<>!&|^%~]"
    punct         = ~r"[{}()\[\];,:.?]"
    stray         = ~r"."s
''')

_SUPPRESS_RE = re.compile(
    r"leakcheck-suppress\s+([A-Za-z0-9_*\-]+(?:\s*,\s*[A-Za-z0-9_*\-]+)*)"
)


class _TokenBuilder(NodeVisitor):
    """Turns the parse tree into a flat token list."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", text)]
        self.suppressions: Dict[int, FrozenSet[str]] = {}

    def _position(self, offset: int):
        idx = bisect.bisect_right(self._line_starts, offset) - 1
        return idx + 1, offset - self._line_starts[idx] + 1

    def _token(self, node: Node, ttype: TokenType) -> Token:
        line, col = self._position(node.start)
        return Token(ttype, node.text, line, col)

    # -- structure ----------------------------------------------------------

    def visit_source(self, node, visited_children):
        return [tok for tok in visited_children if tok is not None]

    def visit_item(self, node, visited_children):
        return visited_children[0]

    def generic_visit(self, node, visited_children):
        return None

    # -- dropped material ---------------------------------------------------

    def visit_line_comment(self, node, visited_children):
        self._note_suppression(node)
        return None

    def visit_block_comment(self, node, visited_children):
        self._note_suppression(node)
        return None

    def _note_suppression(self, node: Node) -> None:
        match = _SUPPRESS_RE.search(node.text)
        if not match:
            return
        kinds = frozenset(
            k.strip() for k in match.group(1).split(",") if k.strip()
        )
        if not kinds:
            return
        line, col = self._position(node.start)
        covered = [line]
        if not self.text[node.start - col + 1:node.start].strip():
            # alone on its line: also covers the line after the comment
            end_line, _ = self._position(node.end - 1)
            covered.append(end_line + 1)
        for target in covered:
            self.suppressions[target] = self.suppressions.get(target, frozenset()) | kinds

    # -- real tokens --------------------------------------------------------

    def visit_string_lit(self, node, visited_children):
        return self._token(node, TokenType.STRING)

    def visit_char_lit(self, node, visited_children):
        return self._token(node, TokenType.STRING)

    def visit_scope_op(self, node, visited_children):
        return self._token(node, TokenType.OPERATOR)

    def visit_ident(self, node, visited_children):
        ttype = TokenType.KEYWORD if node.text in KEYWORDS else TokenType.IDENT
        return self._token(node, ttype)

    def visit_number(self, node, visited_children):
        return self._token(node, TokenType.NUMBER)

    def visit_operator(self, node, visited_children):
        return self._token(node, TokenType.OPERATOR)

    def visit_punct(self, node, visited_children):
        return self._token(node, TokenType.PUNCTUATION)


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------

class Lexer:
    """Tokenize C++ source text.

    Attributes
    ----------
    suppressions : dict[int, frozenset[str]]
        Inline ``leakcheck-suppress`` comments found, keyed by the line
        they cover.  Filled by :meth:`tokenize`.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.suppressions: Dict[int, FrozenSet[str]] = {}
        self._tokens: Optional[List[Token]] = None

    def tokenize(self) -> List[Token]:
        """Return all tokens, terminated by an ``EOF`` token."""
        if self._tokens is not None:
            return self._tokens

        builder = _TokenBuilder(self.text)
        try:
            tokens = builder.visit(LEXER_GRAMMAR.parse(self.text))
        except (ParseError, VisitationError) as exc:
            logger.warning("tokenizer gave up: %s", exc)
            tokens = []
        self.suppressions = dict(builder.suppressions)

        last_line = self.text.count("\n") + 1
        tokens.append(Token(TokenType.EOF, "", last_line, 1))
        self._tokens = tokens
        return tokens


def tokenize(text: str) -> List[Token]:
    """Convenience wrapper around :class:`Lexer`."""
    return Lexer(text).tokenize()


__all__ = [
    "Token",
    "TokenType",
    "KEYWORDS",
    "LEXER_GRAMMAR",
    "Lexer",
    "tokenize",
]
