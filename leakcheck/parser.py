"""
leakcheck.parser
================

Best-effort extraction of classes, members and classified method bodies
from C++ source.

This is not a C++ parser.  It recognizes the shapes that matter for
heap-lifecycle analysis and turns everything else into ``Other``
statements:

* ``class`` / ``struct`` definitions, with base lists, member
  declarations, constructors (including initializer lists), destructors
  and ordinary methods, in-class or defined out of class
  (``Foo::method(...) {...}``);
* inside bodies: ``new`` / ``delete`` (scalar and array forms),
  assignments, self calls, ``if``/``else`` with null-check guards.  Loop,
  ``switch`` and ``try`` bodies are flattened.

Malformed input never raises.  A body whose closing brace is never found
is returned as *opaque*.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from leakcheck.errors import SourceReadError
from leakcheck.lexer import Lexer, Token, TokenType
from leakcheck.model import (
    Allocation,
    Assignment,
    Branch,
    Form,
    MethodCall,
    Other,
    RawClass,
    RawMember,
    RawMethod,
    Release,
    Statement,
    is_simple_ref,
)

logger = logging.getLogger(__name__)


_ACCESS = frozenset({"public", "private", "protected"})
_SPECIFIERS = frozenset({
    "virtual", "explicit", "inline", "static", "constexpr", "extern",
    "mutable",
})
_FUNC_SUFFIX = frozenset({
    "const", "noexcept", "override", "final", "volatile", "&", "&&",
})
_TYPE_KEYWORDS = frozenset({
    "void", "int", "char", "float", "double", "bool", "long", "short",
    "unsigned", "signed", "const", "static", "struct", "class",
})
_NULL_TOKENS = frozenset({"nullptr", "NULL", "0"})


_CTOR, _DTOR, _METHOD = "ctor", "dtor", "method"


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------

def _ref(tokens: Sequence[Token]) -> str:
    return "".join(t.value for t in tokens)


def _text(tokens: Sequence[Token]) -> str:
    return " ".join(t.value for t in tokens)


def _strip_parens(tokens: Sequence[Token]) -> List[Token]:
    toks = list(tokens)
    while len(toks) >= 2 and toks[0].is_("(") and toks[-1].is_(")"):
        toks = toks[1:-1]
    return toks


def _split_top(tokens: Sequence[Token], sep: str = ",") -> List[List[Token]]:
    """Split *tokens* on *sep* at bracket depth 0."""
    parts: List[List[Token]] = [[]]
    depth = 0
    for tok in tokens:
        if tok.value in ("(", "[", "{", "<") and tok.type is not TokenType.STRING:
            depth += 1
        elif tok.value in (")", "]", "}", ">") and tok.type is not TokenType.STRING:
            depth = max(0, depth - 1)
        elif depth == 0 and tok.is_(sep):
            parts.append([])
            continue
        parts[-1].append(tok)
    return [p for p in parts if p]


def _new_form(tokens: Sequence[Token], i: int) -> Form:
    """Form of the ``new`` expression whose keyword is ``tokens[i]``."""
    j = i + 1
    if j < len(tokens) and tokens[j].is_("("):
        depth = 0
        while j < len(tokens):
            if tokens[j].is_("("):
                depth += 1
            elif tokens[j].is_(")"):
                depth -= 1
                if depth == 0:
                    j += 1
                    break
            j += 1
    angle = 0
    while j < len(tokens):
        tok = tokens[j]
        if tok.is_("<"):
            angle += 1
        elif tok.is_(">"):
            angle -= 1
        elif angle == 0:
            if tok.is_("["):
                return Form.ARRAY
            if tok.type not in (TokenType.IDENT, TokenType.KEYWORD) and \
                    tok.value not in ("::", "*", "&"):
                break
        j += 1
    return Form.SCALAR


def _guard_of(cond: Sequence[Token]) -> Tuple[Optional[str], bool]:
    """Recognize ``p``, ``!p``, ``p != nullptr`` and ``p == NULL`` guards."""
    toks = _strip_parens(cond)
    if not toks:
        return None, True
    if toks[0].is_("!"):
        ref = _ref(_strip_parens(toks[1:]))
        return (ref, False) if is_simple_ref(ref) else (None, True)
    ref = _ref(toks)
    if is_simple_ref(ref) and ref not in _NULL_TOKENS:
        return ref, True
    for idx, tok in enumerate(toks):
        if tok.value in ("!=", "=="):
            lhs, rhs = _ref(toks[:idx]), _ref(toks[idx + 1:])
            if rhs in _NULL_TOKENS and is_simple_ref(lhs):
                return lhs, tok.value == "!="
            if lhs in _NULL_TOKENS and is_simple_ref(rhs):
                return rhs, tok.value == "!="
            break
    return None, True


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class Parser:
    """Extract :class:`RawClass` records from a token stream.

    Parameters
    ----------
    tokens : list[Token]
        Output of :meth:`leakcheck.lexer.Lexer.tokenize` (EOF-terminated).
    file : str
        Source path recorded on every class.
    suppressions : dict[int, frozenset[str]], optional
        Inline suppressions of the file, attached to every class.
    """

    def __init__(
        self,
        tokens: List[Token],
        file: str = "",
        suppressions: Optional[Dict[int, FrozenSet[str]]] = None,
    ) -> None:
        self.tokens = tokens
        self.pos = 0
        self.file = file
        self.suppressions = dict(suppressions or {})
        self.classes: List[RawClass] = []
        self._by_name: Dict[str, RawClass] = {}
        self._current_class = ""
        self._truncated = False

    # ----- navigation -------------------------------------------------------

    def _cur(self) -> Token:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return Token(TokenType.EOF, "")

    def _peek(self, n: int = 1) -> Token:
        if self.pos + n < len(self.tokens):
            return self.tokens[self.pos + n]
        return Token(TokenType.EOF, "")

    def _advance(self) -> Token:
        tok = self._cur()
        if self.pos < len(self.tokens):
            self.pos += 1
        return tok

    def _at_end(self) -> bool:
        return self._cur().type is TokenType.EOF

    def _check(self, value: str) -> bool:
        return not self._at_end() and self._cur().is_(value)

    def _match(self, value: str) -> bool:
        if self._check(value):
            self._advance()
            return True
        return False

    def _skip_balanced(self, open_: str, close: str) -> List[Token]:
        """Consume ``open_ ... close`` and return the tokens in between."""
        inner: List[Token] = []
        if not self._match(open_):
            return inner
        depth = 1
        while not self._at_end():
            tok = self._advance()
            if tok.is_(open_):
                depth += 1
            elif tok.is_(close):
                depth -= 1
                if depth == 0:
                    return inner
            inner.append(tok)
        self._truncated = True
        return inner

    def _skip_statement(self) -> None:
        """Skip to just past the next ``;`` at depth 0 (braces skipped)."""
        while not self._at_end():
            if self._check("{"):
                self._skip_balanced("{", "}")
                continue
            if self._check("("):
                self._skip_balanced("(", ")")
                continue
            if self._check("}"):
                return
            if self._advance().is_(";"):
                return

    # ----- top level --------------------------------------------------------

    def parse(self) -> List[RawClass]:
        while not self._at_end():
            tok = self._cur()
            if tok.type is TokenType.KEYWORD and tok.value in ("class", "struct"):
                self._parse_class_head()
            elif tok.is_("enum"):
                self._advance()
                if self._cur().value in ("class", "struct"):
                    self._advance()
            else:
                info = self._out_of_class_definition()
                if info is not None:
                    self._parse_out_of_class(*info)
                else:
                    self._advance()
        for raw in self.classes:
            raw.suppressions = {
                (self.file, line): kinds for line, kinds in self.suppressions.items()
            }
        return self.classes

    def _class_named(self, name: str, line: int = 0) -> RawClass:
        raw = self._by_name.get(name)
        if raw is None:
            raw = RawClass(name=name, file=self.file, line=line)
            self._by_name[name] = raw
            self.classes.append(raw)
        elif line and not raw.line:
            raw.line = line
        return raw

    # ----- class definitions ------------------------------------------------

    def _parse_class_head(self) -> None:
        self._advance()  # class / struct
        if self._cur().type is not TokenType.IDENT:
            return
        name_tok = self._advance()
        if self._check("final"):
            self._advance()
        if not (self._check("{") or self._check(":")):
            return  # forward declaration, template parameter, elaborated type
        bases: Tuple[str, ...] = ()
        if self._check(":"):
            bases = self._parse_bases()
        if not self._check("{"):
            return
        self._parse_class_body(name_tok.value, name_tok.line, bases)

    def _parse_bases(self) -> Tuple[str, ...]:
        self._advance()  # ':'
        toks: List[Token] = []
        while not self._at_end() and not self._check("{") and not self._check(";"):
            toks.append(self._advance())
        bases = []
        for part in _split_top(toks):
            angle = 0
            name = ""
            for tok in part:
                if tok.is_("<"):
                    angle += 1
                elif tok.is_(">"):
                    angle -= 1
                elif angle == 0 and tok.type is TokenType.IDENT:
                    name = tok.value
            if name:
                bases.append(name)
        return tuple(bases)

    def _parse_class_body(self, name: str, line: int, bases: Tuple[str, ...]) -> None:
        raw = self._class_named(name, line)
        raw.bases = tuple(dict.fromkeys(raw.bases + bases))
        self._advance()  # '{'
        while not self._at_end() and not self._check("}"):
            before = self.pos
            self._parse_member(raw)
            if self.pos == before:
                self._advance()
        self._match("}")

    def _parse_member(self, raw: RawClass) -> None:
        tok = self._cur()
        value = tok.value

        if value in _ACCESS or value in ("signals", "slots"):
            self._advance()
            self._match(":")
            return
        if value == ";":
            self._advance()
            return
        if tok.type is TokenType.KEYWORD and value in ("class", "struct") and \
                self._peek().type is TokenType.IDENT and \
                self._peek(2).value in ("{", ":", "final"):
            self._parse_class_head()
            self._skip_statement()
            return
        if value in ("friend", "using", "typedef", "static_assert"):
            self._skip_statement()
            return
        if value == "enum":
            self._skip_statement()
            return
        if value == "template":
            self._advance()
            if self._check("<"):
                self._skip_balanced("<", ">")
            return

        is_static = False
        while self._cur().value in _SPECIFIERS:
            if self._advance().value == "static":
                is_static = True

        if self._check("~"):
            fn = self._parse_function(_DTOR, raw.name)
        elif self._cur().value == raw.name and self._peek().is_("("):
            fn = self._parse_function(_CTOR, raw.name)
        else:
            kind = self._classify_declaration()
            if kind == "members":
                members = self._parse_members()
                if not is_static:
                    raw.members.extend(members)
                return
            if kind != "function":
                self._skip_statement()
                return
            fn = self._parse_function(_METHOD, raw.name)
        if fn is not None:
            self._attach(raw, fn)

    def _classify_declaration(self) -> str:
        """Look ahead: is this a member declaration or a function?"""
        i = self.pos
        angle = 0
        while i < len(self.tokens):
            tok = self.tokens[i]
            if tok.type is TokenType.EOF:
                return "other"
            if tok.value == "operator" and angle == 0:
                return "function"
            if tok.is_("<"):
                angle += 1
            elif tok.is_(">"):
                angle = max(0, angle - 1)
            elif angle == 0:
                if tok.is_("("):
                    nxt = self.tokens[i + 1] if i + 1 < len(self.tokens) else tok
                    return "other" if nxt.value in ("*", "&", "^") else "function"
                if tok.is_(";") or tok.is_("="):
                    return "members"
                if tok.is_("{") or tok.is_("}"):
                    return "other"
            i += 1
        return "other"

    def _parse_members(self) -> List[RawMember]:
        toks: List[Token] = []
        while not self._at_end() and not self._check(";") and not self._check("}"):
            if self._check("{"):
                toks.append(self._cur())
                toks.extend(self._skip_balanced("{", "}"))
                continue
            toks.append(self._advance())
        self._match(";")

        members: List[RawMember] = []
        type_tokens: List[Token] = []
        for idx, part in enumerate(_split_top(toks)):
            decl, init = part, []
            for j, tok in enumerate(part):
                if tok.is_("=") or tok.is_("{"):
                    decl, init = part[:j], part[j + 1:]
                    break
            angle = 0
            is_pointer = False
            name_tok: Optional[Token] = None
            for j, tok in enumerate(decl):
                if tok.is_("<"):
                    angle += 1
                elif tok.is_(">"):
                    angle -= 1
                elif angle == 0:
                    if tok.is_("*"):
                        is_pointer = True
                    elif tok.type is TokenType.IDENT:
                        nxt = decl[j + 1] if j + 1 < len(decl) else None
                        if nxt is None or nxt.is_("[") or nxt.is_(":"):
                            name_tok = tok
                            break
            if name_tok is None:
                continue
            if idx == 0:
                type_tokens = [t for t in decl if t is not name_tok and not t.is_("*")]
            members.append(RawMember(
                name=name_tok.value,
                type_name=_text(type_tokens),
                is_pointer=is_pointer,
                line=name_tok.line,
                init_form=_new_form(init, 0) if init and init[0].is_("new") else None,
            ))
        return members

    # ----- functions --------------------------------------------------------

    def _parse_function(self, kind: str, class_name: str) -> Optional[RawMethod]:
        line = self._cur().line
        if kind == _DTOR:
            self._advance()  # '~'
            name = "~" + self._advance().value
        elif kind == _CTOR:
            name = self._advance().value
        else:
            name = ""
            while not self._at_end() and not self._check("(") and \
                    not self._check(";") and not self._check("{"):
                if self._cur().value == "operator":
                    name = self._operator_name()
                    break
                name = self._advance().value
        if not self._check("("):
            self._skip_statement()
            return None
        return self._parse_function_tail(name, kind, line, class_name)

    def _operator_name(self) -> str:
        self._advance()  # 'operator'
        if self._check("(") and self._peek().is_(")"):
            self._advance()
            self._advance()
            return "operator()"
        parts = []
        while not self._at_end() and not self._check("(") and not self._check(";"):
            parts.append(self._advance().value)
        return "operator" + "".join(parts)

    def _parse_function_tail(
        self, name: str, kind: str, line: int, class_name: str,
    ) -> Optional[RawMethod]:
        params = self._parse_params()
        while not self._at_end():
            if self._cur().value in _FUNC_SUFFIX or self._check("throw"):
                self._advance()
                if self._check("("):
                    self._skip_balanced("(", ")")
            elif self._check("->"):
                while not self._at_end() and self._cur().value not in ("{", ";", "="):
                    self._advance()
            else:
                break

        method = RawMethod(
            name=name,
            params=params,
            line=line,
            is_constructor=(kind == _CTOR),
            is_destructor=(kind == _DTOR),
            file=self.file,
        )

        if self._match("="):
            what = self._cur().value
            self._skip_statement()
            if what == "delete":
                return None
            if what == "default":
                method.statements = []
            return method

        prologue: List[Statement] = []
        if self._check(":") and kind == _CTOR:
            prologue = self._parse_init_list()

        if self._check(";"):
            self._advance()
            return method
        if not self._check("{"):
            self._skip_statement()
            return method

        self._current_class = class_name
        self._truncated = False
        body = self._parse_block()
        method.statements = prologue + body
        if self._truncated:
            method.opaque = True
            logger.debug("%s::%s: unterminated body, kept opaque", class_name, name)
        return method

    def _parse_params(self) -> Tuple[str, ...]:
        names = []
        for part in _split_top(self._skip_balanced("(", ")")):
            for j, tok in enumerate(part):
                if tok.is_("="):
                    part = part[:j]
                    break
            idents = [i for i, t in enumerate(part) if t.type is TokenType.IDENT]
            if idents and idents[-1] > 0:
                names.append(part[idents[-1]].value)
        return tuple(names)

    def _parse_init_list(self) -> List[Statement]:
        self._advance()  # ':'
        out: List[Statement] = []
        while not self._at_end() and not self._check("{") and not self._check(";"):
            tok = self._cur()
            if tok.type is TokenType.IDENT and self._peek().value in ("(", "{"):
                self._advance()
                if self._check("("):
                    inner = self._skip_balanced("(", ")")
                else:
                    inner = self._skip_balanced("{", "}")
                if inner and inner[0].is_("new"):
                    out.append(Allocation(tok.value, _new_form(inner, 0), tok.line))
                continue
            self._advance()
        return out

    def _attach(self, raw: RawClass, fn: RawMethod) -> None:
        for i, existing in enumerate(raw.methods):
            if existing.name != fn.name or \
                    existing.is_destructor != fn.is_destructor or \
                    existing.is_constructor != fn.is_constructor:
                continue
            if not existing.has_body and fn.has_body:
                raw.methods[i] = fn
                return
            if not fn.has_body:
                return
        raw.methods.append(fn)

    # ----- out-of-class definitions -----------------------------------------

    def _out_of_class_definition(self):
        """Detect ``[Type] Class::method(`` / ``Class::~Class(`` here."""
        i = self.pos
        limit = min(len(self.tokens), self.pos + 16)
        while i < limit:
            value = self.tokens[i].value
            if value in (";", "{", "}", "=", ")"):
                return None
            if value == "(":
                j = i - 1
                if j < self.pos or self.tokens[j].type is not TokenType.IDENT:
                    return None
                method = self.tokens[j].value
                j -= 1
                dtor = False
                if j >= self.pos and self.tokens[j].is_("~"):
                    dtor = True
                    j -= 1
                if j - 1 >= self.pos and self.tokens[j].is_("::") and \
                        self.tokens[j - 1].type is TokenType.IDENT:
                    return self.tokens[j - 1].value, method, dtor, i
                return None
            i += 1
        return None

    def _parse_out_of_class(self, class_name: str, method: str, dtor: bool, paren: int) -> None:
        line = self._cur().line
        self.pos = paren
        if dtor:
            kind, name = _DTOR, "~" + method
        elif method == class_name:
            kind, name = _CTOR, method
        else:
            kind, name = _METHOD, method
        fn = self._parse_function_tail(name, kind, line, class_name)
        if fn is None or not fn.has_body:
            return
        self._attach(self._class_named(class_name), fn)

    # ----- bodies -----------------------------------------------------------

    def _parse_block(self) -> List[Statement]:
        out: List[Statement] = []
        if not self._match("{"):
            return out
        while True:
            if self._at_end():
                self._truncated = True
                break
            if self._check("}"):
                self._advance()
                break
            before = self.pos
            self._parse_statement(out)
            if self.pos == before:
                self._advance()
        return out

    def _parse_statement(self, out: List[Statement]) -> None:
        tok = self._cur()
        value = tok.value
        if tok.type is TokenType.EOF or self._check("}"):
            return
        if self._check("{"):
            out.extend(self._parse_block())
            return
        if self._check(";"):
            self._advance()
            return

        if tok.type is TokenType.KEYWORD:
            if value == "if":
                out.extend(self._parse_if())
                return
            if value in ("for", "while", "switch"):
                self._advance()
                out.extend(self._calls_in(self._skip_balanced("(", ")")))
                self._parse_statement(out)
                return
            if value == "do":
                self._advance()
                self._parse_statement(out)
                if self._match("while"):
                    out.extend(self._calls_in(self._skip_balanced("(", ")")))
                    self._match(";")
                return
            if value == "try":
                self._advance()
                self._parse_statement(out)
                while self._match("catch"):
                    self._skip_balanced("(", ")")
                    self._skip_balanced("{", "}")
                return
            if value in ("case", "default"):
                while not self._at_end() and not self._check("}"):
                    if self._advance().is_(":"):
                        break
                return
            if value == "delete":
                out.append(self._parse_delete())
                return
            if value == "return":
                self._advance()
                tokens = self._collect_statement()
                out.extend(self._calls_in(tokens))
                out.append(Other(_text([tok] + tokens), tok.line))
                return
            if value in ("class", "struct"):
                self._skip_statement()
                out.append(Other(value, tok.line))
                return

        tokens = self._collect_statement()
        out.extend(self._classify(tokens))

    def _collect_statement(self) -> List[Token]:
        toks: List[Token] = []
        depth = 0
        while not self._at_end():
            tok = self._cur()
            if depth == 0 and tok.is_(";"):
                self._advance()
                break
            if depth == 0 and tok.is_("}"):
                break
            if tok.value in ("(", "[", "{") and tok.type is TokenType.PUNCTUATION:
                depth += 1
            elif tok.value in (")", "]", "}") and tok.type is TokenType.PUNCTUATION:
                depth -= 1
            toks.append(self._advance())
        return toks

    def _parse_if(self) -> List[Statement]:
        line = self._advance().line  # 'if'
        if self._check("constexpr"):
            self._advance()
        cond = self._skip_balanced("(", ")")
        out: List[Statement] = list(self._calls_in(cond))
        guard, nonnull = _guard_of(cond)
        then_arm: List[Statement] = []
        self._parse_statement(then_arm)
        else_arm: List[Statement] = []
        if self._match("else"):
            self._parse_statement(else_arm)
        out.append(Branch(
            arms=(tuple(then_arm), tuple(else_arm)),
            guard=guard,
            guard_nonnull=nonnull,
            line=line,
        ))
        return out

    def _parse_delete(self) -> Statement:
        line = self._advance().line  # 'delete'
        form = Form.SCALAR
        if self._check("["):
            self._advance()
            self._match("]")
            form = Form.ARRAY
        target = _ref(_strip_parens(self._collect_statement()))
        if is_simple_ref(target):
            return Release(target, form, line)
        return Other(f"{form.delete_spelling} {target}", line)

    def _classify(self, tokens: List[Token]) -> List[Statement]:
        if not tokens:
            return []
        line = tokens[0].line
        eq = None
        depth = 0
        for i, tok in enumerate(tokens):
            if tok.type is TokenType.PUNCTUATION and tok.value in ("(", "[", "{"):
                depth += 1
            elif tok.type is TokenType.PUNCTUATION and tok.value in (")", "]", "}"):
                depth -= 1
            elif depth == 0 and tok.is_("="):
                eq = i
                break
        if eq is None:
            return self._calls_in(tokens) or [Other(_text(tokens), line)]

        lhs, rhs = tokens[:eq], tokens[eq + 1:]
        out: List[Statement] = list(self._calls_in(rhs))
        target = self._assignment_target(lhs)
        if target is None or not rhs:
            out.append(Other(_text(tokens), line))
            return out
        name, declares = target
        if rhs[0].is_("new"):
            out.append(Allocation(name, _new_form(rhs, 0), line, declares_local=declares))
        else:
            out.append(Assignment(name, _ref(_strip_parens(rhs)), line, declares_local=declares))
        return out

    @staticmethod
    def _assignment_target(lhs: List[Token]) -> Optional[Tuple[str, bool]]:
        if not lhs or lhs[-1].type is not TokenType.IDENT:
            return None
        if len(lhs) == 1:
            return lhs[0].value, False
        if len(lhs) == 3 and lhs[0].value == "this" and lhs[1].value in ("->", "."):
            return _ref(lhs), False
        prefix = lhs[:-1]
        if prefix[0].value in ("*", "&", "("):
            return None
        allowed = ("*", "&", "&&", "::", "<", ">", ",")
        if all(t.type in (TokenType.IDENT, TokenType.KEYWORD) or t.value in allowed
               for t in prefix):
            return lhs[-1].value, True
        return None

    def _calls_in(self, tokens: Sequence[Token]) -> List[Statement]:
        calls: List[Statement] = []
        for i, tok in enumerate(tokens):
            if tok.type is not TokenType.IDENT:
                continue
            if i + 1 >= len(tokens) or not tokens[i + 1].is_("("):
                continue
            prev = tokens[i - 1] if i > 0 else None
            if prev is not None:
                if prev.value == "new":
                    continue
                if prev.value in (".", "->"):
                    if not (i >= 2 and tokens[i - 2].value == "this"):
                        continue
                elif prev.value == "::":
                    if not (i >= 2 and tokens[i - 2].value == self._current_class):
                        continue
                elif prev.type is TokenType.IDENT or (
                        prev.type is TokenType.KEYWORD and prev.value in _TYPE_KEYWORDS):
                    continue
                elif prev.value in ("*", "&", ">") and i >= 2 and \
                        tokens[i - 2].type in (TokenType.IDENT, TokenType.KEYWORD):
                    continue
            inner: List[Token] = []
            depth = 0
            for t in tokens[i + 1:]:
                if t.is_("("):
                    depth += 1
                    if depth == 1:
                        continue
                elif t.is_(")"):
                    depth -= 1
                    if depth == 0:
                        break
                inner.append(t)
            args = tuple(
                _ref(part) for part in _split_top(inner)
                if is_simple_ref(_ref(part)) and _ref(part) not in _NULL_TOKENS
            )
            calls.append(MethodCall(tok.value, args, tok.line))
        return calls


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def parse_source(text: str, file: str = "") -> List[RawClass]:
    """Parse C++ *text* and return the classes found in it."""
    lexer = Lexer(text)
    tokens = lexer.tokenize()
    return Parser(tokens, file=file, suppressions=lexer.suppressions).parse()


def parse_file(path) -> List[RawClass]:
    """Read and parse one source file.

    Raises
    ------
    SourceReadError
        When the file cannot be read.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise SourceReadError(str(p), exc.strerror or str(exc)) from exc
    return parse_source(text, file=str(p.resolve()))


__all__ = [
    "Parser",
    "parse_source",
    "parse_file",
]
