"""Restricted evaluator for function-wrapped embedded state.

Server-rendering frameworks sometimes serialise their state as an
immediately-invoked function so repeated values can be passed once as
arguments::

    (function(a,b){return {layout:"default",data:[{id:a,tags:[b,b]}]}}(1,"x"))

Nothing here executes script.  The payload is tokenised and walked by a small
recursive-descent reader that only understands:

* one function expression invoked with literal arguments, wrapped in any of
  the usual parenthesisations;
* a body made of ``var``/``let``/``const`` declarations, member assignments
  on already-built values (``a.b = c``), and a single ``return``;
* object/array/string/number/boolean/``null``/``undefined`` literals,
  ``void 0``, unary ``-``/``+``/``!``, identifiers bound by the function
  parameters or declarations, and ``.name`` / ``[expr]`` member reads.

Anything else raises :class:`~statecrawl.scraper.errors.EvaluationError`.
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterator, NamedTuple, Optional

from statecrawl.scraper.errors import EvaluationError

_FUNCTION_PREFIX = re.compile(r"^(?:\(\s*)*function\b")
_SURROGATE = re.compile("[\ud800-\udfff]")

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}


class _Token(NamedTuple):
    kind: str  # "punct" | "string" | "number" | "name" | "eof"
    value: Any
    pos: int


def is_function_payload(text: str) -> bool:
    """Return ``True`` if *text* starts like an invoked function expression."""
    return bool(_FUNCTION_PREFIX.match(text))


def fix_surrogates(text: str) -> str:
    """Join ``\\uD83D\\uDE00``-style escape pairs; lone halves become U+FFFD.

    Strings decoded escape by escape hold UTF-16 halves, which cannot be
    encoded as UTF-8 (and so cannot be stored or served).
    """
    if not _SURROGATE.search(text):
        return text
    return text.encode("utf-16", "surrogatepass").decode("utf-16", "replace")


# ---------------------------------------------------------------------------
# Tokeniser
# ---------------------------------------------------------------------------

_NUMBER = re.compile(
    r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
)
_NAME = re.compile(r"[A-Za-z_$][\w$]*")
_PUNCT = set("(){}[],:;.=-+!")


def _read_string(text: str, pos: int) -> tuple[str, int]:
    quote = text[pos]
    pos += 1
    out: list[str] = []
    while pos < len(text):
        ch = text[pos]
        if ch == quote:
            return fix_surrogates("".join(out)), pos + 1
        if ch == "\\":
            pos += 1
            if pos >= len(text):
                break
            esc = text[pos]
            if esc == "u":
                if text[pos + 1:pos + 2] == "{":
                    end = text.find("}", pos)
                    if end == -1:
                        raise EvaluationError(f"bad unicode escape at {pos}")
                    out.append(chr(int(text[pos + 2:end], 16)))
                    pos = end + 1
                    continue
                hex_digits = text[pos + 1:pos + 5]
                if len(hex_digits) != 4:
                    raise EvaluationError(f"bad unicode escape at {pos}")
                out.append(chr(int(hex_digits, 16)))
                pos += 5
                continue
            if esc == "x":
                out.append(chr(int(text[pos + 1:pos + 3], 16)))
                pos += 3
                continue
            if esc == "\n":
                # line continuation
                pos += 1
                continue
            out.append(_SIMPLE_ESCAPES.get(esc, esc))
            pos += 1
            continue
        if ch == "\n":
            break
        out.append(ch)
        pos += 1
    raise EvaluationError(f"unterminated string starting at {pos}")


def _tokenize(text: str) -> Iterator[_Token]:
    pos = 0
    length = len(text)
    while pos < length:
        ch = text[pos]
        if ch.isspace():
            pos += 1
            continue
        if text.startswith("//", pos):
            end = text.find("\n", pos)
            pos = length if end == -1 else end + 1
            continue
        if text.startswith("/*", pos):
            end = text.find("*/", pos + 2)
            if end == -1:
                raise EvaluationError("unterminated comment")
            pos = end + 2
            continue
        if ch in "\"'":
            value, end = _read_string(text, pos)
            yield _Token("string", value, pos)
            pos = end
            continue
        if ch.isdigit() or (ch == "." and text[pos + 1:pos + 2].isdigit()):
            m = _NUMBER.match(text, pos)
            if m is None:
                raise EvaluationError(f"bad number at {pos}")
            raw = m.group(0)
            if raw[:2] in ("0x", "0X"):
                value: Any = int(raw, 16)
            elif any(c in raw for c in ".eE"):
                value = float(raw)
                if math.isinf(value):
                    raise EvaluationError(f"number out of range at {pos}")
            else:
                value = int(raw)
            yield _Token("number", value, pos)
            pos = m.end()
            continue
        m = _NAME.match(text, pos)
        if m:
            yield _Token("name", m.group(0), pos)
            pos = m.end()
            continue
        if ch in _PUNCT:
            yield _Token("punct", ch, pos)
            pos += 1
            continue
        raise EvaluationError(f"unsupported character {ch!r} at {pos}")
    yield _Token("eof", None, length)


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

class _Reader:
    def __init__(self, text: str):
        self.tokens = list(_tokenize(text))
        self.index = 0

    # -- token helpers -------------------------------------------------
    @property
    def current(self) -> _Token:
        return self.tokens[self.index]

    def advance(self) -> _Token:
        tok = self.current
        if tok.kind != "eof":
            self.index += 1
        return tok

    def at(self, kind: str, value: Any = None) -> bool:
        tok = self.current
        return tok.kind == kind and (value is None or tok.value == value)

    def accept(self, kind: str, value: Any = None) -> bool:
        if self.at(kind, value):
            self.advance()
            return True
        return False

    def expect(self, kind: str, value: Any = None) -> _Token:
        if not self.at(kind, value):
            tok = self.current
            wanted = value if value is not None else kind
            raise EvaluationError(
                f"expected {wanted!r} at {tok.pos}, found {tok.value!r}"
            )
        return self.advance()

    # -- program -------------------------------------------------------
    def program(self) -> Any:
        result = self.invocation()
        self.accept("punct", ";")
        if not self.at("eof"):
            raise EvaluationError(f"trailing content at {self.current.pos}")
        return result

    def invocation(self) -> Any:
        """``(function(){...})(args)``, ``(function(){...}(args))`` or bare."""
        if self.accept("punct", "("):
            if self.at("name", "function"):
                params, body_start = self.function_head()
                if self.at("punct", "("):
                    # (function(){...}(args))
                    args = self.arguments()
                    self.expect("punct", ")")
                else:
                    self.expect("punct", ")")
                    args = self.arguments()
                return self.run(params, body_start, args)
            result = self.invocation()
            self.expect("punct", ")")
            return result
        params, body_start = self.function_head()
        args = self.arguments()
        return self.run(params, body_start, args)

    def function_head(self) -> tuple[list[str], int]:
        """Consume ``function name(params) { ... }``; return params and body index."""
        self.expect("name", "function")
        self.accept("name")
        self.expect("punct", "(")
        params: list[str] = []
        while not self.at("punct", ")"):
            params.append(self.expect("name").value)
            if not self.accept("punct", ","):
                break
        self.expect("punct", ")")
        self.expect("punct", "{")
        body_start = self.index
        self.skip_block()
        return params, body_start

    def skip_block(self) -> None:
        depth = 1
        while depth:
            tok = self.advance()
            if tok.kind == "eof":
                raise EvaluationError("unterminated function body")
            if tok.kind == "punct" and tok.value == "{":
                depth += 1
            elif tok.kind == "punct" and tok.value == "}":
                depth -= 1

    def arguments(self) -> list[Any]:
        self.expect("punct", "(")
        args: list[Any] = []
        scope: dict[str, Any] = {}
        while not self.at("punct", ")"):
            args.append(self.expression(scope))
            if not self.accept("punct", ","):
                break
        self.expect("punct", ")")
        return args

    def run(self, params: list[str], body_start: int, args: list[Any]) -> Any:
        resume = self.index
        scope = {
            name: (args[i] if i < len(args) else None)
            for i, name in enumerate(params)
        }
        self.index = body_start
        try:
            return self.body(scope)
        finally:
            self.index = resume

    # -- statements ----------------------------------------------------
    def body(self, scope: dict[str, Any]) -> Any:
        while True:
            if self.accept("punct", ";"):
                continue
            if self.at("punct", "}"):
                raise EvaluationError("function body has no return statement")
            if self.accept("name", "return"):
                value = self.expression(scope)
                self.accept("punct", ";")
                if not self.at("punct", "}"):
                    raise EvaluationError(
                        f"unsupported statement after return at {self.current.pos}"
                    )
                return _finish(value)
            if self.current.kind == "name" and self.current.value in ("var", "let", "const"):
                self.advance()
                self.declarations(scope)
                continue
            self.assignment(scope)

    def declarations(self, scope: dict[str, Any]) -> None:
        while True:
            name = self.expect("name").value
            scope[name] = self.expression(scope) if self.accept("punct", "=") else None
            if not self.accept("punct", ","):
                break
        self.accept("punct", ";")

    def assignment(self, scope: dict[str, Any]) -> None:
        start = self.current
        name = self.expect("name").value
        if name not in scope:
            raise EvaluationError(f"assignment to unknown name {name!r} at {start.pos}")
        if not (self.at("punct", ".") or self.at("punct", "[")):
            self.expect("punct", "=")
            scope[name] = self.expression(scope)
            self.accept("punct", ";")
            return
        target = scope[name]
        key = self.member_key(scope)
        while self.at("punct", ".") or self.at("punct", "["):
            target = _member(target, key)
            key = self.member_key(scope)
        self.expect("punct", "=")
        value = self.expression(scope)
        _store(target, key, value)
        self.accept("punct", ";")

    def member_key(self, scope: dict[str, Any]) -> Any:
        if self.accept("punct", "."):
            return self.expect("name").value
        self.expect("punct", "[")
        key = self.expression(scope)
        self.expect("punct", "]")
        return key

    # -- expressions ---------------------------------------------------
    def expression(self, scope: dict[str, Any]) -> Any:
        tok = self.current
        if tok.kind == "punct" and tok.value in "-+!":
            self.advance()
            operand = self.expression(scope)
            if tok.value == "!":
                return not _truthy(operand)
            if isinstance(operand, bool) or not isinstance(operand, (int, float)):
                raise EvaluationError(f"unary {tok.value} on non-number at {tok.pos}")
            return -operand if tok.value == "-" else operand
        if tok.kind == "name" and tok.value == "void":
            self.advance()
            self.expression(scope)
            return None
        value = self.primary(scope)
        while self.at("punct", ".") or self.at("punct", "["):
            value = _member(value, self.member_key(scope))
        return value

    def primary(self, scope: dict[str, Any]) -> Any:
        tok = self.advance()
        if tok.kind in ("string", "number"):
            return tok.value
        if tok.kind == "punct" and tok.value == "{":
            return self.object_literal(scope)
        if tok.kind == "punct" and tok.value == "[":
            return self.array_literal(scope)
        if tok.kind == "punct" and tok.value == "(":
            value = self.expression(scope)
            self.expect("punct", ")")
            return value
        if tok.kind == "name":
            if tok.value == "true":
                return True
            if tok.value == "false":
                return False
            if tok.value in ("null", "undefined"):
                return None
            if tok.value in scope:
                return scope[tok.value]
            raise EvaluationError(f"unknown identifier {tok.value!r} at {tok.pos}")
        raise EvaluationError(f"unexpected {tok.value!r} at {tok.pos}")

    def object_literal(self, scope: dict[str, Any]) -> dict[str, Any]:
        obj: dict[str, Any] = {}
        while not self.at("punct", "}"):
            tok = self.advance()
            if tok.kind == "string":
                key = tok.value
            elif tok.kind == "number":
                key = _number_key(tok.value)
            elif tok.kind == "name":
                key = tok.value
                if self.at("punct", ",") or self.at("punct", "}"):
                    # shorthand property {a}
                    if key not in scope:
                        raise EvaluationError(f"unknown identifier {key!r} at {tok.pos}")
                    obj[key] = scope[key]
                    self.accept("punct", ",")
                    continue
            else:
                raise EvaluationError(f"bad property key {tok.value!r} at {tok.pos}")
            self.expect("punct", ":")
            obj[key] = self.expression(scope)
            if not self.accept("punct", ","):
                break
        self.expect("punct", "}")
        return obj

    def array_literal(self, scope: dict[str, Any]) -> list[Any]:
        items: list[Any] = []
        while not self.at("punct", "]"):
            if self.at("punct", ","):
                # elision: [1,,2]
                self.advance()
                items.append(None)
                continue
            items.append(self.expression(scope))
            if not self.accept("punct", ","):
                break
        self.expect("punct", "]")
        return items


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def _truthy(value: Any) -> bool:
    if isinstance(value, (dict, list)):
        return True
    return bool(value)


def _number_key(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _member(target: Any, key: Any) -> Any:
    if isinstance(target, dict):
        return target.get(_number_key(key) if isinstance(key, (int, float)) else key)
    if isinstance(target, list):
        if key == "length":
            return len(target)
        if isinstance(key, int) and not isinstance(key, bool) and 0 <= key < len(target):
            return target[key]
        return None
    raise EvaluationError(f"cannot read property {key!r} of {type(target).__name__}")


def _store(target: Any, key: Any, value: Any) -> None:
    if isinstance(target, dict):
        target[_number_key(key) if isinstance(key, (int, float)) else str(key)] = value
        return
    if isinstance(target, list) and isinstance(key, int) and not isinstance(key, bool):
        if key < 0:
            raise EvaluationError(f"negative index {key}")
        while len(target) <= key:
            target.append(None)
        target[key] = value
        return
    raise EvaluationError(f"cannot set property {key!r} on {type(target).__name__}")


def _finish(value: Any, _seen: Optional[set[int]] = None) -> Any:
    """Reject self-referencing structures; the result must be a JSON tree."""
    if not isinstance(value, (dict, list)):
        return value
    seen = _seen if _seen is not None else set()
    if id(value) in seen:
        raise EvaluationError("returned value contains a circular reference")
    seen.add(id(value))
    try:
        if isinstance(value, dict):
            return {k: _finish(v, seen) for k, v in value.items()}
        return [_finish(v, seen) for v in value]
    finally:
        seen.discard(id(value))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def evaluate_function_payload(text: str) -> Any:
    """Reduce an invoked-function payload to the value it returns.

    Raises:
        EvaluationError: If *text* uses anything outside the supported
            literal subset, or is not a single invoked function.
    """
    if not is_function_payload(text):
        raise EvaluationError("payload is not a function expression")
    try:
        return _Reader(text).program()
    except RecursionError as exc:
        raise EvaluationError("payload nested too deeply") from exc
    except (ValueError, IndexError) as exc:
        raise EvaluationError(str(exc)) from exc
