"""
Template language
=================
A small Go-template-like language used by every storage-format template.

    {{ .Field }}                         field substitution
    {{ .Identity.AccountID }}            nested field
    {{ if .Cond }} … {{ else if .Other }} … {{ else }} … {{ end }}
    {{ with .Name | user }} … {{ else }} … {{ end }}
    {{ range .Items }} … {{ else }} … {{ end }}
    {{ or .Color "Grey" }}               default-or-else
    {{ printf "\\n" }}                   literal newline
    {{- trim -}}                         strip surrounding whitespace
    {{/* comment */}}

A body is parsed once into a node tree (``parse``) and evaluated any number
of times against a plain dict (``Template.render``).

Missing fields
--------------
A field that is absent from the context evaluates to a ``Missing`` marker.
The marker is falsy and may be tested by ``if``/``with``/``range`` or handed
to ``or``/``and``/``not``.  Anywhere else (printed, piped into a helper,
compared with ``eq``) it raises ``RenderError``, so a template never emits
silent blanks for a field nobody supplied.
"""

from __future__ import annotations

import ast
import html
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from .errors import RenderError, TemplateCompileError

# ---------------------------------------------------------------------------
# Tokens inside one {{ … }} action
# ---------------------------------------------------------------------------
_TOKEN = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<raw>`[^`]*`)
    | (?P<number>-?\d+(?:\.\d+)?)
    | (?P<field>(?:\.[A-Za-z_]\w*)+|\.)
    | (?P<ident>[A-Za-z_]\w*)
    | (?P<pipe>\|)
    | (?P<lparen>\()
    | (?P<rparen>\))
    """,
    re.VERBOSE,
)

_KEYWORDS = {"if", "else", "end", "with", "range"}
_CONSTANTS = {"true": True, "false": False, "nil": None}

# Builtins that are allowed to see a Missing argument.
_PRESENCE_FUNCS = {"or", "and", "not"}


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str


# ---------------------------------------------------------------------------
# Node tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Field:
    path: tuple[str, ...]   # () is the dot itself

    @property
    def label(self) -> str:
        return "." + ".".join(self.path) if self.path else "."


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple[Any, ...]


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Action:
    expr: Any


@dataclass(frozen=True)
class If:
    branches: tuple[tuple[Any, tuple], ...]
    otherwise: tuple = ()


@dataclass(frozen=True)
class With:
    expr: Any
    body: tuple
    otherwise: tuple = ()


@dataclass(frozen=True)
class Range:
    expr: Any
    body: tuple
    otherwise: tuple = ()


@dataclass(frozen=True)
class Missing:
    """Value of a field that the render context does not provide."""

    field: str

    def __bool__(self) -> bool:
        return False


# ---------------------------------------------------------------------------
# Builtin functions
# ---------------------------------------------------------------------------

def format_value(value: Any) -> str:
    """Render a value the way it is printed into markup."""
    if value is None:
        return ""
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


_VERB = re.compile(r"%([-+# 0]*\d*(?:\.\d+)?)([svdqtfx%])")


def _printf(fmt: str, *args: Any) -> str:
    queue = list(args)

    def _verb(m: re.Match) -> str:
        flags, verb = m.group(1), m.group(2)
        if verb == "%":
            return "%"
        if not queue:
            return f"%!{verb}(MISSING)"
        arg = queue.pop(0)
        if verb in ("s", "v", "t"):
            text = format_value(arg)
            if flags.startswith("-"):
                return format(text, "<" + flags[1:])
            return format(text, ">" + flags) if flags else text
        if verb == "d":
            return format(int(arg), flags)
        if verb == "f":
            return format(float(arg), (flags or "") + "f")
        if verb == "x":
            return format(int(arg), "x")
        return json.dumps(format_value(arg))

    return _VERB.sub(_verb, fmt)


def _or(*args: Any) -> Any:
    for arg in args:
        if arg:
            return arg
    return args[-1]


def _and(*args: Any) -> Any:
    for arg in args:
        if not arg:
            return arg
    return args[-1]


def _eq(first: Any, *others: Any) -> bool:
    return any(first == other for other in others)


BUILTINS: dict[str, Callable[..., Any]] = {
    "or":     _or,
    "and":    _and,
    "not":    lambda value: not value,
    "eq":     _eq,
    "ne":     lambda a, b: a != b,
    "len":    len,
    "html":   lambda value: html.escape(format_value(value)),
    "print":  lambda *args: "".join(format_value(a) for a in args),
    "printf": _printf,
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _split(name: str, body: str) -> list[tuple[str, str]]:
    """
    Split *body* into ``("text", …)`` and ``("action", …)`` chunks.

    Handles trim markers and comments; action text is returned without the
    surrounding braces.
    """
    chunks: list[tuple[str, str]] = []
    pos = 0
    trim_next = False

    while True:
        start = body.find("{{", pos)
        text = body[pos:] if start < 0 else body[pos:start]
        if trim_next:
            text = text.lstrip()
            trim_next = False

        if start < 0:
            if text:
                chunks.append(("text", text))
            return chunks

        i = start + 2
        if body[i:i + 1] == "-" and body[i + 1:i + 2].isspace():
            text = text.rstrip()
            i += 2
        if text:
            chunks.append(("text", text))

        stripped = body[i:].lstrip()
        if stripped.startswith("/*"):
            comment_end = body.find("*/", i)
            if comment_end < 0:
                raise TemplateCompileError("unclosed comment", name, body)
            end = body.find("}}", comment_end)
            if end < 0:
                raise TemplateCompileError("unclosed action", name, body)
            trim_next = body[comment_end + 2:end].strip() == "-"
            pos = end + 2
            continue

        end = _find_action_end(body, i)
        if end < 0:
            raise TemplateCompileError("unclosed action", name, body)

        inner = body[i:end]
        if len(inner) >= 2 and inner[-1] == "-" and inner[-2].isspace():
            inner = inner[:-1]
            trim_next = True
        chunks.append(("action", inner.strip()))
        pos = end + 2


def _find_action_end(body: str, i: int) -> int:
    """Index of the ``}}`` closing the action at *i*, skipping string literals."""
    quote = ""
    while i < len(body):
        ch = body[i]
        if quote:
            if ch == "\\" and quote == '"':
                i += 2
                continue
            if ch == quote:
                quote = ""
        elif ch in ('"', "`"):
            quote = ch
        elif body.startswith("}}", i):
            return i
        i += 1
    return -1


def _tokenize(name: str, body: str, action: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(action):
        m = _TOKEN.match(action, pos)
        if m is None:
            raise TemplateCompileError(
                f"unexpected character {action[pos]!r} in {{{{ {action} }}}}", name, body
            )
        if m.lastgroup != "ws":
            tokens.append(_Token(m.lastgroup, m.group(0)))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, name: str, body: str, funcs: Iterable[str]) -> None:
        self.name = name
        self.body = body
        self.funcs = set(BUILTINS) | set(funcs)
        self.chunks = _split(name, body)
        self.pos = 0

    def error(self, message: str) -> TemplateCompileError:
        return TemplateCompileError(message, self.name, self.body)

    # ------------------------------------------------------------------ nodes

    def parse(self) -> tuple:
        nodes, stop = self._parse_list(())
        return nodes

    def _parse_list(self, stops: tuple[str, ...]) -> tuple[tuple, list[_Token] | None]:
        nodes: list[Any] = []
        while self.pos < len(self.chunks):
            kind, value = self.chunks[self.pos]
            self.pos += 1

            if kind == "text":
                nodes.append(Text(value))
                continue

            tokens = _tokenize(self.name, self.body, value)
            if not tokens:
                raise self.error("empty action {{ }}")

            head = tokens[0].value if tokens[0].kind == "ident" else ""
            if head in ("else", "end"):
                if head not in stops:
                    raise self.error(f"unexpected {{{{ {value} }}}}")
                return tuple(nodes), tokens
            if head == "if":
                nodes.append(self._parse_if(tokens[1:]))
            elif head == "with":
                nodes.append(self._parse_block(With, tokens[1:], value))
            elif head == "range":
                nodes.append(self._parse_block(Range, tokens[1:], value))
            else:
                nodes.append(Action(self._pipeline(tokens)))

        if stops:
            raise self.error("unexpected end of template, missing {{ end }}")
        return tuple(nodes), None

    def _parse_if(self, tokens: list[_Token]) -> If:
        branches = []
        cond = self._pipeline(tokens)
        while True:
            body, stop = self._parse_list(("else", "end"))
            branches.append((cond, body))
            if stop[0].value == "end":
                return If(tuple(branches))
            rest = stop[1:]
            if rest and rest[0].value == "if":
                cond = self._pipeline(rest[1:])
                continue
            if rest:
                raise self.error("unexpected tokens after {{ else }}")
            otherwise, stop = self._parse_list(("end",))
            return If(tuple(branches), otherwise)

    def _parse_block(self, node: type, tokens: list[_Token], source: str) -> Any:
        expr = self._pipeline(tokens)
        body, stop = self._parse_list(("else", "end"))
        otherwise: tuple = ()
        if stop[0].value == "else":
            if len(stop) > 1:
                raise self.error(f"unexpected tokens after {{{{ else }}}} in {source!r}")
            otherwise, stop = self._parse_list(("end",))
        return node(expr, body, otherwise)

    # ------------------------------------------------------------ expressions

    def _pipeline(self, tokens: list[_Token]) -> Any:
        if not tokens:
            raise self.error("missing value for command")

        commands: list[list[_Token]] = [[]]
        depth = 0
        for token in tokens:
            if token.kind == "lparen":
                depth += 1
            elif token.kind == "rparen":
                depth -= 1
                if depth < 0:
                    raise self.error("unexpected )")
            if token.kind == "pipe" and depth == 0:
                commands.append([])
            else:
                commands[-1].append(token)
        if depth:
            raise self.error("unclosed (")

        expr = self._command(commands[0], piped=None)
        for command in commands[1:]:
            expr = self._command(command, piped=expr)
        return expr

    def _command(self, tokens: list[_Token], piped: Any) -> Any:
        if not tokens:
            raise self.error("missing command in pipeline")

        head = tokens[0]
        if head.kind == "ident" and head.value not in _CONSTANTS:
            if head.value in _KEYWORDS:
                raise self.error(f"unexpected keyword {head.value!r}")
            if head.value not in self.funcs:
                raise self.error(f"function {head.value!r} not defined")
            args = self._operands(tokens[1:])
            if piped is not None:
                args.append(piped)
            return Call(head.value, tuple(args))

        if piped is not None:
            raise self.error("non-function in pipeline stage")
        operands = self._operands(tokens)
        if len(operands) != 1:
            raise self.error("can't give arguments to a non-function")
        return operands[0]

    def _operands(self, tokens: list[_Token]) -> list[Any]:
        out: list[Any] = []
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if token.kind == "lparen":
                depth, j = 1, i + 1
                while depth:
                    depth += {"lparen": 1, "rparen": -1}.get(tokens[j].kind, 0)
                    j += 1
                out.append(self._pipeline(tokens[i + 1:j - 1]))
                i = j
                continue
            out.append(self._operand(token))
            i += 1
        return out

    def _operand(self, token: _Token) -> Any:
        if token.kind == "field":
            path = tuple(p for p in token.value.split(".") if p)
            return Field(path)
        if token.kind == "string":
            return Literal(ast.literal_eval(token.value))
        if token.kind == "raw":
            return Literal(token.value[1:-1])
        if token.kind == "number":
            return Literal(float(token.value) if "." in token.value else int(token.value))
        if token.kind == "ident":
            if token.value in _CONSTANTS:
                return Literal(_CONSTANTS[token.value])
            if token.value in self.funcs:
                return Call(token.value, ())
            raise self.error(f"function {token.value!r} not defined")
        raise self.error(f"unexpected {token.value!r}")


def parse(name: str, body: str, funcs: Iterable[str] = ()) -> tuple:
    """Parse *body* into a node tree; raises ``TemplateCompileError``."""
    return _Parser(name, body, funcs).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _snake(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name).lower()


class _Evaluator:
    def __init__(self, name: str, funcs: Mapping[str, Callable[..., Any]]) -> None:
        self.name = name
        self.funcs = funcs

    def error(self, message: str, field: str = "") -> RenderError:
        return RenderError(message, template=self.name, field=field)

    def run(self, nodes: tuple, dot: Any, out: list[str]) -> None:
        for node in nodes:
            if isinstance(node, Text):
                out.append(node.text)
            elif isinstance(node, Action):
                value = self.eval(node.expr, dot)
                self.require(value)
                out.append(format_value(value))
            elif isinstance(node, If):
                for cond, body in node.branches:
                    if self.eval(cond, dot):
                        self.run(body, dot, out)
                        break
                else:
                    self.run(node.otherwise, dot, out)
            elif isinstance(node, With):
                value = self.eval(node.expr, dot)
                if value:
                    self.run(node.body, value, out)
                else:
                    self.run(node.otherwise, dot, out)
            elif isinstance(node, Range):
                value = self.eval(node.expr, dot)
                if isinstance(value, Mapping):
                    value = [value[k] for k in sorted(value)]
                if not value:
                    self.run(node.otherwise, dot, out)
                    continue
                if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
                    raise self.error(f"range can't iterate over {value!r}")
                for item in value:
                    self.run(node.body, item, out)

    def require(self, value: Any) -> None:
        if isinstance(value, Missing):
            raise self.error(f"field {value.field} is not set", field=value.field)

    def eval(self, expr: Any, dot: Any) -> Any:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, Field):
            return self.field(expr, dot)
        if isinstance(expr, Call):
            return self.call(expr, dot)
        raise self.error(f"cannot evaluate {expr!r}")

    def field(self, expr: Field, dot: Any) -> Any:
        value = dot
        for i, part in enumerate(expr.path):
            label = "." + ".".join(expr.path[:i + 1])
            self.require(value)
            if value is None:
                raise self.error(f"nil value while evaluating {label}", field=label)
            if isinstance(value, Mapping):
                if part not in value:
                    return Missing(label)
                value = value[part]
            elif hasattr(value, part):
                value = getattr(value, part)
            elif hasattr(value, _snake(part)):
                value = getattr(value, _snake(part))
            else:
                return Missing(label)
        return value

    def call(self, expr: Call, dot: Any) -> Any:
        fn = self.funcs.get(expr.name)
        if fn is None:
            raise self.error(f"function {expr.name!r} not defined")

        args = [self.eval(arg, dot) for arg in expr.args]
        if expr.name not in _PRESENCE_FUNCS:
            for arg in args:
                self.require(arg)

        try:
            return fn(*args)
        except RenderError:
            raise
        except Exception as exc:
            raise self.error(f"error calling {expr.name}: {exc}") from exc


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Template:
    name: str
    body: str
    root: tuple = field(repr=False)

    @classmethod
    def compile(cls, name: str, body: str, funcs: Iterable[str] = ()) -> "Template":
        return cls(name=name, body=body, root=parse(name, body, funcs))

    def render(self, context: Any, funcs: Mapping[str, Callable[..., Any]] | None = None) -> str:
        out: list[str] = []
        _Evaluator(self.name, {**BUILTINS, **(funcs or {})}).run(self.root, context, out)
        return "".join(out)
