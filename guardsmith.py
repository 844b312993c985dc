"""GuardSmith core — mine boundary-value inputs from JavaScript guards."""
import logging
import os
import random
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Union

import esprima
from esprima.error_handler import Error as EsprimaError
from esprima.nodes import Node

logger = logging.getLogger("guardsmith.scanner")

# ── Configuration ─────────────────────────────────────────────────────
PARSE_OPTIONS = {"tokens": True, "tolerant": True, "loc": True, "range": True}
PHONE_DIGITS = 10
BOUNDARY_SPAN = 10
FILE_FIXTURE = os.getenv("GUARDSMITH_FILE_FIXTURE", "pathContent/file1")
DIR_FIXTURE = os.getenv("GUARDSMITH_DIR_FIXTURE", "pathContent/someDir")
SEED_ENV = "GUARDSMITH_SEED"

_STRING_POOL = ("abcdefghijklmnopqrstuvwxyz"
                "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-")
_EQUALITY = ("==", "===", "!=", "!==")
_RELATIONAL = ("<", "<=", ">", ">=")
_QUOTED = re.compile(r"^['\"](.*)['\"]$", re.DOTALL)
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


class GuardSmithError(Exception):
    """Base class for GuardSmith failures."""


class SourceParseError(GuardSmithError):
    """The source unit could not be parsed; fatal for the whole file."""


class ValueSynthesisError(GuardSmithError, ValueError):
    """A guard's operands cannot be turned into concrete values."""


class Kind(str, Enum):
    FILE_WITH_CONTENT = "fileWithContent"
    FILE_EXISTS = "fileExists"
    INTEGER = "integer"
    STRING = "string"
    PHONE_NUMBER = "phoneNumber"


@dataclass(frozen=True)
class Constraint:
    parameter: str
    value: str
    function: str
    kind: Kind
    expression: Optional[str] = None
    operator: Optional[str] = None
    alt_value: Optional[str] = None

    def to_dict(self) -> dict:
        return {"ident": self.parameter, "expression": self.expression,
                "operator": self.operator, "value": self.value,
                "altvalue": self.alt_value, "funcName": self.function,
                "kind": self.kind.value}


@dataclass
class FunctionConstraints:
    """Per-function parameter list and its append-only constraint lists."""
    function: str
    params: list[str]
    constraints: dict[str, list[Constraint]] = field(default_factory=dict)

    def __post_init__(self):
        for p in self.params:
            self.constraints.setdefault(p, [])

    def add(self, constraint: Constraint):
        self.constraints.setdefault(constraint.parameter, []).append(constraint)

    def to_dict(self) -> dict:
        return {"params": list(self.params),
                "constraints": {p: [c.to_dict() for c in cs]
                                for p, cs in self.constraints.items()}}


# ── Random value synthesis ────────────────────────────────────────────

@dataclass
class SynthesisContext:
    """Carries the one seeded engine shared by every synthesis call of a run."""
    rng: random.Random

    @classmethod
    def seeded(cls, seed: Optional[int] = None) -> "SynthesisContext":
        if seed is None and os.getenv(SEED_ENV):
            try:
                seed = int(os.environ[SEED_ENV])
            except ValueError:
                raise GuardSmithError(
                    f"{SEED_ENV} must be an integer, got "
                    f"{os.environ[SEED_ENV]!r}") from None
        return cls(random.Random(seed))

    def boundary_integer(self, threshold: int, above: bool) -> int:
        if above:
            return self.rng.randint(threshold + 1, threshold + BOUNDARY_SPAN)
        return self.rng.randint(threshold - BOUNDARY_SPAN, threshold - 1)

    def random_digits(self, n: int) -> str:
        return "".join(str(self.rng.randint(0, 9)) for _ in range(max(n, 0)))

    def random_string(self, n: int) -> str:
        return "".join(self.rng.choice(_STRING_POOL) for _ in range(max(n, 0)))


def _quote(text: str) -> str:
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _parse_int(text: str) -> int:
    m = _INT_PREFIX.match(text)
    if not m:
        raise ValueSynthesisError(f"not an integer threshold: {text!r}")
    return int(m.group(1))


# ── Guard classification ──────────────────────────────────────────────

@dataclass(frozen=True)
class Negation:
    param: str
    operator: str
    expression: str


@dataclass(frozen=True)
class MemberNegation:
    param: str
    prop: str
    operator: str
    expression: str


@dataclass(frozen=True)
class Comparison:
    param: Optional[str]
    operator: str
    expression: str
    right: str
    area: Optional[Node] = None


@dataclass(frozen=True)
class IndexOfComparison:
    param: str
    operator: str
    expression: str
    needle: Optional[Node]
    right: str


@dataclass(frozen=True)
class ExistsCheck:
    param: str
    expression: str


@dataclass(frozen=True)
class ReadCheck:
    param: str
    expression: str


@dataclass(frozen=True)
class NoMatch:
    pass


Guard = Union[Negation, MemberNegation, Comparison, IndexOfComparison,
              ExistsCheck, ReadCheck, NoMatch]
NO_MATCH = NoMatch()


def _text(source: str, node: Node) -> str:
    start, end = node.range
    return source[start:end]


def _ident(node) -> Optional[str]:
    if node is not None and getattr(node, "type", None) == "Identifier":
        return node.name
    return None


def _method(call) -> Optional[str]:
    callee = getattr(call, "callee", None)
    if getattr(callee, "type", None) != "MemberExpression" or callee.computed:
        return None
    return _ident(callee.property)


def _first_arg(call) -> Optional[str]:
    args = getattr(call, "arguments", None) or []
    return _ident(args[0]) if args else None


def classify(node, source: str, params: list[str]) -> Guard:
    kind = getattr(node, "type", None)

    if kind == "UnaryExpression" and node.operator == "!":
        arg = node.argument
        name = _ident(arg)
        if name in params:
            return Negation(name, node.operator, _text(source, node))
        if getattr(arg, "type", None) == "MemberExpression" and not arg.computed:
            owner, prop = _ident(arg.object), _ident(arg.property)
            if owner in params and prop:
                return MemberNegation(owner, prop, node.operator,
                                      _text(source, node))
        return NO_MATCH

    if kind == "BinaryExpression" and node.operator in _EQUALITY + _RELATIONAL:
        left = node.left
        name = _ident(left)
        if name is not None:
            param = name if name in params else None
            area = node.right if name == "area" else None
            if param is None and area is None:
                return NO_MATCH
            return Comparison(param, node.operator, _text(source, node),
                              _text(source, node.right), area)
        if getattr(left, "type", None) == "CallExpression" \
                and _method(left) == "indexOf":
            owner = _ident(left.callee.object)
            if owner in params:
                needle = left.arguments[0] if left.arguments else None
                return IndexOfComparison(owner, node.operator,
                                         _text(source, node), needle,
                                         _text(source, node.right))
        return NO_MATCH

    if kind == "CallExpression":
        method = _method(node)
        if method in ("existsSync", "readFileSync"):
            name = _first_arg(node)
            if name in params:
                cls = ExistsCheck if method == "existsSync" else ReadCheck
                return cls(name, _text(source, node))
    return NO_MATCH


def _phone_numbers(area: Node, function: str, ctx: SynthesisContext):
    if getattr(area, "type", None) != "Literal" or area.value is None:
        raise ValueSynthesisError("area code is not a literal")
    prefix = area.value if isinstance(area.value, str) else area.raw
    for digits in (prefix + ctx.random_digits(PHONE_DIGITS - len(prefix)),
                   ctx.random_digits(PHONE_DIGITS)):
        yield Constraint("phoneNumber", _quote(digits), function,
                         Kind.PHONE_NUMBER)


def _param_compare(g: Comparison, function: str, ctx: SynthesisContext):
    if g.operator in _EQUALITY:
        match = _QUOTED.match(g.right)
        probe = f"'NEQ - {match.group(1)}'" if match else "NaN"
        values = (g.right, probe)
    else:
        threshold = _parse_int(g.right)
        values = tuple(str(ctx.boundary_integer(threshold, above))
                       for above in (True, False))
    return [Constraint(g.param, v, function, Kind.INTEGER, g.expression,
                       g.operator) for v in values]


def _compare(g: Comparison, function: str, ctx: SynthesisContext):
    # The parameter half and the area half fail independently.
    out, errors = [], []
    if g.param is not None:
        try:
            out.extend(_param_compare(g, function, ctx))
        except ValueSynthesisError as e:
            errors.append(e)
    if g.area is not None:
        try:
            out.extend(_phone_numbers(g.area, function, ctx))
        except ValueSynthesisError as e:
            errors.append(e)
    if errors and not out:
        raise errors[0]
    for e in errors:
        logger.warning("%s: partial guard %r: %s",
                       function or "<anonymous>", g.expression, e)
    return out


def synthesize(guard: Guard, function: str,
               ctx: SynthesisContext) -> list[Constraint]:
    """Turn one classified guard into its constraints, in emission order."""
    if isinstance(guard, Negation):
        return [Constraint(guard.param, v, function, Kind.INTEGER,
                           guard.expression, guard.operator)
                for v in ("true", "false")]
    if isinstance(guard, MemberNegation):
        return [Constraint(guard.param, f"{{ {guard.prop}: '{v}' }}",
                           function, Kind.INTEGER, guard.expression,
                           guard.operator)
                for v in ("true", "false")]
    if isinstance(guard, Comparison):
        return _compare(guard, function, ctx)
    if isinstance(guard, IndexOfComparison):
        needle = guard.needle
        if getattr(needle, "type", None) != "Literal" \
                or not isinstance(needle.value, str):
            raise ValueSynthesisError("indexOf argument is not a string literal")
        n = _parse_int(guard.right)
        return [Constraint(guard.param,
                           _quote(ctx.random_string(length) + needle.value),
                           function, Kind.STRING, guard.expression,
                           guard.operator)
                for length in (n, n + 1)]
    if isinstance(guard, ExistsCheck):
        values = ("file",) if guard.param == "filePath" \
            else ("emptyDir", "nonEmptyDir")
        return [Constraint(guard.param, _quote(v), function, Kind.FILE_EXISTS,
                           guard.expression) for v in values]
    if isinstance(guard, ReadCheck):
        values = (FILE_FIXTURE,) if guard.param == "filePath" \
            else (FILE_FIXTURE, DIR_FIXTURE)
        return [Constraint(guard.param, _quote(v), function,
                           Kind.FILE_WITH_CONTENT, guard.expression)
                for v in values]
    return []


# ── Function scanning ─────────────────────────────────────────────────

def walk(node) -> Iterator[Node]:
    """Pre-order walk over every esprima node reachable from ``node``."""
    if isinstance(node, list):
        for item in node:
            yield from walk(item)
        return
    if not isinstance(node, Node):
        return
    yield node
    for child in vars(node).values():
        if isinstance(child, (Node, list)):
            yield from walk(child)


def _params(decl) -> list[str]:
    names = []
    for p in decl.params or []:
        name = _ident(p)
        if name is None:
            logger.debug("skipping non-identifier parameter (%s)", p.type)
            continue
        names.append(name)
    return names


def _scan_function(decl, source: str,
                   ctx: SynthesisContext) -> FunctionConstraints:
    name = decl.id.name if decl.id else ""
    fc = FunctionConstraints(name, _params(decl))
    for p in fc.params:
        if p == "phoneNumber":
            fc.add(Constraint(p, _quote(ctx.random_digits(PHONE_DIGITS)),
                              name, Kind.PHONE_NUMBER))
    for child in walk(decl):
        guard = classify(child, source, fc.params)
        if isinstance(guard, NoMatch):
            continue
        try:
            emitted = synthesize(guard, name, ctx)
        except ValueSynthesisError as e:
            logger.warning("%s: skipping guard %r: %s",
                           name or "<anonymous>", guard.expression, e)
            continue
        logger.debug("%s: %s -> %d constraint(s)", name,
                     type(guard).__name__, len(emitted))
        for c in emitted:
            fc.add(c)
    return fc


def analyze_source(source: str, ctx: Optional[SynthesisContext] = None
                   ) -> dict[str, FunctionConstraints]:
    ctx = ctx or SynthesisContext.seeded()
    try:
        program = esprima.parseScript(source, PARSE_OPTIONS)
    except EsprimaError as e:
        raise SourceParseError(str(e)) from e
    results: dict[str, FunctionConstraints] = {}
    for node in walk(program):
        if node.type == "FunctionDeclaration":
            fc = _scan_function(node, source, ctx)
            results[fc.function] = fc
    return results


def analyze_file(path: Union[str, Path], ctx: Optional[SynthesisContext] = None
                 ) -> dict[str, FunctionConstraints]:
    return analyze_source(Path(path).read_text("utf-8"), ctx)


def scan_path(path: Path, ctx: Optional[SynthesisContext] = None
              ) -> dict[str, dict[str, FunctionConstraints]]:
    ctx = ctx or SynthesisContext.seeded()
    results = {}
    for f in sorted(path.rglob("*.js")):
        if "node_modules" in f.parts:
            continue
        try:
            results[str(f)] = analyze_file(f, ctx)
        except SourceParseError as e:
            logger.warning("skipping %s: %s", f, e)
    return results


def to_dict(result: dict[str, FunctionConstraints]) -> dict:
    return {name: fc.to_dict() for name, fc in result.items()}
