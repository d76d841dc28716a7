"""
Condition language for rules.

Conditions are small trees of comparisons joined by and/or/not. They can be
written as structured mappings or as expression strings:

    current_stock <= critical_threshold and current_stock > 0
    derived.is_near_expiry == true && !(location == "Delhi")
    medicine_name startsWith "Ins" or contextual.medicine_category == 'diabetes'

Expression strings are tokenized and parsed here into the same condition
nodes as structured trees. Nothing is ever handed to eval/exec.

Field paths:
- "derived.*", "temporal.*", "normalized.*", "contextual.*" address feature groups
- "data.*" or a bare name addresses the data point itself
- camelCase segments are accepted ("currentStock" == "current_stock")
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Callable, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from src.core.exceptions import InvalidRuleError
from src.data.normalizers import normalize_key
from src.data.schema import EnrichedDataPoint

FEATURE_GROUPS = ("data", "derived", "temporal", "normalized", "contextual")

COMPARISON_OPERATORS = (
    "==",
    "===",
    "!=",
    "!==",
    ">",
    ">=",
    "<",
    "<=",
    "contains",
    "startsWith",
    "endsWith",
    "regex",
    "truthy",
)

_LOGICAL_ALIASES = {"and": "and", "&&": "and", "or": "or", "||": "or"}


def resolve_field(point: EnrichedDataPoint, path: str) -> Any:
    """
    Look up a dotted field path on an enriched data point.

    Returns None when any segment is missing.
    """
    segments = [normalize_key(s) for s in path.split(".") if s]
    if not segments:
        return None

    if segments[0] in FEATURE_GROUPS:
        current: Any = getattr(point, segments[0])
        segments = segments[1:]
    else:
        current = point.data

    for segment in segments:
        if current is None:
            return None
        if isinstance(current, Mapping):
            if segment in current:
                current = current[segment]
            elif segment.isdigit():
                current = current.get(int(segment))
            else:
                return None
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            current = getattr(current, segment, None)
    return current


def _compare(left: Any, operator: str, right: Any) -> bool:
    if operator == "truthy":
        return bool(left)
    if operator in ("==", "==="):
        return left == right
    if operator in ("!=", "!=="):
        return left != right

    if left is None or right is None:
        return False

    try:
        if operator == ">":
            return left > right
        if operator == ">=":
            return left >= right
        if operator == "<":
            return left < right
        if operator == "<=":
            return left <= right
    except TypeError:
        return False

    if operator == "contains":
        if isinstance(left, str):
            return str(right) in left
        if isinstance(left, (list, tuple, set, Mapping)):
            return right in left
        return False
    if operator == "startsWith":
        return isinstance(left, str) and left.startswith(str(right))
    if operator == "endsWith":
        return isinstance(left, str) and left.endswith(str(right))
    if operator == "regex":
        return re.search(str(right), str(left)) is not None

    raise ValueError(f"Unknown operator: {operator}")


class Comparison(BaseModel):
    """
    Compare a field against a literal value or against another field.

    Exactly one of value / value_field is used; value_field wins when set.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["comparison"] = "comparison"
    field: str = Field(..., min_length=1)
    operator: str
    value: Any = None
    value_field: Optional[str] = None

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, value: str) -> str:
        if value not in COMPARISON_OPERATORS:
            raise ValueError(f"Unknown comparison operator: {value}")
        return value

    @model_validator(mode="after")
    def _check_regex(self) -> "Comparison":
        if self.operator == "regex" and self.value_field is None:
            try:
                re.compile(str(self.value))
            except re.error as e:
                raise ValueError(f"Invalid regex {self.value!r}: {e}") from e
        return self

    def evaluate(self, point: EnrichedDataPoint) -> bool:
        left = resolve_field(point, self.field)
        right = resolve_field(point, self.value_field) if self.value_field else self.value
        return _compare(left, self.operator, right)


class Logical(BaseModel):
    """Conjunction or disjunction of child conditions."""

    model_config = ConfigDict(frozen=True)

    type: Literal["logical"] = "logical"
    operator: Literal["and", "or"]
    conditions: List["ConditionNode"] = Field(..., min_length=1)

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _LOGICAL_ALIASES.get(value.lower(), value)
        return value

    def evaluate(self, point: EnrichedDataPoint) -> bool:
        if self.operator == "and":
            return all(c.evaluate(point) for c in self.conditions)
        return any(c.evaluate(point) for c in self.conditions)


class Not(BaseModel):
    """Negation of a child condition."""

    model_config = ConfigDict(frozen=True)

    type: Literal["not"] = "not"
    condition: "ConditionNode"

    def evaluate(self, point: EnrichedDataPoint) -> bool:
        return not self.condition.evaluate(point)


ConditionNode = Annotated[Union[Comparison, Logical, Not], Field(discriminator="type")]

Logical.model_rebuild()
Not.model_rebuild()

_node_adapter = TypeAdapter(ConditionNode)


# ---------------------------------------------------------------------------
# Expression strings
# ---------------------------------------------------------------------------

_TOKEN_PATTERN = re.compile(
    r"""
    \s*(?:
        (?P<number>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||>|<|!|\(|\))
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
    )
    """,
    re.VERBOSE,
)

_ESCAPE = re.compile(r"\\(.)")
_WORD_OPERATORS = {"contains", "startsWith", "endsWith", "regex"}
_LITERALS = {"true": True, "false": False, "null": None, "None": None, "True": True, "False": False}

Token = Tuple[str, Any]


def tokenize(expression: str) -> List[Token]:
    """Split an expression string into (kind, value) tokens."""
    tokens: List[Token] = []
    pos = 0
    expression = expression.rstrip()
    while pos < len(expression):
        match = _TOKEN_PATTERN.match(expression, pos)
        if match is None or match.end() == pos:
            raise InvalidRuleError(
                f"Unexpected character at position {pos} in condition: {expression!r}"
            )
        pos = match.end()

        kind = match.lastgroup
        text = match.group(kind)
        if kind == "number":
            tokens.append(("literal", float(text) if any(c in text for c in ".eE") else int(text)))
        elif kind == "string":
            tokens.append(("literal", _ESCAPE.sub(r"\1", text[1:-1])))
        elif kind == "op":
            tokens.append(("op", text))
        elif text in _LITERALS:
            tokens.append(("literal", _LITERALS[text]))
        elif text in ("and", "or"):
            tokens.append(("op", _LOGICAL_ALIASES[text]))
        elif text == "not":
            tokens.append(("op", "!"))
        elif text in _WORD_OPERATORS:
            tokens.append(("op", text))
        else:
            tokens.append(("field", text))
    return tokens


class _Parser:
    """
    Recursive descent parser.

    Grammar:
        expr       := and_expr (("or" | "||") and_expr)*
        and_expr   := unary (("and" | "&&") unary)*
        unary      := ("not" | "!") unary | primary
        primary    := "(" expr ")" | comparison
        comparison := field [operator (field | literal)]
    """

    def __init__(self, tokens: List[Token], source: str):
        self.tokens = tokens
        self.source = source
        self.pos = 0

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            self._fail("unexpected end of condition")
        self.pos += 1
        return token

    def _fail(self, reason: str) -> None:
        raise InvalidRuleError(f"Invalid condition {self.source!r}: {reason}")

    def parse(self) -> BaseModel:
        if not self.tokens:
            self._fail("empty condition")
        node = self._expr()
        if self._peek() is not None:
            self._fail(f"unexpected token {self._peek()[1]!r}")
        return node

    def _expr(self) -> BaseModel:
        nodes = [self._and_expr()]
        while self._peek() in (("op", "or"), ("op", "||")):
            self.pos += 1
            nodes.append(self._and_expr())
        return nodes[0] if len(nodes) == 1 else Logical(operator="or", conditions=nodes)

    def _and_expr(self) -> BaseModel:
        nodes = [self._unary()]
        while self._peek() in (("op", "and"), ("op", "&&")):
            self.pos += 1
            nodes.append(self._unary())
        return nodes[0] if len(nodes) == 1 else Logical(operator="and", conditions=nodes)

    def _unary(self) -> BaseModel:
        if self._peek() == ("op", "!"):
            self.pos += 1
            return Not(condition=self._unary())
        return self._primary()

    def _primary(self) -> BaseModel:
        if self._peek() == ("op", "("):
            self.pos += 1
            node = self._expr()
            if self._next() != ("op", ")"):
                self._fail("missing closing parenthesis")
            return node
        return self._comparison()

    def _comparison(self) -> BaseModel:
        kind, value = self._next()
        if kind != "field":
            self._fail(f"expected a field name, got {value!r}")
        field_path = value

        token = self._peek()
        if token is None or token[0] != "op" or token[1] not in COMPARISON_OPERATORS:
            return Comparison(field=field_path, operator="truthy")
        self.pos += 1
        operator = token[1]

        kind, operand = self._next()
        if kind == "field":
            return Comparison(field=field_path, operator=operator, value_field=operand)
        if kind == "literal":
            return Comparison(field=field_path, operator=operator, value=operand)
        self._fail(f"expected a value after {operator!r}")


def parse_expression(expression: str) -> BaseModel:
    """
    Parse an expression string into a condition node.

    Raises:
        InvalidRuleError: If the expression is malformed
    """
    try:
        return _Parser(tokenize(expression), expression).parse()
    except ValidationError as e:
        raise InvalidRuleError(f"Invalid condition {expression!r}: {e}") from e


def parse_condition_tree(tree: Mapping[str, Any]) -> BaseModel:
    """
    Validate a structured condition mapping into a condition node.

    Raises:
        InvalidRuleError: If the tree is malformed
    """
    try:
        return _node_adapter.validate_python(tree)
    except ValidationError as e:
        raise InvalidRuleError(f"Invalid condition tree: {e}") from e


def compile_condition(condition: Any) -> Callable[[Any], bool]:
    """
    Turn any supported condition form into callable(context) -> bool.

    Callables are returned unchanged. Strings and mappings are compiled to
    condition nodes evaluated against context.point.
    """
    if isinstance(condition, (Comparison, Logical, Not)):
        node = condition
    elif isinstance(condition, str):
        node = parse_expression(condition)
    elif isinstance(condition, Mapping):
        node = parse_condition_tree(condition)
    elif callable(condition):
        return condition
    else:
        raise InvalidRuleError(f"Unsupported condition type: {type(condition).__name__}")

    def evaluate(context) -> bool:
        return node.evaluate(context.point)

    evaluate.node = node
    return evaluate
