# jsonstore/criteria.py
"""
Criteria trees and their compilation to SQL WHERE fragments.

Caller criteria are plain Python values:

    {"where": "name", "=": "Mario"}                      single comparison
    {"and": [{"where": "age", ">": 10},
             {"where": "age", "<": 20}]}                 conjunction
    {"or": [...]}                                        disjunction
    {"where": "age", ">": 10, "or": [...]}               comparison with nested group
    5 / "abc"                                            shorthand for id = value

parse_criteria() turns them into the variant tree (Leaf / And / Or) and
compile_criteria() renders a tree as a parenthesized SQL fragment. Values
are either appended to a parameter list (and replaced by a placeholder) or
inlined as sanitized literals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Optional, Sequence, Union

from jsonstore.exceptions import InvalidArgumentError

OPERATORS = ("<", "<=", ">", ">=", "=", "!=")

SCALAR_TYPES = (str, int, float, bool)


def sanitize(value: Any) -> str:
    """Escape a value for use inside a single-quoted SQL string literal."""
    return str(value).replace("'", "''")


def quote_identifier(name: Any) -> str:
    """Quote a table, column or index name."""
    return '"' + str(name).replace('"', '""') + '"'


@dataclass(frozen=True)
class Leaf:
    """Comparison of one key against a value, with an optional nested group."""

    key: str
    operator: str
    value: Any
    children: Optional[Group] = None


@dataclass(frozen=True)
class And:
    """All items must match."""

    items: tuple[Criteria, ...]
    keyword: ClassVar[str] = "AND"


@dataclass(frozen=True)
class Or:
    """At least one item must match."""

    items: tuple[Criteria, ...]
    keyword: ClassVar[str] = "OR"


Group = Union[And, Or]
Criteria = Union[Leaf, And, Or]


# =============================================================================
# Parsing
# =============================================================================


def _drop(raw: Any, strict: bool) -> None:
    if strict:
        raise InvalidArgumentError(f"Unrecognized criteria: {raw!r}")
    return None


def _parse_leaf(raw: dict, strict: bool) -> Optional[Leaf]:
    key = raw.get("where")
    if not key:
        return _drop(raw, strict)

    if not isinstance(key, str):
        raise InvalidArgumentError(f"Criteria key must be a string, got {key!r}")

    operators = [op for op in OPERATORS if op in raw]
    if len(operators) != 1:
        raise InvalidArgumentError(
            f"Criteria on {key!r} must declare exactly one operator of "
            f"{', '.join(OPERATORS)}; found {operators or 'none'}"
        )

    operator = operators[0]
    value = raw[operator]
    if value is not None and not isinstance(value, SCALAR_TYPES):
        raise InvalidArgumentError(
            f"Criteria value for {key!r} must be a scalar or None, got {type(value).__name__}"
        )

    children: Optional[Group] = None
    if "and" in raw:
        children = _parse_group(raw["and"], And, strict)
    elif "or" in raw:
        children = _parse_group(raw["or"], Or, strict)

    return Leaf(key=key, operator=operator, value=value, children=children)


def _parse_group(raw_items: Any, kind: type, strict: bool) -> Optional[Group]:
    if not isinstance(raw_items, (list, tuple)):
        raw_items = [raw_items]

    items = [parse_criteria(item, strict) for item in raw_items]
    items = [item for item in items if item is not None]
    if not items:
        return _drop(raw_items, strict)

    return kind(tuple(items))


def parse_criteria(raw: Any, strict: bool = False) -> Optional[Criteria]:
    """
    Convert caller criteria into a criteria tree.

    Returns None when the input describes no filter. Unrecognized shapes
    are dropped unless ``strict`` is set, in which case they raise
    InvalidArgumentError.

    Raises:
        InvalidArgumentError: For comparisons without exactly one operator,
            non-scalar values, or conflicting and/or groups.
    """
    if raw is None:
        return None

    if isinstance(raw, (Leaf, And, Or)):
        return raw

    # Bare scalars address the `id` key
    if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
        return Leaf(key="id", operator="=", value=raw)

    if isinstance(raw, (list, tuple)):
        return _parse_group(raw, And, strict)

    if not isinstance(raw, dict):
        return _drop(raw, strict)

    if "where" in raw:
        return _parse_leaf(raw, strict)

    if "and" in raw and "or" in raw:
        raise InvalidArgumentError("Criteria group cannot declare both 'and' and 'or'")

    if "and" in raw:
        return _parse_group(raw["and"], And, strict)

    if "or" in raw:
        return _parse_group(raw["or"], Or, strict)

    return _drop(raw, strict)


def normalize_criteria(raw: Any, strict: bool = False) -> Optional[list[Criteria]]:
    """
    Normalize caller criteria into a list of independent filters.

    A list is treated as several filters that must all match. Returns None
    when nothing is left to filter on (match every row).
    """
    if raw is None:
        return None

    raw_items = raw if isinstance(raw, (list, tuple)) else [raw]
    criteria = [parse_criteria(item, strict) for item in raw_items]
    criteria = [c for c in criteria if c is not None]
    return criteria or None


# =============================================================================
# Compilation
# =============================================================================


def render_literal(value: Any, sanitize_fn: Callable[[Any], str] = sanitize) -> str:
    """Render a non-null value as an inline SQL literal."""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + sanitize_fn(value) + "'"


def _compile_leaf(
    leaf: Leaf,
    sanitize_fn: Callable[[Any], str],
    params: Optional[list],
    placeholder: str,
) -> str:
    operator = leaf.operator

    if leaf.value is None:
        # NULL never compares equal, and is never bound
        operator = "IS NOT" if leaf.operator == "!=" else "IS"
        value = "NULL"
    elif params is not None:
        params.append(leaf.value)
        value = placeholder
    else:
        value = render_literal(leaf.value, sanitize_fn)

    if leaf.children is not None:
        value += compile_criteria(leaf.children, sanitize_fn, params, placeholder, sub=True)

    return f"({quote_identifier(leaf.key)} {operator} {value})"


def compile_criteria(
    criteria: Any,
    sanitize_fn: Callable[[Any], str] = sanitize,
    params: Optional[list] = None,
    placeholder: str = "?",
    sub: bool = False,
) -> str:
    """
    Compile a criteria tree into a parenthesized SQL fragment.

    Args:
        criteria: Criteria tree, or raw caller criteria.
        sanitize_fn: Escapes inline string literals.
        params: If given, values are appended here in left-to-right order
            and ``placeholder`` is emitted in their place.
        placeholder: Positional parameter marker of the target dialect.
        sub: Prefix the fragment with its own AND/OR keyword, for groups
            nested under a comparison.

    Returns:
        SQL fragment, or "" when the criteria describe no filter.
    """
    tree = parse_criteria(criteria)
    if tree is None:
        return ""

    if isinstance(tree, Leaf):
        tree = And((tree,))

    parts = []
    for item in tree.items:
        if isinstance(item, Leaf):
            parts.append(_compile_leaf(item, sanitize_fn, params, placeholder))
        else:
            parts.append(compile_criteria(item, sanitize_fn, params, placeholder))

    result = "(" + f" {tree.keyword} ".join(parts) + ")"
    if sub:
        result = f" {tree.keyword} {result}"
    return result


def expand_criteria(
    criteria: Optional[Sequence[Any]],
    sanitize_fn: Callable[[Any], str] = sanitize,
    params: Optional[list] = None,
    placeholder: str = "?",
) -> str:
    """
    Expand a list of filters into a WHERE clause.

    Filters are joined with AND. An empty or filterless list yields "" so
    the statement matches every row.
    """
    if not criteria:
        return ""

    fragments = [
        compile_criteria(c, sanitize_fn, params, placeholder) for c in criteria
    ]
    fragments = [f for f in fragments if f]
    if not fragments:
        return ""

    return " WHERE " + " AND ".join(fragments)
