"""Bottom-up tree assembly with always-present fields."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from serpentine.ast import Empty, FieldValue, Node
from serpentine.tokens import Position, Span, Token

# Every node kind and the fields it always carries, in order.
FIELDS: dict[str, tuple[str, ...]] = {
    # Module and suites
    "program": ("statement_list",),
    "simple_statements": ("statement_list",),
    "block": ("statement_list",),
    # Imports
    "import_statement": ("name_list",),
    "future_import_statement": ("name_list",),
    "import_from_statement": ("module_name", "name_list"),
    "relative_import": ("import_prefix", "module_name"),
    "import_prefix": (),
    "dotted_name": ("identifier",),
    "aliased_import": ("name", "alias"),
    "wildcard_import": (),
    # Simple statements
    "print_statement": ("chevron", "argument"),
    "chevron": ("argument",),
    "assert_statement": ("condition", "message_optional"),
    "expression_statement": ("value",),
    "assignment": ("left", "type_optional", "right"),
    "augmented_assignment": ("left", "operator", "right"),
    "named_expression": ("name", "value"),
    "return": ("return_value_optional",),
    "delete_statement": ("argument",),
    "raise_statement": ("exception_optional", "cause_optional"),
    "pass_statement": (),
    "break_statement": (),
    "continue_statement": (),
    "global_statement": ("identifier",),
    "nonlocal_statement": ("identifier",),
    "exec_statement": ("code", "scope_optional"),
    # Compound statements
    "if": ("if_clause", "else_if_clause_list", "else_clause_optional"),
    "if_clause": ("condition", "consequence"),
    "else_if_clause": ("condition", "consequence"),
    "else_clause": ("body",),
    "for": ("for_each_clause", "else_clause_optional"),
    "for_each_clause": ("modifier_list", "block_iterator", "block_collection", "body"),
    "while": ("while_clause", "else_clause_optional"),
    "while_clause": ("condition", "body"),
    "try": ("try_clause", "branch"),
    "try_clause": ("body",),
    "try_only_finally": ("catch_list", "else_clause_optional", "finally_clause_optional"),
    "try_optional_finally": ("catch_list", "else_clause_optional", "finally_clause_optional"),
    "catch": ("catch_parameter_optional", "body"),
    "catch_parameter": ("value", "alias_optional"),
    "finally_clause": ("body",),
    "with": ("modifier_list", "with_item_list", "body"),
    "with_item": ("value", "with_item_alias_optional"),
    # Definitions
    "function_definition": (
        "decorator_list",
        "modifier_list",
        "name",
        "parameters",
        "return_type_optional",
        "body",
    ),
    "parameters": ("parameter_list",),
    "lambda_parameters": ("parameter_list",),
    "plain_parameter": ("identifier", "type_optional", "parameter_value_optional"),
    "typed_parameter": ("identifier", "type_optional", "parameter_value_optional"),
    "typed_default_parameter": ("name", "type_optional", "parameter_value_optional"),
    "keyword_separator": (),
    "positional_separator": (),
    "type": ("expression",),
    "decorator": ("decorator_expression",),
    "async_modifier": (),
    "class_definition": ("decorator_list", "name", "extends_list_optional", "body"),
    "extends_list": ("argument_list",),
    # Arguments and splats
    "argument_list_block": ("argument_list",),
    "keyword_argument": ("name", "value"),
    "list_splat": ("splat",),
    "dictionary_splat": ("splat",),
    "parenthesized_list_splat": ("splat",),
    # Patterns
    "list_splat_pattern": ("splat",),
    "dictionary_splat_pattern": ("splat",),
    "tuple_pattern": ("pattern_list",),
    "list_pattern": ("pattern_list",),
    "pattern_list": ("pattern_list",),
    # Operators
    "expression_list": ("element_list",),
    "comparison_operator": ("operand_list", "operator_list"),
    "not_operator": ("argument",),
    "boolean_operator": ("left", "operator", "right"),
    "binary_operator": ("left", "operator", "right"),
    "unary_operator": ("operator", "argument"),
    "await": ("argument",),
    "lambda": ("parameter_list", "return_value"),
    "conditional_expression": ("consequence", "condition", "alternative"),
    # Primaries
    "attribute": ("object", "attribute"),
    "subscript": ("value", "subscript"),
    "slice": ("start_optional", "stop_optional", "step_optional"),
    "call": ("function_", "arguments"),
    "list": ("element_list",),
    "set": ("element_list",),
    "tuple": ("element_list",),
    "dictionary": ("key_value_pair_list",),
    "key_value_pair": ("key_value_pair_key", "key_value_pair_value"),
    "list_comprehension": ("body", "clause_list"),
    "set_comprehension": ("body", "clause_list"),
    "dictionary_comprehension": ("body", "clause_list"),
    "generator": ("body", "clause_list"),
    "for_in_clause": ("modifier_list", "left", "right"),
    "if_clause_comprehension": ("condition",),
    "parenthesized_expression": ("expression",),
    "yield": ("from_optional", "argument_optional"),
    # Strings
    "string": ("string_text",),
    "concatenated_string": ("string_list",),
    "string_content": (),
    "escape_sequence": (),
    "interpolation": ("expression", "type_conversion_optional", "format_specifier_optional"),
    "type_conversion": (),
    "format_specifier": ("part_list",),
    "format_expression": ("expression", "type_conversion_optional", "format_specifier_optional"),
    # Leaves
    "identifier": (),
    "integer": (),
    "float": (),
    "true": (),
    "false": (),
    "none": (),
    "ellipsis": (),
}


class TreeBuilder:
    """Collects parser actions into immutable nodes.

    The builder keeps a stack of open frames. Every consumed token is
    shifted into the innermost frame; closing a frame turns its contents into
    a node and appends that node to the enclosing frame.
    """

    def __init__(self) -> None:
        self._frames: list[list[Node | Token]] = [[]]
        self._last_end = Position(1, 1, 0)

    @property
    def depth(self) -> int:
        return len(self._frames) - 1

    def open(self) -> None:
        """Start collecting children for a new node."""
        self._frames.append([])

    def open_before(self, child: Node) -> None:
        """Start a new node whose first child is the node just closed."""
        frame = self._frames[-1]
        assert frame and frame[-1] is child, "open_before() needs the most recent child"
        frame.pop()
        self._frames.append([child])

    def shift(self, token: Token) -> None:
        self._frames[-1].append(token)
        self._last_end = token.span.end

    def close(self, kind: str, **fields: Any) -> Node:
        """Finish the innermost frame as a node of the given kind."""
        children = tuple(self._frames.pop())
        node = self._make(kind, children, fields)
        self._frames[-1].append(node)
        return node

    def dissolve(self) -> None:
        """Drop the innermost frame, handing its children to the enclosing one."""
        children = self._frames.pop()
        self._frames[-1].extend(children)

    def replace(self, old: Node, new: Node) -> None:
        """Swap a child of the innermost frame for a re-interpreted node."""
        frame = self._frames[-1]
        for i, child in enumerate(frame):
            if child is old:
                frame[i] = new
                return
        raise AssertionError(f"{old.kind} node is not in the current frame")

    def unwrap(self, node: Node) -> None:
        """Splice a node's children into the innermost frame in its place."""
        frame = self._frames[-1]
        for i, child in enumerate(frame):
            if child is node:
                frame[i : i + 1] = node.children
                return
        raise AssertionError(f"{node.kind} node is not in the current frame")

    def rebuild(
        self,
        node: Node,
        kind: str,
        swaps: Mapping[int, Node] | None = None,
        **fields: Any,
    ) -> Node:
        """Return a copy of node under a new kind, with some children swapped.

        ``swaps`` maps ``id(old_child)`` to its replacement.
        """
        swaps = swaps or {}
        children = tuple(swaps.get(id(child), child) for child in node.children)
        return self._make(kind, children, fields)

    def finish(self) -> Node:
        assert len(self._frames) == 1, f"{len(self._frames) - 1} frame(s) left open"
        (root,) = self._frames[0]
        assert isinstance(root, Node)
        return root

    def _make(self, kind: str, children: tuple[Node | Token, ...], fields: dict[str, Any]) -> Node:
        schema = FIELDS.get(kind)
        if schema is None:
            raise TypeError(f"unknown node kind {kind!r}")
        unknown = set(fields) - set(schema)
        if unknown:
            raise TypeError(f"{kind} has no field(s) {', '.join(sorted(unknown))}")
        missing = [name for name in schema if name not in fields]
        if missing:
            raise TypeError(f"{kind} is missing field(s) {', '.join(missing)}")

        if children:
            span = Span(children[0].span.start, children[-1].span.end)
        else:
            span = Span(self._last_end, self._last_end)

        values = tuple((name, _field_value(name, fields[name], span)) for name in schema)
        return Node(kind, values, children, span)


def _field_value(name: str, value: Any, span: Span) -> FieldValue:
    if value is None:
        return Empty(name, Span(span.end, span.end))
    if isinstance(value, (list, tuple)):
        if not value:
            return Empty(name, Span(span.end, span.end))
        return tuple(value)
    return value
