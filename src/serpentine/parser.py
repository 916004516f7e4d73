"""Serpentine parser: converts a token stream into a concrete syntax tree.

Statements are parsed by recursive descent; expressions by precedence
climbing over the ladder in :data:`PREC`. Tokens are pulled lazily from the
lexer through a small lookahead buffer.
"""

from __future__ import annotations

from collections import deque
from typing import Protocol

from serpentine.ast import Node
from serpentine.builder import TreeBuilder
from serpentine.config import ScanConfig
from serpentine.errors import InvalidTargetError, ParseCancelled, UnexpectedTokenError
from serpentine.lexer import Lexer
from serpentine.tokens import Span, Token, TokenType

# Precedence ladder, low to high. Operators at or above a threshold are
# absorbed into the operand being parsed.
PREC: dict[str, int] = {
    "lambda": -2,
    "typed_parameter": -1,
    "conditional": -1,
    "parenthesized_expression": 1,
    "not": 1,
    "compare": 2,
    "or": 10,
    "and": 11,
    "bitwise_or": 12,
    "bitwise_and": 13,
    "xor": 14,
    "shift": 15,
    "plus": 16,
    "times": 17,
    "unary": 18,
    "power": 19,
    "call": 20,
}

# operator -> (precedence, right associative)
BINARY_OPERATORS: dict[str, tuple[int, bool]] = {
    "|": (PREC["bitwise_or"], False),
    "&": (PREC["bitwise_and"], False),
    "^": (PREC["xor"], False),
    "<<": (PREC["shift"], False),
    ">>": (PREC["shift"], False),
    "+": (PREC["plus"], False),
    "-": (PREC["plus"], False),
    "*": (PREC["times"], False),
    "/": (PREC["times"], False),
    "%": (PREC["times"], False),
    "//": (PREC["times"], False),
    "@": (PREC["times"], False),
    "**": (PREC["power"], True),
}

BOOLEAN_OPERATORS: dict[str, int] = {"or": PREC["or"], "and": PREC["and"]}

COMPARISON_OPERATORS = frozenset({"<", "<=", "==", "!=", ">=", ">", "<>"})

AUGMENTED_OPERATORS = frozenset(
    {"+=", "-=", "*=", "/=", "//=", "%=", "**=", ">>=", "<<=", "&=", "^=", "|=", "@="}
)

_LITERAL_KEYWORDS = {"True": "true", "False": "false", "None": "none"}

_EXPRESSION_KEYWORDS = frozenset({"not", "lambda", "await", "True", "False", "None"})
_EXPRESSION_OPERATORS = frozenset({"(", "[", "{", "-", "+", "~", "*", "..."})

# Tokens after `print` that can only begin an operand, never continue one.
_PRINT_OPERAND_TYPES = frozenset(
    {TokenType.IDENTIFIER, TokenType.INTEGER, TokenType.FLOAT, TokenType.STRING_START}
)

_ASSIGNABLE = frozenset({"identifier", "attribute", "subscript"})
_ANNOTATABLE = _ASSIGNABLE | {"parenthesized_expression"}
_PATTERN_KINDS = frozenset(
    {"tuple_pattern", "list_pattern", "pattern_list", "list_splat_pattern"}
)
_SEQUENCE_PATTERNS = {
    "tuple": "tuple_pattern",
    "list": "list_pattern",
    "expression_list": "pattern_list",
}

_LAMBDA = PREC["lambda"]
_CONDITIONAL = PREC["conditional"]
_NOT = PREC["not"]
_BITWISE_OR = PREC["bitwise_or"]
_UNARY = PREC["unary"]


class CancelFlag(Protocol):
    def is_set(self) -> bool: ...


class Parser:
    """Recursive descent parser for Serpentine source."""

    def __init__(
        self,
        source: str,
        filename: str = "<input>",
        config: ScanConfig | None = None,
        cancel: CancelFlag | None = None,
    ) -> None:
        self._lexer = Lexer(source, filename, config)
        self._source = source
        self._filename = filename
        self._cancel = cancel
        self._buffer: deque[Token] = deque()
        self._b = TreeBuilder()
        self._statements_done = 0

    def parse(self) -> Node:
        """Parse the whole source and return the ``program`` node."""
        self._b.open()
        statements = []
        try:
            while not self._at(TokenType.EOF):
                statements.append(self._parse_statement())
        except RecursionError:
            raise self._unexpected((), "too many nested levels") from None
        self._b.close("program", statement_list=statements)
        return self._b.finish()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        while len(self._buffer) <= offset:
            self._buffer.append(self._lexer.next_token())
        return self._buffer[offset]

    def _at(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _at_op(self, *ops: str, offset: int = 0) -> bool:
        tok = self._peek(offset)
        return tok.type == TokenType.OPERATOR and tok.value in ops

    def _at_kw(self, *words: str, offset: int = 0) -> bool:
        tok = self._peek(offset)
        return tok.type == TokenType.KEYWORD and tok.value in words

    def _advance(self) -> Token:
        tok = self._peek()
        if tok.type != TokenType.EOF:
            self._buffer.popleft()
            self._b.shift(tok)
        return tok

    def _expect(self, tt: TokenType, what: str) -> Token:
        if not self._at(tt):
            raise self._unexpected((what,))
        return self._advance()

    def _expect_op(self, op: str) -> Token:
        if not self._at_op(op):
            raise self._unexpected((f"'{op}'",))
        return self._advance()

    def _expect_kw(self, word: str) -> Token:
        if not self._at_kw(word):
            raise self._unexpected((f"'{word}'",))
        return self._advance()

    def _at_statement_end(self) -> bool:
        return self._at(TokenType.NEWLINE, TokenType.EOF) or self._at_op(";")

    def _can_start_expression(self) -> bool:
        tok = self._peek()
        if tok.type in _PRINT_OPERAND_TYPES:
            return True
        if tok.type == TokenType.KEYWORD:
            return tok.value in _EXPRESSION_KEYWORDS
        return tok.type == TokenType.OPERATOR and tok.value in _EXPRESSION_OPERATORS

    def _at_comprehension(self) -> bool:
        return self._at_kw("for") or (self._at_kw("async") and self._at_kw("for", offset=1))

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _unexpected(self, expected: tuple[str, ...], message: str | None = None) -> UnexpectedTokenError:
        tok = self._peek()
        if message is None:
            message = f"expected {' or '.join(expected)}, found {_describe(tok)}"
        return UnexpectedTokenError(message, tok.span, self._source, tok.raw, expected)

    def _target_error(self, node: Node, message: str) -> InvalidTargetError:
        first = next(node.tokens(), None)
        return InvalidTargetError(message, node.span, self._source, first.raw if first else "")

    def _check_cancel(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise ParseCancelled(self._statements_done)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_statement(self) -> Node:
        self._check_cancel()
        node = self._parse_statement_kind()
        self._statements_done += 1
        return node

    def _parse_statement_kind(self) -> Node:
        tok = self._peek()

        if tok.type == TokenType.INDENT:
            raise self._unexpected(("statement",), "unexpected indent")

        if tok.type == TokenType.KEYWORD:
            if tok.value == "if":
                return self._parse_if()
            if tok.value == "while":
                return self._parse_while()
            if tok.value == "for":
                return self._parse_for()
            if tok.value == "try":
                return self._parse_try()
            if tok.value == "with":
                return self._parse_with()
            if tok.value in ("def", "class"):
                return self._parse_definition()
            if tok.value == "async":
                if self._at_kw("for", offset=1):
                    return self._parse_for()
                if self._at_kw("with", offset=1):
                    return self._parse_with()
                return self._parse_definition()

        if self._at_op("@"):
            return self._parse_definition()

        return self._parse_simple_statements()

    def _parse_simple_statements(self) -> Node:
        self._b.open()
        statements = [self._parse_simple_statement()]
        while self._at_op(";"):
            self._advance()
            if self._at(TokenType.NEWLINE, TokenType.EOF):
                break
            statements.append(self._parse_simple_statement())
        if not self._at(TokenType.EOF):
            if not self._at(TokenType.NEWLINE):
                raise self._unexpected(("newline", "';'"))
            self._advance()
        return self._b.close("simple_statements", statement_list=statements)

    def _parse_block(self) -> Node:
        """Parse a suite: an indented statement sequence or one simple line."""
        self._b.open()
        if not self._at(TokenType.NEWLINE):
            statements = [self._parse_simple_statements()]
            return self._b.close("block", statement_list=statements)

        self._advance()
        if not self._at(TokenType.INDENT):
            raise self._unexpected(("indent",), "expected an indented block")
        self._advance()
        statements = []
        while not self._at(TokenType.DEDENT):
            if self._at(TokenType.EOF):
                raise self._unexpected(("dedent",))
            statements.append(self._parse_statement())
        self._advance()
        return self._b.close("block", statement_list=statements)

    def _parse_simple_statement(self) -> Node:
        tok = self._peek()

        if tok.type == TokenType.KEYWORD:
            word = tok.value
            if word in ("pass", "break", "continue"):
                return self._leaf(f"{word}_statement")
            if word == "return":
                self._b.open()
                self._advance()
                value = None if self._at_statement_end() else self._parse_expression_list()
                return self._b.close("return", return_value_optional=value)
            if word == "del":
                self._b.open()
                self._advance()
                targets = self._parse_expression_list()
                return self._b.close("delete_statement", argument=targets)
            if word == "raise":
                return self._parse_raise()
            if word in ("global", "nonlocal"):
                self._b.open()
                self._advance()
                names = [self._parse_identifier()]
                while self._at_op(","):
                    self._advance()
                    names.append(self._parse_identifier())
                return self._b.close(f"{word}_statement", identifier=names)
            if word == "assert":
                self._b.open()
                self._advance()
                condition = self._parse_expression()
                message = None
                if self._at_op(","):
                    self._advance()
                    message = self._parse_expression()
                return self._b.close("assert_statement", condition=condition, message_optional=message)
            if word == "import":
                return self._parse_import()
            if word == "from":
                return self._parse_from_import()

        if tok.type == TokenType.IDENTIFIER:
            if tok.value == "print" and self._at_print_statement():
                return self._parse_print()
            if tok.value == "exec" and self._peek(1).type == TokenType.STRING_START:
                return self._parse_exec()

        return self._parse_expression_statement()

    def _parse_raise(self) -> Node:
        self._b.open()
        self._advance()
        exception = None
        cause = None
        if not self._at_statement_end():
            exception = self._parse_expression_list()
            if self._at_kw("from"):
                self._advance()
                cause = self._parse_expression()
        return self._b.close("raise_statement", exception_optional=exception, cause_optional=cause)

    def _at_print_statement(self) -> bool:
        nxt = self._peek(1)
        if nxt.type == TokenType.OPERATOR:
            return nxt.value in (">>", "{", "~")
        if nxt.type == TokenType.KEYWORD:
            return nxt.value in _EXPRESSION_KEYWORDS
        return nxt.type in _PRINT_OPERAND_TYPES

    def _parse_print(self) -> Node:
        self._b.open()
        self._advance()  # print
        chevron = None
        arguments = []
        more = True
        if self._at_op(">>"):
            self._b.open()
            self._advance()
            target = self._parse_expression()
            chevron = self._b.close("chevron", argument=target)
            more = self._at_op(",")
            if more:
                self._advance()
        while more and not self._at_statement_end():
            arguments.append(self._parse_expression())
            if not self._at_op(","):
                break
            self._advance()
        return self._b.close("print_statement", chevron=chevron, argument=arguments)

    def _parse_exec(self) -> Node:
        self._b.open()
        self._advance()  # exec
        code = self._parse_strings()
        scope = []
        if self._at_kw("in"):
            self._advance()
            scope.append(self._parse_expression())
            if self._at_op(","):
                self._advance()
                scope.append(self._parse_expression())
        return self._b.close("exec_statement", code=code, scope_optional=scope)

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def _parse_import(self) -> Node:
        self._b.open()
        self._advance()
        names = [self._parse_aliased_name()]
        while self._at_op(","):
            self._advance()
            names.append(self._parse_aliased_name())
        return self._b.close("import_statement", name_list=names)

    def _parse_from_import(self) -> Node:
        self._b.open()
        self._advance()  # from
        if self._at_op(".", "..."):
            module = self._parse_relative_import()
            is_future = False
        else:
            module = self._parse_dotted_name()
            is_future = module.text == "__future__"

        self._expect_kw("import")
        if self._at_op("*"):
            names = self._leaf("wildcard_import")
        elif self._at_op("("):
            self._advance()
            names = [self._parse_aliased_name()]
            while self._at_op(","):
                self._advance()
                if self._at_op(")"):
                    break
                names.append(self._parse_aliased_name())
            self._expect_op(")")
        else:
            names = [self._parse_aliased_name()]
            while self._at_op(","):
                self._advance()
                names.append(self._parse_aliased_name())

        if is_future:
            return self._b.close("future_import_statement", name_list=names)
        return self._b.close("import_from_statement", module_name=module, name_list=names)

    def _parse_relative_import(self) -> Node:
        self._b.open()
        self._b.open()
        while self._at_op(".", "..."):
            self._advance()
        prefix = self._b.close("import_prefix")
        module = self._parse_dotted_name() if self._at(TokenType.IDENTIFIER) else None
        return self._b.close("relative_import", import_prefix=prefix, module_name=module)

    def _parse_dotted_name(self) -> Node:
        self._b.open()
        parts = [self._parse_identifier()]
        while self._at_op("."):
            self._advance()
            parts.append(self._parse_identifier())
        return self._b.close("dotted_name", identifier=parts)

    def _parse_aliased_name(self) -> Node:
        name = self._parse_dotted_name()
        if not self._at_kw("as"):
            return name
        self._b.open_before(name)
        self._advance()
        alias = self._parse_identifier()
        return self._b.close("aliased_import", name=name, alias=alias)

    # ------------------------------------------------------------------
    # Expression statements and assignment
    # ------------------------------------------------------------------

    def _parse_expression_statement(self) -> Node:
        self._b.open()
        if self._at_kw("yield"):
            value = self._parse_yield()
        else:
            value = self._parse_expression_list()

        if self._at_op("=", ":") or self._at_op(*AUGMENTED_OPERATORS):
            return self._parse_assignment_rest(value)
        return self._b.close("expression_statement", value=value)

    def _parse_assignment_rest(self, left: Node) -> Node:
        """Finish an assignment whose target is already in the open frame.

        The target was parsed as an expression; it is re-interpreted as a
        pattern now that the following token shows it is a target.
        """
        if self._at_op(":"):
            if left.kind == "lambda":
                raise self._target_error(left, "lambda parameters cannot be annotated")
            if left.kind not in _ANNOTATABLE:
                raise self._target_error(left, f"illegal target for annotation: {_kind_name(left)}")
            self._advance()
            annotation = self._parse_type()
            right = None
            if self._at_op("="):
                self._advance()
                right = self._parse_assignment_value()
            return self._b.close("assignment", left=left, type_optional=annotation, right=right)

        if self._at_op("="):
            left = self._to_pattern(left)
            self._advance()
            right = self._parse_assignment_value()
            return self._b.close("assignment", left=left, type_optional=None, right=right)

        if left.kind not in _ASSIGNABLE:
            raise self._target_error(
                left, f"illegal expression for augmented assignment: {_kind_name(left)}"
            )
        operator = self._advance()
        if self._at_kw("yield"):
            right = self._parse_yield()
        else:
            right = self._parse_expression_list()
        return self._b.close("augmented_assignment", left=left, operator=operator, right=right)

    def _parse_assignment_value(self) -> Node:
        self._b.open()
        if self._at_kw("yield"):
            value = self._parse_yield()
        else:
            value = self._parse_expression_list()
            if self._at_op("="):
                return self._parse_assignment_rest(value)
        self._b.dissolve()
        return value

    def _to_pattern(self, node: Node) -> Node:
        converted = self._pattern_of(node)
        if converted is not node:
            self._b.replace(node, converted)
        return converted

    def _pattern_of(self, node: Node) -> Node:
        kind = node.kind
        if kind in _ASSIGNABLE or kind in _PATTERN_KINDS:
            return node

        if kind == "list_splat":
            inner = node["splat"]
            assert isinstance(inner, Node)
            pattern = self._pattern_of(inner)
            return self._b.rebuild(node, "list_splat_pattern", {id(inner): pattern}, splat=pattern)

        if kind in _SEQUENCE_PATTERNS:
            elements = [e for e in node["element_list"] if isinstance(e, Node)]
            patterns = [self._pattern_of(e) for e in elements]
            swaps = {id(e): p for e, p in zip(elements, patterns) if e is not p}
            return self._b.rebuild(node, _SEQUENCE_PATTERNS[kind], swaps, pattern_list=patterns)

        if kind == "parenthesized_expression":
            inner = node["expression"]
            assert isinstance(inner, Node)
            pattern = self._pattern_of(inner)
            return self._b.rebuild(node, "tuple_pattern", {id(inner): pattern}, pattern_list=[pattern])

        raise self._target_error(node, f"cannot assign to {_kind_name(node)}")

    # ------------------------------------------------------------------
    # Patterns (committed target grammar)
    # ------------------------------------------------------------------

    def _parse_left_hand_side(self) -> Node:
        """Parse a for-loop target: one pattern or a comma-separated list."""
        self._b.open()
        first = self._parse_pattern()
        if not self._at_op(","):
            self._b.dissolve()
            return first
        patterns = [first]
        while self._at_op(","):
            self._advance()
            if self._at_kw("in") or self._at_op("=", ")", "]"):
                break
            patterns.append(self._parse_pattern())
        return self._b.close("pattern_list", pattern_list=patterns)

    def _parse_pattern(self) -> Node:
        if self._at_op("*"):
            self._b.open()
            self._advance()
            inner = self._parse_pattern()
            return self._b.close("list_splat_pattern", splat=inner)

        if self._at_op("(", "["):
            closer = ")" if self._at_op("(") else "]"
            self._b.open()
            self._advance()
            patterns = []
            while not self._at_op(closer):
                patterns.append(self._parse_pattern())
                if not self._at_op(","):
                    break
                self._advance()
            self._expect_op(closer)
            kind = "tuple_pattern" if closer == ")" else "list_pattern"
            return self._b.close(kind, pattern_list=patterns)

        node = self._parse_primary()
        if node.kind not in _ASSIGNABLE:
            raise self._target_error(node, f"cannot assign to {_kind_name(node)}")
        return node

    # ------------------------------------------------------------------
    # Compound statements
    # ------------------------------------------------------------------

    def _parse_if(self) -> Node:
        self._b.open()
        self._b.open()
        self._advance()  # if
        condition = self._parse_expression()
        self._expect_op(":")
        consequence = self._parse_block()
        if_clause = self._b.close("if_clause", condition=condition, consequence=consequence)

        elifs = []
        while self._at_kw("elif"):
            self._b.open()
            self._advance()
            condition = self._parse_expression()
            self._expect_op(":")
            consequence = self._parse_block()
            elifs.append(
                self._b.close("else_if_clause", condition=condition, consequence=consequence)
            )

        else_clause = self._parse_else_clause() if self._at_kw("else") else None
        return self._b.close(
            "if",
            if_clause=if_clause,
            else_if_clause_list=elifs,
            else_clause_optional=else_clause,
        )

    def _parse_else_clause(self) -> Node:
        self._b.open()
        self._advance()  # else
        self._expect_op(":")
        body = self._parse_block()
        return self._b.close("else_clause", body=body)

    def _parse_while(self) -> Node:
        self._b.open()
        self._b.open()
        self._advance()  # while
        condition = self._parse_expression()
        self._expect_op(":")
        body = self._parse_block()
        clause = self._b.close("while_clause", condition=condition, body=body)
        else_clause = self._parse_else_clause() if self._at_kw("else") else None
        return self._b.close("while", while_clause=clause, else_clause_optional=else_clause)

    def _parse_for(self) -> Node:
        self._b.open()
        self._b.open()
        modifiers = self._parse_async_modifier()
        self._expect_kw("for")
        target = self._parse_left_hand_side()
        self._expect_kw("in")
        collection = self._parse_expression_list()
        self._expect_op(":")
        body = self._parse_block()
        clause = self._b.close(
            "for_each_clause",
            modifier_list=modifiers,
            block_iterator=target,
            block_collection=collection,
            body=body,
        )
        else_clause = self._parse_else_clause() if self._at_kw("else") else None
        return self._b.close("for", for_each_clause=clause, else_clause_optional=else_clause)

    def _parse_async_modifier(self) -> list[Node]:
        if self._at_kw("async"):
            return [self._leaf("async_modifier")]
        return []

    def _parse_try(self) -> Node:
        """Parse try with either the finally-only or the handler branch."""
        self._b.open()
        self._b.open()
        self._advance()  # try
        self._expect_op(":")
        body = self._parse_block()
        try_clause = self._b.close("try_clause", body=body)

        self._b.open()
        if self._at_kw("finally"):
            finally_clause = self._parse_finally_clause()
            branch = self._b.close(
                "try_only_finally",
                catch_list=None,
                else_clause_optional=None,
                finally_clause_optional=finally_clause,
            )
        elif self._at_kw("except"):
            catches = []
            while self._at_kw("except"):
                catches.append(self._parse_catch())
            else_clause = self._parse_else_clause() if self._at_kw("else") else None
            finally_clause = self._parse_finally_clause() if self._at_kw("finally") else None
            branch = self._b.close(
                "try_optional_finally",
                catch_list=catches,
                else_clause_optional=else_clause,
                finally_clause_optional=finally_clause,
            )
        else:
            raise self._unexpected(("'except'", "'finally'"))

        return self._b.close("try", try_clause=try_clause, branch=branch)

    def _parse_catch(self) -> Node:
        self._b.open()
        self._advance()  # except
        parameter = None
        if not self._at_op(":"):
            self._b.open()
            value = self._parse_expression()
            alias = None
            if self._at_kw("as") or self._at_op(","):
                self._advance()
                alias = self._parse_pattern()
            parameter = self._b.close("catch_parameter", value=value, alias_optional=alias)
        self._expect_op(":")
        body = self._parse_block()
        return self._b.close("catch", catch_parameter_optional=parameter, body=body)

    def _parse_finally_clause(self) -> Node:
        self._b.open()
        self._advance()  # finally
        self._expect_op(":")
        body = self._parse_block()
        return self._b.close("finally_clause", body=body)

    def _parse_with(self) -> Node:
        self._b.open()
        modifiers = self._parse_async_modifier()
        self._expect_kw("with")
        if self._at_op("("):
            items = self._parse_parenthesized_with_items()
        else:
            items = [self._parse_with_item()]
        while self._at_op(","):
            self._advance()
            items.append(self._parse_with_item())
        self._expect_op(":")
        body = self._parse_block()
        return self._b.close("with", modifier_list=modifiers, with_item_list=items, body=body)

    def _parse_with_item(self, value: Node | None = None) -> Node:
        if value is None:
            self._b.open()
            value = self._parse_expression()
        else:
            self._b.open_before(value)
        alias = None
        if self._at_kw("as"):
            self._advance()
            alias = self._parse_pattern()
        return self._b.close("with_item", value=value, with_item_alias_optional=alias)

    def _parse_parenthesized_with_items(self) -> list[Node]:
        """Parse ``with (`` either as a bracketed item list or as an expression.

        The bracketed contents are read once as with-items. A following ``:``
        confirms the item-list reading unless an item is starred; otherwise
        the items must be plain expressions, and the group becomes the start
        of the first item's expression. A generator or ``yield`` inside the
        brackets is only ever an expression.
        """
        self._b.open()
        self._advance()  # (
        if self._at_kw("yield"):
            value = self._parse_yield()
            self._expect_op(")")
            group = self._b.close("parenthesized_expression", expression=value)
            return [self._parse_with_item(self._parse_expression(lhs=group))]

        items = []
        trailing_comma = False
        while not self._at_op(")"):
            value = self._parse_star_or_expression()
            if not items and value.kind != "list_splat" and self._at_comprehension():
                clauses = self._parse_comprehension_clauses()
                self._expect_op(")")
                group = self._b.close("generator", body=value, clause_list=clauses)
                return [self._parse_with_item(self._parse_expression(lhs=group))]
            items.append(self._parse_with_item(value))
            trailing_comma = False
            if not self._at_op(","):
                break
            self._advance()
            trailing_comma = True
        self._expect_op(")")

        splats = [item["value"] for item in items if item["value"].kind == "list_splat"]
        if self._at_op(":") and items and not splats:
            self._b.dissolve()
            return items

        for item in items:
            if item["with_item_alias_optional"]:
                if splats:
                    splat = splats[0]
                    raise UnexpectedTokenError(
                        "starred expression cannot be used as a with item",
                        splat.span,
                        self._source,
                        "*",
                        ("expression",),
                    )
                raise self._unexpected(("':'",))
        values = []
        for item in items:
            value = item["value"]
            assert isinstance(value, Node)
            self._b.unwrap(item)
            values.append(value)

        if len(values) == 1 and not trailing_comma:
            if values[0].kind == "list_splat":
                group = self._b.close("parenthesized_list_splat", splat=values[0])
            else:
                group = self._b.close("parenthesized_expression", expression=values[0])
        else:
            group = self._b.close("tuple", element_list=values)

        first = self._parse_expression(lhs=group)
        return [self._parse_with_item(first)]

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def _parse_definition(self) -> Node:
        """Parse decorators, then a function or class definition."""
        self._b.open()
        decorators = []
        while self._at_op("@"):
            decorators.append(self._parse_decorator())

        if self._at_kw("class"):
            return self._parse_class_rest(decorators)

        modifiers = self._parse_async_modifier()
        if not self._at_kw("def"):
            raise self._unexpected(("'def'",) if modifiers else ("'def'", "'class'"))
        self._advance()
        name = self._parse_identifier()
        parameters = self._parse_parameters()
        return_type = None
        if self._at_op("->"):
            self._advance()
            return_type = self._parse_type()
        self._expect_op(":")
        body = self._parse_block()
        return self._b.close(
            "function_definition",
            decorator_list=decorators,
            modifier_list=modifiers,
            name=name,
            parameters=parameters,
            return_type_optional=return_type,
            body=body,
        )

    def _parse_class_rest(self, decorators: list[Node]) -> Node:
        self._advance()  # class
        name = self._parse_identifier()
        extends = None
        if self._at_op("("):
            self._b.open()
            self._advance()
            arguments = self._parse_arguments(")")
            self._expect_op(")")
            extends = self._b.close("extends_list", argument_list=arguments)
        self._expect_op(":")
        body = self._parse_block()
        return self._b.close(
            "class_definition",
            decorator_list=decorators,
            name=name,
            extends_list_optional=extends,
            body=body,
        )

    def _parse_decorator(self) -> Node:
        self._b.open()
        self._advance()  # @
        expression = self._parse_expression()
        self._expect(TokenType.NEWLINE, "newline")
        return self._b.close("decorator", decorator_expression=expression)

    def _parse_type(self) -> Node:
        self._b.open()
        expression = self._parse_expression()
        return self._b.close("type", expression=expression)

    def _parse_parameters(self) -> Node:
        self._b.open()
        self._expect_op("(")
        parameters = self._parse_parameter_items(")", typed=True)
        self._expect_op(")")
        return self._b.close("parameters", parameter_list=parameters)

    def _parse_parameter_items(self, closer: str, *, typed: bool) -> list[Node]:
        parameters = []
        while not self._at_op(closer):
            parameters.append(self._parse_parameter(typed))
            if not self._at_op(","):
                break
            self._advance()
        return parameters

    def _parse_parameter(self, typed: bool) -> Node:
        """Parse one parameter.

        Lambda parameters (``typed=False``) never take an annotation, so the
        ``:`` after them always ends the parameter list.
        """
        if self._at_op("/"):
            return self._leaf("positional_separator")
        if self._at_op("*") and self._at_op(",", ")", ":", offset=1):
            return self._leaf("keyword_separator")

        if self._at_op("*", "**"):
            kind = "list_splat_pattern" if self._at_op("*") else "dictionary_splat_pattern"
            self._b.open()
            self._advance()
            target = self._b.close(kind, splat=self._parse_identifier())
        elif self._at_op("("):
            target = self._parse_tuple_parameter()
        else:
            target = self._parse_identifier()

        self._b.open_before(target)
        annotation = None
        if typed and self._at_op(":"):
            self._advance()
            annotation = self._parse_type()
        if self._at_op("="):
            self._advance()
            default = self._parse_expression()
            return self._b.close(
                "typed_default_parameter",
                name=target,
                type_optional=annotation,
                parameter_value_optional=default,
            )
        kind = "plain_parameter" if annotation is None else "typed_parameter"
        return self._b.close(
            kind, identifier=target, type_optional=annotation, parameter_value_optional=None
        )

    def _parse_tuple_parameter(self) -> Node:
        self._b.open()
        self._advance()  # (
        patterns = []
        while not self._at_op(")"):
            if self._at_op("("):
                patterns.append(self._parse_tuple_parameter())
            else:
                patterns.append(self._parse_identifier())
            if not self._at_op(","):
                break
            self._advance()
        self._expect_op(")")
        return self._b.close("tuple_pattern", pattern_list=patterns)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _parse_expression_list(self) -> Node:
        """Parse one expression, or several separated by commas."""
        self._b.open()
        first = self._parse_star_or_expression()
        if not self._at_op(","):
            self._b.dissolve()
            return first
        elements = [first]
        while self._at_op(","):
            self._advance()
            if not self._can_start_expression():
                break
            elements.append(self._parse_star_or_expression())
        return self._b.close("expression_list", element_list=elements)

    def _parse_star_or_expression(self) -> Node:
        if self._at_op("*"):
            self._b.open()
            self._advance()
            value = self._parse_expression()
            return self._b.close("list_splat", splat=value)
        return self._parse_expression()

    def _parse_expression(
        self,
        min_prec: int = _LAMBDA,
        *,
        restricted: bool = False,
        lhs: Node | None = None,
    ) -> Node:
        """Parse an expression whose loosest operator binds at ``min_prec`` or tighter.

        ``restricted`` forbids a trailing conditional, for the iterable and
        conditions of comprehension clauses. ``lhs`` continues from an
        already-parsed primary.
        """
        if lhs is not None:
            left = self._parse_comparison(lhs)
        elif self._at_kw("lambda"):
            return self._parse_lambda(restricted)
        elif self._at_kw("not"):
            self._b.open()
            self._advance()
            argument = self._parse_expression(_NOT + 1, restricted=restricted)
            left = self._b.close("not_operator", argument=argument)
        elif (
            min_prec <= _LAMBDA
            and self._at(TokenType.IDENTIFIER)
            and self._at_op(":=", offset=1)
        ):
            self._b.open()
            name = self._parse_identifier()
            self._advance()
            value = self._parse_expression()
            return self._b.close("named_expression", name=name, value=value)
        else:
            left = self._parse_comparison()

        while True:
            tok = self._peek()
            if tok.type != TokenType.KEYWORD:
                break

            prec = BOOLEAN_OPERATORS.get(tok.value)
            if prec is not None and prec >= min_prec:
                self._b.open_before(left)
                operator = self._advance()
                right = self._parse_expression(prec + 1, restricted=restricted)
                left = self._b.close("boolean_operator", left=left, operator=operator, right=right)
                continue

            if tok.value == "if" and not restricted and _CONDITIONAL >= min_prec:
                self._b.open_before(left)
                self._advance()
                condition = self._parse_expression(_CONDITIONAL + 1)
                self._expect_kw("else")
                alternative = self._parse_expression(_LAMBDA, restricted=restricted)
                left = self._b.close(
                    "conditional_expression",
                    consequence=left,
                    condition=condition,
                    alternative=alternative,
                )
                continue

            break
        return left

    def _parse_lambda(self, restricted: bool) -> Node:
        self._b.open()
        self._advance()  # lambda
        parameters = None
        if not self._at_op(":"):
            self._b.open()
            items = self._parse_parameter_items(":", typed=False)
            parameters = self._b.close("lambda_parameters", parameter_list=items)
        self._expect_op(":")
        body = self._parse_expression(restricted=restricted)
        return self._b.close("lambda", parameter_list=parameters, return_value=body)

    def _at_comparison_operator(self) -> bool:
        tok = self._peek()
        if tok.type == TokenType.OPERATOR:
            return tok.value in COMPARISON_OPERATORS
        if tok.type == TokenType.KEYWORD:
            if tok.value in ("in", "is"):
                return True
            return tok.value == "not" and self._at_kw("in", offset=1)
        return False

    def _parse_comparison(self, lhs: Node | None = None) -> Node:
        """Parse a chain ``a < b <= c`` into one n-ary comparison node."""
        left = self._parse_binary(_BITWISE_OR, lhs)
        if not self._at_comparison_operator():
            return left

        self._b.open_before(left)
        operands = [left]
        operators = []
        while self._at_comparison_operator():
            first = self._advance()
            second = None
            if first.value == "not" or (first.value == "is" and self._at_kw("not")):
                second = self._advance()
            operators.append(_merge_operator(first, second))
            operands.append(self._parse_binary(_BITWISE_OR))
        return self._b.close("comparison_operator", operand_list=operands, operator_list=operators)

    def _parse_binary(self, min_prec: int, lhs: Node | None = None) -> Node:
        left = self._parse_unary() if lhs is None else self._parse_postfix(lhs)
        while True:
            tok = self._peek()
            if tok.type != TokenType.OPERATOR or tok.value not in BINARY_OPERATORS:
                break
            prec, right_assoc = BINARY_OPERATORS[tok.value]
            if prec < min_prec:
                break
            self._b.open_before(left)
            operator = self._advance()
            right = self._parse_binary(prec if right_assoc else prec + 1)
            left = self._b.close("binary_operator", left=left, operator=operator, right=right)
        return left

    def _parse_unary(self) -> Node:
        if self._at_op("+", "-", "~"):
            self._b.open()
            operator = self._advance()
            argument = self._parse_binary(_UNARY)
            return self._b.close("unary_operator", operator=operator, argument=argument)
        if self._at_kw("await"):
            self._b.open()
            self._advance()
            argument = self._parse_binary(_UNARY)
            return self._b.close("await", argument=argument)
        return self._parse_primary()

    def _parse_primary(self) -> Node:
        return self._parse_postfix(self._parse_atom())

    def _parse_postfix(self, node: Node) -> Node:
        while True:
            if self._at_op("."):
                self._b.open_before(node)
                self._advance()
                attribute = self._parse_identifier()
                node = self._b.close("attribute", object=node, attribute=attribute)
            elif self._at_op("("):
                self._b.open_before(node)
                arguments = self._parse_call_arguments()
                node = self._b.close("call", function_=node, arguments=arguments)
            elif self._at_op("["):
                self._b.open_before(node)
                self._advance()
                subscripts = [self._parse_subscript_item()]
                while self._at_op(","):
                    self._advance()
                    if self._at_op("]"):
                        break
                    subscripts.append(self._parse_subscript_item())
                self._expect_op("]")
                node = self._b.close("subscript", value=node, subscript=subscripts)
            else:
                return node

    def _parse_subscript_item(self) -> Node:
        if self._at_op(":"):
            self._b.open()
            return self._parse_slice_rest(None)
        start = self._parse_star_or_expression()
        if not self._at_op(":"):
            return start
        self._b.open_before(start)
        return self._parse_slice_rest(start)

    def _parse_slice_rest(self, start: Node | None) -> Node:
        self._advance()  # :
        stop = None
        step = None
        if not self._at_op(":", ",", "]"):
            stop = self._parse_expression()
        if self._at_op(":"):
            self._advance()
            if not self._at_op(",", "]"):
                step = self._parse_expression()
        return self._b.close("slice", start_optional=start, stop_optional=stop, step_optional=step)

    def _parse_call_arguments(self) -> Node:
        self._b.open()
        self._advance()  # (
        if self._at_op(")"):
            self._advance()
            return self._b.close("argument_list_block", argument_list=None)

        first = self._parse_argument()
        if self._at_comprehension():
            clauses = self._parse_comprehension_clauses()
            self._expect_op(")")
            return self._b.close("generator", body=first, clause_list=clauses)

        arguments = [first]
        while self._at_op(","):
            self._advance()
            if self._at_op(")"):
                break
            arguments.append(self._parse_argument())
        self._expect_op(")")
        return self._b.close("argument_list_block", argument_list=arguments)

    def _parse_arguments(self, closer: str) -> list[Node]:
        arguments = []
        while not self._at_op(closer):
            arguments.append(self._parse_argument())
            if not self._at_op(","):
                break
            self._advance()
        return arguments

    def _parse_argument(self) -> Node:
        if self._at_op("*", "**"):
            kind = "list_splat" if self._at_op("*") else "dictionary_splat"
            self._b.open()
            self._advance()
            value = self._parse_expression()
            return self._b.close(kind, splat=value)
        if self._at(TokenType.IDENTIFIER) and self._at_op("=", offset=1):
            self._b.open()
            name = self._parse_identifier()
            self._advance()
            value = self._parse_expression()
            return self._b.close("keyword_argument", name=name, value=value)
        return self._parse_expression()

    # ------------------------------------------------------------------
    # Atoms
    # ------------------------------------------------------------------

    def _leaf(self, kind: str) -> Node:
        self._b.open()
        self._advance()
        return self._b.close(kind)

    def _parse_identifier(self) -> Node:
        if not self._at(TokenType.IDENTIFIER):
            raise self._unexpected(("identifier",))
        return self._leaf("identifier")

    def _parse_atom(self) -> Node:
        tok = self._peek()

        if tok.type == TokenType.IDENTIFIER:
            return self._leaf("identifier")
        if tok.type == TokenType.INTEGER:
            return self._leaf("integer")
        if tok.type == TokenType.FLOAT:
            return self._leaf("float")
        if tok.type == TokenType.STRING_START:
            return self._parse_strings()
        if tok.type == TokenType.KEYWORD and tok.value in _LITERAL_KEYWORDS:
            return self._leaf(_LITERAL_KEYWORDS[tok.value])

        if tok.type == TokenType.OPERATOR:
            if tok.value == "(":
                return self._parse_parenthesized()
            if tok.value == "[":
                return self._parse_list()
            if tok.value == "{":
                return self._parse_dictionary_or_set()
            if tok.value == "...":
                return self._leaf("ellipsis")

        raise self._unexpected(("expression",))

    def _parse_parenthesized(self) -> Node:
        self._b.open()
        self._advance()  # (
        if self._at_op(")"):
            self._advance()
            return self._b.close("tuple", element_list=None)

        if self._at_kw("yield"):
            value = self._parse_yield()
            self._expect_op(")")
            return self._b.close("parenthesized_expression", expression=value)

        first = self._parse_star_or_expression()
        if self._at_comprehension() and first.kind != "list_splat":
            clauses = self._parse_comprehension_clauses()
            self._expect_op(")")
            return self._b.close("generator", body=first, clause_list=clauses)

        if self._at_op(")"):
            self._advance()
            if first.kind == "list_splat":
                return self._b.close("parenthesized_list_splat", splat=first)
            return self._b.close("parenthesized_expression", expression=first)

        elements = [first]
        while self._at_op(","):
            self._advance()
            if self._at_op(")"):
                break
            elements.append(self._parse_star_or_expression())
        self._expect_op(")")
        return self._b.close("tuple", element_list=elements)

    def _parse_list(self) -> Node:
        self._b.open()
        self._advance()  # [
        if self._at_op("]"):
            self._advance()
            return self._b.close("list", element_list=None)

        first = self._parse_star_or_expression()
        if self._at_comprehension():
            clauses = self._parse_comprehension_clauses()
            self._expect_op("]")
            return self._b.close("list_comprehension", body=first, clause_list=clauses)

        elements = [first]
        while self._at_op(","):
            self._advance()
            if self._at_op("]"):
                break
            elements.append(self._parse_star_or_expression())
        self._expect_op("]")
        return self._b.close("list", element_list=elements)

    def _parse_dictionary_or_set(self) -> Node:
        self._b.open()
        self._advance()  # {
        if self._at_op("}"):
            self._advance()
            return self._b.close("dictionary", key_value_pair_list=None)

        first = self._parse_dictionary_or_set_item(None)
        is_dictionary = first.kind in ("key_value_pair", "dictionary_splat")

        if self._at_comprehension():
            clauses = self._parse_comprehension_clauses()
            self._expect_op("}")
            kind = "dictionary_comprehension" if is_dictionary else "set_comprehension"
            return self._b.close(kind, body=first, clause_list=clauses)

        items = [first]
        while self._at_op(","):
            self._advance()
            if self._at_op("}"):
                break
            items.append(self._parse_dictionary_or_set_item(is_dictionary))
        self._expect_op("}")
        if is_dictionary:
            return self._b.close("dictionary", key_value_pair_list=items)
        return self._b.close("set", element_list=items)

    def _parse_dictionary_or_set_item(self, is_dictionary: bool | None) -> Node:
        if self._at_op("**") and is_dictionary is not False:
            self._b.open()
            self._advance()
            value = self._parse_binary(_BITWISE_OR)
            return self._b.close("dictionary_splat", splat=value)
        if self._at_op("*") and is_dictionary is not True:
            return self._parse_star_or_expression()

        key = self._parse_expression()
        if is_dictionary is False or (is_dictionary is None and not self._at_op(":")):
            return key
        self._b.open_before(key)
        self._expect_op(":")
        value = self._parse_expression()
        return self._b.close("key_value_pair", key_value_pair_key=key, key_value_pair_value=value)

    def _parse_comprehension_clauses(self) -> list[Node]:
        clauses = [self._parse_for_in_clause()]
        while True:
            if self._at_comprehension():
                clauses.append(self._parse_for_in_clause())
            elif self._at_kw("if"):
                self._b.open()
                self._advance()
                condition = self._parse_expression(_CONDITIONAL + 1, restricted=True)
                clauses.append(self._b.close("if_clause_comprehension", condition=condition))
            else:
                return clauses

    def _parse_for_in_clause(self) -> Node:
        self._b.open()
        modifiers = self._parse_async_modifier()
        self._expect_kw("for")
        left = self._parse_left_hand_side()
        self._expect_kw("in")
        right = self._parse_expression(_CONDITIONAL + 1, restricted=True)
        return self._b.close("for_in_clause", modifier_list=modifiers, left=left, right=right)

    def _parse_yield(self) -> Node:
        self._b.open()
        self._advance()  # yield
        from_token = None
        argument = None
        if self._at_kw("from"):
            from_token = self._advance()
            argument = self._parse_expression()
        elif self._can_start_expression():
            argument = self._parse_expression_list()
        return self._b.close("yield", from_optional=from_token, argument_optional=argument)

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def _parse_strings(self) -> Node:
        """Parse one string, or adjacent strings as a concatenated_string."""
        first = self._parse_string()
        if not self._at(TokenType.STRING_START):
            return first
        self._b.open_before(first)
        strings = [first]
        while self._at(TokenType.STRING_START):
            strings.append(self._parse_string())
        return self._b.close("concatenated_string", string_list=strings)

    def _parse_string(self) -> Node:
        self._b.open()
        self._advance()  # string start
        parts = []
        while not self._at(TokenType.STRING_END):
            tok = self._peek()
            if tok.type == TokenType.STRING_CONTENT:
                parts.append(self._leaf("string_content"))
            elif tok.type == TokenType.ESCAPE_SEQUENCE:
                parts.append(self._leaf("escape_sequence"))
            elif tok.type == TokenType.INTERPOLATION_OPEN:
                parts.append(self._parse_interpolation("interpolation"))
            else:
                raise self._unexpected(("end of string",))
        self._advance()
        return self._b.close("string", string_text=parts)

    def _parse_interpolation(self, kind: str) -> Node:
        self._b.open()
        self._advance()  # {
        if self._at_kw("yield"):
            expression = self._parse_yield()
        else:
            expression = self._parse_expression_list()

        conversion = None
        if self._at(TokenType.CONVERSION):
            conversion = self._leaf("type_conversion")

        spec = None
        if self._at(TokenType.FORMAT_SPEC):
            self._b.open()
            self._advance()
            parts = []
            while not self._at(TokenType.INTERPOLATION_CLOSE):
                if self._at(TokenType.STRING_CONTENT):
                    parts.append(self._leaf("string_content"))
                elif self._at(TokenType.INTERPOLATION_OPEN):
                    parts.append(self._parse_interpolation("format_expression"))
                else:
                    raise self._unexpected(("'}'",))
            spec = self._b.close("format_specifier", part_list=parts)

        self._expect(TokenType.INTERPOLATION_CLOSE, "'}'")
        return self._b.close(
            kind,
            expression=expression,
            type_conversion_optional=conversion,
            format_specifier_optional=spec,
        )


def _describe(tok: Token) -> str:
    if tok.type == TokenType.EOF:
        return "end of input"
    if tok.type == TokenType.NEWLINE:
        return "newline"
    if tok.type == TokenType.INDENT:
        return "indent"
    if tok.type == TokenType.DEDENT:
        return "dedent"
    if tok.type == TokenType.STRING_START:
        return "string"
    return f"'{tok.raw}'"


def _kind_name(node: Node) -> str:
    return node.kind.replace("_", " ")


def _merge_operator(first: Token, second: Token | None) -> Token:
    """Fold ``not in`` and ``is not`` into a single operator token."""
    if second is None:
        return first
    return Token(
        TokenType.KEYWORD,
        f"{first.value} {second.value}",
        f"{first.raw} {second.raw}",
        Span(first.span.start, second.span.end),
    )


def parse(
    source: str,
    filename: str = "<input>",
    *,
    config: ScanConfig | None = None,
    cancel: CancelFlag | None = None,
) -> Node:
    """Convenience function: parse source text and return the program node."""
    return Parser(source, filename, config, cancel).parse()
