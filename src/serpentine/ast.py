"""Concrete syntax tree nodes."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Union

from serpentine.tokens import Span, Token


@dataclass(frozen=True, slots=True)
class Empty:
    """Placeholder for an optional field with no content.

    Behaves like an empty sequence so list-valued fields can be iterated
    without checking, while still naming the field it stands in for.
    """

    field: str
    span: Span

    def __bool__(self) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __iter__(self) -> Iterator[Node | Token]:
        return iter(())


FieldValue = Union["Node", Token, Empty, tuple[Union["Node", Token], ...]]


@dataclass(frozen=True, slots=True)
class Node:
    """A tree node: kind tag, named fields, and every child in source order.

    ``fields`` always holds every field declared for the kind (see
    :data:`serpentine.builder.FIELDS`); ``children`` additionally includes
    punctuation and keyword tokens that no field names.
    """

    kind: str
    fields: tuple[tuple[str, FieldValue], ...]
    children: tuple[Node | Token, ...]
    span: Span

    def __getitem__(self, name: str) -> FieldValue:
        for field_name, value in self.fields:
            if field_name == name:
                return value
        raise KeyError(f"{self.kind} has no field {name!r}")

    def get(self, name: str, default: FieldValue | None = None) -> FieldValue | None:
        for field_name, value in self.fields:
            if field_name == name:
                return value
        return default

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    @property
    def text(self) -> str:
        """Source text of the node's tokens, joined without separators."""
        return "".join(tok.raw for tok in self.tokens())

    def tokens(self) -> Iterator[Token]:
        """Yield the leaf tokens under this node in source order."""
        for child in self.children:
            if isinstance(child, Token):
                yield child
            else:
                yield from child.tokens()

    def walk(self) -> Iterator[Node]:
        """Yield this node and all descendant nodes, pre-order."""
        yield self
        for child in self.children:
            if isinstance(child, Node):
                yield from child.walk()

    def find(self, kind: str) -> Node | None:
        """Return the first node of the given kind, pre-order, or None."""
        for node in self.walk():
            if node.kind == kind:
                return node
        return None
