"""Structured identifiers for form fields.

A flat form payload carries relation membership under pseudo-field names.
``FieldId`` is the structured form of such a name; the string encodings only
exist at the wire boundary:

- plain column: ``title``
- many-to-many: ``___<relation>___<column>`` (e.g. ``___tags___tag_id``)
- one-to-many: ``___o2m___<relation>___<column>`` (e.g. ``___o2m___comments___id``)

Example:
    >>> FieldId.parse("___tags___tag_id")
    FieldId(kind=<FieldKind.M2M: 'm2m'>, column_name='tag_id', relation_name='tags')
    >>> FieldId.o2m("comments", "id").encode()
    '___o2m___comments___id'
"""

from dataclasses import dataclass
from enum import Enum

_SEP = "___"
_O2M_PREFIX = f"{_SEP}o2m{_SEP}"


class FieldKind(str, Enum):
    PLAIN = "plain"
    M2M = "m2m"
    O2M = "o2m"


@dataclass(frozen=True)
class FieldId:
    """A form field: a plain column or one edge of a named relation."""

    kind: FieldKind
    column_name: str
    relation_name: str | None = None

    @classmethod
    def plain(cls, column_name: str) -> "FieldId":
        return cls(FieldKind.PLAIN, column_name)

    @classmethod
    def m2m(cls, relation_name: str, column_name: str) -> "FieldId":
        return cls(FieldKind.M2M, column_name, relation_name)

    @classmethod
    def o2m(cls, relation_name: str, column_name: str) -> "FieldId":
        return cls(FieldKind.O2M, column_name, relation_name)

    @classmethod
    def parse(cls, name: str) -> "FieldId":
        """Decode a wire field name.

        Raises:
            ValueError: If a relation encoding is missing its relation or
                column part.
        """
        if name.startswith(_O2M_PREFIX):
            relation, column = cls._split(name[len(_O2M_PREFIX):], name)
            return cls.o2m(relation, column)
        if name.startswith(_SEP):
            relation, column = cls._split(name[len(_SEP):], name)
            return cls.m2m(relation, column)
        return cls.plain(name)

    @staticmethod
    def _split(rest: str, name: str) -> tuple[str, str]:
        relation, sep, column = rest.partition(_SEP)
        if not sep or not relation or not column:
            raise ValueError(f"Malformed relation field name: {name!r}")
        return relation, column

    def encode(self) -> str:
        """Wire field name."""
        if self.kind == FieldKind.M2M:
            return f"{_SEP}{self.relation_name}{_SEP}{self.column_name}"
        if self.kind == FieldKind.O2M:
            return f"{_O2M_PREFIX}{self.relation_name}{_SEP}{self.column_name}"
        return self.column_name

    @property
    def is_relation(self) -> bool:
        return self.kind != FieldKind.PLAIN

    def __str__(self) -> str:
        return self.encode()
