"""Relation resolution and synchronization.

Usage:
    from db_autoadmin.relations import FieldId, resolve_many_to_many, sync_relations
"""

from db_autoadmin.relations.fields import FieldId, FieldKind
from db_autoadmin.relations.resolver import (
    ManyToManyRelation,
    OneToManyRelation,
    find_many_to_many,
    find_one_to_many,
    resolve_many_to_many,
    resolve_one_to_many,
)
from db_autoadmin.relations.synchronizer import (
    sync_many_to_many,
    sync_one_to_many,
    sync_relations,
)

__all__ = [
    "FieldId",
    "FieldKind",
    "ManyToManyRelation",
    "OneToManyRelation",
    "find_many_to_many",
    "find_one_to_many",
    "resolve_many_to_many",
    "resolve_one_to_many",
    "sync_many_to_many",
    "sync_one_to_many",
    "sync_relations",
]
