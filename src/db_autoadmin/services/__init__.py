"""Service functions called by an outer transport layer (HTTP, CLI)."""

from db_autoadmin.services.forms import (
    get_create_form_spec,
    get_many_to_many_choices,
    get_one_to_many_choices,
    get_relation_choices,
    get_update_form_spec,
)
from db_autoadmin.services.records import (
    bulk_delete,
    create_record,
    delete_record,
    get_record,
    list_records,
    run_bulk_action,
    update_record,
)

__all__ = [
    "bulk_delete",
    "create_record",
    "delete_record",
    "get_create_form_spec",
    "get_many_to_many_choices",
    "get_one_to_many_choices",
    "get_record",
    "get_relation_choices",
    "get_update_form_spec",
    "list_records",
    "run_bulk_action",
    "update_record",
]
