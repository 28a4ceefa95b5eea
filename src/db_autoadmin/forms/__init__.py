"""Form specification models.

Generation lives in ``db_autoadmin.forms.spec`` and relation choices in
``db_autoadmin.forms.choices``.
"""

from db_autoadmin.forms.models import (
    FieldOverride,
    FieldSpec,
    FieldType,
    FileConfig,
    FormSpec,
    Option,
    RelationConfig,
)

__all__ = [
    "FieldOverride",
    "FieldSpec",
    "FieldType",
    "FileConfig",
    "FormSpec",
    "Option",
    "RelationConfig",
]
