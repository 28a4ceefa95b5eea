"""Label helpers shared by list, filter and form generation."""

import re

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_title_case(value: str) -> str:
    """Turn a column or relation key into a display label.

    Handles both snake_case and camelCase keys.

    Examples:
        >>> to_title_case("created_at")
        'Created At'
        >>> to_title_case("isActive")
        'Is Active'
    """
    words = _CAMEL_BOUNDARY.sub(" ", value).replace("_", " ").split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


def strip_id_suffix(label: str) -> str:
    """Drop a trailing " Id" word from a relation label ("Author Id" -> "Author")."""
    return re.sub(r"\s+Id\b", "", label).strip()


def relation_header(accessor_key: str) -> str:
    """Header for a joined column accessor (``author_id__name`` -> ``Author Name``)."""
    key = re.sub(r"(_id|Id)__", "__", accessor_key)
    return to_title_case(key.replace("__", " "))
