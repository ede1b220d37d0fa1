"""Query keys: (resource, *parameters) tuples identifying one server view.

    make_query_key("classes", page=2, search="ipa")
    -> ("classes", ("filters", (("page", ("int", 2)), ("search", "ipa"))))

Strings are kept as they are; every other value is tagged with its kind, so
True, 1 and 1.0 (equal in Python) give different keys, and a dict, a list of
pairs and a set never collapse into the same tuple. Keyword filters sit in
one trailing ("filters", ...) element sorted by name, apart from positional
parameters. Structurally equal parameters always give the same hashable key.
"""

from typing import Any, Iterable, Tuple, Union

QueryKey = Tuple[Any, ...]

FILTERS_MARKER = "filters"


def _normalize(value: Any) -> Any:
    # bool before int: True is an int
    if isinstance(value, str):
        return value
    if value is None:
        return ("none",)
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, int):
        return ("int", value)
    if isinstance(value, float):
        return ("float", value)
    if isinstance(value, dict):
        items = ((_normalize(k), _normalize(v)) for k, v in value.items())
        return ("dict", tuple(sorted(items, key=repr)))
    if isinstance(value, (list, tuple)):
        return ("list", tuple(_normalize(v) for v in value))
    if isinstance(value, (set, frozenset)):
        return ("set", tuple(sorted((_normalize(v) for v in value), key=repr)))
    raise TypeError(
        f"query key parameters must be primitive or containers of primitives, "
        f"got {type(value).__name__}"
    )


def make_query_key(resource: str, *params: Any, **filters: Any) -> QueryKey:
    if not isinstance(resource, str) or not resource:
        raise ValueError("query key needs a non-empty resource name")

    key = (resource,) + tuple(_normalize(p) for p in params)
    if filters:
        named = tuple((name, _normalize(filters[name])) for name in sorted(filters))
        key += ((FILTERS_MARKER, named),)
    return key


def as_key(key_or_prefix: Union[str, Iterable[Any]]) -> QueryKey:
    """Accept "classes", ["classes", 1] or an existing tuple key."""
    if isinstance(key_or_prefix, str):
        return (key_or_prefix,)
    return tuple(key_or_prefix)


def matches_key(key: QueryKey, prefix: Union[str, Iterable[Any]], exact: bool = False) -> bool:
    """Prefix match used by invalidate / cancel (`exact` requires equality)."""
    prefix = as_key(prefix)
    if exact:
        return key == prefix
    return key[: len(prefix)] == prefix
