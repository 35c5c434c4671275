import uuid
from typing import Optional


def generate_id() -> str:
    """
    Return a new declaration id.
    """
    return str(uuid.uuid4())


def get_sort_key_ignoring_underscore(identifier: Optional[str]) -> str:
    """
    Sort key that places `_Foo` right after `Foo` instead of grouping
    underscored names together. Names differing only by case order
    uppercase first: `Foo` < `foo` < `_foo`.
    """
    if not identifier:
        return ""
    if identifier[0] == "_":
        without_underscore = identifier[1:]
        return f"{without_underscore.lower()}*{without_underscore}!_"
    return f"{identifier.lower()}*{identifier}"
