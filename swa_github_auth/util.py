"""Miscellanea
"""
import importlib
from collections.abc import Callable, Mapping
from typing import Any


def get_callable(
    callable_str: str, base_package: str | None = None
) -> Callable:
    """Get a callable function / class constructor from a string of the form
    `package.subpackage.module:callable`

    >>> type(get_callable('os.path:basename')).__name__
    'function'

    >>> type(get_callable('basename', 'os.path')).__name__
    'function'
    """
    if ":" in callable_str:
        module_name, callable_name = callable_str.split(":", 1)
        module = importlib.import_module(module_name, base_package)
    elif base_package:
        module = importlib.import_module(base_package)
        callable_name = callable_str
    else:
        raise ValueError(
            "Expecting base_package to be set if only class name is provided"
        )

    return getattr(module, callable_name)  # type: ignore


def positive_int(value: Any, fallback: int | None = None) -> int | None:
    """Parse a positive integer, returning the fallback for anything else

    >>> positive_int("7000")
    7000

    >>> positive_int("-1", 5000)
    5000

    >>> positive_int("soon") is None
    True
    """
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def pick_stripped(env: Mapping[str, Any], name: str) -> str | None:
    """Get a trimmed, non-empty string value from a mapping

    >>> pick_stripped({"A": " owner "}, "A")
    'owner'

    >>> pick_stripped({"A": "  "}, "A") is None
    True
    """
    value = env.get(name)
    if not isinstance(value, str):
        return None
    return value.strip() or None
