# Copyright (c) 2024 Bryan Briney
# Distributed under the terms of the MIT License.
# SPDX-License-Identifier: MIT

from typing import Optional


def parse_dict_from_string(
    ctx=None, param=None, value: Optional[str] = None
) -> Optional[dict]:
    """
    Parses a string of comma-separated ``key=value`` pairs into a ``dict``.

    Values are converted to ``int``, ``float`` or ``bool`` when possible and are
    otherwise left as strings. The signature follows the click callback convention
    so the same parser works for option callbacks and for plain strings.

    Parameters
    ----------
    ctx : optional
        Ignored.

    param : optional
        Ignored.

    value : str, optional
        String to parse, formatted as ``"key1=val1,key2=val2"``.

    Returns
    -------
    dict or None
        ``None`` if `value` is ``None`` or empty.

    """
    if not value:
        return None
    parsed = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ValueError(
                f"Invalid key/value pair: '{item}'. Format must be 'key1=val1,key2=val2'"
            )
        key, val = item.split("=", 1)
        parsed[key.strip()] = _convert_value(val.strip())
    return parsed


def _convert_value(value: str):
    if value.lower() in ["true", "false"]:
        return value.lower() == "true"
    if value.lower() == "none":
        return None
    for _type in (int, float):
        try:
            return _type(value)
        except ValueError:
            continue
    return value
