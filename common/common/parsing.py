# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import base64
import json
import re
from typing import Any, Callable

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])|(?<=[A-Z])([A-Z])(?=[a-z])")


def object_to_url_safe(data: dict | str | list) -> str:
    """Convert the object to an url safe base64 encoded JSON string without padding."""
    return remove_padding(base64.urlsafe_b64encode(json.dumps(data).encode()).decode())


def object_from_url_safe(data: str) -> dict | str | list:
    """Load an JSON object from an url safe base64 encoded string. Adds padding as needed."""
    return json.loads(base64.urlsafe_b64decode(add_padding(data)))


def bytes_to_url_safe(data: bytes) -> str:
    """Encode bytes as base64url without padding (RFC 7515 section 2)"""
    return remove_padding(base64.urlsafe_b64encode(data).decode())


def bytes_from_url_safe(data: str) -> bytes:
    return base64.urlsafe_b64decode(add_padding(data))


def remove_padding(base64_encoded: str) -> str:
    """Remove padding form b64 encoded string"""
    return base64_encoded.rstrip('=')


def add_padding(base64_encoded: str) -> str:
    """Add padding (=) for b64 encoded string, so it can be decoded"""
    return f'{base64_encoded}==='


def camel_to_snake(name: str) -> str:
    """
    Converts a camelCase (or PascalCase) identifier to snake_case.
    Identifiers already in snake_case are returned unchanged.

    >>> camel_to_snake("clientIdScheme")
    'client_id_scheme'
    """
    return _CAMEL_BOUNDARY.sub(lambda m: "_" + (m.group(1) or m.group(2)), name).lower()


def snake_to_camel(name: str) -> str:
    """
    >>> snake_to_camel("redirect_uri_returned_by_response_uri")
    'redirectUriReturnedByResponseUri'
    """
    if name.startswith("_"):
        return name
    head, *tail = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in tail)


def convert_keys(obj: Any, converter: Callable[[str], str]) -> Any:
    """
    Recursively renames every dictionary key of obj with converter.
    Lists are walked, every other value is returned as is.
    This is the single mapping between the internal (camel or snake) names and the wire names.
    """
    if isinstance(obj, dict):
        return {converter(key) if isinstance(key, str) else key: convert_keys(value, converter) for key, value in obj.items()}
    if isinstance(obj, list):
        return [convert_keys(item, converter) for item in obj]
    return obj


def interpret_as_bool(boolify: str | bool | int) -> bool:
    """
    Converts an input to an boolean according to commonly used patterns.
    """
    if isinstance(boolify, bool):
        return boolify
    if isinstance(boolify, int):
        return boolify > 0
    elif isinstance(boolify, str):
        return re.match(r"^(y|yes|1|true)$", boolify, re.IGNORECASE | re.MULTILINE) is not None
    raise ValueError(f"Can't boolify a {boolify}.")
