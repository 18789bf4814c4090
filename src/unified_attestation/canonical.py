# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

"""
Request canonicalization and hashing.

The canonical form of a RequestContext is::

    key1=value1&key2=value2&...

with fields sorted by key (Unicode code point order), keys and values percent-encoded
(RFC 3986 unreserved characters kept as-is, everything else UTF-8 encoded), booleans
rendered as ``true``/``false`` and integers in base 10. The digest is the lowercase hex
SHA-256 of the UTF-8 bytes of that string.
"""

import hashlib
from urllib.parse import quote

from unified_attestation.exceptions import FatalHashError
from unified_attestation.schemas import FieldValue, RequestContext

DIGEST_ALGORITHM = "sha256"
DIGEST_HEX_LENGTH = 64

FIELD_SEPARATOR = "&"
KEY_VALUE_SEPARATOR = "="


def _render_value(value: FieldValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _encode(text: str) -> str:
    return quote(text, safe="")


def canonicalize(context: RequestContext) -> str:
    """
    Build the canonical request string for a context.

    Args:
        context (RequestContext): The fields to attest.

    Returns:
        str: The canonical request, e.g. ``action=login&sessionId=123456&ts=1700000000``.
    """
    return FIELD_SEPARATOR.join(
        f"{_encode(key)}{KEY_VALUE_SEPARATOR}{_encode(_render_value(context.fields[key]))}"
        for key in sorted(context.fields)
    )


def digest(canonical: str) -> str:
    """
    Compute the SHA-256 hex digest of a canonical request.

    Raises:
        FatalHashError: If the SHA-256 primitive is unavailable in this runtime.
    """
    try:
        hasher = hashlib.new(DIGEST_ALGORITHM)
    except ValueError as e:
        raise FatalHashError(f"Hash primitive '{DIGEST_ALGORITHM}' unavailable: {e}") from e
    hasher.update(canonical.encode("utf-8"))
    return hasher.hexdigest()
