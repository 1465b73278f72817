"""
One-way pseudonymization of task names.
"""

import hashlib


def hash_name(value) -> str | None:
    """
    Hash a string with SHA-256.

    Args:
        value: The value to hash

    Returns:
        64-character hex digest, or None if value is not a non-empty string
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        return hashlib.sha256(value.encode("utf-8")).hexdigest()
    except UnicodeEncodeError:
        # Lone surrogates cannot be encoded; the caller keeps the original name.
        return None
