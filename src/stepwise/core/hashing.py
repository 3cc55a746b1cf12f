"""
Deterministic hashing utilities.

Stable, reproducible digests used to derive identity keys, most notably the
JobKey that identifies a job instance by its name and identifying
parameters.

Examples:
    >>> compute_hash("a", "b") != compute_hash("b", "a")
    True
    >>> len(compute_hash("test", length=16))
    16

Tags:
    hashing, identity, job-key
"""

import hashlib
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Joins string representations of all values with a ``|`` delimiter and
    returns the leading ``length`` hex characters of the SHA-256 digest.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]
