"""Hashing utilities."""

import hashlib


def generate_item_id(url: str) -> str:
    """Generate a short stable ID for a canonical URL."""
    return hashlib.sha256(url.encode()).hexdigest()[:16]
