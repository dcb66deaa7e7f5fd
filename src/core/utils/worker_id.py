"""Processor ID generation using coolnames for memorable identifiers."""

from coolname import generate_slug


def generate_worker_id(prefix: str = "") -> str:
    """Generate a unique, memorable processor ID.

    Args:
        prefix: Optional prefix (e.g., "changefeed")

    Returns:
        ID in the format "prefix-word1-word2-word3" or "word1-word2-word3"

    Examples:
        >>> generate_worker_id("changefeed")
        'changefeed-swift-blue-falcon'
    """
    coolname_id = generate_slug(3)

    if prefix:
        return f"{prefix}-{coolname_id}"

    return coolname_id
