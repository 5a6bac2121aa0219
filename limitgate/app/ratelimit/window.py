"""Fixed-window key derivation."""

from typing import Tuple


def derive_window_key(resource_key: str, now_ms: int, window_ms: int) -> str:
    """Map a resource and a timestamp to its fixed-window bucket key.

    Two timestamps share a key iff ``now_ms // window_ms`` is equal for both.

    Args:
        resource_key: Identifier of the rate-limited resource
        now_ms: Wall-clock time in milliseconds since the epoch
        window_ms: Window length in milliseconds (validated by RateLimitRule)

    Returns:
        Window key of the form ``<resource_key>:<bucket>``
    """
    return f"{resource_key}:{int(now_ms) // window_ms}"


def window_bounds(now_ms: int, window_ms: int) -> Tuple[int, int]:
    """Return ``(window_start_ms, reset_at_ms)`` for the bucket holding ``now_ms``."""
    start = (int(now_ms) // window_ms) * window_ms
    return start, start + window_ms
