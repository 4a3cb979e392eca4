from __future__ import annotations

import base64
import hashlib
import hmac
import math
import secrets
import time
from typing import Callable, Optional

# Length of one time window, in seconds.
WINDOW_SECONDS = 30

# Random bytes used for a salt when the caller does not provide one.
DEFAULT_SALT_BYTES = 9

Clock = Callable[[], float]


def generate_secret(min_size_bytes: int) -> str:
    """Generate a random URL-safe token of at least `min_size_bytes` bytes.

    The byte count is rounded up to a multiple of 3 so the base64 rendering
    has no padding.

    Security notes:
    - Uses the `secrets` CSPRNG.

    """

    if int(min_size_bytes) < 1:
        raise ValueError("min_size_bytes must be >= 1")
    size = int(min_size_bytes)
    if size % 3:
        size += 3 - (size % 3)
    return base64.urlsafe_b64encode(secrets.token_bytes(size)).decode("ascii").rstrip("=")


def salt_text(text: str, salt: Optional[str] = None) -> str:
    """Obfuscate `text` with a salt.

    Returns `salt$digest` where digest is the lowercase hex SHA-512 of
    `text + salt`. A random salt is generated when none is given.
    """

    if salt is None:
        salt = generate_secret(DEFAULT_SALT_BYTES)
    digest = hashlib.sha512(f"{text}{salt}".encode("utf-8")).hexdigest()
    return f"{salt}${digest}"


def current_window(clock: Clock = time.time) -> Optional[int]:
    """Return the number of whole time windows since the Unix epoch.

    Returns None if the clock cannot be read, is not finite, or reports a
    time before the epoch.
    """

    try:
        now = float(clock())
    except (OSError, OverflowError, ValueError):
        return None
    if not math.isfinite(now) or now < 0:
        return None
    return int(now // WINDOW_SECONDS)


def salt_timed(text: str, *, clock: Clock = time.time) -> Optional[str]:
    """Obfuscate `text` with a salt derived from the current time window.

    This is what a sender presents as its credential.
    """

    window = current_window(clock)
    if window is None:
        return None
    return salt_text(text, format(window, "x"))


def verify_timed(presented: str, secret: str, *, clock: Clock = time.time) -> bool:
    """Verify a token produced by `salt_timed`.

    The salt must be the hex form of the current window or one of its two
    neighbours, which tolerates one window of clock skew either way.

    Security notes:
    - A token stays valid for up to three windows and can be replayed in that
      span. Nothing tracks consumed tokens.
    - Full-token comparison is constant-time.
    - Malformed input returns False, never raises.

    """

    if not isinstance(presented, str) or not isinstance(secret, str):
        return False

    salt = presented.split("$", 1)[0]
    window = current_window(clock)
    if window is None:
        return False

    for candidate in (window, window - 1, window + 1):
        if candidate < 0:
            continue
        candidate_hex = format(candidate, "x")
        if candidate_hex == salt:
            expected = salt_text(secret, candidate_hex)
            return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
    return False
