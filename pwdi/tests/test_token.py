from __future__ import annotations

import hashlib
import re

import pytest

from pwdi.core.token import (
    WINDOW_SECONDS,
    current_window,
    generate_secret,
    salt_text,
    salt_timed,
    verify_timed,
)

_URLSAFE = re.compile(r"^[A-Za-z0-9_-]+$")

# Start of window 0x1234.
T0 = WINDOW_SECONDS * 0x1234


def at(seconds: float):
    return lambda: seconds


def test_generate_secret_rounds_up_to_whole_base64_blocks():
    assert len(generate_secret(21)) == 28
    assert len(generate_secret(3)) == 4
    # 1 and 2 bytes round up to 3 bytes -> 4 chars
    assert len(generate_secret(1)) == 4
    assert len(generate_secret(2)) == 4
    assert len(generate_secret(22)) == 32


def test_generate_secret_is_urlsafe_unpadded_and_random():
    values = {generate_secret(21) for _ in range(20)}
    assert len(values) == 20
    for v in values:
        assert _URLSAFE.match(v)
        assert "=" not in v


def test_generate_secret_rejects_empty():
    with pytest.raises(ValueError):
        generate_secret(0)
    with pytest.raises(ValueError):
        generate_secret(-3)


def test_salt_text_with_given_salt_is_deterministic():
    expected = "abc$" + hashlib.sha512(b"secretabc").hexdigest()
    assert salt_text("secret", "abc") == expected
    assert salt_text("secret", "abc") == salt_text("secret", "abc")


def test_salt_text_generates_random_salt():
    a = salt_text("secret")
    b = salt_text("secret")
    salt, digest = a.split("$", 1)
    assert len(salt) == 12
    assert len(digest) == 128
    assert digest == digest.lower()
    assert a != b


def test_salt_timed_uses_hex_window_as_salt():
    token = salt_timed("secret", clock=at(T0 + 5))
    assert token is not None
    assert token.startswith("1234$")
    assert token == salt_text("secret", "1234")


def test_verify_timed_same_and_adjacent_windows():
    token = salt_timed("secret", clock=at(T0 + 10))
    assert token is not None

    assert verify_timed(token, "secret", clock=at(T0 + 10)) is True
    # Within 30 seconds of creation, whatever window that lands in.
    for offset in (-29, -10, 0, 19, 29):
        assert verify_timed(token, "secret", clock=at(T0 + 10 + offset)) is True
    # One full window of skew either way is tolerated.
    assert verify_timed(token, "secret", clock=at(T0 - WINDOW_SECONDS)) is True
    assert verify_timed(token, "secret", clock=at(T0 + 2 * WINDOW_SECONDS - 1)) is True


@pytest.mark.parametrize("offset", [60, 61, 89, 120, 3600])
def test_verify_timed_rejects_tokens_two_windows_away(offset):
    for created in (T0, T0 + 29):
        token = salt_timed("secret", clock=at(created))
        assert verify_timed(token, "secret", clock=at(created + offset)) is False
        assert verify_timed(token, "secret", clock=at(created - offset)) is False


def test_verify_timed_rejects_other_secrets():
    token = salt_timed("secret-one", clock=at(T0))
    assert verify_timed(token, "secret-two", clock=at(T0)) is False
    assert verify_timed(token, "secret-one", clock=at(T0)) is True


def test_verify_timed_rejects_random_salt_and_tampering():
    assert verify_timed(salt_text("secret"), "secret", clock=at(T0)) is False

    token = salt_timed("secret", clock=at(T0))
    tampered = token[:-1] + ("0" if token[-1] != "0" else "1")
    assert verify_timed(tampered, "secret", clock=at(T0)) is False


@pytest.mark.parametrize("presented", ["", "$", "1234", "1234$", "1234$zz", None, 42])
def test_verify_timed_malformed_input_fails_closed(presented):
    assert verify_timed(presented, "secret", clock=at(T0)) is False


def test_clock_failure_is_not_fatal():
    def broken() -> float:
        raise OSError("no clock")

    assert current_window(broken) is None
    assert salt_timed("secret", clock=broken) is None
    assert verify_timed(salt_text("secret", "1234"), "secret", clock=broken) is False

    # Before the epoch counts as unreadable.
    assert salt_timed("secret", clock=at(-1.0)) is None


def test_window_zero_has_no_negative_neighbour():
    token = salt_timed("secret", clock=at(5))
    assert token.startswith("0$")
    assert verify_timed(token, "secret", clock=at(5)) is True
    assert verify_timed(salt_text("secret", "-1"), "secret", clock=at(5)) is False


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_clock_counts_as_unreadable(value):
    assert current_window(at(value)) is None
    assert salt_timed("secret", clock=at(value)) is None
    assert verify_timed(salt_text("secret", "1234"), "secret", clock=at(value)) is False
