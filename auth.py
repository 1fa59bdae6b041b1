"""
Request authentication

Inbound requests carry the source credentials in the x-public-key and
x-secret-key headers. Both are compared in constant time and a mismatch on
either one looks exactly the same to the caller.
"""

import hmac
from typing import Optional

from errors import AuthError

PUBLIC_KEY_HEADER = "x-public-key"
SECRET_KEY_HEADER = "x-secret-key"


def secure_compare(expected: str, given: Optional[str]) -> bool:
    """Constant-time string equality."""
    return hmac.compare_digest((expected or "").encode("utf-8"), (given or "").encode("utf-8"))


def check_credentials(
    expected_public: str,
    expected_secret: str,
    given_public: Optional[str],
    given_secret: Optional[str],
) -> bool:
    """
    True when both credentials match. Unconfigured (empty) credentials never
    authenticate anything.
    """
    if not expected_public or not expected_secret:
        return False
    public_ok = secure_compare(expected_public, given_public)
    secret_ok = secure_compare(expected_secret, given_secret)
    return public_ok and secret_ok


def require_credentials(
    expected_public: str,
    expected_secret: str,
    given_public: Optional[str],
    given_secret: Optional[str],
) -> None:
    """Raise AuthError unless check_credentials() passes."""
    if not check_credentials(expected_public, expected_secret, given_public, given_secret):
        raise AuthError("Invalid credentials")
