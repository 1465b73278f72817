"""
Authorization for the import endpoint and the signed-in user boundary.

Sign-in itself is handled by an OAuth proxy in front of the app; it passes
the user's identity along in X-Forwarded-* headers.
"""

import hmac
from dataclasses import asdict, dataclass
from typing import Mapping


class ImportAuthError(Exception):
    """Raised when the import request has a missing or wrong bearer token."""

    pass


class ImportConfigError(Exception):
    """Raised when the server has no import secret configured."""

    pass


def verify_import_token(authorization: str | None, secret: str | None) -> None:
    """
    Check an Authorization header against the configured import secret.

    Fails closed: without a configured secret no request is accepted.

    Args:
        authorization: Value of the Authorization header, if any
        secret: The configured shared secret

    Raises:
        ImportConfigError: If no secret is configured
        ImportAuthError: If the header is missing, not a bearer token or wrong
    """
    if not secret:
        raise ImportConfigError("Import secret is not configured on the server")

    if not authorization:
        raise ImportAuthError("Missing Authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ImportAuthError("Authorization header must be a bearer token")

    if not hmac.compare_digest(token.strip().encode("utf-8"), secret.encode("utf-8")):
        raise ImportAuthError("Invalid bearer token")


@dataclass
class CurrentUser:
    """The signed-in user, as reported by the OAuth proxy."""

    name: str | None
    email: str | None
    image: str | None

    def to_dict(self) -> dict:
        return asdict(self)


def get_current_user(headers: Mapping[str, str]) -> CurrentUser | None:
    """
    Read the signed-in user from proxy headers.

    Args:
        headers: Request headers (case-insensitive mapping)

    Returns:
        CurrentUser, or None when the request carries no identity
    """
    email = headers.get("x-forwarded-email")
    user = headers.get("x-forwarded-user")
    if not email and not user:
        return None

    name = headers.get("x-forwarded-preferred-username") or user or email
    return CurrentUser(
        name=name,
        email=email,
        image=headers.get("x-forwarded-avatar"),
    )
