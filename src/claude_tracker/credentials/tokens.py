"""Parsing of the external tool's OAuth credential blob.

Claude Code stores its login as JSON::

    {"claudeAiOauth": {"accessToken": "...", "refreshToken": "...",
                       "expiresAt": 1760000000000, "scopes": [...]}}

Older or hand-made entries put ``access_token`` at the top level instead.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any

import orjson


OAUTH_WRAPPER_KEY = "claudeAiOauth"

_ACCESS_KEYS = ("accessToken", "access_token")
_REFRESH_KEYS = ("refreshToken", "refresh_token")
_EXPIRES_KEYS = ("expiresAt", "expires_at")


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _decode_object(raw: str) -> dict[str, Any]:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValueError(f"Credential is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Credential JSON is not an object")
    return data


@dataclass(frozen=True)
class OAuthCredential:
    """An OAuth login as the external tool stores it."""

    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None  # epoch milliseconds
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: str) -> "OAuthCredential":
        """Parse a credential blob.

        Raises:
            ValueError: If the blob is not JSON or has no access token
        """
        data = _decode_object(raw)

        wrapped = data.get(OAUTH_WRAPPER_KEY)
        oauth = wrapped if isinstance(wrapped, dict) else data

        access_token = _first(oauth, _ACCESS_KEYS)
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Credential has no access token")

        refresh_token = _first(oauth, _REFRESH_KEYS)
        expires_at = _first(oauth, _EXPIRES_KEYS)

        known = set(_ACCESS_KEYS + _REFRESH_KEYS + _EXPIRES_KEYS)
        extra = (
            {k: v for k, v in oauth.items() if k not in known}
            if oauth is wrapped
            else {}
        )

        return cls(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else None,
            expires_at=expires_at if isinstance(expires_at, int) else None,
            extra=extra,
        )

    @property
    def stable_id(self) -> str:
        """Token that identifies the login across access-token refreshes."""
        return self.refresh_token or self.access_token

    def to_oauth_dict(self) -> dict[str, Any]:
        """Build the ``claudeAiOauth`` object in the tool's key style."""
        data: dict[str, Any] = {"accessToken": self.access_token}
        if self.refresh_token is not None:
            data["refreshToken"] = self.refresh_token
        if self.expires_at is not None:
            data["expiresAt"] = self.expires_at
        data.update(self.extra)
        return data

    def merge_into(self, current_raw: str | None) -> str:
        """Render this login into an existing entry.

        Top-level keys of ``current_raw`` other than the OAuth block are
        kept; an unparseable or absent entry is replaced outright.
        """
        base: dict[str, Any] = {}
        if current_raw:
            try:
                base = _decode_object(current_raw)
            except ValueError:
                base = {}
        # A top-level login is superseded by the wrapped form
        for key in _ACCESS_KEYS + _REFRESH_KEYS + _EXPIRES_KEYS:
            base.pop(key, None)
        base[OAUTH_WRAPPER_KEY] = self.to_oauth_dict()
        return orjson.dumps(base).decode()


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def credential_signature(raw: str | None) -> str | None:
    """Digest identifying which login a stored credential holds.

    OAuth blobs hash their refresh token (falling back to the access token),
    so an access-token refresh keeps the same signature. Anything else,
    such as a session key, hashes its stripped value.
    """
    if raw is None or not raw.strip():
        return None
    try:
        return _digest(OAuthCredential.parse(raw).stable_id)
    except ValueError:
        return _digest(raw.strip())


def normalize_access_token(raw: str) -> str:
    """Extract the bearer token from a stored OAuth credential.

    A bare token (not JSON) is returned stripped.

    Raises:
        ValueError: If the value is empty or JSON without an access token
    """
    stripped = raw.strip()
    if not stripped:
        raise ValueError("Credential is empty")
    if not stripped.startswith("{"):
        return stripped
    return OAuthCredential.parse(stripped).access_token
