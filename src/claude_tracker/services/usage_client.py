"""HTTP client for the usage and profile endpoints.

Both calls are read-only. Failures are raised as ``FetchError`` with a kind
that tells the poller whether retrying can help:

- 401/403: ``CREDENTIAL_EXPIRED``; the credential must be re-imported
- everything else (network, timeout, 429, 5xx, malformed body): ``TRANSIENT``

Example:
    >>> async with httpx.AsyncClient() as http:
    ...     client = UsageClient(http)
    ...     snapshot = await client.fetch_usage(token, AuthMethod.OAUTH, org_id)
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
from dateutil import parser as date_parser
from structlog import get_logger

from claude_tracker.accounts.models import AuthMethod, UsageSnapshot, UsageWindow
from claude_tracker.constants import (
    BROWSER_USER_AGENT,
    CLAUDE_CODE_USER_AGENT,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    OAUTH_BETA_HEADER,
    PROFILE_ENDPOINT,
    SESSION_USAGE_ENDPOINT,
    USAGE_ENDPOINT,
)
from claude_tracker.credentials.tokens import normalize_access_token
from claude_tracker.exceptions import FetchError, FetchErrorKind


logger = get_logger(__name__)


@dataclass(frozen=True)
class Profile:
    """Identity returned by the profile endpoint."""

    email: str
    org_id: str


# --- Parsing helpers ---


def parse_utilization(value: Any) -> int:
    """Convert an API utilization value to a whole percentage.

    Values in (0, 1] are fractions; anything else is already a percentage.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if 0 < number <= 1:
        number *= 100
    return max(0, min(100, round(number)))


def parse_resets_at(value: Any) -> datetime | None:
    """Parse an ISO-8601 reset time; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        logger.debug("resets_at_unparseable", value=value)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _parse_window(data: Any) -> UsageWindow | None:
    if not isinstance(data, dict):
        return None
    return UsageWindow(
        percent=parse_utilization(data.get("utilization")),
        reset_at=parse_resets_at(data.get("resets_at")),
    )


def parse_usage(data: Any, captured_at: datetime) -> UsageSnapshot:
    """Build a snapshot from a usage response body.

    Raises:
        FetchError: TRANSIENT if the body has no five-hour window
    """
    if not isinstance(data, dict):
        raise FetchError(FetchErrorKind.TRANSIENT, "Bad response")
    five_hour = _parse_window(data.get("five_hour"))
    if five_hour is None:
        raise FetchError(FetchErrorKind.TRANSIENT, "Bad response: no five_hour window")
    return UsageSnapshot(
        five_hour=five_hour,
        seven_day=_parse_window(data.get("seven_day")),
        captured_at=captured_at,
    )


def _status_error(response: httpx.Response, endpoint: str) -> FetchError:
    status = response.status_code
    if status in (401, 403):
        logger.warning("fetch_auth_error", endpoint=endpoint, status=status)
        return FetchError(
            FetchErrorKind.CREDENTIAL_EXPIRED, "Expired, re-import", status_code=status
        )
    if status == 429:
        logger.info("fetch_rate_limited", endpoint=endpoint, status=status)
        return FetchError(
            FetchErrorKind.TRANSIENT, "Rate limited, try later", status_code=status
        )
    logger.warning(
        "fetch_api_error",
        endpoint=endpoint,
        status=status,
        body=response.text[:200],
    )
    return FetchError(FetchErrorKind.TRANSIENT, f"HTTP {status}", status_code=status)


class UsageClient:
    """Issues the usage and profile requests.

    The underlying ``httpx.AsyncClient`` is shared by all polls; pass one in
    to control transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._timeout = timeout

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()

    async def _get_json(self, url: str, headers: dict[str, str], endpoint: str) -> Any:
        try:
            response = await self._http.get(url, headers=headers, timeout=self._timeout)
        except httpx.TimeoutException as e:
            logger.info("fetch_timeout", endpoint=endpoint)
            raise FetchError(FetchErrorKind.TRANSIENT, "Timeout") from e
        except httpx.RequestError as e:
            logger.info("fetch_network_error", endpoint=endpoint, error=str(e))
            raise FetchError(FetchErrorKind.TRANSIENT, "No network") from e

        if response.status_code >= 400:
            raise _status_error(response, endpoint)

        try:
            return response.json()
        except ValueError as e:
            logger.warning("fetch_bad_json", endpoint=endpoint)
            raise FetchError(FetchErrorKind.TRANSIENT, "Bad response") from e

    async def fetch_usage(
        self,
        secret: str,
        auth_method: AuthMethod,
        org_id: str = "",
    ) -> UsageSnapshot:
        """Fetch current utilization for one account.

        Args:
            secret: Stored credential (OAuth blob or session key)
            auth_method: How to present the credential
            org_id: Organization id, required for session keys

        Raises:
            FetchError: On any failure
        """
        if auth_method == AuthMethod.OAUTH:
            try:
                token = normalize_access_token(secret)
            except ValueError as e:
                raise FetchError(FetchErrorKind.CREDENTIAL_EXPIRED, "Expired, re-import") from e
            url = USAGE_ENDPOINT
            headers = {
                "Authorization": f"Bearer {token}",
                "anthropic-beta": OAUTH_BETA_HEADER,
                "User-Agent": CLAUDE_CODE_USER_AGENT,
                "Accept": "application/json",
            }
        else:
            if not org_id:
                raise FetchError(FetchErrorKind.TRANSIENT, "Missing organization id")
            url = SESSION_USAGE_ENDPOINT.format(org_id=org_id)
            headers = {
                "Cookie": f"sessionKey={secret.strip()}",
                "User-Agent": BROWSER_USER_AGENT,
                "Referer": "https://claude.ai/",
                "Accept": "application/json",
            }

        data = await self._get_json(url, headers, endpoint="usage")
        snapshot = parse_usage(data, captured_at=datetime.now(UTC))
        logger.debug(
            "usage_fetched",
            auth_method=auth_method,
            five_hour=snapshot.five_hour.percent,
            seven_day=snapshot.seven_day.percent if snapshot.seven_day else None,
        )
        return snapshot

    async def fetch_profile(self, access_token: str) -> Profile:
        """Identify the login behind an OAuth access token.

        Raises:
            FetchError: On any failure, including a missing email or org id
        """
        headers = {
            "Authorization": f"Bearer {access_token}",
            "anthropic-beta": OAUTH_BETA_HEADER,
            "User-Agent": CLAUDE_CODE_USER_AGENT,
            "Accept": "application/json",
        }
        data = await self._get_json(PROFILE_ENDPOINT, headers, endpoint="profile")

        account = data.get("account") if isinstance(data, dict) else None
        organization = data.get("organization") if isinstance(data, dict) else None
        email = account.get("email") if isinstance(account, dict) else None
        org_id = organization.get("uuid") if isinstance(organization, dict) else None

        if not isinstance(email, str) or not email:
            raise FetchError(FetchErrorKind.TRANSIENT, "Bad response: profile has no email")
        if not isinstance(org_id, str) or not org_id:
            raise FetchError(
                FetchErrorKind.TRANSIENT, "Bad response: profile has no organization"
            )

        return Profile(email=email, org_id=org_id)
