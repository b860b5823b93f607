"""
Async client for the WebUntis REST API.
Implements the login handshake, session tracking, retry logic and
decoding of timetable entries into the entity model.
"""

import asyncio
import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog
from pydantic import BaseModel, Field

from untis.errors import (
    AuthError, BackendValidationError, PayloadError, ShapeMismatchError,
    TransportError, UntisError
)
from untis.models import FORMAT_VERSION, Day, parse_entries
from utilities.config import config
from utilities.logger import CycleLogger
from utilities.validation import validate_school, validate_token

logger = structlog.get_logger(__name__)

# Only classes are supported; STUDENT would need a different resource id.
RESOURCE_TYPE = "CLASS"


class SessionToken(BaseModel):
    """Bearer token and the moment it was issued."""
    token: str = Field(..., description="JWT used as bearer token")
    issued_at: datetime = Field(..., description="When the token was obtained (UTC)")

    def is_expired(self, now: datetime, max_age: timedelta) -> bool:
        return now - self.issued_at >= max_age

    class Config:
        """Pydantic configuration."""
        frozen = True


def describe_json_error(err: json.JSONDecodeError, text: str) -> str:
    """Error message with a snippet of the body around the failing position."""
    if err.lineno != 1:
        return str(err)

    start = max(err.pos - 50, 0)
    end = min(err.pos + 50, len(text))
    prefix = "" if start == 0 else "..."
    suffix = "" if end == len(text) else "..."
    return f"{err} | {prefix}{text[start:end]}{suffix}"


def extract_error_message(text: str) -> Tuple[str, List[str]]:
    """
    Pull a human readable message out of an error response body.

    Returns:
        The message and the list of validation messages (possibly empty)
    """
    try:
        body = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Could not parse error json response", error=str(e))
        return text, []

    if not isinstance(body, dict):
        return text, []

    validation_messages = [
        str(item.get("errorMessage", ""))
        for item in (body.get("validationErrors") or [])
        if isinstance(item, dict)
    ]

    if body.get("errorMessage"):
        return str(body["errorMessage"]), validation_messages
    if validation_messages:
        return " | ".join(validation_messages), validation_messages
    if body.get("errorCode"):
        return str(body["errorCode"]), validation_messages
    return "<unknown>", validation_messages


class UntisClient:
    """
    Async WebUntis client with session tracking and retrying requests.
    """

    def __init__(
        self,
        school: str,
        username: str,
        password: str,
        request_timeout: Optional[int] = None,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        session_max_age: Optional[timedelta] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            school: School name, used as WebUntis subdomain
            username: Login name
            password: Login password
            request_timeout: Per-request timeout in seconds
            retry_attempts: Retries for transient transport failures
            retry_delay: Base delay for exponential backoff in seconds
            session_max_age: Lifetime after which the token is renewed
            transport: Optional httpx transport (used by tests)
        """
        self.school = school
        self.username = username
        self.password = password
        self.retry_attempts = config.retry_attempts if retry_attempts is None else retry_attempts
        self.retry_delay = config.retry_delay if retry_delay is None else retry_delay
        self.session_max_age = session_max_age or timedelta(seconds=config.session_max_age_seconds)
        self.session: Optional[SessionToken] = None
        self.cycle_logger = CycleLogger("untis_client")

        self.base_url = f"https://{school}.webuntis.com/WebUntis/"
        self.api_url = f"{self.base_url}api/rest/view/v1/"

        # Login answers bad credentials with a redirect, so redirects stay off
        client_config: Dict[str, Any] = {
            "timeout": request_timeout or config.request_timeout,
            "headers": config.get_headers(),
            "follow_redirects": False,
        }
        if transport is not None:
            client_config["transport"] = transport
        self.http_client = httpx.AsyncClient(**client_config)

    async def __aenter__(self) -> "UntisClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http_client.aclose()

    def is_session_expired(self, now: Optional[datetime] = None) -> bool:
        """True when there is no session or it is older than the maximum lifetime."""
        if self.session is None:
            return True
        now = now or datetime.now(timezone.utc)
        return self.session.is_expired(now, self.session_max_age)

    async def authenticate(self) -> SessionToken:
        """
        Log in and obtain a fresh bearer token.

        Returns:
            The new session token

        Raises:
            AuthError: invalid school name, rejected credentials, network
                failure during login or malformed token
        """
        try:
            validate_school(self.school)
        except ValueError as e:
            raise AuthError(str(e)) from e

        self.session = None
        self.http_client.cookies.clear()

        try:
            await self._request(
                "POST",
                f"{self.base_url}j_spring_security_check",
                data={"j_username": self.username, "j_password": self.password},
            )
            token = (await self._request("GET", f"{self.base_url}api/token/new")).strip()
        except httpx.HTTPError as e:
            raise AuthError(f"Could not send login request: {e}") from e
        except UntisError as e:
            raise AuthError(f"Login failed: {e}") from e

        try:
            validate_token(token)
        except ValueError as e:
            raise AuthError(f"Bad token returned by token/new: {e}") from e

        self.session = SessionToken(token=token, issued_at=datetime.now(timezone.utc))
        logger.info("Authenticated against WebUntis", school=self.school)
        return self.session

    async def fetch_entries(self, start: date, end: date, resource_id: int) -> List[Day]:
        """
        Fetch timetable days between the given dates (inclusive on both ends).

        Raises:
            AuthError: no session, or the backend rejected the token
            TransportError: network failure or non-success status
            SchemaMismatchError: unexpected format version
            BackendValidationError: backend reported errors
            PayloadError: body is not valid JSON or does not fit the model
        """
        if self.session is None:
            raise AuthError("Not authenticated")

        params = {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "resourceType": RESOURCE_TYPE,
            "resources": str(resource_id),
            "format": str(FORMAT_VERSION),
        }
        url = f"{self.api_url}timetable/entries"

        try:
            text = await self._request_with_retry(
                "GET",
                url,
                params=params,
                headers={"Authorization": f"Bearer {self.session.token}"},
            )
        except AuthError:
            self.session = None
            raise

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise PayloadError(
                f"Could not extract JSON from success response from GET request to {url}: "
                f"{describe_json_error(e, text)}"
            ) from e

        return parse_entries(payload)

    async def fetch_day(self, day: date, resource_id: int) -> Day:
        """
        Fetch exactly one day.

        Raises:
            ShapeMismatchError: zero or several days, or a day for another date
        """
        days = await self.fetch_entries(day, day, resource_id)
        if len(days) != 1:
            raise ShapeMismatchError(f"API returned {len(days)} days instead of just one")
        if days[0].date != day:
            raise ShapeMismatchError(f"API returned day {days[0].date} instead of {day}")
        return days[0]

    async def _request(self, method: str, url: str, **kwargs) -> str:
        response = await self.http_client.request(method, url, **kwargs)
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> str:
        """Return the body of a success response or raise the matching error."""
        if response.is_success:
            return response.text

        status = response.status_code
        message, validation_messages = extract_error_message(response.text)
        error_message = f"Request failed with status {status}: {message}"

        if validation_messages:
            raise BackendValidationError(error_message, validation_messages)
        if status in (401, 403):
            raise AuthError(error_message)
        raise TransportError(error_message, status_code=status, retryable=status >= 500)

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> str:
        """
        Send a request, retrying network failures and 5xx responses with
        exponential backoff.
        """
        last_exception: Optional[TransportError] = None

        for attempt in range(self.retry_attempts + 1):
            try:
                return await self._request(method, url, **kwargs)
            except httpx.TransportError as e:
                last_exception = TransportError(
                    f"Could not send {method} request to {url}: {e}", retryable=True
                )
            except httpx.HTTPError as e:
                raise TransportError(f"{method} request to {url} failed: {e}") from e
            except TransportError as e:
                if not e.retryable:
                    raise
                last_exception = e

            if attempt < self.retry_attempts:
                delay = self.retry_delay * (2 ** attempt)
                self.cycle_logger.log_retry(url, attempt + 1, self.retry_attempts, delay)
                await asyncio.sleep(delay)
            else:
                self.cycle_logger.log_error(f"Request failed after {self.retry_attempts} retries: {url}")

        raise last_exception
