"""
Charset and shape checks for values that end up inside URLs or headers.
"""

import string
from typing import Set
from urllib.parse import urlsplit

SCHOOL_CHARS = frozenset(string.ascii_lowercase + "-")
TOKEN_PART_CHARS = frozenset(string.ascii_letters + string.digits + "-_")
WEBHOOK_TOKEN_CHARS = frozenset(string.ascii_letters + string.digits + "-_.")


def _check_charset(description: str, value: str, charset: Set[str]) -> None:
    if not value:
        raise ValueError(f"{description} is empty")
    invalid = {c for c in value if c not in charset}
    if invalid:
        raise ValueError(f"{description} contains invalid characters: {sorted(invalid)}")


def validate_school(school: str) -> str:
    """School names are WebUntis subdomains."""
    _check_charset("School name", school, SCHOOL_CHARS)
    return school


def validate_token(token: str) -> str:
    """Session tokens are JWTs: three dot-separated url-safe parts."""
    parts = token.split(".")
    if len(parts) < 3:
        raise ValueError("Token has too few parts")
    if len(parts) > 3:
        raise ValueError("Token has too many parts")
    for part in parts:
        _check_charset("Token", part, TOKEN_PART_CHARS)
    return token


def validate_webhook_url(url: str) -> str:
    """
    Check that a webhook URL points at a Discord webhook.

    Expected shape: ``https://discord.com/api/webhooks/<numeric id>/<token>``
    """
    parts = urlsplit(url)
    if parts.scheme != "https":
        raise ValueError(f"URL scheme is {parts.scheme!r} instead of 'https'")
    if parts.hostname != "discord.com":
        raise ValueError(f"URL host is {parts.hostname!r} instead of 'discord.com'")

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) != 4:
        raise ValueError(f"Expected 4 URL path segments, got {len(segments)}")
    if segments[0] != "api":
        raise ValueError(f"URL segment #1 is {segments[0]!r} instead of 'api'")
    if segments[1] != "webhooks":
        raise ValueError(f"URL segment #2 is {segments[1]!r} instead of 'webhooks'")
    if not segments[2].isdigit():
        raise ValueError("Invalid webhook ID")
    _check_charset("Webhook token", segments[3], WEBHOOK_TOKEN_CHARS)

    if parts.query:
        raise ValueError(f"Expected no query, got {parts.query}")
    if parts.fragment:
        raise ValueError(f"Expected no fragment, got {parts.fragment}")
    return url
