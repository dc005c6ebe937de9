"""Input validation and runtime guardrails."""

from __future__ import annotations

import re

from .errors import ConfigError, InvalidInputError

MAX_QUERY_LENGTH = 200
MAX_PHONE_LENGTH = 30
MAX_EMAIL_LENGTH = 254

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_PHONE_CHARS_RE = re.compile(r"^[+\d\-()\s.]+$")


def validate_query(query: object) -> str:
    """Return a trimmed free-text query or raise InvalidInputError."""
    if not isinstance(query, str):
        raise InvalidInputError("Search term must be a string.")
    trimmed = query.strip()
    if not trimmed:
        raise InvalidInputError("Search term cannot be empty.")
    if len(trimmed) > MAX_QUERY_LENGTH:
        raise InvalidInputError(f"Search term is too long (maximum {MAX_QUERY_LENGTH} characters).")
    if _CONTROL_CHARS_RE.search(trimmed):
        raise InvalidInputError("Search term contains invalid control characters.")
    return trimmed


def validate_phone(phone: object) -> str:
    """Return a trimmed phone string made only of dialable characters."""
    if not isinstance(phone, str):
        raise InvalidInputError("Phone number must be a string.")
    trimmed = phone.strip()
    if not trimmed:
        raise InvalidInputError("Phone number cannot be empty.")
    if len(trimmed) > MAX_PHONE_LENGTH:
        raise InvalidInputError(f"Phone number is too long (maximum {MAX_PHONE_LENGTH} characters).")
    if not _PHONE_CHARS_RE.match(trimmed):
        raise InvalidInputError(
            "Phone number contains invalid characters (allowed: digits, +, -, (, ), spaces, dots)."
        )
    if not any(char.isdigit() for char in trimmed):
        raise InvalidInputError("Phone number must contain at least one digit.")
    return trimmed


def validate_email_query(query: object) -> str:
    """Return a trimmed email fragment; full addresses are not required."""
    if not isinstance(query, str):
        raise InvalidInputError("Email query must be a string.")
    trimmed = query.strip()
    if not trimmed:
        raise InvalidInputError("Email query cannot be empty.")
    if len(trimmed) > MAX_EMAIL_LENGTH:
        raise InvalidInputError(f"Email query is too long (maximum {MAX_EMAIL_LENGTH} characters).")
    if any(char.isspace() for char in trimmed) or _CONTROL_CHARS_RE.search(trimmed):
        raise InvalidInputError("Email query cannot contain whitespace or control characters.")
    return trimmed


def validate_max_results(max_results: int) -> int:
    if isinstance(max_results, bool) or not isinstance(max_results, int) or max_results < 1:
        raise InvalidInputError("max_results must be a positive integer.")
    return max_results


def escape_for_logging(value: str) -> str:
    """Escape line breaks and tabs so user input cannot forge log lines."""
    return (
        value.replace("\r\n", "\\r\\n")
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )


def validate_runtime_constraints(
    *,
    directory_url: str | None,
    directory_file: str | None,
    cache_ttl_seconds: float,
    max_results: int,
    list_limit: int,
    name_min_score: float,
    phone_min_score: float,
    request_timeout: float,
) -> None:
    """Validate CLI/runtime configuration and raise ConfigError on invalid values."""
    if not directory_url and not directory_file:
        raise ConfigError("Provide --directory-url or --directory-file.")
    if directory_url and directory_file:
        raise ConfigError("--directory-url and --directory-file are mutually exclusive.")
    if directory_url and not directory_url.startswith(("http://", "https://")):
        raise ConfigError("--directory-url must be an absolute http(s) URL.")
    if cache_ttl_seconds <= 0:
        raise ConfigError("--cache-ttl must be > 0.")
    if max_results < 1:
        raise ConfigError("--max-results must be >= 1.")
    if list_limit < 1:
        raise ConfigError("list limit must be >= 1.")
    if not 0.0 <= name_min_score <= 1.0 or not 0.0 <= phone_min_score <= 1.0:
        raise ConfigError("Minimum match scores must be between 0 and 1.")
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
