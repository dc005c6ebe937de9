"""Runtime configuration model."""

from __future__ import annotations

from dataclasses import dataclass

from .scoring import MatchThresholds
from .validation import validate_runtime_constraints

DEFAULT_USER_AGENT = "ContactResolver/1.0"
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_CACHE_TTL_SECONDS = 300.0
DEFAULT_MAX_RESULTS = 10
DEFAULT_LIST_LIMIT = 20


@dataclass(frozen=True)
class ResolverConfig:
    """Validated configuration used by the resolution service."""

    directory_url: str | None = None
    directory_file: str | None = None
    api_token: str | None = None
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    max_results: int = DEFAULT_MAX_RESULTS
    list_limit: int = DEFAULT_LIST_LIMIT
    name_min_score: float = 0.3
    phone_min_score: float = 0.5
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    show_progress: bool = False

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            directory_url=self.directory_url,
            directory_file=self.directory_file,
            cache_ttl_seconds=self.cache_ttl_seconds,
            max_results=self.max_results,
            list_limit=self.list_limit,
            name_min_score=self.name_min_score,
            phone_min_score=self.phone_min_score,
            request_timeout=self.request_timeout,
        )

    @property
    def thresholds(self) -> MatchThresholds:
        return MatchThresholds(
            name=self.name_min_score, email=self.name_min_score, phone=self.phone_min_score
        )
