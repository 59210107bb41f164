import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import aiohttp
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from repo_harvester.models.config import GitHubSettings
from repo_harvester.models.search import (
    CommitAuthor,
    CommitRecord,
    Query,
    Repository,
    SearchPage,
    SubRange,
)
from repo_harvester.observability.metrics import API_REQUEST_DURATION, API_REQUESTS
from repo_harvester.services.providers.base import (
    APIError,
    RateLimitError,
    SearchProvider,
)

logger = structlog.get_logger()

USER_AGENT = "repo-harvester/0.1"


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, APIError) and exc.retryable


def _retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """Seconds to wait according to GitHub's rate limit headers."""
    if headers.get("Retry-After"):
        try:
            return float(headers["Retry-After"])
        except ValueError:
            return None
    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)
        except ValueError:
            return None
        return max(0.0, (reset_at - datetime.now(timezone.utc)).total_seconds())
    return None


class GitHubProvider(SearchProvider):
    """Search repositories and read commits through the GitHub REST API

    Use as an async context manager; one ClientSession is shared by all
    requests of a run.
    """

    SEARCH_PATH = "/search/repositories"
    COMMITS_PATH = "/repos/{full_name}/commits"

    def __init__(self, settings: GitHubSettings, commits_per_repo: int = 30):
        self.settings = settings
        self.commits_per_repo = commits_per_repo
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return "github"

    async def __aenter__(self) -> "GitHubProvider":
        await self.open()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds),
            )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        }
        if self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"
        else:
            logger.warning("github_token_missing", effect="unauthenticated rate limits")
        return headers

    def validate_query(self, keyword: str) -> str:
        """Validate GitHub search keyword"""
        if not keyword or not keyword.strip():
            raise ValueError("Keyword cannot be empty")

        if len(keyword) > 256:
            raise ValueError("Keyword too long (max 256 characters)")

        if any(ord(c) < 32 for c in keyword):
            raise ValueError("Keyword contains invalid control characters")

        # The planner owns the created: qualifier
        if "created:" in keyword.lower():
            raise ValueError("Keyword must not carry its own created: qualifier")

        return keyword.strip()

    async def search_repositories(
        self, query: Query, sub_range: SubRange, page: int, per_page: int
    ) -> SearchPage:
        """Fetch one page of repositories created inside a window"""
        if page < 1:
            raise ValueError("page is 1-based")

        params = {
            "q": query.search_string(sub_range),
            "per_page": str(per_page),
            "page": str(page),
        }
        data = await self._get_json("search", self.SEARCH_PATH, params)
        return self._parse_search(data)

    async def count_repositories(self, query: Query, sub_range: SubRange) -> int:
        """Count-only probe: a single-item page still carries total_count"""
        page = await self.search_repositories(query, sub_range, page=1, per_page=1)
        logger.debug(
            "window_probed",
            window=sub_range.label,
            total_count=page.total_count,
        )
        return page.total_count

    async def list_commits(self, full_name: str, limit: int) -> List[CommitRecord]:
        """Fetch the most recent commits of a repository"""
        path = self.COMMITS_PATH.format(full_name=full_name)
        data = await self._get_json("commits", path, {"per_page": str(limit)})

        if not isinstance(data, list):
            raise APIError(f"Unexpected commits payload for {full_name}")

        return self._parse_commits(data)[:limit]

    async def _get_json(
        self, endpoint: str, path: str, params: Dict[str, str]
    ) -> Any:
        """GET with bounded exponential-backoff retry on transient failures."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.retry_attempts),
            wait=self._wait_strategy,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._request_once(endpoint, path, params)

    def _wait_strategy(self, retry_state: RetryCallState) -> float:
        """Honour rate-limit reset hints, otherwise back off exponentially."""
        backoff = wait_exponential(
            multiplier=1,
            min=self.settings.retry_min_wait_seconds,
            max=self.settings.retry_max_wait_seconds,
        )
        delay = backoff(retry_state)
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            # The reset hint replaces the backoff cap
            delay = min(exc.retry_after, self.settings.max_rate_limit_wait_seconds)

        logger.warning(
            "github_request_retry",
            attempt=retry_state.attempt_number,
            max_attempts=self.settings.retry_attempts,
            error=str(exc) if exc else None,
            delay_seconds=delay,
        )
        return delay

    async def _request_once(
        self, endpoint: str, path: str, params: Dict[str, str]
    ) -> Any:
        if self._session is None:
            await self.open()
        assert self._session is not None

        url = f"{self.settings.base_url.rstrip('/')}{path}"
        try:
            with API_REQUEST_DURATION.labels(endpoint=endpoint).time():
                async with self._session.get(url, params=params) as response:
                    status = response.status

                    if status == 429 or (
                        status == 403
                        and response.headers.get("X-RateLimit-Remaining") == "0"
                    ):
                        API_REQUESTS.labels(endpoint=endpoint, status="rate_limited").inc()
                        raise RateLimitError(
                            f"GitHub rate limit exceeded ({status})",
                            status=status,
                            retry_after=_retry_after(response.headers),
                        )

                    if status >= 500:
                        API_REQUESTS.labels(endpoint=endpoint, status="error").inc()
                        raise APIError(f"GitHub server error: {status}", status=status)

                    if status != 200:
                        body = await response.text()
                        API_REQUESTS.labels(endpoint=endpoint, status="error").inc()
                        logger.error(
                            "github_api_error",
                            endpoint=endpoint,
                            path=path,
                            status=status,
                            body=body[:200],
                        )
                        raise APIError(
                            f"GitHub request failed: {status}", status=status
                        )

                    try:
                        data = await response.json()
                    except ValueError as e:
                        API_REQUESTS.labels(endpoint=endpoint, status="error").inc()
                        logger.error(
                            "github_invalid_body", endpoint=endpoint, path=path, error=str(e)
                        )
                        raise APIError(
                            f"GitHub response could not be decoded: {e}", status=status
                        ) from e
                    API_REQUESTS.labels(endpoint=endpoint, status="ok").inc()
                    return data

        except asyncio.TimeoutError:
            API_REQUESTS.labels(endpoint=endpoint, status="error").inc()
            logger.error("github_timeout", endpoint=endpoint, path=path)
            raise APIError("GitHub request timed out")
        except aiohttp.ClientError as e:
            API_REQUESTS.labels(endpoint=endpoint, status="error").inc()
            logger.error("github_network_error", endpoint=endpoint, error=str(e))
            raise APIError(f"GitHub request failed: {e}") from e

    def _parse_search(self, data: Any) -> SearchPage:
        """Parse a search response into a SearchPage"""
        if not isinstance(data, dict):
            raise APIError("Unexpected search payload")

        repositories = []
        dropped = 0
        for item in data.get("items") or []:
            try:
                repositories.append(
                    Repository(
                        full_name=item["full_name"],
                        html_url=item.get("html_url"),
                        stargazers_count=item.get("stargazers_count") or 0,
                        created_at=item.get("created_at"),
                        secondary_ceiling=self.commits_per_repo,
                    )
                )
            except (KeyError, ValueError) as e:
                logger.warning(
                    "repository_parsing_failed",
                    full_name=item.get("full_name"),
                    error=str(e),
                )
                dropped += 1
                continue

        return SearchPage(
            items=repositories,
            dropped_count=dropped,
            total_count=int(data.get("total_count") or 0),
            incomplete_results=bool(data.get("incomplete_results", False)),
        )

    def _parse_commits(self, data: List[Dict[str, Any]]) -> List[CommitRecord]:
        """Parse a commits response, keeping only the git author block"""
        commits = []
        for item in data:
            try:
                raw_author = (item.get("commit") or {}).get("author")
                author = None
                if raw_author:
                    author = CommitAuthor(
                        name=raw_author.get("name"),
                        email=raw_author.get("email"),
                        date=raw_author.get("date"),
                    )
                commits.append(CommitRecord(sha=item["sha"], author=author))
            except (KeyError, ValueError) as e:
                logger.warning("commit_parsing_failed", sha=item.get("sha"), error=str(e))
                continue
        return commits
