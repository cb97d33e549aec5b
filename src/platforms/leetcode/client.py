"""LeetCode stats API client with retry/backoff and bounded roster fan-out.

Retry rules:
  - 5xx, 429, connection errors and timeouts are transient: retried with
    exponential backoff (1x, 2x, 4x ... base_delay_s) up to max_retries.
  - "user does not exist" in an error body is terminal: no retry.
  - A 2xx body whose status is not "success" means the user is unknown.
  - A "success" body with non-numeric or negative counts is a
    TransientFailure, not retried.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import requests
from pydantic import ValidationError

from src.core.config import FetchConfig, StatsApiConfig
from src.core.schemas import (
    StatsResult,
    StatsSuccess,
    TransientFailure,
    User,
    UserNotFound,
    UserStats,
)
from src.pipeline.scorer import calculate_xp
from src.platforms.base import StatsSource

logger = logging.getLogger(__name__)

USER_NOT_FOUND_MESSAGE = "User not found"

_USER_MISSING_MARKERS = ("user does not exist", "user not found")


class _RetryableResponse(Exception):
    """Internal signal: the response status is worth retrying."""


class LeetCodeStatsClient(StatsSource):
    """Stats source backed by the public LeetCode stats API.

    The blocking ``requests`` call runs in a worker thread so many users can
    be fetched concurrently from the event loop.
    """

    def __init__(
        self,
        config: StatsApiConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config or StatsApiConfig()
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", "leetboard/1.0")

    @property
    def source_id(self) -> str:
        return "leetcode"

    def close(self) -> None:
        self._session.close()

    async def fetch(self, username: str, jobs_applied: int = 0) -> StatsResult:
        """Fetch stats for one user, retrying transient failures."""
        url = f"{self._config.base_url}/{quote(username, safe='')}"
        last_error = "Error fetching data"

        for attempt in range(self._config.max_retries + 1):
            if attempt > 0:
                delay = self._config.base_delay_s * (2 ** (attempt - 1))
                logger.debug(
                    "Retrying '%s' in %.1fs (attempt %d/%d)",
                    username, delay, attempt + 1, self._config.max_retries + 1,
                )
                await asyncio.sleep(delay)

            try:
                response = await asyncio.to_thread(
                    self._session.get, url, timeout=self._config.timeout_s,
                )
            except requests.RequestException as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning("Request for '%s' failed: %s", username, last_error)
                continue

            try:
                return self._classify(username, jobs_applied, response)
            except _RetryableResponse as e:
                last_error = str(e)
                logger.warning("Stats API unavailable for '%s': %s", username, last_error)

        logger.error("Giving up on '%s' after %d attempts: %s",
                     username, self._config.max_retries + 1, last_error)
        return TransientFailure(message=last_error)

    def _classify(
        self,
        username: str,
        jobs_applied: int,
        response: requests.Response,
    ) -> StatsResult:
        status_code = response.status_code
        if status_code >= 500 or status_code == 429:
            msg = f"HTTP error! status: {status_code}"
            raise _RetryableResponse(msg)

        body = _safe_json(response)

        if not response.ok:
            message = str(body.get("message", "")) if body else ""
            if _says_user_missing(message):
                logger.info("User '%s' does not exist upstream", username)
                return UserNotFound(username=username)
            return TransientFailure(message=f"HTTP error! status: {status_code}")

        if body is None or body.get("status") != "success":
            logger.info("Stats API returned no data for '%s'", username)
            return UserNotFound(username=username)

        try:
            easy = int(body.get("easySolved") or 0)
            medium = int(body.get("mediumSolved") or 0)
            hard = int(body.get("hardSolved") or 0)
            total = int(body.get("totalSolved") or 0)
            return StatsSuccess(
                easy=easy,
                medium=medium,
                hard=hard,
                total=total,
                jobs_applied=jobs_applied,
                xp=calculate_xp(jobs_applied, easy, medium, hard),
            )
        except (TypeError, ValueError, ValidationError) as e:
            logger.warning("Malformed stats payload for '%s': %s", username, e)
            return TransientFailure(message=f"Malformed stats payload: {e}")


def _safe_json(response: requests.Response) -> dict[str, Any] | None:
    """Parse a JSON object body, or None when the body is not one."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _says_user_missing(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _USER_MISSING_MARKERS)


def result_to_user_stats(user: User, result: StatsResult) -> UserStats:
    """Convert a fetch result into a leaderboard row. Failures become zero rows."""
    if isinstance(result, StatsSuccess):
        return UserStats(
            username=user.username,
            name=user.name,
            jobs_applied=result.jobs_applied,
            easy=result.easy,
            medium=result.medium,
            hard=result.hard,
            total=result.total,
            xp=result.xp,
        )
    error = USER_NOT_FOUND_MESSAGE if isinstance(result, UserNotFound) else result.message
    return UserStats(
        username=user.username,
        name=user.name,
        jobs_applied=user.jobs_applied,
        error=error,
    )


async def fetch_all_stats(
    source: StatsSource,
    users: list[User],
    config: FetchConfig | None = None,
) -> list[UserStats]:
    """Fetch stats for the whole roster in small serialized batches.

    Requests inside a batch run concurrently; one user's failure only
    affects that user's row. Rows come back in roster order.
    """
    config = config or FetchConfig()
    rows: list[UserStats] = []

    for start in range(0, len(users), config.batch_size):
        batch = users[start:start + config.batch_size]
        results = await asyncio.gather(
            *(source.fetch(u.username, u.jobs_applied) for u in batch),
            return_exceptions=True,
        )
        for user, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.error("Unexpected error fetching '%s': %s", user.username, result)
                result = TransientFailure(message=str(result) or "Error fetching data")
            rows.append(result_to_user_stats(user, result))

        logger.debug("Fetched batch %d-%d of %d", start + 1, start + len(batch), len(users))
        if start + config.batch_size < len(users):
            await asyncio.sleep(config.batch_delay_s)

    return rows
