from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog
import httpx

from sourcehealth.config import Settings
from sourcehealth.models.schemas import Endpoint, ProbeResult, SearchOutcome

logger = structlog.get_logger()

T = TypeVar("T")


class ProbeError(Exception):
    """A probe attempt got a response it cannot use."""


class UnexpectedStatus(ProbeError):
    def __init__(self, status_code: int):
        super().__init__(f"unexpected status {status_code}")
        self.status_code = status_code


class MalformedBody(ProbeError):
    pass


# Everything a single attempt may fail with; each counts as one failed attempt.
ATTEMPT_ERRORS = (httpx.HTTPError, ProbeError)


@dataclass(frozen=True)
class ProbeOptions:
    timeout_ms: int = 10000
    max_retry: int = 3
    retry_delay_ms: int = 500
    enable_search_test: bool = True
    search_keyword: str = ""
    search_param: str = "wd"

    @classmethod
    def from_settings(cls, settings: Settings, keyword: str | None = None) -> ProbeOptions:
        return cls(
            timeout_ms=settings.timeout_ms,
            max_retry=settings.max_retry,
            retry_delay_ms=settings.retry_delay_ms,
            enable_search_test=settings.enable_search_test,
            search_keyword=keyword or settings.search_keyword,
            search_param=settings.search_param,
        )

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout_ms / 1000)


async def with_retries(
    attempt: Callable[[], Awaitable[T]],
    options: ProbeOptions,
    *,
    check: str,
    url: str,
) -> T:
    """Run `attempt` up to max_retry times, sleeping retry_delay_ms between failures.

    Re-raises the last attempt error once all attempts are used up.
    """
    attempts = max(1, options.max_retry)
    n = 1
    while True:
        try:
            return await attempt()
        except ATTEMPT_ERRORS as e:
            logger.debug("probe_attempt_failed", check=check, url=url, attempt=n, error=str(e)[:200])
            if n >= attempts:
                raise
        await asyncio.sleep(options.retry_delay_ms / 1000)
        n += 1


async def check_reachable(client: httpx.AsyncClient, url: str, options: ProbeOptions) -> bool:
    """True iff a GET to `url` answers 200 within the retry budget."""

    async def attempt() -> bool:
        resp = await client.get(url, timeout=options.timeout)
        if resp.status_code != 200:
            raise UnexpectedStatus(resp.status_code)
        return True

    try:
        return await with_retries(attempt, options, check="reachable", url=url)
    except ATTEMPT_ERRORS as e:
        logger.info("endpoint_unreachable", url=url, error=str(e)[:200])
        return False


def classify_search_body(data: object, keyword: str) -> SearchOutcome:
    if not isinstance(data, dict):
        raise MalformedBody(f"expected a JSON object, got {type(data).__name__}")

    items = data.get("list")
    if not items:
        return SearchOutcome.EMPTY

    serialized = json.dumps(items, ensure_ascii=False, separators=(",", ":"))
    return SearchOutcome.MATCH if keyword in serialized else SearchOutcome.NO_MATCH


async def check_search(client: httpx.AsyncClient, url: str, options: ProbeOptions) -> SearchOutcome:
    """Query `url` for the search keyword and classify what comes back."""
    params = {options.search_param: options.search_keyword}

    async def attempt() -> SearchOutcome:
        resp = await client.get(url, params=params, timeout=options.timeout)
        if resp.status_code != 200:
            raise UnexpectedStatus(resp.status_code)
        try:
            data = resp.json()
        except (ValueError, RecursionError) as e:
            raise MalformedBody("response is not JSON") from e
        return classify_search_body(data, options.search_keyword)

    try:
        return await with_retries(attempt, options, check="search", url=url)
    except ATTEMPT_ERRORS as e:
        logger.info("search_check_failed", url=url, error=str(e)[:200])
        return SearchOutcome.ERROR


async def probe_endpoint(client: httpx.AsyncClient, endpoint: Endpoint, options: ProbeOptions) -> ProbeResult:
    """Run the reachability and search checks for one endpoint.

    Never raises: every failure ends up in the returned ProbeResult. The two
    checks are resolved separately, so a crash in one keeps the other's value.
    """
    if endpoint.disabled:
        return ProbeResult(
            name=endpoint.name,
            endpoint_key=endpoint.key,
            reachable=False,
            search_outcome=SearchOutcome.DISABLED,
        )

    if options.enable_search_test:
        reachable, search_outcome = await asyncio.gather(
            check_reachable(client, endpoint.base_url, options),
            check_search(client, endpoint.base_url, options),
            return_exceptions=True,
        )
    else:
        (reachable,) = await asyncio.gather(
            check_reachable(client, endpoint.base_url, options),
            return_exceptions=True,
        )
        search_outcome = SearchOutcome.SKIPPED

    if isinstance(reachable, BaseException):
        _log_check_crash(endpoint, "reachable", reachable)
        reachable = False
    if isinstance(search_outcome, BaseException):
        _log_check_crash(endpoint, "search", search_outcome)
        search_outcome = SearchOutcome.ERROR

    logger.info(
        "probe_finished",
        endpoint=endpoint.name,
        reachable=reachable,
        search=search_outcome.value,
    )
    return ProbeResult(
        name=endpoint.name,
        endpoint_key=endpoint.key,
        reachable=reachable,
        search_outcome=search_outcome,
    )


def _log_check_crash(endpoint: Endpoint, check: str, error: BaseException) -> None:
    logger.error(
        "probe_error",
        endpoint=endpoint.name,
        url=endpoint.base_url,
        check=check,
        error=repr(error)[:200],
        exc_info=error,
    )
