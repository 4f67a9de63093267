"""Upstream places search provider: HTTP client, response shapes, pagination."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from config import settings
from exceptions import UpstreamSearchError
from services.attempts import AttemptOutcome, FatalFailure, RecoverableFailure, Success
from services.geography import LocationQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpstreamShape:
    """One known layout of the provider's results array."""

    name: str
    path: Tuple[str, ...]

    def extract(self, payload: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        node: Any = payload
        for key in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        if not isinstance(node, list):
            return None
        return [item for item in node if isinstance(item, dict)]


# Priority order matters: the first shape yielding a non-empty array wins.
UPSTREAM_SHAPES: Sequence[UpstreamShape] = (
    UpstreamShape("places", ("places",)),
    UpstreamShape("local.results", ("local", "results")),
    UpstreamShape("localResults", ("localResults",)),
    UpstreamShape("local_results", ("local_results",)),
)

DETECTED_LOCATION_PATHS: Sequence[Tuple[str, ...]] = (
    ("search_information", "detected_location"),
    ("searchInformation", "detectedLocation"),
    ("searchParameters", "location"),
    ("search_parameters", "location"),
    ("detectedLocation",),
)


class UpstreamShapeError(ValueError):
    """Payload matched none of the known result layouts."""


@dataclass
class ParsedPage:
    shape: Optional[str]
    results: List[Dict[str, Any]] = field(default_factory=list)
    detected_location: Optional[str] = None


@dataclass
class FetchResult:
    raw_results: List[Dict[str, Any]] = field(default_factory=list)
    location_warning: Optional[str] = None
    pages_fetched: int = 0
    stop_reason: str = "exhausted"


def extract_detected_location(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for path in DETECTED_LOCATION_PATHS:
        node: Any = payload
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        text = str(node or "").strip()
        if text:
            return text
    return None


def parse_upstream_payload(payload: Any) -> ParsedPage:
    if not isinstance(payload, dict):
        raise UpstreamShapeError("payload is not a JSON object")
    detected = extract_detected_location(payload)
    for shape in UPSTREAM_SHAPES:
        results = shape.extract(payload)
        if results:
            return ParsedPage(shape=shape.name, results=results, detected_location=detected)
    raise UpstreamShapeError("no known results array in payload")


def describe_location_mismatch(requested: str, detected: Optional[str]) -> Optional[str]:
    """Human-readable warning when the provider searched somewhere else."""
    detected_text = str(detected or "").strip()
    requested_text = str(requested or "").strip()
    if not detected_text or not requested_text:
        return None

    requested_lower = requested_text.lower()
    detected_lower = detected_text.lower()
    requested_primary = requested_lower.split(",", 1)[0].strip()
    detected_primary = detected_lower.split(",", 1)[0].strip()
    if requested_primary and requested_primary in detected_lower:
        return None
    if detected_primary and detected_primary in requested_lower:
        return None
    return (
        f'Results may be for "{detected_text}" rather than "{requested_text}". '
        "Try adding a region or country to the location."
    )


class SearchProviderClient:
    """Thin async client for the places search API (API-key header auth)."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        details_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url or settings.SEARCH_PROVIDER_URL
        self.timeout = float(timeout or settings.SEARCH_TIMEOUT_SECONDS)
        self.details_timeout = float(details_timeout or settings.PLACE_DETAILS_TIMEOUT_SECONDS)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.api_key, "Content-Type": "application/json"}

    async def _post(self, body: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            response = await client.post(self.base_url, json=body, headers=self._headers())
            response.raise_for_status()
            payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Search provider returned a non-object payload")
        return payload

    async def search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(params, self.timeout)

    async def lookup_place(self, place_id: str, country_code: str = "us") -> Dict[str, Any]:
        return await self._post({"q": f"place_id:{place_id}", "gl": country_code}, self.details_timeout)


def page_count_for(max_results: int) -> int:
    page_size = max(int(settings.SEARCH_PAGE_SIZE), 1)
    wanted = max(int(max_results), 1)
    return max(1, min(math.ceil(wanted / page_size), max(int(settings.SEARCH_MAX_PAGES), 1)))


def build_page_params(location_query: LocationQuery, page_index: int) -> Dict[str, Any]:
    page_size = max(int(settings.SEARCH_PAGE_SIZE), 1)
    params: Dict[str, Any] = {
        "q": location_query.search_text,
        "gl": location_query.country_code,
        "hl": "en",
        "num": page_size,
    }
    if location_query.bias is not None:
        params.update(location_query.bias.as_params())
    if page_index > 0:
        params["start"] = page_index * page_size
    return params


async def _fetch_page(
    provider: SearchProviderClient,
    params: Dict[str, Any],
    *,
    first_page: bool,
) -> AttemptOutcome:
    try:
        payload = await provider.search(params)
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        reason = f"Search provider returned HTTP {status}"
        if first_page:
            return FatalFailure(reason, status_code=status)
        return RecoverableFailure(reason, errored=True)
    except (httpx.HTTPError, ValueError) as exc:
        reason = f"Search provider request failed: {exc.__class__.__name__}: {exc}"
        if first_page:
            return FatalFailure(reason)
        return RecoverableFailure(reason, errored=True)

    try:
        return Success(parse_upstream_payload(payload))
    except UpstreamShapeError:
        return Success(ParsedPage(shape=None, detected_location=extract_detected_location(payload)))


async def fetch_search_pages(
    provider: SearchProviderClient,
    location_query: LocationQuery,
    max_results: int,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> FetchResult:
    """Fetch sequential result pages until enough results, an empty page, or a failure.

    A failure on the first page raises ``UpstreamSearchError``; failures on
    later pages end pagination and keep what was already collected.
    """
    result = FetchResult()
    target = max(int(max_results), 1)
    delay_seconds = max(int(settings.SEARCH_PAGE_DELAY_MS), 0) / 1000.0

    for page_index in range(page_count_for(target)):
        if page_index > 0 and delay_seconds > 0:
            await sleep(delay_seconds)

        first_page = page_index == 0
        outcome = await _fetch_page(provider, build_page_params(location_query, page_index), first_page=first_page)
        result.pages_fetched += 1

        if isinstance(outcome, FatalFailure):
            logger.warning("First search page failed for %r: %s", location_query.search_text, outcome.reason)
            raise UpstreamSearchError(outcome.reason, upstream_status=outcome.status_code)
        if isinstance(outcome, RecoverableFailure):
            logger.warning("Stopping pagination at page %d: %s", page_index + 1, outcome.reason)
            result.stop_reason = "page_error"
            break

        page: ParsedPage = outcome.value
        if first_page and location_query.bias is None:
            result.location_warning = describe_location_mismatch(location_query.location, page.detected_location)

        if not page.results:
            result.stop_reason = "no_results" if first_page else "empty_page"
            break

        result.raw_results.extend(page.results)
        if len(result.raw_results) >= target:
            result.stop_reason = "max_results"
            break

    return result
