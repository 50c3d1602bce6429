"""HTTP client for the Sheets values API and request counters."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .errors import NetworkError, ParseError

logger = logging.getLogger(__name__)

_MAX_BODY_CHARS = 500


@dataclass
class RequestMetrics:
    network_requests: int = 0
    retries: int = 0
    cache_hits: int = 0
    inflight_joins: int = 0
    failed_areas: int = 0

    def inc(self, name: str, amount: int = 1) -> None:
        if not hasattr(self, name):
            raise ValueError(f"Unknown metric: {name}")
        setattr(self, name, getattr(self, name) + amount)

    def as_dict(self) -> Dict[str, int]:
        return {
            "network_requests": self.network_requests,
            "retries": self.retries,
            "cache_hits": self.cache_hits,
            "inflight_joins": self.inflight_joins,
            "failed_areas": self.failed_areas,
        }


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        delay = float(value)
    except ValueError:
        return None
    return max(0.0, delay)


class HttpClient:
    """Single-attempt JSON GET. Retry policy lives in ``retry.AreaFetch``."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.metrics = metrics
        self.session = requests.Session()

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"key": self.api_key}
        if params:
            query.update(params)
        headers = {"Accept": "application/json"}
        if extra_headers:
            headers.update(extra_headers)

        if self.metrics is not None:
            self.metrics.inc("network_requests")
        try:
            resp = self.session.get(url, params=query, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.debug("Transport error for %s: %s", url, exc)
            raise NetworkError(f"Transport error: {exc}") from exc

        status = resp.status_code
        if 200 <= status < 300:
            try:
                return resp.json()
            except ValueError as exc:
                logger.debug("Non-JSON response from %s", url)
                raise ParseError(f"Non-JSON response (HTTP {status})") from exc

        body = (resp.text or "")[:_MAX_BODY_CHARS]
        retry_after = parse_retry_after(resp.headers.get("Retry-After"))
        logger.debug("HTTP %s from %s", status, url)
        raise NetworkError(f"HTTP {status}", status=status, body=body, retry_after=retry_after)

    def close(self) -> None:
        self.session.close()
