"""REST API record source.

Fetches a JSON array of objects from an HTTP endpoint, optionally polling
it a fixed number of times. Failed requests abort the read; there is no
retry or backoff.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional

import requests

from .source_base import RecordSource, SourceError

log = logging.getLogger(__name__)


class ApiSource(RecordSource):
    """JSON records from a REST endpoint.

    Args:
        url: Endpoint URL.
        params: Optional query string parameters.
        headers: Optional request headers.
        records_key: Key holding the record array when the endpoint wraps
            it in an object (dotted paths such as ``data.items`` work).
        timeout: Request timeout in seconds.
        max_polls: Number of requests to make; ``None`` polls until the
            caller stops iterating.
        poll_interval: Seconds to sleep between polls.
        session: Optional ``requests.Session`` to reuse.
    """

    source_type = "api"

    def __init__(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        records_key: Optional[str] = None,
        timeout: float = 30.0,
        max_polls: Optional[int] = 1,
        poll_interval: float = 0.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(url)
        if max_polls is not None and max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        self.url = url
        self.params = params or {}
        self.headers = headers or {}
        self.records_key = records_key
        self.timeout = timeout
        self.max_polls = max_polls
        self.poll_interval = poll_interval
        self.session = session
        self._sleep = sleep

    def _extract_records(self, payload: Any) -> list:
        if self.records_key:
            for part in self.records_key.split("."):
                if not isinstance(payload, dict) or part not in payload:
                    raise SourceError(
                        f"Response from '{self.url}' has no '{self.records_key}' key"
                    )
                payload = payload[part]
        if not isinstance(payload, list):
            raise SourceError(
                f"Response from '{self.url}' is not a JSON array of objects"
            )
        return payload

    def fetch(self) -> list:
        """Make one request and return the decoded record list.

        Raises:
            SourceError: If the request fails, returns an error status, or
                the body is not the expected JSON shape.
        """
        http = self.session or requests
        try:
            response = http.get(
                self.url,
                params=self.params,
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise SourceError(f"Request to '{self.url}' failed: {exc}") from exc
        except ValueError as exc:
            raise SourceError(f"Response from '{self.url}' is not valid JSON: {exc}") from exc

        records = self._extract_records(payload)
        log.info("Fetched %d records from '%s'", len(records), self.url)
        return records

    def read(self) -> Iterator[Any]:
        polls = 0
        while self.max_polls is None or polls < self.max_polls:
            if polls and self.poll_interval:
                self._sleep(self.poll_interval)
            polls += 1
            yield from self.fetch()
