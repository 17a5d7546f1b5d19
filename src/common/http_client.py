"""JSON HTTP client with retry and exponential backoff."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from .config import ApiSettings

logger = logging.getLogger(__name__)


class HTTPClient:
    """HTTP client wrapping a requests.Session for a JSON REST backend.

    Features:
    - Base URL joining
    - Automatic retries with exponential backoff on 5xx / 429 / network errors,
      for idempotent methods only unless the caller opts in
    - No retry on other 4xx responses (permanent failures)
    """

    BACKOFF_BASE = 2.0
    IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

    def __init__(
        self,
        api_settings: ApiSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = api_settings or ApiSettings()
        self._base_url = self.settings.base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        retry: bool | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (or None).

        Args:
            method: HTTP verb.
            path: Path relative to the base URL, e.g. "/vorverkauf".
            params: Query parameters.
            json: JSON body.
            retry: Retry transient failures. Defaults to True for idempotent
                methods; a retried POST can create the resource twice.

        Returns:
            Decoded JSON response, or None for empty bodies.

        Raises:
            requests.RequestException: After all retries exhausted.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        if retry is None:
            retry = method.upper() in self.IDEMPOTENT_METHODS
        max_retries = max(self.settings.max_retries, 1) if retry else 1

        last_exc: Exception | None = None
        for attempt in range(max_retries):
            try:
                resp = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    timeout=self.settings.request_timeout,
                )
                resp.raise_for_status()
                if not resp.content:
                    return None
                return resp.json()

            except requests.RequestException as exc:
                last_exc = exc

                # 4xx other than 429 will not succeed on retry
                if (
                    isinstance(exc, requests.HTTPError)
                    and exc.response is not None
                    and 400 <= exc.response.status_code < 500
                    and exc.response.status_code != 429
                ):
                    logger.warning("%s %s failed (4xx, no retry): %s", method, url, exc)
                    raise

                if attempt + 1 >= max_retries:
                    break

                wait_time = self.BACKOFF_BASE ** attempt
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s, retrying in %.1fs",
                    method,
                    url,
                    attempt + 1,
                    max_retries,
                    exc,
                    wait_time,
                )
                time.sleep(wait_time)

        raise last_exc  # type: ignore[misc]

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, retry: bool = False) -> Any:
        return self.request("POST", path, json=json, retry=retry)

    def patch(self, path: str, json: Any = None, retry: bool = False) -> Any:
        return self.request("PATCH", path, json=json, retry=retry)

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
