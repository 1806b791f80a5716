"""
HTTP Client - Timeout-bounded requests against the node registries.

Every call carries an explicit timeout. Transport failures, error statuses
and non-JSON bodies all surface as RegistryTransportError so the pipeline
can abort before touching the existing cache.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from requests.exceptions import RequestException, Timeout

from .errors import RegistryTimeoutError, RegistryTransportError


logger = logging.getLogger(__name__)

# Default timeout in seconds
DEFAULT_TIMEOUT = 30

USER_AGENT = "n8n-registry-refresh"


class HttpResponse:
    """
    Wrapper for HTTP response with convenient accessors.
    """

    def __init__(self, response: requests.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def ok(self) -> bool:
        """True if status code is 2xx."""
        return self._response.ok

    @property
    def url(self) -> str:
        return str(self._response.url)

    def raise_for_status(self) -> None:
        """Raise RegistryTransportError if status code indicates error."""
        if not self.ok:
            raise RegistryTransportError(
                f"HTTP {self.status_code}: {self._response.reason}",
                url=self.url,
                status_code=self.status_code,
            )

    def json(self) -> Any:
        """Parse response as JSON."""
        try:
            return self._response.json()
        except ValueError as e:
            raise RegistryTransportError(
                f"Response is not valid JSON: {e}",
                url=self.url,
                status_code=self.status_code,
            ) from e


class HttpClient:
    """
    HTTP client with timeout enforcement.

    Usage:
        client = HttpClient(timeout=30)
        payload = client.get_json("https://api.n8n.io/api/nodes", params={...})
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize HTTP client.

        Args:
            timeout: Default timeout in seconds
        """
        self.timeout = timeout
        self.headers: Dict[str, str] = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Make HTTP request with timeout enforcement.

        Raises:
            RegistryTimeoutError: If request times out
            RegistryTransportError: If request fails
        """
        request_timeout = timeout or self.timeout

        try:
            response = requests.request(
                method=method,
                url=url,
                params=params,
                headers=self.headers,
                timeout=request_timeout,
            )
            return HttpResponse(response)

        except Timeout as e:
            raise RegistryTimeoutError(
                f"Request timed out after {request_timeout}s",
                timeout=request_timeout,
                url=url,
            ) from e

        except RequestException as e:
            raise RegistryTransportError(f"Request failed: {e}", url=url) from e

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> HttpResponse:
        """Make GET request."""
        return self.request("GET", url, params=params, **kwargs)

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Any:
        """GET a URL, fail on error status, and return the decoded body."""
        response = self.get(url, params=params, **kwargs)
        response.raise_for_status()
        logger.debug("GET %s -> %s", response.url, response.status_code)
        return response.json()
