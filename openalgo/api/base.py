"""
Base HTTP client with typed error handling.

Every OpenAlgo REST call is a POST of a JSON body carrying the API key to
{host}/api/{version}/{endpoint}. Thread-safe (one pooled requests.Session).
"""

from typing import Any, Dict, Optional
import logging

import orjson
import requests
from requests.adapters import HTTPAdapter

from ..config import OpenAlgoSettings
from ..exceptions import APIError, AuthenticationError, TimeoutError

logger = logging.getLogger(__name__)


class BaseAPIClient:
    """
    Base HTTP client for the OpenAlgo REST API.

    No retries: a failed request surfaces immediately as a typed error.
    """

    def __init__(
        self,
        api_key: str,
        settings: OpenAlgoSettings,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize base API client.

        Args:
            api_key: OpenAlgo API key (sent in every body)
            settings: Client settings (host, version, timeouts)
            session: Pre-built session (tests); a pooled one is created otherwise
        """
        self.api_key = api_key
        self.settings = settings
        self.base_url = f"{settings.host.rstrip('/')}/api/{settings.api_version}"

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=10, pool_maxsize=20, max_retries=0)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-API-KEY": api_key,
        })

        self.timeout = (settings.connect_timeout, settings.request_timeout)
        self._request_counter = 0

    def build_url(self, endpoint: str) -> str:
        """Full URL for an endpoint name such as "quotes"."""
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def post(self, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        POST to an API endpoint.

        Args:
            endpoint: Endpoint name (e.g. "quotes")
            payload: JSON body; the API key is added

        Returns:
            Response JSON

        Raises:
            AuthenticationError: On 401/403
            APIError: On other HTTP errors, connection errors or invalid JSON
            TimeoutError: On timeout
        """
        url = self.build_url(endpoint)
        body = dict(payload or {})
        body["apikey"] = self.api_key

        self._request_counter += 1
        request_id = f"POST:{endpoint}:{self._request_counter}"
        logger.debug(f"[{request_id}] POST {url}")

        try:
            response = self.session.post(
                url,
                data=orjson.dumps(body),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Request timeout: POST {url}")
            raise TimeoutError(f"Request timeout: {e}") from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error: POST {url}")
            raise APIError(f"Connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: POST {url}: {e}")
            raise APIError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            error_data = None
            error_msg = f"POST {endpoint} failed with {response.status_code}"
            try:
                error_data = orjson.loads(response.content)
                if isinstance(error_data, dict):
                    error_msg += f": {error_data.get('message') or error_data}"
                else:
                    error_msg += f": {error_data}"
            except orjson.JSONDecodeError as e:
                logger.debug(f"Could not parse error response as JSON: {e}")
                error_msg += f": {response.text[:200]}"

            if response.status_code in (401, 403):
                raise AuthenticationError(error_msg, {"status_code": response.status_code})
            raise APIError(
                error_msg,
                status_code=response.status_code,
                response=error_data if isinstance(error_data, dict) else None
            )

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            logger.error(f"Invalid JSON response: {response.text[:200]}")
            raise APIError(f"Invalid JSON response: {e}", status_code=response.status_code) from e

    def close(self) -> None:
        """Close session and cleanup resources."""
        self.session.close()
        logger.info("API client session closed")
