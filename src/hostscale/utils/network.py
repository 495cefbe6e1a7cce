"""
hostscale Network Utilities

HTTP client for vendor APIs and small connectivity helpers.
"""

import socket
import logging
from typing import Optional, Dict, Any

import requests
from requests.adapters import HTTPAdapter, Retry

from ..core.exceptions import ProviderOperationFailed, ProviderOperationTimedOut

logger = logging.getLogger(__name__)


def new_session(max_retries: int = 0, backoff_factor: float = 0.5) -> requests.Session:
    """
    Create a requests session.

    Retries are off by default: create calls are not idempotent, so the
    decision to repeat one stays with the operator.
    """
    session = requests.Session()
    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 502, 503, 504],
        allowed_methods=["GET", "HEAD"]
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def tcp_reachable(host: str, port: int, timeout: float = 5.0) -> bool:
    """
    Check whether a TCP connection to host:port can be opened.

    Returns:
        True if the connection succeeded within the timeout
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except (socket.timeout, ConnectionRefusedError, OSError) as e:
        logger.debug(f"{host}:{port} unreachable: {e}")
        return False


class HTTPClient:
    """
    JSON API client that turns transport problems into provider errors.

    Example:
        client = HTTPClient("https://api.example.com", provider="ovh")
        data = client.get("/cloud/project")
    """

    def __init__(
            self,
            base_url: Optional[str] = None,
            timeout: float = 30.0,
            provider: str = "http",
            session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/') if base_url else ''
        self.timeout = timeout
        self.provider = provider
        self.headers: Dict[str, str] = {}
        self.session = session or new_session()

    def build_url(self, path: str) -> str:
        """Build full URL from path"""
        if path.startswith(('http://', 'https://')):
            return path

        path = path.lstrip('/')
        return f"{self.base_url}/{path}" if self.base_url else path

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Make an HTTP request; non-2xx responses raise ProviderOperationFailed"""
        url = self.build_url(path)

        headers = self.headers.copy()
        if 'headers' in kwargs:
            headers.update(kwargs['headers'])
        kwargs['headers'] = headers
        kwargs.setdefault('timeout', self.timeout)

        operation = f"{method} {path}"
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise ProviderOperationTimedOut(
                f"{self.provider}: {operation} timed out",
                provider=self.provider,
                operation=operation,
                timeout=kwargs['timeout'],
                cause=str(e)
            ) from e
        except requests.RequestException as e:
            raise ProviderOperationFailed(
                f"{self.provider}: {operation} failed: {e}",
                provider=self.provider,
                operation=operation,
                cause=str(e)
            ) from e

        if response.status_code >= 400:
            cause = _error_message(response)
            raise ProviderOperationFailed(
                f"{self.provider}: {operation} returned {response.status_code}: {cause}",
                provider=self.provider,
                operation=operation,
                cause=cause,
                context={"status_code": response.status_code}
            )
        return response

    def get(self, path: str, **kwargs) -> Any:
        """GET request"""
        return self._json(self.request('GET', path, **kwargs), f"GET {path}")

    def post(self, path: str, **kwargs) -> Any:
        """POST request"""
        return self._json(self.request('POST', path, **kwargs), f"POST {path}")

    def put(self, path: str, **kwargs) -> Any:
        """PUT request"""
        return self._json(self.request('PUT', path, **kwargs), f"PUT {path}")

    def delete(self, path: str, **kwargs) -> Any:
        """DELETE request"""
        return self._json(self.request('DELETE', path, **kwargs), f"DELETE {path}")

    def _json(self, response: requests.Response, operation: str) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            body = response.text.strip()[:200]
            raise ProviderOperationFailed(
                f"{self.provider}: {operation} returned a non-JSON body: {body}",
                provider=self.provider,
                operation=operation,
                cause=body,
                context={"status_code": response.status_code}
            ) from e


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason or ""
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
