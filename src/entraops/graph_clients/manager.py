"""Microsoft Graph client utilities for entraops."""

import logging
import threading
import time
from typing import Any, Dict, Iterator, List, Optional

import msal
import requests
from rich.console import Console

from ..engine.exceptions import ThrottledError
from ..engine.interfaces import DirectorySession

logger = logging.getLogger(__name__)
console = Console(stderr=True)

GRAPH_SCOPE_SUFFIX = "/.default"
TOKEN_REFRESH_BUFFER_SECONDS = 300


class GraphError(Exception):
    """Base exception for Microsoft Graph client errors."""


class GraphAuthenticationError(GraphError):
    """Raised when no access token can be acquired."""


class GraphRequestError(GraphError):
    """Raised for an unsuccessful Graph response."""

    def __init__(self, status_code: int, code: str, message: str, url: Optional[str] = None):
        """Initialize request error.

        Args:
            status_code: HTTP status code
            code: Graph error code (e.g. ``Request_ResourceNotFound``)
            message: Graph error message
            url: Request URL
        """
        super().__init__(f"Graph error {status_code} ({code}): {message}")
        self.status_code = status_code
        self.code = code
        self.message = message
        self.url = url


class GraphNotFoundError(GraphRequestError):
    """Raised when the addressed Graph resource does not exist."""


class GraphThrottledError(ThrottledError):
    """Raised when Graph answers 429 Too Many Requests."""

    status_code = 429

    def __init__(self, message: str, retry_after: Optional[float] = None, url: Optional[str] = None):
        super().__init__(message, retry_after=retry_after)
        self.url = url


def _error_details(response: requests.Response) -> Dict[str, str]:
    try:
        payload = response.json()
    except ValueError:
        return {"code": response.reason or "Unknown", "message": response.text[:500]}
    error = payload.get("error", {}) if isinstance(payload, dict) else {}
    return {
        "code": error.get("code") or response.reason or "Unknown",
        "message": error.get("message") or response.text[:500],
    }


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class GraphClientManager(DirectorySession):
    """Manages the authenticated Microsoft Graph session.

    Tokens are acquired with MSAL: the client credentials flow when a client
    secret is configured, the device code flow otherwise. Workers share one
    instance; only ``connect``/``disconnect`` mutate the session state.
    """

    def __init__(
        self,
        tenant_id: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str] = None,
        authority_host: str = "https://login.microsoftonline.com",
        graph_endpoint: str = "https://graph.microsoft.com",
        request_timeout: float = 60,
        http_session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Graph client manager.

        Args:
            tenant_id: Entra ID tenant id or domain
            client_id: App registration client id
            client_secret: App registration secret; enables app-only authentication
            authority_host: Login endpoint
            graph_endpoint: Graph API root
            request_timeout: Per-request timeout in seconds
            http_session: Pre-built requests session (tests)
        """
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.authority = f"{authority_host.rstrip('/')}/{tenant_id}"
        self.graph_endpoint = graph_endpoint.rstrip("/")
        self.scopes = [self.graph_endpoint + GRAPH_SCOPE_SUFFIX]
        self.request_timeout = request_timeout

        self._http = http_session
        self._app: Optional[Any] = None
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_config(cls, graph_config: Dict[str, Any]) -> "GraphClientManager":
        """Create a manager from ``Config.get_graph_config()`` output."""
        return cls(
            tenant_id=graph_config.get("tenant_id"),
            client_id=graph_config.get("client_id"),
            client_secret=graph_config.get("client_secret"),
            authority_host=graph_config.get("authority_host", "https://login.microsoftonline.com"),
            graph_endpoint=graph_config.get("graph_endpoint", "https://graph.microsoft.com"),
            request_timeout=float(graph_config.get("request_timeout", 60)),
        )

    @property
    def identity(self) -> Optional[str]:
        return self.tenant_id if self._access_token else None

    @property
    def app_only(self) -> bool:
        return bool(self.client_secret)

    def is_connected(self) -> bool:
        return self._access_token is not None and time.time() < self._token_expires_at

    def connect(self) -> None:
        """Acquire an access token and open the HTTP session.

        Raises:
            GraphAuthenticationError: If configuration is missing or sign-in fails
        """
        if not self.tenant_id or not self.client_id:
            raise GraphAuthenticationError(
                "Missing Microsoft Graph settings: configure graph.tenant_id and "
                "graph.client_id or set ENTRAOPS_TENANT_ID and ENTRAOPS_CLIENT_ID"
            )

        self._acquire_token()
        if self._http is None:
            self._http = requests.Session()

    def disconnect(self) -> None:
        with self._token_lock:
            self._access_token = None
            self._token_expires_at = 0.0
        if self._http is not None:
            self._http.close()
            self._http = None
        self._app = None

    def _build_app(self) -> Any:
        if self.app_only:
            return msal.ConfidentialClientApplication(
                self.client_id, authority=self.authority, client_credential=self.client_secret
            )
        return msal.PublicClientApplication(self.client_id, authority=self.authority)

    def _acquire_token(self) -> str:
        with self._token_lock:
            if self._access_token and time.time() < self._token_expires_at:
                return self._access_token

            if self._app is None:
                self._app = self._build_app()

            if self.app_only:
                result = self._app.acquire_token_for_client(scopes=self.scopes)
            else:
                result = self._acquire_token_interactively()

            if not result or "access_token" not in result:
                error = (result or {}).get("error_description") or (result or {}).get(
                    "error", "Unknown error"
                )
                raise GraphAuthenticationError(f"Failed to acquire token: {error}")

            self._access_token = result["access_token"]
            expires_in = int(result.get("expires_in", 3600))
            self._token_expires_at = time.time() + max(
                expires_in - TOKEN_REFRESH_BUFFER_SECONDS, 60
            )
            logger.debug("Acquired Graph token for tenant %s", self.tenant_id)
            return self._access_token

    def _acquire_token_interactively(self) -> Dict[str, Any]:
        accounts = self._app.get_accounts()
        if accounts:
            cached = self._app.acquire_token_silent(self.scopes, account=accounts[0])
            if cached and "access_token" in cached:
                return cached

        flow = self._app.initiate_device_flow(scopes=self.scopes)
        if "user_code" not in flow:
            raise GraphAuthenticationError(
                f"Failed to start device code flow: {flow.get('error_description', flow)}"
            )
        console.print(f"[bold yellow]{flow['message']}[/bold yellow]")
        return self._app.acquire_token_by_device_flow(flow)

    def _url(self, path: str, version: str) -> str:
        if path.startswith("https://"):
            return path
        return f"{self.graph_endpoint}/{version}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        version: str = "v1.0",
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Make one Graph API call.

        Args:
            method: HTTP method
            path: Path relative to the version root, or an absolute nextLink URL
            version: ``v1.0`` or ``beta``
            params: Query parameters
            json: JSON body
            headers: Extra headers

        Returns:
            Decoded JSON body, or an empty dict for empty responses

        Raises:
            GraphThrottledError: On HTTP 429
            GraphNotFoundError: On HTTP 404
            GraphRequestError: On any other unsuccessful status
            RuntimeError: If the session is not connected
        """
        if self._http is None:
            raise RuntimeError("Graph session not connected")

        url = self._url(path, version)
        refreshed = False
        while True:
            request_headers = {
                "Authorization": f"Bearer {self._acquire_token()}",
                "Content-Type": "application/json",
            }
            request_headers.update(headers or {})
            response = self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers=request_headers,
                timeout=self.request_timeout,
            )

            if response.status_code == 401 and not refreshed:
                # Expired or revoked token; drop it and try once more
                with self._token_lock:
                    self._access_token = None
                    self._token_expires_at = 0.0
                refreshed = True
                continue
            break

        logger.debug("%s %s -> %s", method, url, response.status_code)

        if response.status_code == 429:
            raise GraphThrottledError(
                f"Graph throttled {method} {url}", retry_after=_retry_after(response), url=url
            )
        if response.status_code >= 400:
            details = _error_details(response)
            error_cls = GraphNotFoundError if response.status_code == 404 else GraphRequestError
            raise error_cls(response.status_code, details["code"], details["message"], url=url)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def get(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        return self.request("POST", path, json=json, **kwargs)

    def patch(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        return self.request("PATCH", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        return self.request("DELETE", path, **kwargs)

    def iter_pages(
        self,
        path: str,
        version: str = "v1.0",
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        max_pages: Optional[int] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Yield items of a collection, following ``@odata.nextLink``."""
        next_path: Optional[str] = path
        page_params = params
        pages = 0
        while next_path:
            data = self.request(
                "GET", next_path, version=version, params=page_params, headers=headers
            )
            for item in data.get("value", []):
                yield item
            pages += 1
            if max_pages is not None and pages >= max_pages:
                break
            next_path = data.get("@odata.nextLink")
            page_params = None

    def get_all(self, path: str, **kwargs: Any) -> List[Dict[str, Any]]:
        return list(self.iter_pages(path, **kwargs))
