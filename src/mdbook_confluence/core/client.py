import logging
import threading
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import Config
from ..errors import (
    AuthenticationError,
    PageNotFoundError,
    RemoteAPIError,
    VersionConflictError,
)
from ..sync.models import PageRef, RemotePage
from ..validators import validate_content, validate_page_title
from ..version import parse_version

logger = logging.getLogger(__name__)

_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})

_PAGE_EXPAND = "body.storage,version,space,ancestors"
_CHILD_EXPAND = "body.storage,version,space"


class ConfluenceClient:
    """Confluence REST API client implementing the ``RemoteWiki`` protocol.

    Each worker thread gets its own ``requests.Session``.  Idempotent GETs
    are retried by urllib3 on connection errors and 5xx; writes are not
    retried here (the executor decides what is safe to retry).
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = self._get_api_url()
        self._space_keys: dict[str, str] = {}
        self._space_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """Current thread's session."""
        return self._get_session()

    def _get_api_url(self) -> str:
        return f"{self.config.url.rstrip('/')}/rest/api"

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def close(self) -> None:
        """Close the current thread's session, if one was opened."""
        session = getattr(self._thread_local, "session", None)
        if session is not None:
            session.close()
            del self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.config.username, self.config.password)
        session.verify = not self.config.insecure
        session.headers["Accept"] = "application/json"

        retry_strategy = Retry(
            total=self.config.max_retries,
            backoff_factor=self.config.retry_backoff,
            status_forcelist=sorted(_TRANSIENT_STATUSES),
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Make a REST request and decode the JSON response.

        Raises:
            AuthenticationError: On 401/403.
            PageNotFoundError: On 404.
            VersionConflictError: On 409.
            RemoteAPIError: On any other failure; ``transient`` is set for
                timeouts, connection errors, 429 and 5xx.
        """
        url = path if path.startswith("http") else f"{self.api_url}{path}"
        session = self._get_session()
        try:
            response = session.request(
                method,
                url,
                timeout=(10, self.config.timeout),
                **kwargs,
            )
        except (requests.Timeout, requests.ConnectionError) as err:
            raise RemoteAPIError(
                f"{method} {path} failed: {err}", transient=True
            ) from err
        except requests.RequestException as err:
            raise RemoteAPIError(f"{method} {path} failed: {err}") from err

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(
                f"{method} {path} rejected with HTTP {status}: "
                "check username and password"
            )
        if status == 404:
            raise PageNotFoundError(
                f"{method} {path}: not found", status_code=status
            )
        if status == 409:
            raise VersionConflictError(
                f"{method} {path}: {self._error_message(response)}",
                status_code=status,
            )
        if status >= 400:
            raise RemoteAPIError(
                f"{method} {path} failed with HTTP {status}: "
                f"{self._error_message(response)}",
                status_code=status,
                transient=status in _TRANSIENT_STATUSES,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as err:
            raise RemoteAPIError(
                f"{method} {path}: response is not JSON",
                status_code=status,
            ) from err

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] or response.reason or ""
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return str(data)[:200]

    def _to_page(
        self, data: dict[str, Any], parent_id: str | None = None
    ) -> RemotePage:
        """Build a ``RemotePage`` from a REST content object."""
        if parent_id is None:
            ancestors = data.get("ancestors") or []
            if ancestors:
                parent_id = str(ancestors[-1]["id"])

        space_key = (data.get("space") or {}).get("key")
        page_id = str(data["id"])
        if space_key:
            self._remember_space(page_id, space_key)

        return RemotePage(
            id=page_id,
            title=data.get("title", ""),
            version=int((data.get("version") or {}).get("number", 1)),
            parent_id=parent_id,
            body=((data.get("body") or {}).get("storage") or {}).get(
                "value", ""
            ),
            space_key=space_key,
        )

    def _remember_space(self, page_id: str, space_key: str) -> None:
        with self._space_lock:
            self._space_keys[page_id] = space_key

    def _space_for(self, page_id: str) -> str:
        """Space key of a page, fetched once and cached."""
        with self._space_lock:
            cached = self._space_keys.get(page_id)
        if cached:
            return cached
        page = self.get_page(page_id)
        if not page.space_key:
            raise RemoteAPIError(f"Page {page_id} has no space")
        return page.space_key

    # Read operations

    def get_page(self, page_id: str) -> RemotePage:
        """
        Get a page with body, version, space and parent.

        Raises:
            PageNotFoundError: If the page does not exist
        """
        data = self._request(
            "GET", f"/content/{page_id}", params={"expand": _PAGE_EXPAND}
        )
        return self._to_page(data)

    def list_children(self, page_id: str) -> list[RemotePage]:
        """
        List all direct child pages, following ``_links.next`` until the
        last batch.

        Raises:
            RemoteAPIError: If a batch is malformed or shorter than its
                declared size
        """
        children: list[RemotePage] = []
        path = f"/content/{page_id}/child/page"
        params: dict[str, Any] | None = {
            "expand": _CHILD_EXPAND,
            "start": 0,
            "limit": self.config.page_size,
        }

        while path:
            data = self._request("GET", path, params=params)
            results = data.get("results")
            if not isinstance(results, list):
                raise RemoteAPIError(
                    f"Malformed child listing for page {page_id}"
                )
            size = data.get("size", len(results))
            if size != len(results):
                raise RemoteAPIError(
                    f"Partial child listing for page {page_id}: "
                    f"expected {size} results, got {len(results)}"
                )
            children.extend(
                self._to_page(item, parent_id=str(page_id))
                for item in results
            )

            next_link = (data.get("_links") or {}).get("next")
            if not next_link:
                break
            # next links are relative to the context path and carry
            # their own query string
            base = (data.get("_links") or {}).get("base") or self.config.url
            path = f"{base.rstrip('/')}{next_link}"
            params = None

        return children

    def validate_connection(self) -> str:
        """
        Check that the server is reachable and accepts the credentials.

        Returns:
            The authenticated user's display name

        Raises:
            AuthenticationError: If the credentials are rejected
            RemoteAPIError: If the server cannot be reached
        """
        data = self._request("GET", "/user/current")
        if not isinstance(data, dict) or data.get("type") == "anonymous":
            raise AuthenticationError(
                "Confluence treated the request as anonymous: "
                "check username and password"
            )
        return str(
            data.get("displayName") or data.get("username")
            or self.config.username
        )

    def get_server_version(self) -> tuple[int, ...] | None:
        """
        Read the server version from the applinks manifest.

        Returns None if the server does not expose it, including when the
        manifest is restricted (HTTP 401/403).
        """
        url = f"{self.config.url.rstrip('/')}/rest/applinks/1.0/manifest"
        try:
            data = self._request("GET", url)
        except (RemoteAPIError, AuthenticationError) as err:
            logger.debug("Server version unavailable: %s", err)
            return None

        raw = str(data.get("version", "")) if isinstance(data, dict) else ""
        return parse_version(raw)

    # Write operations

    def create_page(self, parent_id: str, title: str, body: str) -> PageRef:
        """
        Create a page under an existing parent, in the parent's space.

        Raises:
            ValueError: If title or body validation fails
            RemoteAPIError: If the server rejects the page (e.g. a page
                with this title already exists in the space)
        """
        self._validate(title, body)
        space_key = self._space_for(parent_id)
        payload = {
            "type": "page",
            "title": title,
            "space": {"key": space_key},
            "ancestors": [{"id": parent_id}],
            "body": {"storage": {"value": body, "representation": "storage"}},
        }
        data = self._request("POST", "/content", json=payload)
        page_id = str(data["id"])
        self._remember_space(page_id, space_key)
        version = int((data.get("version") or {}).get("number", 1))
        return PageRef(id=page_id, version=version)

    def update_page(
        self, page_id: str, title: str, body: str, expected_version: int
    ) -> int:
        """
        Replace a page body with optimistic locking.

        Confluence accepts the write only if ``expected_version + 1`` is
        the next version, i.e. nobody saved the page since it was read.

        Raises:
            VersionConflictError: If the page was modified concurrently
        """
        return self._put_page(page_id, title, body, expected_version)

    def move_page(
        self,
        page_id: str,
        new_parent_id: str,
        title: str,
        body: str,
        expected_version: int,
    ) -> int:
        """
        Reparent a page (and write its body) with optimistic locking.

        Raises:
            VersionConflictError: If the page was modified concurrently
        """
        return self._put_page(
            page_id, title, body, expected_version, parent_id=new_parent_id
        )

    def _put_page(
        self,
        page_id: str,
        title: str,
        body: str,
        expected_version: int,
        parent_id: str | None = None,
    ) -> int:
        self._validate(title, body)
        payload: dict[str, Any] = {
            "id": page_id,
            "type": "page",
            "title": title,
            "version": {"number": expected_version + 1},
            "body": {"storage": {"value": body, "representation": "storage"}},
        }
        if parent_id is not None:
            payload["ancestors"] = [{"id": parent_id}]
        data = self._request("PUT", f"/content/{page_id}", json=payload)
        return int(
            (data.get("version") or {}).get("number", expected_version + 1)
        )

    @staticmethod
    def _validate(title: str, body: str) -> None:
        is_valid, error_msg = validate_page_title(title)
        if not is_valid:
            raise ValueError(f"Invalid page title: {error_msg}")
        is_valid, error_msg = validate_content(body)
        if not is_valid:
            raise ValueError(f"Invalid content: {error_msg}")
