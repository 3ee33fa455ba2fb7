"""Connection lifecycle for one renderer invocation."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from .config import Config
from .core.async_utils import BoundedRunner, run_sync
from .core.client import ConfluenceClient
from .errors import AuthenticationError, RemoteAPIError, RemoteReadError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def confluence_session(
    config: Config,
    client: Any = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage startup and shutdown around a sync pass.

    On startup:
    - Create the ConfluenceClient (unless one is supplied)
    - Validate the credentials against the server
    - Create the request limiter sized from ``max_parallel_requests``
    - Fail fast if Confluence is unreachable

    On shutdown:
    - Close the sessions of the calling thread

    Args:
        config: Resolved runtime configuration.
        client: Optional pre-built client (tests pass a fake).

    Yields:
        Dict with 'client' and 'runner' keys

    Raises:
        AuthenticationError: If the credentials are rejected.
        RemoteReadError: If the server cannot be reached.
    """
    logger.info("Connecting to Confluence at %s", config.url)

    if client is None:
        client = ConfluenceClient(config)

    try:
        user = await run_sync(client.validate_connection)
    except AuthenticationError:
        logger.error(
            "Confluence rejected the credentials for user %s", config.username
        )
        raise
    except RemoteAPIError as e:
        raise RemoteReadError(
            f"Confluence connection failed: {e}. Check the url setting "
            "or CONFLUENCE_URL."
        ) from e

    logger.info("Logged into Confluence as %s", user)
    runner = BoundedRunner(config.max_parallel_requests)
    logger.debug("Parallel requests: %d", config.max_parallel_requests)

    try:
        yield {"client": client, "runner": runner}
    finally:
        close = getattr(client, "close", None)
        if callable(close):
            close()
        logger.debug("Confluence session closed")
