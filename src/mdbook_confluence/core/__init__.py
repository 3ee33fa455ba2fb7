"""Remote capability: Confluence REST client and async helpers."""

from .async_utils import BoundedRunner, run_sync
from .client import ConfluenceClient
from .protocols import RemoteWiki

__all__ = ["BoundedRunner", "ConfluenceClient", "RemoteWiki", "run_sync"]
