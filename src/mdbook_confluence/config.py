"""Runtime configuration for one sync invocation.

Resolves the final connection settings from CLI args, environment
variables, the ``[output.confluence]`` table of ``book.toml`` and the YAML
config file (already merged into ``ConfluenceOptions``).

Precedence (highest to lowest):
    CLI args > Environment variables > book.toml > YAML config > Built-in defaults

Environment variables:
    CONFLUENCE_URL: Confluence base URL
    CONFLUENCE_USERNAME: Confluence username
    CONFLUENCE_PASSWORD: Confluence password (the only place besides an
        interactive prompt where the secret is expected)
    CONFLUENCE_ROOT_PAGE: Id of the anchor page
    CONFLUENCE_INSECURE: Skip SSL verification (optional, default: false)
    CONFLUENCE_MAX_PARALLEL_REQUESTS: Max parallel requests (optional)
"""

import getpass
import logging
import os
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urlparse

from .config_schema import ConfluenceOptions
from .errors import ConfigurationError
from .validators import validate_page_id

logger = logging.getLogger(__name__)


@dataclass
class Config:
    url: str
    username: str
    password: str = field(repr=False)
    root_page: str
    title_prefix: str = ""
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 4
    max_retries: int = 3
    retry_backoff: float = 0.5
    timeout: float = 60
    page_size: int = 50
    qualify_titles: bool = False
    title_separator: str = " / "


def validate_config(config: Config) -> None:
    """Validate configuration values.

    Raises:
        ConfigurationError: If the URL, credentials or anchor id are invalid.
    """
    config.url = config.url.strip()

    if not config.url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Invalid Confluence URL '{config.url}': must start with http:// or https://"
        )

    parsed = urlparse(config.url)
    if not parsed.hostname:
        raise ConfigurationError(
            f"Invalid Confluence URL '{config.url}': URL must include a hostname"
        )

    config.url = config.url.removesuffix("/")

    if not config.username.strip():
        raise ConfigurationError(
            "Confluence username cannot be empty. Set CONFLUENCE_USERNAME "
            "or 'username' in [output.confluence]."
        )

    if not config.password:
        raise ConfigurationError(
            "Confluence password cannot be empty. Set CONFLUENCE_PASSWORD."
        )

    is_valid, error_msg = validate_page_id(config.root_page)
    if not is_valid:
        raise ConfigurationError(
            f"Invalid root_page '{config.root_page}': {error_msg}"
        )
    config.root_page = str(config.root_page).strip()

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    options: ConfluenceOptions,
    url: str | None = None,
    username: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    prompt: bool = True,
    prompt_func: Callable[[str], str] = getpass.getpass,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > options (book.toml over YAML) > default

    The password is never accepted as a CLI argument.  When no source
    provides it and *prompt* is set, the user is asked on the terminal.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Raises:
        ConfigurationError: If a required option is missing or invalid.
    """
    # --- String fields: CLI > env > options > error ---

    final_url = url or os.getenv("CONFLUENCE_URL") or options.url
    if not final_url:
        raise ConfigurationError(
            "Confluence URL not found. Set CONFLUENCE_URL, pass --url, "
            "or add 'url' to [output.confluence] in book.toml."
        )

    final_username = (
        username or os.getenv("CONFLUENCE_USERNAME") or options.username
    )
    if not final_username:
        raise ConfigurationError(
            "Confluence username not found. Set CONFLUENCE_USERNAME, pass "
            "--username, or add 'username' to [output.confluence]."
        )

    root_page = os.getenv("CONFLUENCE_ROOT_PAGE") or options.root_page
    if root_page is None or root_page == "":
        raise ConfigurationError(
            "Anchor page not configured. Add 'root_page' to "
            "[output.confluence] or set CONFLUENCE_ROOT_PAGE."
        )

    final_password = os.getenv("CONFLUENCE_PASSWORD") or options.password
    if not final_password:
        if not prompt:
            raise ConfigurationError(
                "Confluence password not found. Set CONFLUENCE_PASSWORD."
            )
        try:
            final_password = prompt_func(
                f"Confluence password for {final_username}: "
            )
        except (EOFError, OSError) as err:
            raise ConfigurationError(
                "Confluence password not found and no terminal to prompt "
                "on. Set CONFLUENCE_PASSWORD."
            ) from err

    # --- Boolean fields: CLI > env > options ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("CONFLUENCE_INSECURE")
        final_insecure = (
            env_insecure if env_insecure is not None else options.insecure
        )

    # --- Numeric fields: env > options ---

    max_parallel_raw = os.getenv("CONFLUENCE_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid CONFLUENCE_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 32"
            ) from None
        if not (1 <= final_max_parallel <= 32):
            raise ConfigurationError(
                f"Invalid CONFLUENCE_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 32"
            )
    else:
        final_max_parallel = options.max_parallel_requests

    config = Config(
        url=final_url.strip(),
        username=final_username.strip(),
        password=final_password,
        root_page=str(root_page),
        title_prefix=options.title_prefix or "",
        insecure=final_insecure,
        debug=debug,
        max_parallel_requests=final_max_parallel,
        max_retries=options.max_retries,
        retry_backoff=options.retry_backoff,
        timeout=options.timeout,
        page_size=options.page_size,
        qualify_titles=options.qualify_titles,
        title_separator=options.title_separator,
    )

    validate_config(config)

    return config
