"""Runtime configuration for the Confluence sync engine.

Reads connection and sync settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CONFLUENCE_URL: Confluence base URL (required)
    CONFLUENCE_USERNAME: Confluence username (required)
    CONFLUENCE_PASSWORD: Confluence password or API token (required)
    CONFLUENCE_ROOT_PAGE_IDS: Root page ids, comma/newline/space separated
    CONFLUENCE_SYNC_FOLDER: Target folder inside the vault (default: ConfluenceSync)
    CONFLUENCE_VAULT: Local root directory files are written under (default: CWD)
    CONFLUENCE_STATE_FILE: Sync state JSON path (default: .confluence_sync/state.json)
    CONFLUENCE_JIRA_URL: Base URL for Jira issue links
    CONFLUENCE_INSECURE: Skip SSL verification (optional, default: false)
    CONFLUENCE_MAX_PARALLEL_REQUESTS: Pages synced concurrently (optional, default: 5)
    CONFLUENCE_DEBUG: Enable debug logging (optional, default: false)

``Config`` is an immutable snapshot.  Changing a setting produces a new
snapshot via ``with_overrides()``; nothing mutates a shared instance.
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_SYNC_FOLDER = "ConfluenceSync"
DEFAULT_STATE_FILE = ".confluence_sync/state.json"
DEFAULT_JIRA_URL = "https://jira.example.com"
DEFAULT_MAX_PARALLEL = 5

# Comma, full-width comma, and any whitespace (newlines included)
_ROOT_ID_SEPARATORS = re.compile(r"[，,\s]+")


class ConfigurationError(ValueError):
    """Raised when required settings are missing or malformed."""


@dataclass(frozen=True)
class Config:
    base_url: str
    username: str
    password: str
    root_page_ids: tuple[str, ...] = field(default_factory=tuple)
    sync_folder: str = DEFAULT_SYNC_FOLDER
    vault_root: str = "."
    state_file: str = DEFAULT_STATE_FILE
    jira_base_url: str = DEFAULT_JIRA_URL
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = DEFAULT_MAX_PARALLEL

    def with_overrides(self, **changes) -> "Config":
        """Return a new snapshot with *changes* applied."""
        return replace(self, **changes)


def parse_root_page_ids(raw: str | None) -> tuple[str, ...]:
    """Split a user-entered root id list into ids.

    Accepts commas (ASCII or full-width), newlines and spaces as
    separators; empty entries are dropped and order is preserved.

    >>> parse_root_page_ids("123, 456\\n789，42")
    ('123', '456', '789', '42')
    """
    if not raw or not raw.strip():
        return ()
    return tuple(
        part.strip()
        for part in _ROOT_ID_SEPARATORS.split(raw)
        if part.strip()
    )


def validate_config(config: Config) -> Config:
    """Validate configuration values and return a normalised copy.

    Args:
        config: Config instance to validate.

    Returns:
        Config with the base URL stripped of whitespace and trailing slashes.

    Raises:
        ConfigurationError: If the URL format is invalid or credentials are empty.
    """
    base_url = config.base_url.strip()

    if not base_url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Invalid Confluence URL '{base_url}': must start with http:// or https://"
        )

    parsed = urlparse(base_url)
    if not parsed.hostname:
        raise ConfigurationError(
            f"Invalid Confluence URL '{base_url}': URL must include a hostname"
        )

    base_url = base_url.rstrip("/")

    if not config.username.strip():
        raise ConfigurationError(
            "Confluence username cannot be empty. Set CONFLUENCE_USERNAME environment variable."
        )

    if not config.password.strip():
        raise ConfigurationError(
            "Confluence password cannot be empty. Set CONFLUENCE_PASSWORD environment variable."
        )

    if not 1 <= config.max_parallel_requests <= 100:
        raise ConfigurationError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: must be between 1 and 100"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )

    return config.with_overrides(
        base_url=base_url,
        jira_base_url=config.jira_base_url.strip().rstrip("/"),
        sync_folder=config.sync_folder.strip().strip("/")
        or DEFAULT_SYNC_FOLDER,
    )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    root_page_ids: str | None = None,
    sync_folder: str | None = None,
    vault_root: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Root page ids are not required here: a connection test needs none,
    and the sync engine rejects an empty root set before it lists anything.

    Args:
        url: Override Confluence base URL.
        username: Override username.
        password: Override password / API token.
        root_page_ids: Override root page id string.
        sync_folder: Override the vault folder pages are written to.
        vault_root: Override the local directory acting as vault root.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened values from the YAML ``confluence`` and
            ``sync`` sections, used when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationError: If URL, username, or password is missing
            after checking all sources.
    """
    fb = yaml_fallbacks or {}

    base_url = url or os.getenv("CONFLUENCE_URL") or fb.get("url")
    if not base_url:
        raise ConfigurationError(
            "Confluence URL not found. Set CONFLUENCE_URL environment variable, "
            "pass --url CLI argument, or add 'url' to config.yml."
        )

    final_username = (
        username or os.getenv("CONFLUENCE_USERNAME") or fb.get("username")
    )
    if not final_username:
        raise ConfigurationError(
            "Confluence username not found. Set CONFLUENCE_USERNAME environment variable, "
            "pass --username CLI argument, or add 'username' to config.yml."
        )

    final_password = (
        password or os.getenv("CONFLUENCE_PASSWORD") or fb.get("password")
    )
    if not final_password:
        raise ConfigurationError(
            "Confluence password not found. Set CONFLUENCE_PASSWORD environment variable, "
            "pass --password CLI argument, or add 'password' to config.yml."
        )

    raw_roots = root_page_ids or os.getenv("CONFLUENCE_ROOT_PAGE_IDS")
    if raw_roots is None:
        yaml_roots = fb.get("root_page_ids")
        if isinstance(yaml_roots, (list, tuple)):
            raw_roots = ",".join(str(r) for r in yaml_roots)
        elif yaml_roots is not None:
            raw_roots = str(yaml_roots)

    final_folder = (
        sync_folder
        or os.getenv("CONFLUENCE_SYNC_FOLDER")
        or fb.get("folder")
        or DEFAULT_SYNC_FOLDER
    )
    final_vault = (
        vault_root or os.getenv("CONFLUENCE_VAULT") or fb.get("vault") or "."
    )
    final_state = (
        os.getenv("CONFLUENCE_STATE_FILE")
        or fb.get("state_file")
        or DEFAULT_STATE_FILE
    )
    final_jira = (
        os.getenv("CONFLUENCE_JIRA_URL")
        or fb.get("jira_url")
        or DEFAULT_JIRA_URL
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("CONFLUENCE_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("CONFLUENCE_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    max_parallel_raw = os.getenv("CONFLUENCE_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid CONFLUENCE_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 100"
            ) from None
    elif "max_parallel_requests" in fb:
        final_max_parallel = int(fb["max_parallel_requests"])
    else:
        final_max_parallel = DEFAULT_MAX_PARALLEL

    config = Config(
        base_url=base_url,
        username=final_username.strip(),
        password=final_password.strip(),
        root_page_ids=parse_root_page_ids(raw_roots),
        sync_folder=final_folder,
        vault_root=final_vault,
        state_file=final_state,
        jira_base_url=final_jira,
        insecure=final_insecure,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
    )

    return validate_config(config)
