"""Unified configuration schema for confluence_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the Confluence connection, the sync target, and logging.
Includes an adapter producing the runtime ``Config`` snapshot.

Usage:
    from confluence_sync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"url": "https://..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ConfluenceConfig(BaseModel):
    """Confluence server connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Confluence base URL")
    username: str | None = Field(
        default=None, description="Confluence username"
    )
    password: str | None = Field(
        default=None, description="Confluence password or API token"
    )
    jira_url: str | None = Field(
        default=None, description="Jira base URL used for issue links"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum pages synced concurrently (1-100)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Where and what to sync.

    ``root_page_ids`` accepts either a YAML list or the same free-form
    string the environment variable takes.
    """

    root_page_ids: list[str] = Field(default_factory=list)
    folder: str | None = Field(
        default=None, description="Target folder inside the vault"
    )
    vault: str | None = Field(
        default=None, description="Local directory acting as vault root"
    )
    state_file: str | None = Field(
        default=None, description="Path of the JSON sync state file"
    )

    model_config = {"frozen": True}

    @field_validator("root_page_ids", mode="before")
    @classmethod
    def _split_root_ids(cls, value):
        from .config import parse_root_page_ids

        if value is None:
            return []
        if isinstance(value, (str, int)):
            return list(parse_root_page_ids(str(value)))
        return [str(item).strip() for item in value if str(item).strip()]


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    confluence: ConfluenceConfig = Field(default_factory=ConfluenceConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def yaml_fallbacks(self) -> dict:
        """Flatten the ``confluence`` and ``sync`` sections for ``load_config``."""
        fallbacks = self.confluence.model_dump(exclude_none=True)
        fallbacks.update(self.sync.model_dump(exclude_none=True))
        return fallbacks


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config snapshot
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the runtime ``Config`` snapshot,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > default

    CLI overrides dict keys: url, username, password, root_page_ids,
    folder, vault, insecure, debug.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports
    from .config import (
        DEFAULT_JIRA_URL,
        DEFAULT_STATE_FILE,
        DEFAULT_SYNC_FOLDER,
        Config,
        parse_root_page_ids,
    )

    overrides = cli_overrides or {}

    if overrides.get("root_page_ids"):
        root_ids = parse_root_page_ids(overrides["root_page_ids"])
    else:
        root_ids = tuple(unified.sync.root_page_ids)

    return Config(
        base_url=overrides.get("url") or unified.confluence.url or "",
        username=overrides.get("username")
        or unified.confluence.username
        or "",
        password=overrides.get("password")
        or unified.confluence.password
        or "",
        root_page_ids=root_ids,
        sync_folder=overrides.get("folder")
        or unified.sync.folder
        or DEFAULT_SYNC_FOLDER,
        vault_root=overrides.get("vault") or unified.sync.vault or ".",
        state_file=unified.sync.state_file or DEFAULT_STATE_FILE,
        jira_base_url=unified.confluence.jira_url or DEFAULT_JIRA_URL,
        insecure=overrides.get("insecure", False)
        or unified.confluence.insecure,
        debug=overrides.get("debug", False) or unified.confluence.debug,
        max_parallel_requests=unified.confluence.max_parallel_requests,
    )


# ---------------------------------------------------------------------------
# Runtime loading: .env + YAML + env vars + CLI
# ---------------------------------------------------------------------------


def load_runtime_config(
    overrides: dict | None = None,
) -> tuple[Config, list[str]]:
    """Resolve the runtime ``Config`` from every configuration source.

    Loads ``.env`` first (so YAML ``${VAR}`` interpolation sees it), then
    the discovered YAML files as fallbacks, then defers to ``load_config``
    for CLI > env > YAML > default precedence.

    Args:
        overrides: CLI values keyed like ``to_legacy_config`` overrides.

    Returns:
        ``(config, sources)`` where *sources* describes what contributed.

    Raises:
        ConfigurationError: A required connection setting is missing or invalid.
    """
    from dotenv import load_dotenv

    from .config import load_config
    from .config_loader import discover_config_files, load_hierarchical_config

    load_dotenv()

    sources: list[str] = []
    yaml_fallbacks: dict | None = None
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        yaml_fallbacks = unified.yaml_fallbacks()
        sources.append(f"config file: {config_files[0]}")

    overrides = overrides or {}
    config = load_config(
        url=overrides.get("url"),
        username=overrides.get("username"),
        password=overrides.get("password"),
        root_page_ids=overrides.get("root_page_ids"),
        sync_folder=overrides.get("folder"),
        vault_root=overrides.get("vault"),
        insecure=overrides.get("insecure", False),
        debug=overrides.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )

    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    return config, sources
