"""
Configuration management for empolis-sync.

The configuration is stored as a TOML file. It names the Empolis tenant,
the API versions to use, where logs go, and the data sources (collections
of HTML help files) that can be synchronized.

Credentials are never stored in the config file. They are read from
environment variables, optionally loaded from a ``.env`` file.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import tomli_w
from dotenv import find_dotenv, load_dotenv

from .types import Credentials, DataSourceSelection


CONFIG_FILENAME = "empolis-sync.toml"
CONFIG_VERSION = 1

# Services that expose an /alive endpoint
SERVICES = ("ingest", "ias", "store")

DEFAULT_TIMEOUT = 30.0

# Environment variables holding credentials
ENV_CLIENT_ID = "EMPOLIS_CLIENT_ID"
ENV_CLIENT_SECRET = "EMPOLIS_CLIENT_SECRET"
ENV_USERNAME = "EMPOLIS_USERNAME"
ENV_PASSWORD = "EMPOLIS_PASSWORD"


@dataclass(frozen=True)
class ApiSettings:
    """Connection settings for the Empolis API."""
    base_url: str
    scope: str = ""
    project: str = "project1_p"
    index: str = "project1_p"
    versions: dict[str, str] = field(default_factory=lambda: {s: "v1" for s in SERVICES})
    timeout: float = DEFAULT_TIMEOUT

    def version(self, service: str) -> str:
        try:
            return self.versions[service]
        except KeyError:
            raise ValueError(f"No API version configured for service {service!r}") from None


@dataclass(frozen=True)
class DataSourceConfig:
    """A data source as written in the config file."""
    name: str
    source: str
    path: str
    help_dir: Path
    description: str = ""


@dataclass
class AppConfig:
    """Complete application configuration."""
    path: Path
    api: ApiSettings
    box_root: str = ""
    log_dir: Path = Path("logs")
    log_level: str = "info"
    sources: dict[str, DataSourceConfig] = field(default_factory=dict)
    version: int = CONFIG_VERSION

    def data_source(self, name: str) -> DataSourceSelection:
        """Build the immutable selection for a configured data source."""
        try:
            src = self.sources[name]
        except KeyError:
            available = ", ".join(sorted(self.sources)) or "none"
            raise ValueError(f"Unknown data source: {name!r}. Available: {available}") from None
        root = "/".join(p.strip("/") for p in (self.box_root, src.source, src.path) if p)
        return DataSourceSelection(
            name=name,
            root=root,
            help_dir=src.help_dir,
            description=src.description,
        )


def default_config_path() -> Path:
    """Config path from EMPOLIS_SYNC_CONFIG, else ./empolis-sync.toml."""
    env_path = os.environ.get("EMPOLIS_SYNC_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.cwd() / CONFIG_FILENAME


def load_config(config_path: Path) -> AppConfig:
    """
    Load configuration from a TOML file.

    Relative directories in the file are resolved against the file's
    directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    version = data.get("version", CONFIG_VERSION)
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError(f"Config version must be an integer, got {version!r}")
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    base_dir = config_path.parent

    def resolve(p: str) -> Path:
        path = Path(p).expanduser()
        return path if path.is_absolute() else base_dir / path

    api = data.get("api", {})
    if not api.get("base_url"):
        raise ValueError(f"Missing api.base_url in {config_path}")

    versions = dict(api.get("versions", {}))
    missing = [s for s in SERVICES if s not in versions]
    if missing:
        raise ValueError(f"Missing api.versions for: {', '.join(missing)}")

    settings = ApiSettings(
        base_url=api["base_url"].rstrip("/"),
        scope=api.get("scope", ""),
        project=api.get("project", "project1_p"),
        index=api.get("index", api.get("project", "project1_p")),
        versions=versions,
        timeout=float(api.get("timeout", DEFAULT_TIMEOUT)),
    )

    sources = {}
    for name, section in data.get("sources", {}).items():
        if "help_dir" not in section:
            raise ValueError(f"Data source {name!r} is missing help_dir")
        sources[name] = DataSourceConfig(
            name=name,
            source=section.get("source", ""),
            path=section.get("path", ""),
            help_dir=resolve(section["help_dir"]),
            description=section.get("description", ""),
        )

    logging_section = data.get("logging", {})
    return AppConfig(
        path=config_path,
        api=settings,
        box_root=data.get("store", {}).get("box_root", ""),
        log_dir=resolve(logging_section.get("directory", "logs")),
        log_level=logging_section.get("level", "info"),
        sources=sources,
        version=version,
    )


def save_config(config: AppConfig) -> None:
    """
    Save configuration to its TOML file.

    Creates the parent directory if it doesn't exist.
    """
    config.path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "version": config.version,
        "api": {
            "base_url": config.api.base_url,
            "scope": config.api.scope,
            "project": config.api.project,
            "index": config.api.index,
            "timeout": config.api.timeout,
            "versions": dict(config.api.versions),
        },
        "store": {"box_root": config.box_root},
        "logging": {
            "directory": str(config.log_dir),
            "level": config.log_level,
        },
        "sources": {
            name: {
                "description": src.description,
                "source": src.source,
                "path": src.path,
                "help_dir": str(src.help_dir),
            }
            for name, src in config.sources.items()
        },
    }

    with open(config.path, "wb") as f:
        tomli_w.dump(data, f)


def create_default_config(config_path: Path) -> AppConfig:
    """A starter config with placeholder values, to be edited by hand."""
    return AppConfig(
        path=config_path,
        api=ApiSettings(base_url="https://example.esc-eu-central-1.empolisservices.com"),
        box_root="box",
        sources={
            "example": DataSourceConfig(
                name="example",
                source="help",
                path="html",
                help_dir=Path("help"),
                description="Example help file collection",
            ),
        },
    )


def load_credentials(
    scope: str = "",
    env: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Path] = None,
) -> Credentials:
    """
    Read API credentials from the environment.

    If ``env`` is not given, a ``.env`` file is loaded first (without
    overriding variables that are already set). Missing values are left
    empty; the token manager reports them when a token is requested.
    """
    if env is None:
        load_dotenv(dotenv_path=dotenv_path or find_dotenv(usecwd=True), override=False)
        env = os.environ
    return Credentials(
        client_id=env.get(ENV_CLIENT_ID, ""),
        client_secret=env.get(ENV_CLIENT_SECRET, ""),
        username=env.get(ENV_USERNAME, ""),
        password=env.get(ENV_PASSWORD, ""),
        scope=scope,
    )
