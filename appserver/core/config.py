"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables, a .env file or a
JSON configuration file passed to ``load_settings()``. Nested values use
``__`` as delimiter, e.g. ``APPSERVER_SERVERS__WEB__PORT=8080``.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from appserver.core.security import generate_secure_secret_key

DEFAULT_MIDDLEWARE = [
    "web.requestParser",
    "web.requestLogger",
    "web.staticFiles",
    "web.favicon",
    "web.session",
    "web.routes",
]


class SslConfig(BaseModel):
    """TLS settings; files are handed to uvicorn as paths."""

    enable: bool = False
    key: Optional[str] = None
    cert: Optional[str] = None
    ca: Optional[str] = None


class ServerOptions(BaseModel):
    body_limit: Union[int, str] = "500kb"


class SessionConfig(BaseModel):
    """Per-server session bridge configuration."""

    bridge: str = "session.bridge"
    secret: str = Field(default_factory=generate_secure_secret_key)
    # Seconds; zero disables the corresponding behaviour
    save_interval: float = 0
    expire_timeout: int = 0
    expire_interval: float = 0
    session_repository: Optional[str] = "repositories.session.sql"
    user_repository: Optional[str] = "repositories.user.sql"
    ip_header: Optional[str] = None
    model: Optional[str] = None
    token_length: int = 64
    geoip_database: Optional[str] = None


class ServerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enable: bool = True
    class_: str = Field("servers.web", alias="class")
    host: str = "0.0.0.0"
    port: Union[int, str] = 8000
    ssl: SslConfig = Field(default_factory=SslConfig)
    middleware: Optional[List[str]] = Field(default_factory=lambda: list(DEFAULT_MIDDLEWARE))
    options: ServerOptions = Field(default_factory=ServerOptions)
    app_options: Dict[str, Any] = Field(default_factory=dict)
    session: Optional[SessionConfig] = Field(default_factory=SessionConfig)


class ModuleConfig(BaseModel):
    """An application module: where to import it from and what it ships."""

    entrypoint: Optional[str] = None
    views: List[str] = Field(default_factory=list)
    static: List[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="APPSERVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    project: str = "appserver"
    env: str = "development"
    debug: bool = False
    base_path: str = "."

    # Logging
    log_level: str = "INFO"
    json_logging: bool = False
    log_file: Optional[str] = None
    access_log_file: Optional[str] = None

    # Database
    database_url: str = "sqlite:///./appserver.db"

    servers: Dict[str, ServerConfig] = Field(default_factory=lambda: {"web": ServerConfig()})
    modules: Dict[str, ModuleConfig] = Field(
        default_factory=lambda: {
            "health": ModuleConfig(entrypoint="appserver.modules.health:HealthModule")
        }
    )

    def lookup(self, path: str, default: Any = None) -> Any:
        """
        Hierarchical lookup by dotted path.

        Walks mappings by key and models by attribute (aliases such as
        ``class`` are honoured), e.g. ``lookup("servers.web.session.secret")``.

        Args:
            path: Dotted path
            default: Returned when any segment is missing or None

        Returns:
            The value found or ``default``
        """
        node: Any = self
        for part in path.split("."):
            if node is None:
                return default
            if isinstance(node, dict):
                node = node.get(part)
            elif isinstance(node, BaseModel):
                node = _model_attribute(node, part)
            else:
                return default
        return default if node is None else node


def _model_attribute(model: BaseModel, name: str) -> Any:
    if name in type(model).model_fields:
        return getattr(model, name)
    for field_name, field in type(model).model_fields.items():
        if field.alias == name:
            return getattr(model, field_name)
    return None


def load_settings(config_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Build settings from the environment, optionally overlaid by a JSON file.

    Values in the file take precedence over environment variables.
    """
    if not config_file:
        return Settings()
    data = json.loads(Path(config_file).read_text(encoding="utf-8"))
    return Settings(**data)


# Global settings instance
settings = Settings()
