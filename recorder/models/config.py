"""Configuration models for the screenshot recorder."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from recorder.errors import ConfigError

DEFAULT_API_URL = "https://api.screenshotbot.io"
CREDENTIALS_FILENAME = ".screenshotbot"


class Credential(BaseModel):
    """API key pair. Field aliases match the ~/.screenshotbot file keys."""

    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(default="", alias="apiKey")
    api_secret: str = Field(default="", alias="apiSecretKey")

    @field_validator("api_key", "api_secret", mode="before")
    @classmethod
    def resolve_env_value(cls, v):
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v

    def form_fields(self) -> dict[str, str]:
        return {"api-key": self.api_key, "api-secret-key": self.api_secret}


class CredentialSource:
    """Resolves credentials from explicit values, then the config file.

    Explicit values always win. Only when one of them is missing is the
    config file read, and then it must exist and parse.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        config_path: Path | None = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.config_path = config_path

    def _default_path(self) -> Path:
        try:
            home = Path.home()
        except RuntimeError as e:
            raise ConfigError("Home directory is not set") from e
        return home / CREDENTIALS_FILENAME

    def _read_file(self) -> Credential:
        path = self.config_path or self._default_path()
        if not path.exists():
            raise ConfigError(f"Could not find config file at {path}")
        try:
            with open(path) as f:
                data = json.load(f)
            return Credential.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"Could not read credentials from {path}") from e

    def load(self) -> Credential:
        api_key, api_secret = self.api_key, self.api_secret
        if not api_key or not api_secret:
            stored = self._read_file()
            api_key = api_key or stored.api_key
            api_secret = api_secret or stored.api_secret
        if not api_key:
            raise ConfigError("No API key provided")
        if not api_secret:
            raise ConfigError("No API secret provided")
        try:
            return Credential(api_key=api_key, api_secret=api_secret)
        except ValidationError as e:
            raise ConfigError("Invalid credentials") from e


class RecorderConfig(BaseModel):
    # Server
    api_url: str = DEFAULT_API_URL
    request_timeout_seconds: float = 60.0

    # Execution
    max_workers: int = Field(default=4, ge=1)
    network_retries: int = Field(default=0, ge=0)
    hash_algorithm: Literal["md5", "sha256"] = "md5"

    # Run metadata
    production: bool = False
    branch: Optional[str] = None
    github_repo: Optional[str] = None

    # Layout mode
    ios_snapshot_test_case: bool = False

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def build_url(self, path: str) -> str:
        return f"{self.api_url}{path}"

    @classmethod
    def load(cls, path: str | Path) -> "RecorderConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
