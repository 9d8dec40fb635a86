"""Process configuration.

Settings come from three layers, later ones winning:
1. Defaults on ``Settings``
2. An optional YAML file
3. Environment variables

Example ``diffbreak.yaml``:

    ollama_url: http://ollama:11434
    model: qwen2.5:7b
    allowed_origin: https://diffbreak.fyi
    analyze_timeout: 90
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

# environment variable -> Settings field
ENV_VARS: dict[str, str] = {
    "OLLAMA_URL": "ollama_url",
    "OLLAMA_MODEL": "model",
    "GITHUB_TOKEN": "github_token",
    "DIFFBREAK_HOST": "host",
    "DIFFBREAK_PORT": "port",
    "DIFFBREAK_ALLOWED_ORIGIN": "allowed_origin",
    "ENVIRONMENT": "environment",
    "LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """Runtime configuration for the service and the CLI.

    Attributes:
        ollama_url: Base URL of the Ollama server
        model: Ollama model identifier
        temperature: Sampling temperature for generation
        num_predict: Output token budget for generation
        github_token: Optional token to raise GitHub rate limits
        github_api_url: GitHub REST API root
        host: Interface to listen on
        port: Port to listen on
        allowed_origin: The single origin allowed by CORS
        detect_timeout: Deadline in seconds for tag listing
        analyze_timeout: Deadline in seconds for a full analysis
        environment: "development" or "production" (log rendering)
        log_level: DEBUG, INFO, WARNING or ERROR
    """

    ollama_url: str = "http://localhost:11434"
    model: str = "qwen2.5:7b"
    temperature: float = 0.2
    num_predict: int = 1200
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    host: str = "0.0.0.0"
    port: int = 8080
    allowed_origin: str = "https://diffbreak.fyi"
    detect_timeout: float = 10.0
    analyze_timeout: float = 60.0
    environment: str = "development"
    log_level: str = "INFO"


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from an optional YAML file plus the environment.

    Args:
        path: YAML file. Missing files are ignored.

    Returns:
        A validated Settings.

    Raises:
        ValueError: If the YAML is malformed or a value fails validation.
    """
    raw: dict = {}
    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            try:
                raw = yaml.safe_load(config_path.read_text()) or {}
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
            if not isinstance(raw, dict):
                raise ValueError(f"Invalid config in {path}: expected a mapping")

    for env_name, field_name in ENV_VARS.items():
        value = os.environ.get(env_name)
        if value:
            raw[field_name] = value

    try:
        return Settings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings: {exc}") from exc
