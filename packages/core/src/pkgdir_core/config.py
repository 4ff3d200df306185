import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "provider": "anthropic",
    "model": None,  # None = the provider's default model
    "prompt": None,  # None = use built-in guidelines; set to a path string to override
    "store": "sqlite",  # "sqlite" or "memory"
    "store_path": ".pkgdir.db",
    "http_timeout": 10,  # seconds, npm registry and GitHub calls
    "ai_timeout": 120,  # seconds, one model call
    "refresh_batch_limit": 100,
    "refresh_log_retention": 30,
    "refresh_lock_minutes": 60,
}

_API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def load_config(config_path: str = ".pkgdir.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .pkgdir.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    for provider, env_var in _API_KEY_ENV.items():
        config[f"{provider}_api_key"] = os.environ.get(env_var)

    return config


def api_key_env(provider: str) -> str:
    """Name of the environment variable holding the API key for ``provider``."""
    return _API_KEY_ENV.get(provider, f"{provider.upper()}_API_KEY")


def load_prompt(config: dict) -> Optional[str]:
    """
    Load custom review guidelines.

    If ``prompt`` is set in config, loads from that path (relative to cwd).
    Returns None to fall back to the built-in guidelines.
    """
    custom_path = config.get("prompt")
    if not custom_path:
        return None
    p = Path(custom_path)
    if not p.exists():
        raise FileNotFoundError(f"Prompt file not found: {custom_path}")
    content = p.read_text()
    if not content.strip():
        raise ValueError(f"Prompt file is empty: {custom_path}")
    return content
