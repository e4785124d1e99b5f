"""3-layer configuration system for hipaascan.

Loads and merges configuration from:
1. Default settings (built-in)
2. Project config (.hipaascan/config.yaml)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Optional

import yaml

CONFIG_DIR = ".hipaascan"

DEFAULT_CONFIG: dict = {
    "github": {
        "api_url": "https://api.github.com",
        "token_env": "GITHUB_TOKEN",
        "max_files": 50,
        "timeout_seconds": 30,
    },
    "scan": {
        "incremental": True,
    },
    "storage": {
        "local_path": "~/.hipaascan/scans.json",
        "supabase": {
            "url": "",
            "url_env": "SUPABASE_URL",
            "key_env": "SUPABASE_ANON_KEY",
            "table": "scans",
        },
    },
    "ai": {
        "provider": "anthropic",
        "dry_run": False,
        "temperature": 0.1,
        "timeout_seconds": 300,
        "retry_attempts": 3,
        "retry_delay_seconds": 5,
        "anthropic": {
            "model": "claude-haiku-4-5-20251001",
            "api_key_env": "ANTHROPIC_API_KEY",
            "max_tokens": 4000,
        },
        "openai": {
            "model": "gpt-4o",
            "api_key_env": "OPENAI_API_KEY",
            "max_tokens": 4000,
        },
        "gemini": {
            "model": "gemini-2.5-flash",
            "api_key_env": "GEMINI_API_KEY",
            "max_tokens": 8000,
        },
        "ollama": {
            "endpoint": "http://localhost:11434",
            "model": "llama3.1:70b",
            "max_tokens": 4000,
        },
    },
}

PROVIDER_SECTIONS = ("anthropic", "openai", "gemini", "ollama")


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = dict(base)
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_project_config(project_path: Path) -> dict:
    """Load project configuration from .hipaascan/config.yaml."""
    config_path = project_path / CONFIG_DIR / "config.yaml"
    if not config_path.exists():
        return {}
    content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a YAML mapping")
    return data


def get_effective_config(
    project_path: Path,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration for a scan."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    project_config = load_project_config(project_path)
    if project_config:
        config = deep_merge(config, project_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    return config


def get_github_token(config: dict) -> Optional[str]:
    """Resolve the GitHub token: explicit config value first, then env var."""
    github = config.get("github", {})
    token = github.get("token")
    if token:
        return token
    env_var = github.get("token_env", "GITHUB_TOKEN")
    return os.environ.get(env_var) or None
