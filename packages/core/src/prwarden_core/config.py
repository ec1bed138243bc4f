import os
from pathlib import Path
from typing import Optional

import yaml

from prwarden_core.errors import ConfigError

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "policy": None,  # None = use built-in policy; set to a path string to override
    "max_files_to_review": 50,
    "max_issues_per_file": 5,
    "max_diff_bytes": 500_000,
    "max_commit_messages": 20,
    "max_workers": 4,
    "warn_budget": 3,
    "language": "auto",  # "auto" detects from the PR description; or "en" / "ja"
    "japanese_detection_threshold": 0.3,
    "dry_run": False,
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "retry_max_attempts": 5,
    "retry_base_delay": 2.0,
    "retry_max_delay": 30.0,
    "history": "noop",  # "noop" | "sqlite"
    "history_path": ".prwarden.db",
}

SUPPORTED_MODELS = ("anthropic", "openai")

BUILTIN_POLICY_DIR = Path(__file__).parent / "policies"
_BUILTIN_DEFAULT = BUILTIN_POLICY_DIR / "default.md"

_POSITIVE_INT_KEYS = (
    "max_files_to_review",
    "max_issues_per_file",
    "max_diff_bytes",
    "max_commit_messages",
    "max_workers",
    "retry_max_attempts",
)


def load_config(config_path: str = ".prwarden.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prwarden.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

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
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def validate_config(config: dict) -> None:
    """Raise ConfigError if any limit or setting is unusable."""
    if config.get("model") not in SUPPORTED_MODELS:
        raise ConfigError(f"Unknown model provider: {config.get('model')!r}. Choose 'anthropic' or 'openai'.")

    for key in _POSITIVE_INT_KEYS:
        value = config.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ConfigError(f"{key} must be a positive integer, got {value!r}")

    budget = config.get("warn_budget")
    if not isinstance(budget, int) or isinstance(budget, bool) or budget < 0:
        raise ConfigError(f"warn_budget must be a non-negative integer, got {budget!r}")

    for key in ("retry_base_delay", "retry_max_delay"):
        delay = config.get(key)
        if not isinstance(delay, (int, float)) or isinstance(delay, bool) or delay < 0:
            raise ConfigError(f"{key} must be a non-negative number of seconds, got {delay!r}")

    threshold = config.get("japanese_detection_threshold")
    if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1:
        raise ConfigError(f"japanese_detection_threshold must be between 0 and 1, got {threshold!r}")


def load_policy(config: dict) -> str:
    """
    Load the review policy.

    If ``policy`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in default.
    """
    custom_path = config.get("policy")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Policy file not found: {custom_path}")
        return p.read_text()

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text()

    raise FileNotFoundError("No policy configured and built-in default is missing.")
