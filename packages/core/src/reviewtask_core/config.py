import os
from pathlib import Path
from typing import Optional

import yaml

CLASSIFIERS = ("conservative", "structured", "anthropic", "openai")
RETENTION_POLICIES = ("cancel", "delete")
STORES = ("json", "sqlite")

DEFAULT_CONFIG: dict = {
    "repo": None,  # owner/name; None = detect from the git remote
    "classifier": "conservative",
    "retention": "cancel",  # what happens to tasks whose review comments vanished
    "include_resolved": False,
    "include_outdated": True,
    "include_review_bodies": True,
    "ignore_authors": [],  # logins whose comments never become tasks (bots, for example)
    "max_description_chars": 120,
    "store": "json",
    "storage_dir": ".pr-review",
    "store_path": ".pr-review/reviewtask.db",
    "max_retries": 3,
    "request_timeout": 30,
    "fetch_workers": 4,
}


def load_config(config_path: str = ".reviewtask.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .reviewtask.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "ignore_authors": list(DEFAULT_CONFIG["ignore_authors"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    _validate(config)

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def _validate(config: dict) -> None:
    for key, allowed in (("classifier", CLASSIFIERS), ("retention", RETENTION_POLICIES), ("store", STORES)):
        if config[key] not in allowed:
            raise ValueError(f"Invalid {key} {config[key]!r} in config. Choose one of: {', '.join(allowed)}.")
    if int(config["max_retries"]) < 1:
        raise ValueError("max_retries must be at least 1.")
