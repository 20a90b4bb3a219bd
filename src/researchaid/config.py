"""ResearchAid configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from researchaid.models import (
    CLONE_TEMPLATES,
    DEFAULT_BROWSER_APP,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_COMPILE_TIMEOUT,
    DEFAULT_DEVTOOLS_HOST,
    DEFAULT_DEVTOOLS_PORT,
    DEFAULT_PAGE_LOAD_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCRIPT_TIMEOUT,
    DEFAULT_STEP_DELAY,
    DEFAULT_TARGET_FILE,
    INLINE_SCRIPT_LIMIT,
    OVERLEAF_TAB_FRAGMENT,
    OVERLEAF_URL,
)

CONFIG_ENV_VAR = "RESEARCHAID_CONFIG"
TRANSPORTS = ("auto", "applescript", "devtools")


class ResearchAidConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


def default_home() -> Path:
    """Return the per-user ResearchAid directory (``~/.researchaid``)."""
    return Path.home() / ".researchaid"


@dataclass
class ResearchAidConfig:
    """Configuration for ResearchAid workflows."""

    # Paste behavior
    target_file_name: str = DEFAULT_TARGET_FILE
    replace_file_content: bool = False

    # Browser
    browser_app: str = DEFAULT_BROWSER_APP
    transport: str = "auto"
    devtools_host: str = DEFAULT_DEVTOOLS_HOST
    devtools_port: int = DEFAULT_DEVTOOLS_PORT
    overleaf_url: str = OVERLEAF_URL
    overleaf_tab_fragment: str = OVERLEAF_TAB_FRAGMENT

    # Project management
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    clone_templates: dict[str, str] = field(default_factory=lambda: dict(CLONE_TEMPLATES))

    # Timing
    script_timeout: float = DEFAULT_SCRIPT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    compile_timeout: float = DEFAULT_COMPILE_TIMEOUT
    page_load_timeout: float = DEFAULT_PAGE_LOAD_TIMEOUT
    step_delay: float = DEFAULT_STEP_DELAY
    inline_script_limit: int = INLINE_SCRIPT_LIMIT

    # Paths
    status_dir: Path = field(default_factory=lambda: default_home() / "status")
    source_path: Path | None = None

    @classmethod
    def from_file(cls, config_path: Path) -> ResearchAidConfig:
        """Load config from a JSON or YAML file.

        JSON is a subset of YAML, so a single ``yaml.safe_load`` reads both
        ``config.json`` and ``config.yaml``.
        """
        if not config_path.exists():
            raise ResearchAidConfigError(
                f"Config file not found: {config_path}\n\n"
                f"To fix: create {config_path} or unset {CONFIG_ENV_VAR}"
            )
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ResearchAidConfigError(f"Config file is not valid JSON/YAML: {config_path}\n\n{exc}") from exc
        if not isinstance(data, dict):
            raise ResearchAidConfigError(f"Config file must contain a mapping: {config_path}")
        config = cls._from_dict(data)
        config.source_path = config_path
        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> ResearchAidConfig:
        """Create config from a dictionary.

        Accepts snake_case keys as well as the PascalCase keys written by
        earlier releases (``TargetFileName``, ``ReplaceFileContent``).
        """
        config = cls()

        target = data.get("target_file_name", data.get("TargetFileName"))
        if target:
            config.target_file_name = str(target)

        replace = data.get("replace_file_content", data.get("ReplaceFileContent"))
        if replace is not None:
            config.replace_file_content = bool(replace)

        if "browser_app" in data:
            config.browser_app = str(data["browser_app"])
        if "transport" in data:
            transport = str(data["transport"]).lower()
            if transport not in TRANSPORTS:
                raise ResearchAidConfigError(
                    f"Unknown transport: {data['transport']}\n\n"
                    f"Expected one of: {', '.join(TRANSPORTS)}"
                )
            config.transport = transport
        if "devtools_host" in data:
            config.devtools_host = str(data["devtools_host"])
        if "devtools_port" in data:
            config.devtools_port = int(data["devtools_port"])
        if "overleaf_url" in data:
            config.overleaf_url = str(data["overleaf_url"])
        if "overleaf_tab_fragment" in data:
            config.overleaf_tab_fragment = str(data["overleaf_tab_fragment"])
        if "commit_message" in data:
            config.commit_message = str(data["commit_message"])
        if "clone_templates" in data:
            templates = data["clone_templates"]
            if not isinstance(templates, dict) or not templates:
                raise ResearchAidConfigError(
                    "clone_templates must map template ids to Overleaf project URLs\n\n"
                    "Example:\n  clone_templates:\n    Thesis: https://www.overleaf.com/project/<id>"
                )
            config.clone_templates = {str(k): str(v) for k, v in templates.items()}

        for key in ("script_timeout", "poll_interval", "compile_timeout", "page_load_timeout", "step_delay"):
            if key in data:
                value = float(data[key])
                if value < 0 or (key != "step_delay" and value == 0):
                    raise ResearchAidConfigError(f"Invalid {key}: {data[key]} (must be positive)")
                setattr(config, key, value)

        if "inline_script_limit" in data:
            config.inline_script_limit = int(data["inline_script_limit"])
        if "status_dir" in data:
            config.status_dir = Path(data["status_dir"]).expanduser()

        return config


def resolve_config_path() -> Path | None:
    """Find the config file to load.

    Resolution order (highest priority first):
    1. RESEARCHAID_CONFIG environment variable
    2. ~/.researchaid/config.json
    3. ~/.researchaid/config.yaml
    """
    if env_path := os.environ.get(CONFIG_ENV_VAR):
        return Path(env_path).expanduser()

    home = default_home()
    for name in ("config.json", "config.yaml"):
        candidate = home / name
        if candidate.is_file():
            return candidate
    return None


def load_config() -> ResearchAidConfig:
    """Load the effective configuration, falling back to defaults."""
    path = resolve_config_path()
    if path is None:
        return ResearchAidConfig()
    return ResearchAidConfig.from_file(path)
