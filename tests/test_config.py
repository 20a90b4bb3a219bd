"""Unit tests for researchaid.config: ResearchAidConfig and related functions."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from researchaid.config import (
    CONFIG_ENV_VAR,
    ResearchAidConfig,
    ResearchAidConfigError,
    default_home,
    load_config,
    resolve_config_path,
)
from researchaid.models import (
    CLONE_TEMPLATES,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_COMPILE_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCRIPT_TIMEOUT,
    DEFAULT_TARGET_FILE,
    INLINE_SCRIPT_LIMIT,
    OVERLEAF_TAB_FRAGMENT,
)


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestResearchAidConfigDefaults:
    """ResearchAidConfig should have sensible defaults for every field."""

    def test_default_target_file(self):
        cfg = ResearchAidConfig()
        assert cfg.target_file_name == DEFAULT_TARGET_FILE

    def test_default_appends(self):
        cfg = ResearchAidConfig()
        assert cfg.replace_file_content is False

    def test_default_transport_is_auto(self):
        cfg = ResearchAidConfig()
        assert cfg.transport == "auto"

    def test_default_timings_match_models_constants(self):
        cfg = ResearchAidConfig()
        assert cfg.script_timeout == DEFAULT_SCRIPT_TIMEOUT
        assert cfg.poll_interval == DEFAULT_POLL_INTERVAL
        assert cfg.compile_timeout == DEFAULT_COMPILE_TIMEOUT
        assert cfg.inline_script_limit == INLINE_SCRIPT_LIMIT

    def test_default_tab_fragment(self):
        cfg = ResearchAidConfig()
        assert cfg.overleaf_tab_fragment == OVERLEAF_TAB_FRAGMENT

    def test_default_project_settings(self):
        cfg = ResearchAidConfig()
        assert cfg.commit_message == DEFAULT_COMMIT_MESSAGE
        assert cfg.clone_templates == CLONE_TEMPLATES
        cfg.clone_templates["Mine"] = "https://www.overleaf.com/project/abc"
        assert "Mine" not in ResearchAidConfig().clone_templates

    def test_default_status_dir_under_home(self, isolated_home: Path):
        cfg = ResearchAidConfig()
        assert cfg.status_dir == isolated_home / ".researchaid" / "status"
        assert cfg.source_path is None


# ---------------------------------------------------------------------------
# 2. from_file(): happy path
# ---------------------------------------------------------------------------

class TestFromFile:
    """ResearchAidConfig.from_file() reads JSON and YAML."""

    def test_json_with_legacy_keys(self, tmp_path: Path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"TargetFileName": "refs.bib", "ReplaceFileContent": True}))

        cfg = ResearchAidConfig.from_file(config_file)

        assert cfg.target_file_name == "refs.bib"
        assert cfg.replace_file_content is True
        assert cfg.source_path == config_file

    def test_yaml_with_snake_case_keys(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "target_file_name": "chapter1.tex",
                    "transport": "DevTools",
                    "devtools_port": 9333,
                    "compile_timeout": 90,
                    "step_delay": 0,
                    "status_dir": "~/ra-status",
                }
            )
        )

        cfg = ResearchAidConfig.from_file(config_file)

        assert cfg.target_file_name == "chapter1.tex"
        assert cfg.transport == "devtools"
        assert cfg.devtools_port == 9333
        assert cfg.compile_timeout == 90.0
        assert cfg.step_delay == 0.0
        assert cfg.status_dir == Path("~/ra-status").expanduser()

    def test_snake_case_wins_over_legacy(self, tmp_path: Path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"target_file_name": "a.tex", "TargetFileName": "b.tex"}))
        assert ResearchAidConfig.from_file(config_file).target_file_name == "a.tex"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        assert ResearchAidConfig.from_file(config_file).target_file_name == DEFAULT_TARGET_FILE

    def test_empty_target_keeps_default(self, tmp_path: Path):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"TargetFileName": ""}))
        assert ResearchAidConfig.from_file(config_file).target_file_name == DEFAULT_TARGET_FILE

    def test_project_settings(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "commit_message: sync from overleaf\n"
            "clone_templates:\n"
            "  Thesis: https://www.overleaf.com/project/abc123\n"
        )
        cfg = ResearchAidConfig.from_file(config_file)
        assert cfg.commit_message == "sync from overleaf"
        assert cfg.clone_templates == {"Thesis": "https://www.overleaf.com/project/abc123"}


# ---------------------------------------------------------------------------
# 3. from_file(): errors
# ---------------------------------------------------------------------------

class TestFromFileErrors:
    """Invalid files raise ResearchAidConfigError with a fix hint."""

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ResearchAidConfigError, match="not found"):
            ResearchAidConfig.from_file(tmp_path / "nope.json")

    def test_malformed_file(self, tmp_path: Path):
        config_file = tmp_path / "config.json"
        config_file.write_text('{"TargetFileName": [unclosed')
        with pytest.raises(ResearchAidConfigError, match="not valid"):
            ResearchAidConfig.from_file(config_file)

    def test_non_mapping(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ResearchAidConfigError, match="mapping"):
            ResearchAidConfig.from_file(config_file)

    def test_unknown_transport(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("transport: carrier-pigeon\n")
        with pytest.raises(ResearchAidConfigError, match="Unknown transport"):
            ResearchAidConfig.from_file(config_file)

    @pytest.mark.parametrize("key", ["poll_interval", "compile_timeout", "script_timeout"])
    def test_non_positive_timing(self, tmp_path: Path, key: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(f"{key}: 0\n")
        with pytest.raises(ResearchAidConfigError, match=key):
            ResearchAidConfig.from_file(config_file)

    def test_negative_step_delay(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("step_delay: -1\n")
        with pytest.raises(ResearchAidConfigError):
            ResearchAidConfig.from_file(config_file)

    @pytest.mark.parametrize("value", ["[]", "{}", "just-a-url"])
    def test_clone_templates_must_be_a_mapping(self, tmp_path: Path, value: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(f"clone_templates: {value}\n")
        with pytest.raises(ResearchAidConfigError, match="clone_templates"):
            ResearchAidConfig.from_file(config_file)


# ---------------------------------------------------------------------------
# 4. Resolution
# ---------------------------------------------------------------------------

class TestResolution:
    """Env var first, then config.json, then config.yaml, then defaults."""

    def test_no_file_gives_defaults(self):
        assert resolve_config_path() is None
        assert load_config().source_path is None

    def test_env_var_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        home = default_home()
        home.mkdir(parents=True)
        (home / "config.json").write_text("{}")
        explicit = tmp_path / "explicit.yaml"
        explicit.write_text("target_file_name: explicit.tex\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(explicit))

        assert resolve_config_path() == explicit
        assert load_config().target_file_name == "explicit.tex"

    def test_env_var_missing_file_is_error(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "gone.yaml"))
        with pytest.raises(ResearchAidConfigError):
            load_config()

    def test_json_before_yaml(self):
        home = default_home()
        home.mkdir(parents=True)
        (home / "config.yaml").write_text("target_file_name: from-yaml.tex\n")
        (home / "config.json").write_text('{"target_file_name": "from-json.tex"}')
        assert load_config().target_file_name == "from-json.tex"

    def test_yaml_when_no_json(self):
        home = default_home()
        home.mkdir(parents=True)
        (home / "config.yaml").write_text("target_file_name: from-yaml.tex\n")
        assert resolve_config_path() == home / "config.yaml"
