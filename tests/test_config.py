"""Tests for configuration loading."""

import json
import logging
import os
import re
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from stagechain.config import (
    StageChainConfig,
    StageConfig,
    clear_config_instance,
    get_config,
    set_config_instance,
)
from stagechain.errors import ConfigFileError
from stagechain.kinds import LanguageKind
from stagechain.pipeline import ChainStrategy


class TestStageConfig:
    def test_loader_alias(self):
        stage = StageConfig.model_validate({"loader": "tsx"})
        assert stage.kind is LanguageKind.TYPED_SCRIPT_JSX

    def test_unknown_keys_become_options(self):
        stage = StageConfig.model_validate(
            {"loader": "ts", "target": "es2017", "exclude": "**/vendor/**", "keepNames": True}
        )

        assert stage.exclude == "**/vendor/**"
        assert stage.options == {"target": "es2017", "keepNames": True}

    def test_explicit_options_win_over_flat_keys(self):
        stage = StageConfig.model_validate({"loader": "ts", "target": "es2017", "options": {"target": "es2020"}})
        assert stage.options == {"target": "es2020"}

    def test_compiled_pattern_accepted(self):
        pattern = re.compile(r"\.vue$")
        stage = StageConfig.model_validate({"include": pattern, "loader": "js"})
        assert isinstance(stage.include, re.Pattern)
        assert stage.include.pattern == r"\.vue$"

    def test_pattern_list(self):
        stage = StageConfig.model_validate({"loader": "js", "include": ["src/**/*.js", "/\\.mjs$/"]})
        assert stage.include == ["src/**/*.js", "/\\.mjs$/"]

    def test_input_stage_needs_kind_or_include(self):
        with pytest.raises(ValidationError, match="needs a loader or an explicit include"):
            StageConfig.model_validate({"minify": True})

    def test_output_stage_needs_neither(self):
        stage = StageConfig.model_validate({"output": True, "minify": True})
        assert stage.kind is None

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            StageConfig.model_validate({"loader": "coffee"})

    def test_stage_is_immutable(self):
        stage = StageConfig(kind=LanguageKind.SCRIPT)
        with pytest.raises(ValidationError):
            stage.output = True

    def test_describe(self):
        assert StageConfig.model_validate({"loader": "css"}).describe() == "css/input"
        assert StageConfig.model_validate({"output": True}).describe() == "*/output"


class TestTsconfig:
    def test_inlined_for_typed_kinds(self, tmp_path):
        (tmp_path / "tsconfig.json").write_text(json.dumps({"compilerOptions": {"strict": True}}))
        stage = StageConfig.model_validate({"loader": "ts", "tsconfig": "tsconfig.json"})

        loaded = stage.with_tsconfig(tmp_path)

        assert json.loads(loaded.options["tsconfigRaw"]) == {"compilerOptions": {"strict": True}}
        assert "tsconfigRaw" not in stage.options

    def test_absolute_path(self, tmp_path):
        path = tmp_path / "tsconfig.build.json"
        path.write_text("{}")
        stage = StageConfig.model_validate({"loader": "tsx", "tsconfig": str(path)})

        assert stage.with_tsconfig(Path("/elsewhere")).options["tsconfigRaw"] == "{}"

    def test_missing_file(self, tmp_path):
        stage = StageConfig.model_validate({"loader": "ts", "tsconfig": "missing.json"})

        with pytest.raises(ConfigFileError) as exc_info:
            stage.with_tsconfig(tmp_path)

        assert exc_info.value.filename == str(tmp_path / "missing.json")
        assert isinstance(exc_info.value, OSError)

    def test_ignored_for_untyped_kinds(self, tmp_path):
        stage = StageConfig.model_validate({"loader": "js", "tsconfig": "missing.json"})
        assert stage.with_tsconfig(tmp_path) is stage

    def test_inline_raw_takes_precedence(self, tmp_path):
        stage = StageConfig.model_validate({"loader": "ts", "tsconfig": "missing.json", "tsconfigRaw": "{}"})
        assert stage.with_tsconfig(tmp_path) is stage


class TestStageChainConfig:
    def test_defaults(self):
        config = StageChainConfig()

        assert config.stages == []
        assert config.strategy is ChainStrategy.CHAIN
        assert config.esbuild_binary == "esbuild"

    def test_from_yaml(self, tmp_path):
        yaml_path = tmp_path / "stagechain.yaml"
        yaml_path.write_text(
            """
stagechain:
  strategy: merged
  stages:
    - loader: tsx
      tsconfig: tsconfig.json
    - loader: json
    - include: "/\\\\.m?[jt]sx?$/"
      minify: true
    - output: true
      include: "**/*.js"
      banner: "/* built */"
"""
        )

        config = StageChainConfig.from_yaml(yaml_path)

        assert config.strategy is ChainStrategy.MERGED
        assert [s.kind for s in config.stages] == [
            LanguageKind.TYPED_SCRIPT_JSX,
            LanguageKind.DATA_OBJECT,
            None,
            None,
        ]
        assert config.stages[2].include == r"/\.m?[jt]sx?$/"
        assert config.stages[2].options == {"minify": True}
        assert config.stages[3].output is True
        assert config.config_path == yaml_path
        assert config.config_dir == tmp_path

    def test_from_yaml_missing_file(self, tmp_path):
        config = StageChainConfig.from_yaml(tmp_path / "stagechain.yaml")
        assert config.stages == []

    def test_from_yaml_kwargs_override(self, tmp_path):
        yaml_path = tmp_path / "stagechain.yaml"
        yaml_path.write_text("stagechain:\n  esbuild_binary: /opt/esbuild\n")

        config = StageChainConfig.from_yaml(yaml_path, esbuild_binary="/usr/bin/esbuild")

        assert config.esbuild_binary == "/usr/bin/esbuild"

    def test_from_yaml_invalid_section(self, tmp_path, caplog):
        yaml_path = tmp_path / "stagechain.yaml"
        yaml_path.write_text("stagechain:\n  - loader: ts\n")

        with caplog.at_level(logging.WARNING, logger="stagechain.config"):
            config = StageChainConfig.from_yaml(yaml_path)

        assert config.stages == []
        assert "Invalid stagechain section" in caplog.text

    def test_from_yaml_invalid_stage(self, tmp_path):
        yaml_path = tmp_path / "stagechain.yaml"
        yaml_path.write_text("stagechain:\n  stages:\n    - minify: true\n")

        with pytest.raises(ValidationError):
            StageChainConfig.from_yaml(yaml_path)

    def test_env_override(self, tmp_path):
        yaml_path = tmp_path / "stagechain.yaml"
        yaml_path.write_text("stagechain:\n  stages: []\n")

        with patch.dict(os.environ, {"STAGECHAIN_DEBUG": "true"}):
            config = StageChainConfig.from_yaml(yaml_path)

        assert config.debug is True


class TestConfigSingleton:
    def test_get_config_from_env_dir(self, tmp_path):
        (tmp_path / "stagechain.yaml").write_text("stagechain:\n  stages:\n    - loader: css\n")

        with patch.dict(os.environ, {"STAGECHAIN_CONFIG_DIR": str(tmp_path)}):
            config = get_config()

        assert [s.kind for s in config.stages] == [LanguageKind.STYLE]
        assert get_config() is config

    def test_get_config_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("STAGECHAIN_CONFIG_DIR", raising=False)
        monkeypatch.chdir(tmp_path)

        assert get_config().stages == []

    def test_set_and_clear(self):
        custom = StageChainConfig(esbuild_binary="/custom/esbuild")
        set_config_instance(custom)
        assert get_config() is custom

        clear_config_instance()
        with patch.dict(os.environ, {"STAGECHAIN_CONFIG_DIR": "/nonexistent"}):
            assert get_config() is not custom
