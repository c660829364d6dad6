"""Configuration management for stagechain.

Configuration Discovery Precedence (Highest to Lowest Priority):
===============================================================

1. **STAGECHAIN_CONFIG_DIR Environment Variable** (Highest Priority)
   - Looks for: `${STAGECHAIN_CONFIG_DIR}/stagechain.yaml`
   - Use case: CI, custom build layouts

2. **Current Working Directory**
   - Looks for: `./stagechain.yaml`
   - Use case: Project-local configuration

3. **Defaults** (Fallback)
   - No stages configured; every id is left untransformed

The first existing `stagechain.yaml` found in this order is used.

Example stagechain.yaml:
-----------------------
stagechain:
  strategy: chain
  stages:
    - loader: tsx
    - loader: json
    - include: "/\\.m?[jt]sx?$/"
      minify: true
"""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stagechain.errors import ConfigFileError
from stagechain.kinds import LanguageKind
from stagechain.pipeline.strategy import ChainStrategy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "stagechain.yaml"

PatternLike = str | re.Pattern[str]
PatternSpec = PatternLike | list[PatternLike] | None


class StageConfig(BaseModel):
    """One configured transformation stage.

    Keys of a stage mapping that are not declared fields are transformer
    options, so a stage can be written as one flat mapping:

        {"loader": "ts", "target": "es2017", "exclude": "**/vendor/**"}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    kind: LanguageKind | None = Field(default=None, validation_alias=AliasChoices("kind", "loader"))
    """Language kind; also provides the default include pattern"""

    output: bool = False
    """Apply to rendered output chunks instead of input files"""

    include: PatternSpec = None
    """Glob(s) or regular expression(s) of ids to process ("/.../" strings are regular expressions, so absolute globs must not end in "/")"""

    exclude: PatternSpec = None
    """Glob(s) or regular expression(s) of ids to skip"""

    tsconfig: Path | None = None
    """Compiler config file read into the tsconfigRaw option (typed-script kinds only)"""

    options: dict[str, Any] = Field(default_factory=dict)
    """Transformer options, forwarded verbatim"""

    @model_validator(mode="before")
    @classmethod
    def _collect_options(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        declared = {"kind", "loader", "output", "include", "exclude", "tsconfig", "options"}
        extra = {key: value for key, value in data.items() if key not in declared}
        if not extra:
            return data

        collected = {key: value for key, value in data.items() if key in declared}
        collected["options"] = {**extra, **(data.get("options") or {})}
        return collected

    @model_validator(mode="after")
    def _check_selector(self) -> StageConfig:
        if not self.output and self.kind is None and self.include is None:
            raise ValueError("an input stage needs a loader or an explicit include pattern")
        return self

    def with_tsconfig(self, base_dir: Path | None = None) -> StageConfig:
        """Inline the referenced compiler config file into the options.

        Only typed-script kinds read the file, and only when no inline
        ``tsconfigRaw`` option is already present.

        Args:
            base_dir: Directory relative paths are resolved against (cwd if None)

        Returns:
            This stage, or a copy whose options carry ``tsconfigRaw``

        Raises:
            ConfigFileError: If the file cannot be read
        """
        if self.tsconfig is None or self.kind is None or not self.kind.is_typed:
            return self
        if "tsconfigRaw" in self.options:
            return self

        path = self.tsconfig if self.tsconfig.is_absolute() else (base_dir or Path.cwd()) / self.tsconfig
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigFileError(e.errno, f"Cannot read tsconfig for {self.kind} stage: {e.strerror}", str(path)) from e

        logger.debug("Loaded tsconfig from %s", path)
        return self.model_copy(update={"options": {**self.options, "tsconfigRaw": raw}})

    def describe(self) -> str:
        """Short human readable label for logs and tables."""
        phase = "output" if self.output else "input"
        kind = self.kind.value if self.kind else "*"
        return f"{kind}/{phase}"


class StageChainConfig(BaseSettings):
    """Main configuration for stagechain that reads from stagechain.yaml."""

    model_config = SettingsConfigDict(
        env_prefix="STAGECHAIN_",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = False

    # How several matching stages are applied to one id
    strategy: ChainStrategy = ChainStrategy.CHAIN

    # Path or name of the esbuild executable
    esbuild_binary: str = "esbuild"

    stages: list[StageConfig] = Field(default_factory=list)

    config_path: Path = Field(default_factory=lambda: Path(CONFIG_FILENAME))

    @property
    def config_dir(self) -> Path:
        return self.config_path.parent

    @classmethod
    def from_yaml(cls, yaml_path: Path, **kwargs: Any) -> StageChainConfig:
        """Load configuration from a stagechain.yaml file.

        Args:
            yaml_path: Path to the YAML file
            **kwargs: Values that take precedence over the file

        Returns:
            StageChainConfig instance (defaults if the file does not exist)
        """
        data: dict[str, Any] = {}
        if yaml_path.exists():
            with yaml_path.open() as f:
                loaded = yaml.safe_load(f) or {}
            section = loaded.get("stagechain", {})
            if isinstance(section, dict):
                data = section
            else:
                logger.warning("Invalid stagechain section in %s: %s", yaml_path, type(section).__name__)

        values = {**data, **kwargs, "config_path": yaml_path}
        instance = cls(**values)
        logger.debug("Loaded %d stage(s) from %s", len(instance.stages), yaml_path)
        return instance


# Global configuration instance
_config_instance: StageChainConfig | None = None
_config_lock = threading.Lock()


def get_config() -> StageChainConfig:
    """Get the configuration instance."""
    global _config_instance

    if _config_instance is None:
        with _config_lock:
            # Double-check locking pattern
            if _config_instance is None:
                env_config_dir = os.environ.get("STAGECHAIN_CONFIG_DIR")
                if env_config_dir:
                    yaml_path = Path(env_config_dir) / CONFIG_FILENAME
                    logger.info("Using config directory from environment: %s", env_config_dir)
                else:
                    yaml_path = Path.cwd() / CONFIG_FILENAME

                if yaml_path.exists():
                    logger.info("Loading stagechain config from: %s", yaml_path)
                else:
                    logger.info("%s not found, using default config", yaml_path)
                _config_instance = StageChainConfig.from_yaml(yaml_path)

    return _config_instance


def set_config_instance(config: StageChainConfig) -> None:
    """Set the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = config


def clear_config_instance() -> None:
    """Clear the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None
