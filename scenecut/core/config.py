"""Application configuration (Pydantic v2). Load from scenecut.yml with optional env override."""

import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from scenecut.core.errors import ConfigurationError

DEFAULT_CONFIG_ENV_VAR = "SCENECUT_CONFIG"
DEFAULT_CONFIG_FILENAME = "scenecut.yml"
FFMPEG_ENV_VAR = "FFMPEG_PATH"
FFPROBE_ENV_VAR = "FFPROBE_PATH"


class ExtractionMethod(str, Enum):
    per_task = "per_task"
    chunked = "chunked"


class ImageFormat(str, Enum):
    jpg = "jpg"
    png = "png"


class ToolSettings(BaseModel):
    """Names or paths of the external binaries."""

    model_config = {"extra": "ignore"}

    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"


class ProcessingSettings(BaseModel):
    model_config = {"extra": "ignore"}

    sensitivity: float = Field(default=0.3, ge=0.1, le=0.7)
    in_handle: int = Field(default=3, ge=0)
    out_handle: int = Field(default=3, ge=0)
    min_gap_seconds: float = Field(default=1.0, ge=0.0)
    default_interval_seconds: float = Field(default=10.0, gt=0.0)
    extraction_method: ExtractionMethod = ExtractionMethod.per_task
    chunk_size: int = Field(default=8, ge=1)
    smart_selection: bool = True
    target_frame_count: int = Field(default=10, ge=1)


class OutputSettings(BaseModel):
    model_config = {"extra": "ignore"}

    root_dir: str = "output"
    image_format: ImageFormat = ImageFormat.jpg
    quality: int = Field(default=8, ge=1, le=10)
    ratio_naming: bool = False
    write_metadata: bool = True
    max_clip_seconds: float = Field(default=30.0, gt=0.0)

    @field_validator("image_format", mode="before")
    @classmethod
    def normalize_image_format(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.lower().lstrip(".")
            return "jpg" if v == "jpeg" else v
        return v


class PerformanceSettings(BaseModel):
    model_config = {"extra": "ignore"}

    max_concurrency: int | None = Field(default=None, ge=1)
    hwaccel: bool = False
    kill_on_cancel: bool = False


class LibrarySettings(BaseModel):
    """Where finished artifacts are handed off after extraction."""

    model_config = {"extra": "ignore"}

    importer: str = "noop"
    catalog_dir: str | None = None
    tags: list[str] = Field(default_factory=lambda: ["scenecut"])


class Settings(BaseModel):
    """
    scenecut config loaded from YAML.

    When loading the default config (not an explicit config path), FFMPEG_PATH and
    FFPROBE_PATH from the environment override tools.ffmpeg and tools.ffprobe.
    """

    model_config = {"extra": "ignore"}

    tools: ToolSettings = Field(default_factory=ToolSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    log_level: str = "WARNING"
    forensics_dir: str = "logs/forensics"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class ConfigLoader:
    """
    Helper responsible for loading Settings from YAML and environment.

    - load_from_yaml(path, apply_env_override): read a YAML file and optionally apply env overrides.
    - load_default(): resolve the default config path from SCENECUT_CONFIG / scenecut.yml and
      apply FFMPEG_PATH / FFPROBE_PATH overrides when present.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = os.environ if env is None else env

    def _apply_env(self, data: dict) -> dict:
        tools = dict(data.get("tools") or {})
        if self._env.get(FFMPEG_ENV_VAR):
            tools["ffmpeg"] = self._env[FFMPEG_ENV_VAR]
        if self._env.get(FFPROBE_ENV_VAR):
            tools["ffprobe"] = self._env[FFPROBE_ENV_VAR]
        if tools:
            data["tools"] = tools
        return data

    def _validate(self, data: dict, source: str) -> Settings:
        try:
            return Settings.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {source}: {e}") from e

    def load_from_yaml(self, path: Path, apply_env_override: bool) -> Settings:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")
        if apply_env_override:
            data = self._apply_env(data)
        return self._validate(data, str(path))

    def load_default(self) -> Settings:
        """Load Settings from SCENECUT_CONFIG or ./scenecut.yml, falling back to defaults plus env."""
        path_str = self._env.get(DEFAULT_CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILENAME
        path = Path(path_str)
        if path.exists():
            return self.load_from_yaml(path, apply_env_override=True)
        return self._validate(self._apply_env({}), "environment")

    def load(self, config_path: str | Path | None = None) -> Settings:
        """Explicit path (no env override) when given, otherwise load_default()."""
        if config_path is not None:
            return self.load_from_yaml(Path(config_path), apply_env_override=False)
        return self.load_default()


@dataclass(frozen=True)
class ToolPaths:
    """Absolute paths of the external binaries, resolved once per run."""

    ffmpeg: str
    ffprobe: str


def resolve_tool_paths(settings: Settings) -> ToolPaths:
    """
    Locate ffmpeg and ffprobe via shutil.which.

    Raises ConfigurationError naming every missing tool. Called before any subprocess is spawned.
    """
    resolved: dict[str, str] = {}
    missing: list[str] = []
    for name in ("ffmpeg", "ffprobe"):
        configured = getattr(settings.tools, name)
        found = shutil.which(configured)
        if found is None:
            missing.append(f"{name} ({configured!r})")
        else:
            resolved[name] = found
    if missing:
        raise ConfigurationError(
            "External tools not found: "
            + ", ".join(missing)
            + f". Install FFmpeg or set tools.* in {DEFAULT_CONFIG_FILENAME} / "
            f"{FFMPEG_ENV_VAR} / {FFPROBE_ENV_VAR}."
        )
    return ToolPaths(ffmpeg=resolved["ffmpeg"], ffprobe=resolved["ffprobe"])
