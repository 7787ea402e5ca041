"""TOML configuration loading for difftrack."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path, PurePath
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_FILENAME = "difftrack.toml"
DEFAULT_MAX_BYTES = 4 * 1024 * 1024

DEFAULT_EXTENSIONS: tuple[str, ...] = (
    ".cs", ".vb", ".fs", ".xaml", ".xml", ".json", ".config", ".csproj", ".sln", ".props", ".targets",
    ".js", ".ts", ".jsx", ".tsx", ".vue", ".html", ".css", ".scss", ".less",
    ".py", ".pyi", ".rb", ".php", ".java", ".kt", ".scala", ".go", ".rs", ".swift",
    ".c", ".cpp", ".h", ".hpp", ".m", ".mm",
    ".sql", ".sh", ".ps1", ".bat", ".cmd",
    ".yaml", ".yml", ".toml", ".ini", ".cfg", ".md", ".rst", ".txt",
)  # fmt: skip

DEFAULT_IGNORED_DIRECTORIES: tuple[str, ...] = (
    "bin", "obj", "node_modules", ".git", ".vs", ".idea", "packages",
    "dist", "build", "out", "target", "__pycache__", ".cache", ".venv", ".tox",
)  # fmt: skip


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


class Settings(BaseModel):
    """Tunables for polling, git invocation and diff rendering."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ref: str = "HEAD"
    poll_interval: float = Field(default=3.0, ge=0)
    status_timeout: float = Field(default=8.0, gt=0)
    fetch_timeout: float = Field(default=4.0, gt=0)
    max_fetch_bytes: int = Field(default=DEFAULT_MAX_BYTES, gt=0)
    max_workers: int = Field(default=0, ge=0)
    context_lines: int = Field(default=3, ge=0)
    clean_check_throttle: float = Field(default=5.0, ge=0)
    git_executable: str = "git"


class TrackingPolicy(BaseModel):
    """Decides which paths participate in change tracking."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    extensions: frozenset[str] = frozenset(DEFAULT_EXTENSIONS)
    ignored_directories: frozenset[str] = frozenset(DEFAULT_IGNORED_DIRECTORIES)
    max_file_bytes: int = Field(default=DEFAULT_MAX_BYTES, gt=0)

    @field_validator("extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            normalized = set()
            for item in value:
                text = str(item).strip().lower()
                if text and not text.startswith("."):
                    text = f".{text}"
                if text:
                    normalized.add(text)
            return frozenset(normalized)
        return value

    @field_validator("ignored_directories", mode="before")
    @classmethod
    def _normalize_directories(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(item).strip().lower() for item in value if str(item).strip())
        return value

    def is_trackable(self, path: PurePath | str, *, root: Path | None = None) -> bool:
        """Return ``True`` if ``path`` passes the extension, directory and size rules.

        An empty extension set accepts every extension. Directory names are matched only
        below ``root`` when it is given. The size ceiling only applies to files that
        currently exist on disk.
        """

        candidate = Path(path)
        if self.extensions and candidate.suffix.lower() not in self.extensions:
            return False

        parts = candidate.parts
        if root is not None:
            try:
                parts = candidate.relative_to(root).parts
            except ValueError:
                pass
        if any(part.lower() in self.ignored_directories for part in parts[:-1]):
            return False

        try:
            if candidate.is_file() and candidate.stat().st_size > self.max_file_bytes:
                return False
        except OSError:
            return False

        return True


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = None
    settings: Settings = Field(default_factory=Settings)
    policy: TrackingPolicy = Field(default_factory=TrackingPolicy)


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or to the directory holding it. When omitted,
            ``difftrack.toml`` in the current working directory is used if it exists and
            the built-in defaults otherwise.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return Config()

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    unknown = set(data) - {"settings", "policy"}
    if unknown:
        raise ConfigError(f"Unknown configuration section(s): {', '.join(sorted(unknown))}")

    settings = _build_section(Settings, data.get("settings") or {}, "settings")
    policy = _build_section(TrackingPolicy, data.get("policy") or {}, "policy")

    return Config(config_path=config_path, settings=settings, policy=policy)


def _build_section(model: type[BaseModel], raw: Mapping[str, Any], name: str) -> Any:
    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or name}: {error['msg']}" for error in exc.errors()
        )
        raise ConfigError(f"Invalid [{name}] section: {details}") from exc


def _resolve_config_path(path: Path | None) -> Path | None:
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_FILENAME
        return candidate.resolve(strict=False) if candidate.is_file() else None

    path = Path(os.path.expandvars(str(path))).expanduser()
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
