from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from difftrack.config import (
    DEFAULT_CONFIG_FILENAME,
    DEFAULT_MAX_BYTES,
    Config,
    ConfigError,
    TrackingPolicy,
    load_config,
)


def _write_config(tmp_path: Path, body: str) -> Path:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    config_path.write_text(dedent(body))
    return config_path


def test_load_config_happy_path(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [settings]
        ref = "main"
        poll_interval = 1.5
        context_lines = 5
        max_workers = 4

        [policy]
        extensions = ["PY", ".md"]
        ignored_directories = ["Vendor"]
        """,
    )

    config = load_config(config_path)

    assert config.config_path == config_path.resolve(strict=False)
    assert config.settings.ref == "main"
    assert config.settings.poll_interval == 1.5
    assert config.settings.context_lines == 5
    assert config.settings.max_workers == 4
    assert config.settings.fetch_timeout == 4.0
    assert config.policy.extensions == frozenset({".py", ".md"})
    assert config.policy.ignored_directories == frozenset({"vendor"})
    assert config.policy.max_file_bytes == DEFAULT_MAX_BYTES


def test_load_config_from_directory(tmp_path: Path) -> None:
    _write_config(tmp_path, "[settings]\ncontext_lines = 1\n")

    assert load_config(tmp_path).settings.context_lines == 1


def test_defaults_without_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    assert load_config() == Config()


def test_config_in_working_directory_is_picked_up(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_config(tmp_path, "[settings]\npoll_interval = 0\n")
    monkeypatch.chdir(tmp_path)

    assert load_config().settings.poll_interval == 0


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="does not exist"):
        load_config(tmp_path / "missing.toml")


def test_directory_without_config_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Expected to find"):
        load_config(tmp_path)


def test_invalid_toml_raises(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, "[settings\n")

    with pytest.raises(ConfigError, match="not valid TOML"):
        load_config(config_path)


def test_unknown_section_raises(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, "[groups.user]\nentries = []\n")

    with pytest.raises(ConfigError, match="Unknown configuration section"):
        load_config(config_path)


@pytest.mark.parametrize(
    "body",
    [
        "[settings]\npoll_interval = -1\n",
        "[settings]\ncontext_lines = -2\n",
        "[settings]\nunknown_key = true\n",
        "[policy]\nmax_file_bytes = 0\n",
    ],
)
def test_invalid_values_raise(tmp_path: Path, body: str) -> None:
    config_path = _write_config(tmp_path, body)

    with pytest.raises(ConfigError, match="Invalid \\["):
        load_config(config_path)


def test_policy_rejects_ignored_directories_and_extensions(tmp_path: Path) -> None:
    policy = TrackingPolicy()

    assert policy.is_trackable(tmp_path / "src" / "main.py", root=tmp_path)
    assert not policy.is_trackable(tmp_path / "node_modules" / "pkg" / "index.js", root=tmp_path)
    assert not policy.is_trackable(tmp_path / "BIN" / "tool.cs", root=tmp_path)
    assert not policy.is_trackable(tmp_path / "image.png", root=tmp_path)


def test_policy_only_checks_directories_below_root(tmp_path: Path) -> None:
    root = tmp_path / "build" / "repo"

    assert TrackingPolicy().is_trackable(root / "app.py", root=root)


def test_policy_rejects_oversize_files(tmp_path: Path) -> None:
    big = tmp_path / "big.txt"
    big.write_text("x" * 64)

    assert not TrackingPolicy(max_file_bytes=16).is_trackable(big, root=tmp_path)
    assert TrackingPolicy(max_file_bytes=64).is_trackable(big, root=tmp_path)
