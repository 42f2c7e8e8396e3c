"""Configuration file handling and git helpers."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .model import Config, config_from_dict, config_to_dict

DEFAULT_CONFIG_FILE = "volo.yml"


class GitError(Exception):
    """Raised when a git operation or a git address is invalid."""


def default_dir() -> Path:
    """Directory under ``OUT_DIR`` where fetched IDL files are cached."""
    out_dir = os.environ.get("OUT_DIR")
    if out_dir is None:
        raise RuntimeError(
            "OUT_DIR is not set, maybe you are calling volo-build outside build.rs?"
        )
    return Path(out_dir) / "idl"


def ensure_path(path: str | os.PathLike[str]) -> None:
    """Create a directory and its parents if missing."""
    Path(path).mkdir(parents=True, exist_ok=True)


def read_config(path: str | os.PathLike[str]) -> Config:
    """Read the config file, creating it if missing; an empty file is an empty config."""
    path = Path(path)
    with open(path, "a", encoding="utf-8"):
        pass
    if path.stat().st_size == 0:
        return Config()
    text = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"read config file {str(path)!r}: {exc}") from exc
    return config_from_dict(data)


def write_config(path: str | os.PathLike[str], config: Config) -> None:
    """Write the config back, replacing the file's contents."""
    text = yaml.safe_dump(config_to_dict(config), sort_keys=False)
    Path(path).write_text(text, encoding="utf-8")


@contextmanager
def with_config(path: str | os.PathLike[str] = DEFAULT_CONFIG_FILE) -> Iterator[Config]:
    """Yield the config for editing and write it back if the block succeeds."""
    config = read_config(path)
    yield config
    write_config(path, config)


@dataclass
class Task:
    """Files to fetch from a repository at a locked revision into a directory."""

    files: list[str] = field(default_factory=list)
    directory: Path = field(default_factory=Path)
    repo: str = ""
    lock: str = ""

    def __post_init__(self) -> None:
        self.directory = Path(self.directory)


def _run_git(args: Sequence[str], cwd: Path | None = None) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(["git", *args], cwd=cwd, check=False)
    except OSError as exc:
        raise GitError(f"failed to spawn git {args[0]}: {exc}") from exc


def download_files_from_git(task: Task) -> None:
    """Pull the expected IDL files from a git repository."""
    ensure_path(task.directory)
    git_archive(task.repo, task.lock, task.directory)


def git_archive(repo: str, revision: str, directory: str | os.PathLike[str]) -> None:
    """Check out ``revision`` of ``repo`` into ``directory`` with a shallow fetch."""
    directory = Path(directory)
    _run_git(["init"], directory)
    _run_git(["remote", "add", "origin", repo], directory)
    _run_git(["fetch", "origin", revision, "--depth=1"], directory)
    _run_git(["reset", "--hard", revision], directory)


def _strip_suffix(text: str, suffix: str) -> str:
    while suffix and text.endswith(suffix):
        text = text[: -len(suffix)]
    return text


def _strip_prefix(text: str, prefix: str) -> str:
    while prefix and text.startswith(prefix):
        text = text[len(prefix):]
    return text


def get_git_path(git: str) -> Path:
    """Map a git address to a relative cache path.

    Accepts ``username@domain:namespace/repo.git``, ``https://domain/namespace/repo.git``
    and plain local paths.
    """
    stripped = _strip_suffix(git, ".git")
    parts = stripped.split(":")
    if len(parts) == 1:
        return Path(stripped)
    if len(parts) == 2:
        if stripped.startswith("https"):
            return Path(_strip_prefix(stripped, "https://"))
        host_parts = parts[0].split("@")
        host = host_parts[0] if len(host_parts) == 1 else host_parts[1]
        return Path(f"{host}/{parts[1]}")
    raise GitError(f"git format error: {git}")


def parse_ls_remote(output: str, repo: str, ref: str) -> str:
    """Pick the single commit id out of ``git ls-remote`` output."""
    matches = [
        fields
        for fields in (line.split("\t") for line in output.split("\n"))
        if len(fields) == 2
    ]
    if not matches:
        raise GitError(
            f"get latest commit of {repo}:{ref} failed, please check the {ref} of {repo}"
        )
    if len(matches) > 1:
        possibilities = "\n".join(fields[1] for fields in matches)
        raise GitError(
            f"get latest commit of {repo}:{ref} failed because of multiple refs, "
            f"please choose one of: \n{possibilities}"
        )
    return matches[0][0]


def get_repo_latest_commit_id(repo: str, ref: str) -> str:
    """Ask the remote for the commit ``ref`` currently points to."""
    try:
        result = subprocess.run(
            ["git", "ls-remote", repo, ref], capture_output=True, check=False
        )
    except OSError as exc:
        raise GitError(f"failed to spawn git ls-remote: {exc}") from exc
    output = result.stdout.decode("utf-8", errors="replace")
    return parse_ls_remote(output, repo, ref)