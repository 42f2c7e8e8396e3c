"""Command-line interface for managing the IDL configuration file."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .model import DEFAULT_ENTRY_NAME, DEFAULT_FILENAME, Config, Entry, GitSource, Idl
from .util import DEFAULT_CONFIG_FILE, GitError, get_repo_latest_commit_id, with_config

ResolveCommit = Callable[[str, str], str]

logger = logging.getLogger(__name__)


@dataclass
class Context:
    """Information shared by every command of one invocation."""

    entry_name: str = DEFAULT_ENTRY_NAME


class CliError(Exception):
    """Raised when a command cannot be carried out."""


def _check_filename(filename: str) -> None:
    if "/" in filename or "\\" in filename:
        raise CliError("filename should not contain '/' or '\\'")


def _same_source(idl: Idl, git: str | None) -> bool:
    if idl.source is None:
        return git is None
    return git is not None and idl.source.repo == git


def add_idl(
    config: Config,
    entry_name: str,
    path: str | os.PathLike[str],
    filename: str = DEFAULT_FILENAME,
    git: str | None = None,
    ref: str | None = None,
    includes: Iterable[str | os.PathLike[str]] | None = None,
    resolve_commit: ResolveCommit = get_repo_latest_commit_id,
) -> None:
    """Add an IDL to an entry, creating the entry if needed.

    An IDL already present with the same path and source is kept; for a git
    source, a given ``ref`` replaces its ref and lock.
    """
    filename = str(filename)
    _check_filename(filename)
    if ref is not None and git is None:
        raise CliError("a ref can only be given together with a git repo")

    path = Path(path)
    include_paths = None if includes is None else [Path(p) for p in includes]
    if git is not None:
        lock = resolve_commit(git, ref if ref is not None else "HEAD")
        new_idl = Idl(
            path=path,
            source=GitSource(repo=git, ref=ref, lock=lock),
            includes=include_paths,
        )
    else:
        new_idl = Idl(path=path, includes=include_paths)

    target = Path(filename)
    for name, entry in config.entries.items():
        if name != entry_name and entry.filename == target:
            raise CliError(
                f"The specified filename '{filename}' already exists in entry '{name}'!"
            )

    entry = config.entries.get(entry_name)
    if entry is None:
        try:
            protocol = new_idl.protocol()
        except ValueError as exc:
            raise CliError(str(exc)) from None
        config.entries[entry_name] = Entry(protocol=protocol, filename=target, idls=[new_idl])
        return

    if entry.filename != target:
        raise CliError(
            f"The specified filename '{filename}' doesn't match the current filename "
            f"'{entry.filename}' in the entry '{entry_name}'!"
        )

    existing = next(
        (idl for idl in entry.idls if idl.path == path and _same_source(idl, git)),
        None,
    )
    if existing is None:
        entry.idls.append(new_idl)
    elif existing.source is not None and ref is not None and new_idl.source is not None:
        existing.source.ref = ref
        existing.source.lock = new_idl.source.lock


def update_idls(
    config: Config,
    entry_name: str,
    gits: Iterable[str] = (),
    resolve_commit: ResolveCommit = get_repo_latest_commit_id,
) -> None:
    """Refresh the locked commit of the entry's git IDLs.

    With no ``gits`` every git source of the entry is refreshed; otherwise the
    first source of each named repo.
    """
    gits = list(gits)
    entry = config.entries.get(entry_name)
    if entry is None:
        raise CliError(f"entry {entry_name} not found")

    sources = [idl.source for idl in entry.idls if idl.source is not None]
    known = {source.repo for source in sources}
    for repo in gits:
        if repo not in known:
            raise CliError(f"git repo {repo} not exists in config")

    if gits:
        targets = [next(s for s in sources if s.repo == repo) for repo in gits]
    else:
        targets = sources

    for source in targets:
        source.lock = resolve_commit(
            source.repo, source.ref if source.ref is not None else "HEAD"
        )


def _run_add(args: argparse.Namespace, cx: Context, config: Config) -> None:
    add_idl(
        config,
        cx.entry_name,
        args.idl,
        filename=args.filename,
        git=args.git,
        ref=args.ref,
        includes=args.includes,
    )


def _run_update(args: argparse.Namespace, cx: Context, config: Config) -> None:
    update_idls(config, cx.entry_name, args.git)


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=argparse.SUPPRESS,
        help="Turn on the verbose mode.",
    )
    common.add_argument(
        "-n",
        "--entry-name",
        default=argparse.SUPPRESS,
        help="The entry name, defaults to 'default'.",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser of the ``volo`` command."""
    parser = argparse.ArgumentParser(prog="volo", description="Manage IDL code generation.")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Turn on the verbose mode."
    )
    parser.add_argument(
        "-n",
        "--entry-name",
        default=DEFAULT_ENTRY_NAME,
        help="The entry name, defaults to 'default'.",
    )
    common = _common_options()
    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    idl = commands.add_parser("idl", parents=[common], help="manage your idl")
    idl_commands = idl.add_subparsers(dest="idl_command", required=True, metavar="COMMAND")

    git_help = (
        'Specify the git repo for idl. Should be in the format of "git@domain:path/repo.git".'
    )
    add = idl_commands.add_parser("add", parents=[common], help="add an idl to an entry")
    add.add_argument("-g", "--git", help=git_help)
    add.add_argument(
        "-r",
        "--ref",
        help="Specify the git repo ref (commit/branch) for idl. Requires --git.",
    )
    add.add_argument(
        "-i",
        "--includes",
        action="append",
        type=Path,
        help="Specify the include dirs for idl; paths in the git repo if --git is given.",
    )
    add.add_argument(
        "-f",
        "--filename",
        default=DEFAULT_FILENAME,
        help="Specify the output filename, defaults to 'volo_gen.rs'.",
    )
    add.add_argument(
        "idl",
        type=Path,
        help="Specify the path for idl; a path in the git repo if --git is given.",
    )
    add.set_defaults(handler=_run_add)

    update = idl_commands.add_parser(
        "update", parents=[common], help="update your idl by git repo"
    )
    update.add_argument("git", nargs="*", help="git repos to update; all when omitted")
    update.set_defaults(handler=_run_update)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "ref", None) is not None and getattr(args, "git", None) is None:
        parser.error("the argument -r/--ref requires -g/--git")

    level = logging.INFO if args.verbose == 0 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")
    logger.setLevel(level)
    logger.debug("Command parse result: %s", args)

    cx = Context(entry_name=args.entry_name)
    try:
        if args.handler is _run_add:
            _check_filename(args.filename)
        with with_config(DEFAULT_CONFIG_FILE) as config:
            args.handler(args, cx, config)
    except (CliError, GitError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        return 1
    return 0