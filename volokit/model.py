"""Data model of the IDL configuration file."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

DEFAULT_ENTRY_NAME = "default"
DEFAULT_FILENAME = "volo_gen.rs"


class IdlProtocol(str, enum.Enum):
    """Protocol an IDL file is written in."""

    THRIFT = "thrift"
    PROTOBUF = "protobuf"


@dataclass
class GitSource:
    """An IDL fetched from a git repository."""

    repo: str
    ref: str | None = None
    lock: str | None = None


@dataclass
class Idl:
    """One IDL file of an entry; a ``source`` of ``None`` means a local file."""

    path: Path = field(default_factory=Path)
    source: GitSource | None = None
    includes: list[Path] | None = None

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        if self.includes is not None:
            self.includes = [Path(p) for p in self.includes]

    @property
    def is_local(self) -> bool:
        return self.source is None

    def protocol(self) -> IdlProtocol:
        """Infer the protocol from the file extension."""
        suffix = self.path.suffix
        if suffix == ".thrift":
            return IdlProtocol.THRIFT
        if suffix == ".proto":
            return IdlProtocol.PROTOBUF
        raise ValueError(f"invalid file ext {str(self.path)!r}")


@dataclass
class Entry:
    """A group of IDL files generated into one output file."""

    protocol: IdlProtocol
    filename: Path
    idls: list[Idl] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.protocol = IdlProtocol(self.protocol)
        self.filename = Path(self.filename)


@dataclass
class Config:
    """The whole configuration: entries keyed by name."""

    entries: dict[str, Entry] = field(default_factory=dict)


def _require(data: Mapping[str, Any], key: str, what: str) -> Any:
    if key not in data:
        raise ValueError(f"{what}: missing field {key!r}")
    return data[key]


def _string(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{what}: expected a string, got {value!r}")
    return value


def _optional_string(data: Mapping[str, Any], key: str, what: str) -> str | None:
    value = data.get(key)
    return None if value is None else _string(value, f"{what}.{key}")


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{what}: expected a mapping, got {value!r}")
    return value


def _idl_from_dict(data: Any) -> Idl:
    data = _mapping(data, "idl")
    kind = _require(data, "source", "idl")
    if kind == "git":
        source: GitSource | None = GitSource(
            repo=_string(_require(data, "repo", "idl"), "idl.repo"),
            ref=_optional_string(data, "ref", "idl"),
            lock=_optional_string(data, "lock", "idl"),
        )
    elif kind == "local":
        source = None
    else:
        raise ValueError(f"idl: unknown source {kind!r}")

    path = Path(_string(_require(data, "path", "idl"), "idl.path"))
    includes_raw = data.get("includes")
    includes = None
    if includes_raw is not None:
        if not isinstance(includes_raw, list):
            raise ValueError(f"idl.includes: expected a list, got {includes_raw!r}")
        includes = [Path(_string(item, "idl.includes")) for item in includes_raw]
    return Idl(path=path, source=source, includes=includes)


def _entry_from_dict(data: Any) -> Entry:
    data = _mapping(data, "entry")
    protocol_raw = _require(data, "protocol", "entry")
    try:
        protocol = IdlProtocol(protocol_raw)
    except ValueError:
        raise ValueError(f"entry: unknown protocol {protocol_raw!r}") from None
    filename = Path(_string(_require(data, "filename", "entry"), "entry.filename"))
    idls_raw = _require(data, "idls", "entry")
    if not isinstance(idls_raw, list):
        raise ValueError(f"entry.idls: expected a list, got {idls_raw!r}")
    return Entry(protocol=protocol, filename=filename, idls=[_idl_from_dict(i) for i in idls_raw])


def config_from_dict(data: Any) -> Config:
    """Build a :class:`Config` from parsed YAML data, raising ValueError if malformed."""
    data = _mapping(data, "config")
    entries = _mapping(_require(data, "entries", "config"), "config.entries")
    return Config(entries={str(name): _entry_from_dict(e) for name, e in entries.items()})


def _idl_to_dict(idl: Idl) -> dict[str, Any]:
    result: dict[str, Any]
    if idl.source is None:
        result = {"source": "local"}
    else:
        result = {"source": "git", "repo": idl.source.repo}
        if idl.source.ref is not None:
            result["ref"] = idl.source.ref
        if idl.source.lock is not None:
            result["lock"] = idl.source.lock
    result["path"] = str(idl.path)
    if idl.includes is not None:
        result["includes"] = [str(p) for p in idl.includes]
    return result


def config_to_dict(config: Config) -> dict[str, Any]:
    """Turn a :class:`Config` into plain data ready for YAML."""
    return {
        "entries": {
            name: {
                "protocol": entry.protocol.value,
                "filename": str(entry.filename),
                "idls": [_idl_to_dict(idl) for idl in entry.idls],
            }
            for name, entry in config.entries.items()
        }
    }