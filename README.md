# volokit

Tools for RPC projects built from Thrift or Protobuf IDL files:

- `volokit.model`: the `volo.yml` configuration model. A `Config` holds named
  `Entry` objects, each with a protocol (`IdlProtocol`), an output filename and
  a list of `Idl` files. An `Idl` is local, or comes from a git repository
  (`GitSource`) with an optional ref and a locked commit.
- `volokit.util`: reading and writing the configuration file
  (`read_config`, `write_config`, the `with_config` context manager) and git
  helpers (`get_git_path`, `git_archive`, `download_files_from_git`,
  `get_repo_latest_commit_id`).
- `volokit.cli`: the `volo` command, plus `add_idl` and `update_idls` for use
  from Python.
- `volokit.codec`: gRPC length-prefixed message framing (`encode_message`,
  `encode`) and `RecvStream`, which decodes messages from a body of byte
  chunks. Failures are raised as `StatusError` carrying a `Code`.
- `volokit.layers`: async request layers: `GrpcTimeout` / `GrpcTimeoutLayer`,
  `UserAgent` and `AddOrigin`, and `parse_grpc_timeout`.
- `volokit.client`: `ClientBuilder` with HTTP/2 settings, timeouts and
  layers, building a `Client` with per-call options (`CallOpt`).

## Install

    pip install volokit

Git operations run the `git` program, which must be on `PATH`.

## Command line

The `volo` command edits `volo.yml` in the current directory, creating it if
it is missing.

Add a local IDL to the default entry:

    volo idl add ./idl/echo.thrift

Add an IDL from a git repository, locked to the current commit of a branch
(found with `git ls-remote`):

    volo idl add -g git@example.com:team/idl.git -r main path/to/echo.thrift

Refresh the lock of every git source in an entry, or of selected repositories:

    volo idl update
    volo -n other idl update git@example.com:team/idl.git

Options:

- `-n/--entry-name` chooses the entry (default `default`).
- `-f/--filename` sets the output filename of a new entry (default
  `volo_gen.rs`); it must not contain `/` or `\` and must not be used by
  another entry.
- `-i/--includes` adds an include directory; it may be repeated.
- `-r/--ref` requires `-g/--git`.
- `-v/--verbose` turns on debug logging.

The command exits with status 1 and logs the error when it fails.

## Library

Editing the configuration:

```python
from volokit.util import with_config
from volokit.cli import add_idl

with with_config("volo.yml") as config:
    add_idl(config, "default", "idl/echo.proto", filename="volo_gen.rs")
```

`add_idl` and `update_idls` take a `resolve_commit(repo, ref)` callable that
returns a commit id; it defaults to `get_repo_latest_commit_id`.

Framing and decoding messages:

```python
from volokit.codec import encode_message, RecvStream

frame = encode_message(b"payload", bytes)
assert list(RecvStream([frame], bytes)) == [b"payload"]
```

Parsing a timeout header (the result is in seconds):

```python
from volokit.layers import parse_grpc_timeout

parse_grpc_timeout({"grpc-timeout": "42S"})  # 42
parse_grpc_timeout({"grpc-timeout": "13m"})  # 0.013
```

Building a client over a transport of your own (any object with an async
`call(cx, request)` method):

```python
from volokit.client import ClientBuilder

client = (
    ClientBuilder("echo-service")
    .caller_name("echo-client")
    .read_timeout(5.0)
    .build(transport)
)
response = await client.call("/echo.Echo/Say", request)
```

## What it does not do

volokit does not generate code from IDL files, does not scaffold new
projects, and has no server. It also has no HTTP/2 transport: `Client` passes
each call, with its `ClientContext`, to the transport object you give to
`ClientBuilder.build`, and the HTTP/2 settings are only recorded on the
builder's `http2_config`.

## Tests

    pip install -e .[test]
    pytest