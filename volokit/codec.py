"""Length-prefixed gRPC message framing: encoding and a receiving stream."""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")

PREFIX_LEN = 5
_MAX_LEN = 0xFFFFFFFF


class Code(enum.IntEnum):
    """gRPC status codes."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class StatusError(Exception):
    """A gRPC status carried as an exception."""

    def __init__(self, code: Code, message: str = "") -> None:
        super().__init__(message)
        self.code = Code(code)
        self.message = message

    def __str__(self) -> str:
        return f"status: {self.code.name}, message: {self.message!r}"


def encode_message(message: Any, serialize: Callable[[Any], bytes]) -> bytes:
    """Frame one message: a zero flag byte, a big-endian u32 length, then the payload."""
    try:
        payload = bytes(serialize(message))
    except StatusError:
        raise
    except Exception as exc:
        raise StatusError(Code.INTERNAL, str(exc)) from exc
    if len(payload) > _MAX_LEN:
        raise StatusError(Code.INTERNAL, "message too large to encode")
    return b"\x00" + len(payload).to_bytes(4, "big") + payload


def encode(
    source: Iterable[Any], serialize: Callable[[Any], bytes]
) -> Iterator[Union[bytes, StatusError]]:
    """Frame every message of ``source``; StatusError items are passed through as they are."""
    for item in source:
        if isinstance(item, StatusError):
            yield item
        else:
            yield encode_message(item, serialize)


class _State(enum.Enum):
    HEADER = enum.auto()
    BODY = enum.auto()
    ERROR = enum.auto()


_NOTHING = object()

Trailers = Union[Mapping[str, str], Callable[[], Union[Mapping[str, str], None]], None]


class RecvStream(Generic[T]):
    """Iterates the messages framed in a body made of byte chunks.

    ``trailers`` is the trailing metadata of the body, or a callable that
    returns it.  ``check_trailers``, used for responses, inspects the trailers
    once the body ends and raises :class:`StatusError` to report a failure.
    """

    def __init__(
        self,
        body: Iterable[bytes],
        deserialize: Callable[[bytes], T],
        trailers: Trailers = None,
        check_trailers: Callable[[Union[dict[str, str], None]], None] | None = None,
    ) -> None:
        self._chunks = iter(body)
        self._deserialize = deserialize
        self._source_trailers = trailers
        self._check_trailers = check_trailers
        self._buf = bytearray()
        self._state = _State.HEADER
        self._length = 0
        self._trailers: dict[str, str] | None = None
        self._fetched = False
        self._checked = False

    def __repr__(self) -> str:
        return "RecvStream()"

    def __iter__(self) -> RecvStream[T]:
        return self

    def _decode_chunk(self) -> Any:
        if self._state is _State.HEADER:
            if len(self._buf) < PREFIX_LEN:
                return _NOTHING
            flag = self._buf[0]
            if flag == 1:
                raise StatusError(Code.UNIMPLEMENTED, "Compression not supported yet")
            if flag != 0:
                raise StatusError(
                    Code.INTERNAL,
                    "protocol error: received message with invalid compression flag: "
                    f"{flag} (valid flags are 0 and 1), while sending request",
                )
            self._length = int.from_bytes(self._buf[1:PREFIX_LEN], "big")
            del self._buf[:PREFIX_LEN]
            self._state = _State.BODY

        if self._state is _State.BODY:
            if len(self._buf) < self._length:
                return _NOTHING
            payload = bytes(self._buf[: self._length])
            del self._buf[: self._length]
            try:
                message = self._deserialize(payload)
            except StatusError:
                raise
            except Exception as exc:
                raise StatusError(Code.INTERNAL, str(exc)) from exc
            self._state = _State.HEADER
            return message
        return _NOTHING

    def _take_source_trailers(self) -> dict[str, str] | None:
        if self._fetched:
            return None
        self._fetched = True
        source = self._source_trailers
        if callable(source):
            try:
                source = source()
            except StatusError:
                raise
            except Exception as exc:
                raise StatusError(Code.UNKNOWN, str(exc)) from exc
        return None if source is None else dict(source)

    def __next__(self) -> T:
        while True:
            if self._state is _State.ERROR:
                raise StopIteration
            item = self._decode_chunk()
            if item is not _NOTHING:
                return item
            try:
                chunk = next(self._chunks)
            except StopIteration:
                chunk = None
            except StatusError:
                self._state = _State.ERROR
                raise
            except Exception as exc:
                self._state = _State.ERROR
                raise StatusError(Code.UNKNOWN, str(exc)) from exc

            if chunk is not None:
                self._buf.extend(chunk)
            elif self._buf:
                raise StatusError(Code.INTERNAL, "Unexpected EOF decoding stream.")
            else:
                break

        if self._check_trailers is not None and not self._checked:
            self._checked = True
            trailers = self._take_source_trailers()
            self._check_trailers(trailers)
            self._trailers = trailers
        raise StopIteration

    def message(self) -> T | None:
        """Return the next message, or None at the end of the stream."""
        return next(self, None)

    def trailers(self) -> dict[str, str] | None:
        """Read the body to its end and return the trailing metadata."""
        if self._trailers is not None:
            trailers, self._trailers = self._trailers, None
            return trailers
        for _ in self:
            pass
        if self._trailers is not None:
            trailers, self._trailers = self._trailers, None
            return trailers
        return self._take_source_trailers()