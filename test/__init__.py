from __future__ import annotations

import typing

from httpsingle.exceptions import HandleClosedError
from httpsingle.handle import ErrorCode, Opt, TransferHandle


class FakeReply(typing.NamedTuple):
    status: int = 200
    reason: str = "OK"
    headers: typing.Sequence[typing.Tuple[str, str]] = ()
    body: bytes = b""
    #: Send the request body back as the response body.
    echo: bool = False
    #: ``(ErrorCode, message)`` to fail the transfer with.
    error: typing.Optional[typing.Tuple[ErrorCode, str]] = None
    #: Send no header lines at all.
    silent: bool = False
    #: Where the engine says the transfer ended up, after redirects.
    effective_url: typing.Optional[str] = None

    def header_lines(self) -> list[str]:
        if self.silent:
            return []
        lines = [f"HTTP/1.1 {self.status} {self.reason}\r\n"]
        lines.extend(f"{name}: {value}\r\n" for name, value in self.headers)
        lines.append("\r\n")
        return lines


class FakeHandle(TransferHandle):
    """
    A transfer handle that never touches the network.

    Option handling is the real one; ``perform()`` replays the queued
    :class:`FakeReply` objects (or ``default_reply`` once they run out) and
    records a snapshot of the options used for every transfer.
    """

    def __init__(
        self,
        *replies: FakeReply,
        default_reply: FakeReply = FakeReply(body=b"hello"),
    ) -> None:
        super().__init__()
        self.replies = list(replies)
        self.default_reply = default_reply
        self.performed: list[dict[Opt, typing.Any]] = []
        self.uploaded: list[bytes] = []
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        super().close()

    def perform(self) -> typing.Union[bytes, bool]:
        if self.closed:
            raise HandleClosedError("closed")
        self.clear_error()
        self.performed.append(dict(self._options))

        reply = self.replies.pop(0) if self.replies else self.default_reply
        self._info = {"effective_url": reply.effective_url or self.getopt(Opt.URL)}
        if reply.error is not None:
            self.errno, self.error = reply.error
            return False

        body = reply.body
        if self.getopt(Opt.UPLOAD) and self.getopt(Opt.READDATA) is not None:
            self.uploaded.append(self.getopt(Opt.READDATA).read())
        if reply.echo:
            fields = self.getopt(Opt.POSTFIELDS) or b""
            body = fields.encode("utf-8") if isinstance(fields, str) else fields
            if self.uploaded:
                body = self.uploaded[-1]

        callback = self.getopt(Opt.HEADERFUNCTION)
        if callback is not None:
            for line in reply.header_lines():
                callback(line)

        if self.getopt(Opt.RETURNTRANSFER):
            return body
        writer = self.getopt(Opt.WRITEFUNCTION)
        if writer is not None and body:
            writer(body)
        return True
