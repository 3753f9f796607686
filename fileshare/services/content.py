from __future__ import annotations

from pathlib import Path
from typing import Mapping
from urllib.parse import quote

import anyio
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from .mime import MimePolicy
from .ranges import RangeParseError, parse_range, unsatisfiable_content_range

CHUNK_SIZE = 64 * 1024


def content_disposition(disposition: str, filename: str) -> str:
    quoted = quote(filename)
    if quoted == filename:
        return f'{disposition}; filename="{filename}"'
    # latin-1 headers: ASCII fallback for old clients, RFC 5987 form for the rest
    fallback = filename.encode('ascii', 'replace').decode('ascii').replace('\\', '\\\\').replace('"', '\\"')
    return f'{disposition}; filename="{fallback}"; filename*=utf-8\'\'{quoted}'


class FileRangeResponse(Response):
    """Sends ``length`` bytes of ``path`` starting at ``offset``.

    The file is opened per response so concurrent downloads never share a
    handle or offset. The handle is closed on every exit path, including a
    client that goes away mid-transfer.
    """

    chunk_size = CHUNK_SIZE

    def __init__(
        self,
        path: str | Path,
        *,
        offset: int,
        length: int,
        status_code: int,
        headers: Mapping[str, str],
        send_body: bool = True,
    ) -> None:
        self.path = path
        self.offset = offset
        self.length = length
        self.status_code = status_code
        self.send_body = send_body
        self.background = None
        self.init_headers(headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        start_message = {'type': 'http.response.start', 'status': self.status_code, 'headers': self.raw_headers}
        if not self.send_body or self.length == 0:
            await send(start_message)
            await send({'type': 'http.response.body', 'body': b'', 'more_body': False})
            return

        async with await anyio.open_file(self.path, mode='rb') as file:
            await file.seek(self.offset)
            await send(start_message)
            remaining = self.length
            while remaining > 0:
                chunk = await file.read(min(self.chunk_size, remaining))
                if not chunk:
                    raise OSError(f'{self.path} shrank during transfer')
                remaining -= len(chunk)
                await send({'type': 'http.response.body', 'body': chunk, 'more_body': remaining > 0})


def download_response(
    path: Path,
    size: int,
    *,
    range_header: str | None,
    mime: MimePolicy,
    head: bool = False,
) -> Response:
    content_type, viewable = mime.lookup(path.name)
    headers = {
        'Accept-Ranges': 'bytes',
        'Content-Type': content_type,
        'Content-Disposition': content_disposition('inline' if viewable else 'attachment', path.name),
    }

    if not range_header:
        headers['Content-Length'] = str(size)
        return FileRangeResponse(path, offset=0, length=size, status_code=200, headers=headers, send_body=not head)

    try:
        ranges = parse_range(range_header, size)
    except RangeParseError:
        ranges = []

    # multipart/byteranges is not served
    if len(ranges) != 1:
        return Response(
            status_code=416,
            headers={'Accept-Ranges': 'bytes', 'Content-Range': unsatisfiable_content_range(size)},
        )

    byte_range = ranges[0]
    headers['Content-Range'] = byte_range.content_range(size)
    headers['Content-Length'] = str(byte_range.length)
    return FileRangeResponse(
        path,
        offset=byte_range.start,
        length=byte_range.length,
        status_code=206,
        headers=headers,
        send_body=not head,
    )
