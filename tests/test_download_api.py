from __future__ import annotations

import asyncio

import anyio
import httpx
import pytest
from fastapi.testclient import TestClient

from fileshare import main
from fileshare.config import Settings
from fileshare.services import content

DATA = bytes(range(256)) * 40


def _client(root, **overrides) -> TestClient:
    return TestClient(main.create_app(Settings(root_dir=str(root), **overrides)))


@pytest.fixture
def share(tmp_path):
    root = tmp_path / 'share'
    (root / 'nested' / 'deeper').mkdir(parents=True)
    (root / 'blob.bin').write_bytes(DATA)
    (root / 'small.bin').write_bytes(DATA[:120])
    (root / 'nested' / 'deeper' / 'leaf.txt').write_bytes(b'leaf contents')
    (root / 'picture.png').write_bytes(b'\x89PNG fake')
    return root


def test_full_download_returns_whole_file(share):
    response = _client(share).get('/download/blob.bin')

    assert response.status_code == 200
    assert response.content == DATA
    assert response.headers['content-length'] == str(len(DATA))
    assert response.headers['accept-ranges'] == 'bytes'
    assert response.headers['content-type'] == 'application/octet-stream'
    assert response.headers['content-disposition'] == 'attachment; filename="blob.bin"'
    assert 'content-range' not in response.headers


def test_single_range_returns_exact_bytes(share):
    response = _client(share).get('/download/blob.bin', headers={'Range': 'bytes=100-199'})

    assert response.status_code == 206
    assert response.content == DATA[100:200]
    assert response.headers['content-range'] == f'bytes 100-199/{len(DATA)}'
    assert response.headers['content-length'] == '100'
    assert response.headers['accept-ranges'] == 'bytes'


def test_suffix_range_returns_tail(share):
    response = _client(share).get('/download/blob.bin', headers={'Range': 'bytes=-500'})

    assert response.status_code == 206
    assert response.content == DATA[-500:]
    assert response.headers['content-range'] == f'bytes {len(DATA) - 500}-{len(DATA) - 1}/{len(DATA)}'


def test_suffix_range_on_small_file_returns_everything(share):
    response = _client(share).get('/download/small.bin', headers={'Range': 'bytes=-500'})

    assert response.status_code == 206
    assert response.content == DATA[:120]
    assert response.headers['content-range'] == 'bytes 0-119/120'


def test_open_ended_range_resumes_download(share):
    response = _client(share).get('/download/blob.bin', headers={'Range': 'bytes=500-'})

    assert response.status_code == 206
    assert response.content == DATA[500:]
    assert response.headers['content-length'] == str(len(DATA) - 500)


def test_range_larger_than_chunk_size_is_complete(share):
    big = bytes(range(256)) * 1024
    (share / 'big.bin').write_bytes(big)

    response = _client(share).get('/download/big.bin', headers={'Range': 'bytes=1-200000'})

    assert response.status_code == 206
    assert response.content == big[1:200001]


@pytest.mark.parametrize('header', [f'bytes={len(DATA)}-', 'bytes=0-1,5-6', 'items=0-1', 'bytes=x-1', 'bytes=50-10'])
def test_unsatisfiable_range_returns_416(share, header):
    response = _client(share).get('/download/blob.bin', headers={'Range': header})

    assert response.status_code == 416
    assert response.headers['content-range'] == f'bytes */{len(DATA)}'
    assert response.content == b''


def test_head_matches_get_headers_without_body(share):
    client = _client(share)

    for headers in ({}, {'Range': 'bytes=10-19'}):
        get = client.get('/download/blob.bin', headers=headers)
        head = client.head('/download/blob.bin', headers=headers)

        assert head.status_code == get.status_code
        assert dict(head.headers) == dict(get.headers)
        assert head.content == b''


def test_empty_file_downloads_with_zero_length(share):
    (share / 'empty.bin').write_bytes(b'')

    response = _client(share).get('/download/empty.bin')

    assert response.status_code == 200
    assert response.content == b''
    assert response.headers['content-length'] == '0'


def test_disposition_uses_base_name_only(share):
    response = _client(share).get('/download/nested/deeper/leaf.txt')

    assert response.status_code == 200
    assert response.content == b'leaf contents'
    assert response.headers['content-disposition'] == 'attachment; filename="leaf.txt"'


def test_non_ascii_filename_uses_extended_disposition(share):
    (share / 'résumé.txt').write_bytes(b'cv')

    response = _client(share).get('/download/résumé.txt')

    assert response.status_code == 200
    assert response.headers['content-disposition'] == (
        "attachment; filename=\"r?sum?.txt\"; filename*=utf-8''r%C3%A9sum%C3%A9.txt"
    )


def test_filename_with_space_keeps_plain_fallback(share):
    (share / 'my report.txt').write_bytes(b'q3')

    response = _client(share).get('/download/my report.txt')

    assert response.status_code == 200
    assert response.headers['content-disposition'] == (
        "attachment; filename=\"my report.txt\"; filename*=utf-8''my%20report.txt"
    )


def test_content_disposition_escapes_quotes_in_fallback():
    assert content.content_disposition('inline', 'say "hi".txt') == (
        "inline; filename=\"say \\\"hi\\\".txt\"; filename*=utf-8''say%20%22hi%22.txt"
    )


def test_viewable_type_is_served_inline_when_mime_enabled(share):
    response = _client(share, intelligent_mime='true').get('/download/picture.png')

    assert response.headers['content-type'] == 'image/png'
    assert response.headers['content-disposition'] == 'inline; filename="picture.png"'


def test_viewable_type_is_downloaded_when_mime_disabled(share):
    response = _client(share).get('/download/picture.png')

    assert response.headers['content-type'] == 'application/octet-stream'
    assert response.headers['content-disposition'].startswith('attachment;')


def test_directory_download_is_rejected(share):
    response = _client(share).get('/download/nested')

    assert response.status_code == 400
    assert response.text == 'Cannot download directory'


def test_root_download_is_rejected(share):
    assert _client(share).get('/download/').status_code == 400


def test_missing_file_returns_404(share):
    response = _client(share).get('/download/nope.bin')

    assert response.status_code == 404
    assert str(share) not in response.text


def test_file_used_as_directory_returns_404(share):
    assert _client(share).get('/download/blob.bin/child').status_code == 404


def test_encoded_traversal_returns_403(share):
    (share.parent / 'secret.txt').write_text('top secret')

    response = _client(share).get('/download/..%2Fsecret.txt')

    assert response.status_code == 403
    assert 'top secret' not in response.text


def test_sibling_directory_with_shared_prefix_is_denied(share):
    sibling = share.parent / 'share2'
    sibling.mkdir()
    (sibling / 'other.txt').write_text('other')

    response = _client(share).get('/download/..%2Fshare2%2Fother.txt')

    assert response.status_code == 403


def test_post_to_download_is_not_allowed(share):
    assert _client(share).post('/download/blob.bin').status_code == 405


@pytest.mark.asyncio
async def test_concurrent_range_requests_do_not_interfere(share):
    app = main.create_app(Settings(root_dir=str(share)))
    starts = [0, 1000, 2500, 4096, 7000, 9000]

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url='http://testserver') as client:
        responses = await asyncio.gather(
            *(client.get('/download/blob.bin', headers={'Range': f'bytes={start}-{start + 999}'}) for start in starts)
        )

    for start, response in zip(starts, responses):
        assert response.status_code == 206
        assert response.content == DATA[start:start + 1000]


@pytest.mark.asyncio
async def test_file_handle_closed_when_client_disconnects(share, monkeypatch):
    opened = []
    real_open_file = anyio.open_file

    async def _tracking_open_file(*args, **kwargs):
        handle = await real_open_file(*args, **kwargs)
        opened.append(handle)
        return handle

    monkeypatch.setattr(content.anyio, 'open_file', _tracking_open_file)

    response = content.FileRangeResponse(
        share / 'blob.bin',
        offset=0,
        length=len(DATA),
        status_code=200,
        headers={'Content-Length': str(len(DATA))},
    )
    response.chunk_size = 1024
    sent = []

    async def _send(message):
        if message['type'] == 'http.response.body' and len(sent) >= 2:
            raise OSError('client went away')
        sent.append(message)

    async def _receive():
        return {'type': 'http.disconnect'}

    with pytest.raises(OSError, match='client went away'):
        await response({'type': 'http'}, _receive, _send)

    assert len(opened) == 1
    assert opened[0].wrapped.closed


def test_symlink_leading_outside_root_is_denied(share):
    (share.parent / 'secret.txt').write_text('top secret')
    (share / 'link.txt').symlink_to(share.parent / 'secret.txt')

    response = _client(share).get('/download/link.txt')

    assert response.status_code == 403
    assert 'top secret' not in response.text


def test_symlinked_directory_outside_root_is_denied(share):
    outside = share.parent / 'elsewhere'
    outside.mkdir()
    (outside / 'data.txt').write_text('private')
    (share / 'portal').symlink_to(outside, target_is_directory=True)

    client = _client(share)

    assert client.get('/download/portal/data.txt').status_code == 403
    assert client.get('/portal').status_code == 403


def test_symlink_within_root_is_served(share):
    (share / 'alias.bin').symlink_to(share / 'blob.bin')

    response = _client(share).get('/download/alias.bin', headers={'Range': 'bytes=0-9'})

    assert response.status_code == 206
    assert response.content == DATA[:10]
    assert response.headers['content-disposition'] == 'attachment; filename="alias.bin"'
