from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.types import Message, Receive

from ..deps import ServerContext, get_context, get_file_ops
from ..services.file_ops import FileOps, InvalidPath, PathDenied
from ..views import templates

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/upload', tags=['upload'])


class UploadTooLarge(Exception):
    def __init__(self, limit: int):
        super().__init__(f'Upload exceeds {limit} bytes')
        self.limit = limit


def _capped_receive(receive: Receive, limit: int) -> Receive:
    """Wrap an ASGI receive channel so the body can never exceed ``limit`` bytes."""
    received = 0

    async def _receive() -> Message:
        nonlocal received
        message = await receive()
        if message['type'] == 'http.request':
            received += len(message.get('body', b''))
            if received > limit:
                raise UploadTooLarge(limit)
        return message

    return _receive


def _too_large(limit: int) -> HTTPException:
    return HTTPException(status_code=413, detail=f'Upload exceeds the {limit} byte limit')


@router.get('', response_class=HTMLResponse)
def upload_form(request: Request, directory: str = Query(default='')):
    return templates.TemplateResponse(
        request,
        'upload.html',
        {'app_name': request.app.title, 'directory': directory},
    )


@router.post('')
async def upload(
    request: Request,
    ops: FileOps = Depends(get_file_ops),
    context: ServerContext = Depends(get_context),
):
    limit = context.upload_max_bytes
    declared = request.headers.get('content-length', '')
    if declared.isdigit() and int(declared) > limit:
        raise _too_large(limit)

    capped = Request(request.scope, _capped_receive(request.receive, limit))
    try:
        async with capped.form() as form:
            file = form.get('file')
            if not isinstance(file, UploadFile):
                raise HTTPException(status_code=400, detail='Missing file field')
            directory = form.get('directory') or ''
            if not isinstance(directory, str):
                raise HTTPException(status_code=400, detail='Invalid directory field')
            directory = directory.strip()

            try:
                target, _ = await run_in_threadpool(ops.receive_upload, directory, file.filename, file.file)
            except PathDenied as exc:
                raise HTTPException(status_code=403, detail=str(exc))
            except InvalidPath as exc:
                raise HTTPException(status_code=400, detail=str(exc))
            except OSError:
                logger.exception('Saving upload into %r failed', directory)
                raise HTTPException(status_code=500, detail='Error saving file')
    except UploadTooLarge as exc:
        raise _too_large(exc.limit)

    location = '/' + quote(ops.relative(target.parent))
    return RedirectResponse(f'{location}?upload=success', status_code=303)
