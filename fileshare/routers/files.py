from __future__ import annotations

import logging
import stat

from fastapi import APIRouter, Depends, HTTPException, Request

from ..deps import ServerContext, get_context, get_file_ops
from ..services.content import download_response
from ..services.file_ops import FileOps, InvalidPath, PathDenied

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/download', tags=['files'])


@router.api_route('/{path:path}', methods=['GET', 'HEAD'])
def download(
    request: Request,
    path: str,
    ops: FileOps = Depends(get_file_ops),
    context: ServerContext = Depends(get_context),
):
    try:
        target = ops.safe_path(path)
    except PathDenied as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except InvalidPath as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        st = target.stat()
    except (FileNotFoundError, NotADirectoryError):
        raise HTTPException(status_code=404, detail='File not found')
    except OSError:
        logger.exception('stat failed for download %r', path)
        raise HTTPException(status_code=500, detail='Error opening file')

    if stat.S_ISDIR(st.st_mode):
        raise HTTPException(status_code=400, detail='Cannot download directory')
    if not stat.S_ISREG(st.st_mode):
        raise HTTPException(status_code=400, detail='Not a regular file')

    return download_response(
        target,
        st.st_size,
        range_header=request.headers.get('range'),
        mime=context.mime,
        head=request.method == 'HEAD',
    )
