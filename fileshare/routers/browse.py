from __future__ import annotations

import logging
import stat
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..deps import get_file_ops
from ..services.file_ops import FileOps, InvalidPath, PathDenied, breadcrumbs, parent_path
from ..views import templates

logger = logging.getLogger(__name__)

router = APIRouter(tags=['browse'])


@router.get('/{path:path}', response_class=HTMLResponse)
def browse(
    request: Request,
    path: str,
    sort_by: str = Query(default='name', pattern='^(name|size|date)$'),
    order: str = Query(default='asc', pattern='^(asc|desc)$'),
    upload: str = Query(default=''),
    ops: FileOps = Depends(get_file_ops),
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
        raise HTTPException(status_code=404, detail='Path not found')
    except OSError:
        logger.exception('stat failed for %r', path)
        raise HTTPException(status_code=500, detail='Error accessing path')

    current = ops.relative(target)
    if not stat.S_ISDIR(st.st_mode):
        return RedirectResponse(f'/download/{quote(current)}', status_code=302)

    try:
        items = ops.list_dir(current)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail='Path not found')
    except OSError:
        logger.exception('listing failed for %r', path)
        raise HTTPException(status_code=500, detail='Error reading directory')

    reverse = order == 'desc'
    key_map = {'name': lambda i: i.name.lower(), 'size': lambda i: i.size, 'date': lambda i: i.mtime}
    items.sort(key=key_map[sort_by], reverse=reverse)

    return templates.TemplateResponse(
        request,
        'browse.html',
        {
            'app_name': request.app.title,
            'current_path': current,
            'parent_path': parent_path(current),
            'crumbs': breadcrumbs(current),
            'files': items,
            'next_order': 'asc' if reverse else 'desc',
            'upload_success': upload == 'success',
        },
    )
