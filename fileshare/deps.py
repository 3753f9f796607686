from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from fastapi import Depends, Request

from .config import Settings
from .services.file_ops import FileOps
from .services.mime import MimePolicy


@dataclass(frozen=True)
class ServerContext:
    root: Path
    mime: MimePolicy
    upload_max_bytes: int

    @classmethod
    def from_settings(cls, settings: Settings) -> ServerContext:
        return cls(
            root=Path(settings.root_dir or os.getcwd()).resolve(),
            mime=MimePolicy.from_flag(settings.intelligent_mime),
            upload_max_bytes=settings.upload_max_bytes,
        )


def get_context(request: Request) -> ServerContext:
    return request.app.state.context


def get_file_ops(context: ServerContext = Depends(get_context)) -> FileOps:
    return FileOps(context.root)
