from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from types import MappingProxyType
from typing import Mapping

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = 'application/octet-stream'

# Types browsers render in place.
VIEWABLE_TYPES: Mapping[str, str] = MappingProxyType(
    {
        '.jpg': 'image/jpeg',
        '.jpeg': 'image/jpeg',
        '.png': 'image/png',
        '.gif': 'image/gif',
        '.bmp': 'image/bmp',
        '.webp': 'image/webp',
        '.svg': 'image/svg+xml',
        '.ico': 'image/x-icon',
        '.mp3': 'audio/mpeg',
        '.wav': 'audio/wav',
        '.flac': 'audio/flac',
        '.aac': 'audio/aac',
        '.ogg': 'audio/ogg',
        '.m4a': 'audio/mp4',
        '.weba': 'audio/webm',
        '.mp4': 'video/mp4',
        '.webm': 'video/webm',
        '.ogv': 'video/ogg',
        '.mov': 'video/quicktime',
        '.mkv': 'video/x-matroska',
        '.avi': 'video/x-msvideo',
        '.flv': 'video/x-flv',
        '.m3u8': 'application/vnd.apple.mpegurl',
        '.html': 'text/html',
        '.htm': 'text/html',
        '.txt': 'text/plain',
        '.pdf': 'application/pdf',
        '.xml': 'application/xml',
    }
)


@dataclass(frozen=True)
class MimeType:
    content_type: str
    viewable: bool


@dataclass(frozen=True)
class MimePolicy:
    """Maps a file name to ``(content_type, viewable)``.

    A disabled policy serves everything as an opaque download. Custom entries
    win over the built-in table.
    """

    enabled: bool = False
    custom: Mapping[str, MimeType] = field(default_factory=dict)

    @classmethod
    def from_flag(cls, value: str) -> MimePolicy:
        value = value.strip()
        if not value:
            return cls()
        if value.lower() == 'true':
            return cls(enabled=True)
        return cls(enabled=True, custom=MappingProxyType(parse_custom_mime_types(value)))

    def lookup(self, path: str | PurePath) -> tuple[str, bool]:
        if not self.enabled:
            return DEFAULT_CONTENT_TYPE, False

        ext = PurePath(path).suffix.lower()
        custom = self.custom.get(ext)
        if custom is not None:
            return custom.content_type, custom.viewable
        if ext in VIEWABLE_TYPES:
            return VIEWABLE_TYPES[ext], True
        return DEFAULT_CONTENT_TYPE, False


def parse_custom_mime_types(text: str) -> dict[str, MimeType]:
    """Parse ``ext1,ext2:mime/type;ext3:mime/type2,v`` into a lookup table.

    A trailing ``,v`` marks the type viewable. Malformed groups are skipped.
    """
    table: dict[str, MimeType] = {}
    for mapping in text.split(';'):
        mapping = mapping.strip()
        if not mapping:
            continue

        parts = mapping.split(':')
        if len(parts) != 2:
            logger.warning("Invalid MIME mapping %r (expected 'ext:mime/type' or 'ext:mime/type,v')", mapping)
            continue

        extensions, content_type = parts[0].strip(), parts[1].strip()
        if not extensions or not content_type:
            logger.warning('Empty extension or MIME type in mapping %r', mapping)
            continue

        viewable = content_type.endswith(',v')
        if viewable:
            content_type = content_type[:-2].strip()
        if not content_type:
            logger.warning('Empty MIME type in mapping %r', mapping)
            continue

        for ext in extensions.split(','):
            ext = ext.strip().lower()
            if not ext:
                continue
            if not ext.startswith('.'):
                ext = '.' + ext
            table[ext] = MimeType(content_type, viewable)
            logger.info('Registered MIME type %s -> %s (%s)', ext, content_type, 'viewable' if viewable else 'download')
    return table
