from __future__ import annotations

from datetime import datetime
from pathlib import Path

from fastapi.templating import Jinja2Templates

_UNITS = 'KMGTPE'


def format_size(size: int) -> str:
    if size < 1024:
        return f'{size} B'
    div, exp = 1024, 0
    n = size // 1024
    while n >= 1024:
        div *= 1024
        exp += 1
        n //= 1024
    return f'{size / div:.1f} {_UNITS[exp]}B'


def format_date(value: datetime) -> str:
    return value.strftime('%Y-%m-%d %H:%M:%S')


templates = Jinja2Templates(directory=str(Path(__file__).parent / 'templates'))
templates.env.filters['format_size'] = format_size
templates.env.filters['format_date'] = format_date
