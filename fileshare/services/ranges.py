from __future__ import annotations

from dataclasses import dataclass

_PREFIX = 'bytes='


class RangeParseError(ValueError):
    pass


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f'bytes {self.start}-{self.end}/{size}'


def unsatisfiable_content_range(size: int) -> str:
    return f'bytes */{size}'


def _to_int(text: str) -> int:
    if not text.isascii() or not text.isdigit():
        raise RangeParseError(f'Invalid range component: {text!r}')
    return int(text)


def parse_range(header: str, size: int) -> list[ByteRange]:
    """Parse a ``Range`` header against a resource of ``size`` bytes.

    Supports ``N-``, ``-N`` and ``N-M`` specs separated by commas. A single
    invalid or unsatisfiable spec rejects the whole header.
    """
    if not header.startswith(_PREFIX):
        raise RangeParseError('Range unit must be bytes')

    ranges: list[ByteRange] = []
    for spec in header[len(_PREFIX):].split(','):
        parts = spec.strip().split('-')
        if len(parts) != 2:
            raise RangeParseError(f'Invalid range spec: {spec!r}')

        first, last = parts
        if first == '':
            # suffix: last N bytes
            start = max(0, size - _to_int(last))
            end = size - 1
        elif last == '':
            start = _to_int(first)
            end = size - 1
        else:
            start = _to_int(first)
            end = _to_int(last)

        if start < 0 or start >= size or end < start or end >= size:
            raise RangeParseError(f'Range not satisfiable: {spec!r}')
        ranges.append(ByteRange(start, end))

    return ranges
