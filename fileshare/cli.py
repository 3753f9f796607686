from __future__ import annotations

import argparse

import uvicorn

from .config import Settings
from .logs import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='fileshare', description='Serve a directory over HTTP with resumable downloads')
    parser.add_argument('--host', help='Address to listen on')
    parser.add_argument('--port', type=int, help='Port to listen on')
    parser.add_argument('--dir', dest='root_dir', help='Directory to serve (default: current directory)')
    parser.add_argument(
        '-i',
        dest='intelligent_mime',
        help="Enable MIME recognition: 'true' for defaults, or mappings like 'ext1,ext2:mime/type;ext3:mime/type2,v'",
    )
    parser.add_argument('--max-upload', dest='upload_max_bytes', type=int, help='Upload size limit in bytes')
    parser.add_argument('--log-level', dest='log_level', help='Logging level')
    return parser


def settings_from_args(argv: list[str] | None = None) -> Settings:
    args = build_parser().parse_args(argv)
    overrides = {key: value for key, value in vars(args).items() if value is not None}
    if 'host' in overrides:
        overrides['app_host'] = overrides.pop('host')
    if 'port' in overrides:
        overrides['app_port'] = overrides.pop('port')
    return Settings(**overrides)


def main(argv: list[str] | None = None) -> None:
    app_settings = settings_from_args(argv)
    configure_logging(app_settings.log_level)

    from .main import create_app

    uvicorn.run(
        create_app(app_settings),
        host=app_settings.app_host,
        port=app_settings.app_port,
        log_level=app_settings.log_level.lower(),
    )


if __name__ == '__main__':
    main()
