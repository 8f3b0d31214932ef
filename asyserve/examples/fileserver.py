#!/usr/bin/env python3
"""
Directory browsing, download and upload server

Files under the root directory are served as-is, directories get an
HTML listing and multipart/form-data POST requests upload a file into
the addressed directory.

Usage:
    asyserve [-d DIRECTORY] [-a ADDRESS] [-p PORT] [--read-only]

Example:
    asyserve -d ./share -a 127.0.0.1 -p 8080
"""

import sys
import asyncio
import logging
import argparse
import ipaddress

from asyserve import logger
from asyserve._version import __banner__
from asyserve.common.config import ServerConfig, DEFAULT_MAX_UPLOAD_SIZE
from asyserve.common.target import ServerTarget
from asyserve.common.exceptions import StartupError
from asyserve.protocol.http.server import HTTPServer
from asyserve.fileserver.router import FileServerHandler


def ip_address(value):
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise argparse.ArgumentTypeError('invalid IP address: %r' % value)

def port_number(value):
    port = int(value)
    if port < 0 or port > 65535:
        raise argparse.ArgumentTypeError('port must be between 0 and 65535, got %s' % port)
    return port

def get_parser():
    parser = argparse.ArgumentParser(description='Just an easy server: browse, download and upload files over HTTP')
    parser.add_argument('-d', '--directory', default='.', help='Set the working root directory (default: current directory)')
    parser.add_argument('-a', '--address', type=ip_address, default='0.0.0.0', help='Set the listening IP address (default: 0.0.0.0)')
    parser.add_argument('-p', '--port', type=port_number, default=9999, help='Set the listening port, 0 picks a free one (default: 9999)')
    parser.add_argument('--read-only', action='store_true', help='Disable uploads')
    parser.add_argument('--max-upload-size', type=int, default=DEFAULT_MAX_UPLOAD_SIZE, help='Maximum upload request body in bytes (default: 500MB)')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='Verbosity')
    parser.add_argument('-s', '--silent', action='store_true', help='dont print banner')
    return parser

async def run_file_server(config:ServerConfig, target:ServerTarget):
    """
    Runs the file server until cancelled. Startup problems are raised as StartupError.
    """
    server = HTTPServer(lambda: FileServerHandler(config), target)
    async with server:
        print('Working on %s' % config.root)
        print('Please visit %s' % target.get_url(server.get_listen_port()))
        if config.allow_upload is False:
            print('Uploads are disabled')
        await asyncio.Future()

def main():
    parser = get_parser()
    args = parser.parse_args()

    if args.silent is False:
        print(__banner__)

    if args.verbose >= 1:
        logger.setLevel(logging.DEBUG)

    try:
        config = ServerConfig.from_directory(
            args.directory,
            allow_upload = not args.read_only,
            max_upload_size = args.max_upload_size
        )
        target = ServerTarget(args.address, args.port)
        asyncio.run(run_file_server(config, target))
    except StartupError as e:
        print('Error: %s' % e)
        sys.exit(1)
    except KeyboardInterrupt:
        print('\nServer stopped by user')


if __name__ == '__main__':
    main()
