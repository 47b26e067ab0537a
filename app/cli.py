#!/usr/bin/env python3
"""
inks command line

  python -m app.cli genkey   - create the actor's RSA key pair
  python -m app.cli init     - create the database tables
  python -m app.cli run      - serve (default)
"""

import argparse
import asyncio
import os
import sys

import uvicorn

from app.core.activitypub.utils import generate_key_pair
from app.core.config import settings
from app.core.database import create_engine, init_db


def cmd_genkey(args: argparse.Namespace) -> int:
    path = settings.PRIVATE_KEY_PATH
    if os.path.exists(path) and not args.force:
        print(f"{path} already exists (use --force to replace)", file=sys.stderr)
        return 1
    _, private_pem = generate_key_pair()
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w") as f:
        f.write(private_pem)
    os.chmod(path, 0o600)
    print(f"wrote {path}")
    return 0

async def _init() -> None:
    engine = create_engine(settings.DATABASE_URL)
    try:
        await init_db(engine)
    finally:
        await engine.dispose()

def cmd_init(args: argparse.Namespace) -> int:
    asyncio.run(_init())
    print(f"initialized {settings.DATABASE_URL}")
    return 0

def cmd_run(args: argparse.Namespace) -> int:
    uvicorn.run("app.main:app", host=args.host, port=args.port)
    return 0

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="inks", description="single-actor ActivityPub link log")
    subparsers = parser.add_subparsers(dest="command")

    genkey = subparsers.add_parser("genkey", help="generate the actor key pair")
    genkey.add_argument("--force", action="store_true", help="replace an existing key")
    genkey.set_defaults(func=cmd_genkey)

    init = subparsers.add_parser("init", help="create database tables")
    init.set_defaults(func=cmd_init)

    run = subparsers.add_parser("run", help="start the server")
    run.add_argument("--host", default="0.0.0.0")
    run.add_argument("--port", type=int, default=8000)
    run.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["run"] + list(argv or []))
    return args.func(args)

if __name__ == "__main__":
    sys.exit(main())
