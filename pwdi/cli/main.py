from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List

from pwdi.api.config import FileServerConfig, ServerConfig, env_int
from pwdi.cli.repl import ClientRepl
from pwdi.client.http import PwdiHttpClient, basic_auth_header
from pwdi.client.transfer import pull_directory, push_directory
from pwdi.core.bundler import Bundler
from pwdi.core.token import generate_secret

# Random bytes in a generated session secret.
SESSION_SECRET_BYTES = 21


def _run_uvicorn(app, args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError as e:
        print(f"error: uvicorn is required to serve the API: {e}", file=sys.stderr)
        return 2
    uvicorn.run(app, host=args.host, port=int(args.port), log_level=args.log_level)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the bundle server over a directory.

    Security notes:
    - The session secret is printed once so it can be handed to the client.
    - Clients never send it; they send timed tokens derived from it.

    """

    path = Path(args.path)
    if not path.is_dir():
        print(f"error: PATH must point to an existing directory (given: {path})", file=sys.stderr)
        return 2

    secret = args.token or generate_secret(SESSION_SECRET_BYTES)
    print(f"Token: {secret!r}")

    from pwdi.api.server import create_app

    cfg = ServerConfig(
        base_path=path,
        secret=secret,
        max_upload_bytes=int(args.max_upload_bytes),
    )
    return _run_uvicorn(create_app(cfg), args)


def cmd_serve_files(args: argparse.Namespace) -> int:
    """Run the file drop server with freshly generated credentials."""

    base_path = Path(args.base_path)
    if not base_path.is_dir():
        print(f"error: base path must be an existing directory (given: {base_path})", file=sys.stderr)
        return 2

    user_id = generate_secret(3)
    password = generate_secret(SESSION_SECRET_BYTES)
    print(f"User ID:     {user_id!r}")
    print(f"Password:    {password!r}")
    print(f"Curl option: {f'--user {user_id}:{password}'!r}")
    print(f"Header:      {basic_auth_header(user_id, password)!r}")

    from pwdi.api.files import create_files_app

    cfg = FileServerConfig(
        base_path=base_path,
        user_id=user_id,
        password=password,
        max_upload_bytes=int(args.max_upload_bytes),
    )
    return _run_uvicorn(create_files_app(cfg), args)


def _transfer_client(args: argparse.Namespace) -> PwdiHttpClient | None:
    if not args.token:
        print("error: a token is required (--token or PWDI_TOKEN)", file=sys.stderr)
        return None
    return PwdiHttpClient(args.server, args.token, use_proxy=bool(args.proxy), timeout=args.timeout)


def cmd_push(args: argparse.Namespace) -> int:
    """Bundle a local directory and push it to the server."""

    client = _transfer_client(args)
    if client is None:
        return 2
    with Bundler() as bundler:
        result = push_directory(client, bundler, Path(args.path))
    print(result.message, file=sys.stdout if result.ok else sys.stderr)
    return 0 if result.ok else 3


def cmd_pull(args: argparse.Namespace) -> int:
    """Pull the server's directory into a local directory."""

    client = _transfer_client(args)
    if client is None:
        return 2
    with Bundler() as bundler:
        result = pull_directory(client, bundler, Path(args.path))
    print(result.message, file=sys.stdout if result.ok else sys.stderr)
    return 0 if result.ok else 3


def cmd_secret(args: argparse.Namespace) -> int:
    """Print a fresh random secret."""

    try:
        print(generate_secret(int(args.size)))
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0


def cmd_client(args: argparse.Namespace) -> int:
    """Start the interactive client."""

    return ClientRepl(working_directory=Path(args.path)).run()


def _add_transfer_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("path", nargs="?", default=".", help="Local directory (default: .)")
    p.add_argument("--server", default="http://localhost", help="Server URL")
    p.add_argument(
        "--token",
        default=os.environ.get("PWDI_TOKEN") or None,
        help="Shared secret printed by `pwdi serve` (default: $PWDI_TOKEN)",
    )
    p.add_argument("--proxy", action="store_true", help="Use the system proxy")
    p.add_argument("--timeout", type=float, default=30.0, help="Request timeout in seconds")


def _add_server_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    p.add_argument(
        "--port", type=int, default=env_int("PWDI_PORT", 80), help="Bind port (default: $PWDI_PORT or 80)"
    )
    p.add_argument("--log-level", default="info", help="Uvicorn log level")
    p.add_argument(
        "--max-upload-bytes",
        type=int,
        default=env_int("PWDI_MAX_UPLOAD_BYTES", 1024 * 1024 * 1024),
        help="Server-side upload cap",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    p = argparse.ArgumentParser(prog="pwdi", description="Transfer a directory to or from a PWD instance")
    sub = p.add_subparsers(dest="cmd", required=True)

    sv = sub.add_parser("serve", help="Serve a directory for push/pull")
    sv.add_argument(
        "path",
        nargs="?",
        default=os.environ.get("PWDI_PATH") or ".",
        help="Directory to serve and replace (default: $PWDI_PATH or .)",
    )
    sv.add_argument(
        "--token",
        default=os.environ.get("PWDI_TOKEN") or None,
        help="Use this secret instead of generating one",
    )
    _add_server_args(sv)
    sv.set_defaults(func=cmd_serve)

    sf = sub.add_parser("serve-files", help="Run the file drop server")
    sf.add_argument("--base-path", default=".", help="Directory to store and serve files from")
    _add_server_args(sf)
    sf.set_defaults(func=cmd_serve_files)

    ps = sub.add_parser("push", help="Push a local directory to the server")
    _add_transfer_args(ps)
    ps.set_defaults(func=cmd_push)

    pl = sub.add_parser("pull", help="Pull the server's directory into a local directory")
    _add_transfer_args(pl)
    pl.set_defaults(func=cmd_pull)

    sc = sub.add_parser("secret", help="Print a random secret")
    sc.add_argument("--size", type=int, default=SESSION_SECRET_BYTES, help="Minimum size in bytes")
    sc.set_defaults(func=cmd_secret)

    cl = sub.add_parser("client", help="Interactive push/pull session")
    cl.add_argument("path", nargs="?", default=".", help="Local directory (default: .)")
    cl.set_defaults(func=cmd_client)

    return p


def main(argv: List[str] | None = None) -> int:
    """CLI entry."""
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
