"""Pre-flight check for the adapter's environment.

Run before (re)starting the service::

    python -m scripts.check_env check --env-file /opt/mcp/.env
    python -m scripts.check_env record --env-file /opt/mcp/.env --hash-file /opt/mcp/.env.sha256
    python -m scripts.check_env verify --env-file /opt/mcp/.env --hash-file /opt/mcp/.env.sha256

Every command loads ``AppSettings`` from the file first, so a malformed
timeout, an unknown token store backend or a SQLite store without an
encryption secret is reported before any request is served. With the SQLite
backend the persisted tokens are also test-decrypted, which catches a rotated
``TOKEN_ENCRYPTION_SECRET`` that was never re-applied with
``scripts.rotate_token_key``.
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path

from pydantic import ValidationError

from mcp_adapters.core.config import AppSettings, _load_env_file
from mcp_adapters.services.token_cipher import TokenCipherService
from mcp_adapters.services.token_store import SQLiteTokenStore

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_STORE_ERROR = 4
EXIT_RUNTIME_ERROR = 5


class CheckFailed(Exception):
    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise CheckFailed(
            f"Environment file {env_file} does not exist; pass --env-file or create it.",
            EXIT_RUNTIME_ERROR,
        )
    # Values already exported in the process environment win over the file.
    _load_env_file(str(env_file))
    try:
        return AppSettings(_env_file=env_file)
    except ValidationError as exc:
        raise CheckFailed(
            f"Settings validation failed:\n{exc.json(indent=2)}", EXIT_VALIDATION_ERROR
        ) from exc


def probe_token_store(settings: AppSettings) -> int:
    """Decrypt every persisted token; returns the number of records read."""
    if settings.token_store.backend != "sqlite":
        return 0
    db_path = Path(settings.token_store.sqlite_path)
    if not db_path.exists():
        return 0

    cipher = TokenCipherService(
        secret=settings.security.token_encryption_secret or "",
        previous_secrets=settings.security.previous_secrets,
    )
    store = SQLiteTokenStore(str(db_path), cipher)
    client_ids = store.client_ids()
    try:
        for client_id in client_ids:
            store.get(client_id)
    except ValueError as exc:
        raise CheckFailed(
            f"Token store {db_path} cannot be decrypted with the configured secrets: {exc}",
            EXIT_STORE_ERROR,
        ) from exc
    return len(client_ids)


def checksum(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def summarize(settings: AppSettings) -> str:
    return (
        f"environment={settings.environment} server={settings.server_name} "
        f"token_store={settings.token_store.backend} "
        f"timeout={settings.dispatch.timeout_seconds}s "
        f"zoho_accounts={settings.zoho.accounts_url}"
    )


def _check(args: argparse.Namespace, settings: AppSettings) -> int:
    return EXIT_OK


def _record(args: argparse.Namespace, settings: AppSettings) -> int:
    digest = checksum(args.env_file)
    args.hash_file.write_text(f"{digest}\n", encoding="utf-8")
    print(f"Baseline {digest} written to {args.hash_file}")
    return EXIT_OK


def _verify(args: argparse.Namespace, settings: AppSettings) -> int:
    if not args.hash_file.exists():
        raise CheckFailed(
            f"No baseline at {args.hash_file}; run the 'record' command first.",
            EXIT_RUNTIME_ERROR,
        )
    recorded = args.hash_file.read_text(encoding="utf-8").strip()
    current = checksum(args.env_file)
    if recorded != current:
        raise CheckFailed(
            f"{args.env_file} changed since the baseline was recorded "
            f"(recorded {recorded}, now {current}).",
            EXIT_CHECKSUM_ERROR,
        )
    print("Environment checksum OK.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate adapter settings and detect .env drift.")
    commands = parser.add_subparsers(dest="command", required=True)

    for name, handler, wants_baseline, help_text in (
        ("check", _check, False, "Validate settings and the token store only."),
        ("record", _record, True, "Validate, then store a checksum baseline."),
        ("verify", _verify, True, "Validate, then compare against the baseline."),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.set_defaults(handler=handler)
        sub.add_argument("--env-file", type=Path, default=Path(".env"))
        if wants_baseline:
            sub.add_argument("--hash-file", type=Path, required=True)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = load_settings(args.env_file)
        tokens = probe_token_store(settings)
        print(f"Settings OK: {summarize(settings)} stored_tokens={tokens}")
        return args.handler(args, settings)
    except CheckFailed as exc:
        print(str(exc), file=sys.stderr)
        return exc.exit_code
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during environment check: {exc!r}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
