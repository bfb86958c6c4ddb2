"""Re-encrypt persisted OAuth tokens after changing TOKEN_ENCRYPTION_SECRET.

Set the new secret in ``TOKEN_ENCRYPTION_SECRET`` and list the old one(s) in
``PREVIOUS_TOKEN_ENCRYPTION_SECRETS``, then run::

    python -m scripts.rotate_token_key --db-path data/tokens.db

Once it succeeds the previous secrets can be dropped from the environment.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from mcp_adapters.core.config import SecuritySettings, TokenStoreSettings
from mcp_adapters.services.token_cipher import TokenCipherService
from mcp_adapters.services.token_store import SQLiteTokenStore

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_ROTATION_ERROR = 4


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="SQLite token database (default: TOKEN_STORE_SQLITE_PATH).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    security = SecuritySettings()
    db_path: Path = args.db_path or Path(TokenStoreSettings().sqlite_path)

    if not security.token_encryption_secret:
        print("TOKEN_ENCRYPTION_SECRET must be set.", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if not db_path.exists():
        print(f"Token database {db_path} does not exist.", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    cipher = TokenCipherService(
        secret=security.token_encryption_secret,
        previous_secrets=security.previous_secrets,
    )
    try:
        rotated = SQLiteTokenStore(str(db_path), cipher).rotate_encryption()
    except ValueError as exc:
        print(f"Rotation failed: {exc}", file=sys.stderr)
        return EXIT_ROTATION_ERROR

    print(f"Re-encrypted {rotated} token record(s) in {db_path}.")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
