"""Tests for the environment drift detection script."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mcp_adapters.models.oauth import TokenRecord
from mcp_adapters.services.token_cipher import TokenCipherService
from mcp_adapters.services.token_store import SQLiteTokenStore
from scripts import check_env

MANAGED_ENV_KEYS = [
    "ZOHO_ACCOUNTS_URL",
    "ZOHO_API_BASE_URL",
    "DISPATCH_TIMEOUT_SECONDS",
    "TOKEN_STORE_BACKEND",
    "TOKEN_ENCRYPTION_SECRET",
]


def _write_env(env_path: Path, **values: str) -> None:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")


def _clear_managed_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # The script loads the file straight into os.environ; registering each key
    # with monkeypatch first makes teardown remove whatever it wrote.
    for key in MANAGED_ENV_KEYS:
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)


@pytest.mark.parametrize("command", ["record", "verify", "check"])
def test_main_requires_existing_env_file(tmp_path: Path, command: str) -> None:
    env_file = tmp_path / ".missing-env"
    hash_file = tmp_path / ".env.sha256"

    argv = [command, "--env-file", str(env_file)]
    if command != "check":
        argv.extend(["--hash-file", str(hash_file)])

    exit_code = check_env.main(argv)
    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_record_and_verify_detects_mismatched_checksum(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_managed_env(monkeypatch)
    _write_env(
        env_file,
        ZOHO_ACCOUNTS_URL="https://accounts.zoho.eu",
        ZOHO_API_BASE_URL="https://www.zohoapis.eu/crm/v2",
        DISPATCH_TIMEOUT_SECONDS="5",
    )

    exit_code = check_env.main(
        ["record", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_OK
    baseline = hash_file.read_text(encoding="utf-8").strip()
    assert baseline

    _clear_managed_env(monkeypatch)
    exit_code = check_env.main(
        ["verify", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_OK

    _write_env(
        env_file,
        ZOHO_ACCOUNTS_URL="https://accounts.zoho.com",
        ZOHO_API_BASE_URL="https://www.zohoapis.eu/crm/v2",
        DISPATCH_TIMEOUT_SECONDS="5",
    )

    _clear_managed_env(monkeypatch)
    exit_code = check_env.main(
        ["verify", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_CHECKSUM_ERROR


def test_verify_without_baseline_is_runtime_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    _clear_managed_env(monkeypatch)
    _write_env(env_file, DISPATCH_TIMEOUT_SECONDS="5")

    exit_code = check_env.main(
        ["verify", "--env-file", str(env_file), "--hash-file", str(tmp_path / "nope")]
    )
    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_check_reports_loaded_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = tmp_path / ".env"
    _clear_managed_env(monkeypatch)
    _write_env(env_file, DISPATCH_TIMEOUT_SECONDS="2.5", ZOHO_ACCOUNTS_URL="https://accounts.zoho.com")

    exit_code = check_env.main(["check", "--env-file", str(env_file)])

    assert exit_code == check_env.EXIT_OK
    output = capsys.readouterr().out
    assert "Settings OK" in output
    assert "timeout=2.5s" in output
    assert "zoho_accounts=https://accounts.zoho.com" in output


def test_validation_failure_for_sqlite_without_secret(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_managed_env(monkeypatch)
    _write_env(env_file, TOKEN_STORE_BACKEND="sqlite")

    exit_code = check_env.main(
        ["record", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_VALIDATION_ERROR
    assert not hash_file.exists()


def test_validation_failure_for_malformed_timeout(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"

    _clear_managed_env(monkeypatch)
    _write_env(env_file, DISPATCH_TIMEOUT_SECONDS="abc")

    exit_code = check_env.main(["check", "--env-file", str(env_file)])
    assert exit_code == check_env.EXIT_VALIDATION_ERROR


def test_check_detects_undecryptable_token_store(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    db_path = tmp_path / "tokens.db"
    SQLiteTokenStore(str(db_path), TokenCipherService(secret="retired")).set(
        TokenRecord(
            client_id="abc",
            access_token="AT1",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
    )

    env_file = tmp_path / ".env"
    _clear_managed_env(monkeypatch)
    monkeypatch.setenv("TOKEN_STORE_SQLITE_PATH", str(db_path))
    _write_env(env_file, TOKEN_STORE_BACKEND="sqlite", TOKEN_ENCRYPTION_SECRET="current")

    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_STORE_ERROR

    monkeypatch.setenv("PREVIOUS_TOKEN_ENCRYPTION_SECRETS", "retired")
    assert check_env.main(["check", "--env-file", str(env_file)]) == check_env.EXIT_OK
