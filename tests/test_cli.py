"""
tests/test_cli.py -- The main.py command-line entry point.

get_settings is patched to return Settings pointing at a temp-file database,
so each test runs against a fresh SQLite file.
"""

from __future__ import annotations

import time

import pytest

import main
from auth.store import UserStore
from core.config import Settings

SECRET = "cli-tests-secret-key-0123456789abcdef"


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path}/accounts.db"
    settings = Settings(_env_file=None, secret_key=SECRET, database_url=url, bcrypt_rounds=4)
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    return url


def test_no_command_prints_help(capsys) -> None:
    assert main.main([]) == 2
    assert "usage" in capsys.readouterr().out.lower()


def test_create_user(db_url: str, capsys) -> None:
    code = main.main(
        ["create-user", "alice", "alice@example.com", "--first-name", "Alice", "--last-name", "Liddell", "--password", "secret123"]
    )
    assert code == 0
    assert "Created user 'alice'" in capsys.readouterr().out
    store = UserStore(db_url)
    assert store.find_by_username("alice").email == "alice@example.com"
    store.close()


def test_create_user_prompts_for_password(db_url: str, monkeypatch) -> None:
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt: "secret123")
    code = main.main(["create-user", "alice", "alice@example.com", "--first-name", "Alice", "--last-name", "Liddell"])
    assert code == 0


def test_create_user_validation_failure(db_url: str, capsys) -> None:
    code = main.main(
        ["create-user", "al", "alice@example.com", "--first-name", "Alice", "--last-name", "Liddell", "--password", "secret123"]
    )
    assert code == 1
    assert "username must be 3-20 characters" in capsys.readouterr().out


def test_purge_revoked(db_url: str, capsys) -> None:
    store = UserStore(db_url)
    store.insert_revoked_token("old", time.time() - 10)
    store.insert_revoked_token("live", time.time() + 3600)
    store.close()

    assert main.main(["purge-revoked"]) == 0
    assert "Removed 1 expired revoked token(s)." in capsys.readouterr().out


def test_missing_secret_is_configuration_error(monkeypatch, capsys) -> None:
    def _unconfigured():
        return Settings(_env_file=None, secret_key="")

    monkeypatch.setattr(main, "get_settings", _unconfigured)
    assert main.main(["purge-revoked"]) == 2
    assert "Configuration error" in capsys.readouterr().out
