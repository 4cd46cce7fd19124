import pytest

from storefront import cli
from storefront.db.core import configure_engine


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("AUTO_CREATE_SCHEMA", "1")
    monkeypatch.setattr(cli, "configure_logging", lambda: None)
    configure_engine(url)
    return url


def test_create_admin_then_duplicate(cli_db, capsys):
    argv = ["create-admin", "--email", "Root@Example.com", "--password", "Sup3r$ecret!"]

    assert cli.main(argv) == 0
    out = capsys.readouterr().out
    assert "root@example.com" in out
    assert "'admin'" in out

    assert cli.main(argv) == 1
    assert "already registered" in capsys.readouterr().err


def test_create_admin_rejects_weak_password(cli_db, capsys):
    code = cli.main(["create-admin", "--email", "root@example.com", "--password", "weak"])
    assert code == 2
    assert "Password must" in capsys.readouterr().err


def test_purge_tokens(cli_db, capsys):
    assert cli.main(["purge-tokens", "--retention-days", "7"]) == 0
    assert "'purged': 0" in capsys.readouterr().out
