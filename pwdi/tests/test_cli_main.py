from __future__ import annotations

import re

import pytest

from pwdi.cli.main import build_parser, main


def test_secret_command(capsys) -> None:
    assert main(["secret", "--size", "3"]) == 0
    out = capsys.readouterr().out.strip()
    assert len(out) == 4
    assert re.match(r"^[A-Za-z0-9_-]+$", out)

    assert main(["secret"]) == 0
    assert len(capsys.readouterr().out.strip()) == 28


def test_secret_rejects_empty_size(capsys) -> None:
    assert main(["secret", "--size", "0"]) == 2
    assert capsys.readouterr().err.startswith("error:")


def test_transfer_commands_need_a_token(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.delenv("PWDI_TOKEN", raising=False)
    assert main(["push", str(tmp_path)]) == 2
    assert main(["pull", str(tmp_path)]) == 2
    assert "token is required" in capsys.readouterr().err


def test_token_can_come_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("PWDI_TOKEN", "from-env")
    monkeypatch.setenv("PWDI_PORT", "8123")
    parser = build_parser()
    assert parser.parse_args(["push"]).token == "from-env"
    args = parser.parse_args(["serve"])
    assert args.token == "from-env"
    assert args.port == 8123
    assert args.host == "0.0.0.0"


def test_push_to_unreachable_server_fails(tmp_path, capsys) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    code = main(["push", str(tmp_path), "--server", "http://127.0.0.1:1/", "--token", "t", "--timeout", "5"])
    assert code == 3
    assert "There were issues with the push request" in capsys.readouterr().err


@pytest.mark.parametrize("cmd", [["serve"], ["serve-files", "--base-path"]])
def test_servers_need_an_existing_directory(tmp_path, capsys, cmd) -> None:
    missing = str(tmp_path / "missing")
    assert main(cmd + [missing]) == 2
    assert capsys.readouterr().err.startswith("error:")
