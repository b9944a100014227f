"""
tests/test_cli.py

bandledger CLI end to end, via click's CliRunner.
Each invocation is a fresh process-equivalent: state lives in the journal.
"""

import json

import pytest
from click.testing import CliRunner

from bandledger.cli import cli


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "BANDLEDGER_CONFIG",
        "BANDLEDGER_JOURNAL_PATH",
        "BANDLEDGER_KEY_PATH",
        "BANDLEDGER_CREATOR_IS_MEMBER",
        "BANDLEDGER_DUPLICATE_MEMBER_POLICY",
        "BANDLEDGER_SETTLEMENT_SCOPE",
        "BANDLEDGER_MAX_NAME_LENGTH",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def journal(tmp_path):
    return str(tmp_path / "band.jsonl")


@pytest.fixture
def run(journal):
    runner = CliRunner()

    def _run(*args):
        return runner.invoke(cli, ["--journal", journal, *args])

    return _run


class TestScenarios:

    def test_create_group(self, run):
        result = run("create-group", "Rock Stars", "--caller", "deployer")
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "1"

    def test_add_member(self, run):
        run("create-group", "Rock Stars", "--caller", "deployer")
        result = run("add-member", "1", "wallet_1", "--caller", "deployer")
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "true"

    def test_settle_payment(self, run):
        run("create-group", "Rock Stars", "--caller", "deployer")
        run("add-member", "1", "wallet_1", "--caller", "deployer")
        run("add-member", "1", "wallet_2", "--caller", "deployer")
        result = run("settle-payment", "1", "wallet_1", "500", "--caller", "wallet_2")
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "1"


class TestErrors:

    def test_error_result_exit_1(self, run):
        result = run("add-member", "1", "wallet_1", "--caller", "deployer")
        assert result.exit_code == 1
        assert "GroupNotFound" in result.output

    def test_json_error(self, run):
        result = run("add-member", "1", "wallet_1", "--caller", "deployer", "--format", "json")
        assert result.exit_code == 1
        assert json.loads(result.output) == {
            "err": "GroupNotFound",
            "number": 101,
            "message": "no group 1",
        }

    def test_unauthorized(self, run):
        run("create-group", "Rock Stars", "--caller", "deployer")
        result = run("add-member", "1", "wallet_1", "--caller", "wallet_2")
        assert result.exit_code == 1
        assert "Unauthorized" in result.output

    def test_journal_required(self):
        result = CliRunner().invoke(cli, ["create-group", "Rock Stars", "--caller", "deployer"])
        assert result.exit_code == 2

    def test_bad_config_file(self, tmp_path, journal):
        config = tmp_path / "bad.yaml"
        config.write_text("settlement_scope: sideways\n")
        result = CliRunner().invoke(
            cli, ["--config", str(config), "--journal", journal, "verify"],
        )
        assert result.exit_code == 2

    def test_tampered_journal_refuses_mutation(self, run, journal):
        run("create-group", "Rock Stars", "--caller", "deployer")
        with open(journal, "r", encoding="utf-8") as f:
            entry = json.loads(f.readline())
        entry["payload"]["name"] = "Pop Stars"
        with open(journal, "w", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

        result = run("create-group", "Side Project", "--caller", "deployer")
        assert result.exit_code == 2


class TestShowGroup:

    def test_json(self, run):
        run("create-group", "Rock Stars", "--caller", "deployer")
        run("add-member", "1", "wallet_1", "--caller", "deployer")
        run("add-member", "1", "wallet_2", "--caller", "deployer")
        run("settle-payment", "1", "wallet_1", "500", "--caller", "wallet_2")

        result = run("show-group", "1", "--format", "json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["name"] == "Rock Stars"
        assert [m["identity"] for m in data["members"]] == ["wallet_1", "wallet_2"]
        assert data["balances"] == {"wallet_1": -500, "wallet_2": 500}
        assert data["settlements"][0]["amount"] == 500

    def test_human(self, run):
        run("create-group", "Rock Stars", "--caller", "deployer")
        result = run("show-group", "1")
        assert result.exit_code == 0
        assert "Group 1: Rock Stars" in result.output

    def test_missing_group(self, run):
        result = run("show-group", "3")
        assert result.exit_code == 1


class TestVerify:

    def test_valid(self, run):
        run("create-group", "Rock Stars", "--caller", "deployer")
        result = run("verify", "--format", "json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["total_entries"] == 1

    def test_tampered(self, run, journal):
        run("create-group", "Rock Stars", "--caller", "deployer")
        run("add-member", "1", "wallet_1", "--caller", "deployer")
        with open(journal, "r", encoding="utf-8") as f:
            lines = [json.loads(l) for l in f if l.strip()]
        lines[1]["payload"]["member"] = "mallory"
        with open(journal, "w", encoding="utf-8") as f:
            f.writelines(json.dumps(l) + "\n" for l in lines)

        result = run("verify")
        assert result.exit_code == 1
        assert "invalid_signature" in result.output

    def test_pinned_signer_mismatch(self, run):
        run("create-group", "Rock Stars", "--caller", "deployer")
        result = run("verify", "--signer", "ab" * 32)
        assert result.exit_code == 1
        assert "signer_mismatch" in result.output

    def test_missing_journal(self, run):
        result = run("verify")
        assert result.exit_code == 2

    def test_non_finite_number(self, run, journal):
        run("create-group", "Rock Stars", "--caller", "deployer")
        with open(journal, "r", encoding="utf-8") as f:
            entry = json.loads(f.readline())
        entry["payload"]["group_id"] = float("inf")
        with open(journal, "w", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

        result = run("verify")
        assert result.exit_code == 2
        assert isinstance(result.exception, SystemExit)
        assert "Malformed entry at line 1" in result.output


class TestKeygen:

    def test_keygen(self, tmp_path):
        path   = tmp_path / "registry.key"
        result = CliRunner().invoke(cli, ["keygen", str(path)])
        assert result.exit_code == 0
        assert len(result.output.strip()) == 64
        assert path.exists()

    def test_keygen_refuses_overwrite(self, tmp_path):
        path = tmp_path / "registry.key"
        path.write_text("existing")
        result = CliRunner().invoke(cli, ["keygen", str(path)])
        assert result.exit_code == 2
        assert path.read_text() == "existing"
