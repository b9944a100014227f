"""
tests/test_config.py

RegistryConfig: defaults, validation, YAML loading, environment overlay.
"""

from pathlib import Path

import pytest

from bandledger import ConfigError, RegistryConfig


class TestDefaults:

    def test_defaults(self):
        config = RegistryConfig()
        assert config.max_name_length == 32
        assert config.max_amount == 2 ** 128 - 1
        assert config.creator_is_member is False
        assert config.duplicate_member_policy == "idempotent"
        assert config.settlement_scope == "global"
        assert config.journal_path is None
        assert config.resolved_key_path is None

    def test_key_path_defaults_beside_journal(self):
        config = RegistryConfig(journal_path=Path("/data/band.jsonl"))
        assert config.resolved_key_path == Path("/data/band.key")

    def test_explicit_key_path_wins(self):
        config = RegistryConfig(journal_path=Path("band.jsonl"), key_path=Path("k.pem"))
        assert config.resolved_key_path == Path("k.pem")


class TestValidation:

    @pytest.mark.parametrize("kwargs", [
        {"max_name_length": 0},
        {"max_name_length": True},
        {"max_amount": 0},
        {"creator_is_member": "yes"},
        {"duplicate_member_policy": "ignore"},
        {"settlement_scope": "band"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            RegistryConfig(**kwargs)


class TestYaml:

    def test_load(self, tmp_path):
        path = tmp_path / "bandledger.yaml"
        path.write_text(
            "creator_is_member: true\n"
            "duplicate_member_policy: reject\n"
            "settlement_scope: group\n"
            "journal_path: data/band.jsonl\n"
        )
        config = RegistryConfig.from_yaml(path)
        assert config.creator_is_member is True
        assert config.duplicate_member_policy == "reject"
        assert config.settlement_scope == "group"
        assert config.journal_path == Path("data/band.jsonl")

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert RegistryConfig.from_yaml(path) == RegistryConfig()

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("settle_everything: true\n")
        with pytest.raises(ConfigError) as exc_info:
            RegistryConfig.from_yaml(path)
        assert exc_info.value.details["keys"] == ["settle_everything"]

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            RegistryConfig.from_yaml(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("a: [1, 2\n")
        with pytest.raises(ConfigError):
            RegistryConfig.from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            RegistryConfig.from_yaml(tmp_path / "nope.yaml")


class TestEnvironment:

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in (
            "BANDLEDGER_CONFIG",
            "BANDLEDGER_JOURNAL_PATH",
            "BANDLEDGER_KEY_PATH",
            "BANDLEDGER_MAX_NAME_LENGTH",
            "BANDLEDGER_CREATOR_IS_MEMBER",
            "BANDLEDGER_DUPLICATE_MEMBER_POLICY",
            "BANDLEDGER_SETTLEMENT_SCOPE",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_no_env_gives_defaults(self):
        assert RegistryConfig.from_env() == RegistryConfig()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("BANDLEDGER_JOURNAL_PATH", "/tmp/band.jsonl")
        monkeypatch.setenv("BANDLEDGER_MAX_NAME_LENGTH", "16")
        monkeypatch.setenv("BANDLEDGER_CREATOR_IS_MEMBER", "yes")
        monkeypatch.setenv("BANDLEDGER_SETTLEMENT_SCOPE", "GROUP")

        config = RegistryConfig.from_env()
        assert config.journal_path == Path("/tmp/band.jsonl")
        assert config.max_name_length == 16
        assert config.creator_is_member is True
        assert config.settlement_scope == "group"

    def test_env_overlays_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "bandledger.yaml"
        path.write_text("duplicate_member_policy: reject\nmax_name_length: 8\n")
        monkeypatch.setenv("BANDLEDGER_CONFIG", str(path))
        monkeypatch.setenv("BANDLEDGER_MAX_NAME_LENGTH", "10")

        config = RegistryConfig.from_env()
        assert config.duplicate_member_policy == "reject"
        assert config.max_name_length == 10

    def test_bad_bool(self, monkeypatch):
        monkeypatch.setenv("BANDLEDGER_CREATOR_IS_MEMBER", "maybe")
        with pytest.raises(ConfigError):
            RegistryConfig.from_env()

    def test_bad_int(self, monkeypatch):
        monkeypatch.setenv("BANDLEDGER_MAX_NAME_LENGTH", "lots")
        with pytest.raises(ConfigError):
            RegistryConfig.from_env()

    def test_bad_policy(self, monkeypatch):
        monkeypatch.setenv("BANDLEDGER_DUPLICATE_MEMBER_POLICY", "shrug")
        with pytest.raises(ConfigError):
            RegistryConfig.from_env()
