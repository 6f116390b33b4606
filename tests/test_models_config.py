"""Tests for configuration models and credential resolution."""

import json
import os

import pytest
from pydantic import ValidationError

from recorder.errors import ConfigError
from recorder.models.config import DEFAULT_API_URL, Credential, CredentialSource, RecorderConfig


class TestRecorderConfig:
    """Tests for RecorderConfig model."""

    def test_default_values(self):
        config = RecorderConfig()
        assert config.api_url == DEFAULT_API_URL
        assert config.max_workers == 4
        assert config.network_retries == 0
        assert config.hash_algorithm == "md5"
        assert config.production is False
        assert config.branch is None
        assert config.ios_snapshot_test_case is False

    def test_build_url_strips_trailing_slash(self):
        config = RecorderConfig(api_url="https://example.com/")
        assert config.build_url("/api/run") == "https://example.com/api/run"

    def test_rejects_zero_workers(self):
        with pytest.raises(ValidationError):
            RecorderConfig(max_workers=0)

    def test_rejects_unknown_hash_algorithm(self):
        with pytest.raises(ValidationError):
            RecorderConfig(hash_algorithm="sha1")

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "recorder.json"
        RecorderConfig(branch="release", max_workers=8).save(path)
        loaded = RecorderConfig.load(path)
        assert loaded.branch == "release"
        assert loaded.max_workers == 8

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RecorderConfig.load(tmp_path / "nope.json")


class TestCredential:
    """Tests for the Credential model."""

    def test_accepts_config_file_keys(self):
        cred = Credential.model_validate({"apiKey": "k", "apiSecretKey": "s"})
        assert cred.api_key == "k"
        assert cred.api_secret == "s"

    def test_form_fields_use_wire_names(self):
        cred = Credential(api_key="k", api_secret="s")
        assert cred.form_fields() == {"api-key": "k", "api-secret-key": "s"}

    def test_env_secret_resolution(self):
        os.environ["TEST_SCREENSHOTBOT_SECRET"] = "secret_from_env"
        try:
            cred = Credential(api_key="k", api_secret="env:TEST_SCREENSHOTBOT_SECRET")
            assert cred.api_secret == "secret_from_env"
        finally:
            del os.environ["TEST_SCREENSHOTBOT_SECRET"]

    def test_env_secret_missing(self):
        with pytest.raises(ValidationError, match="Environment variable.*not set"):
            Credential(api_key="k", api_secret="env:NONEXISTENT_SCREENSHOTBOT_VAR")


class TestCredentialSource:
    """Tests for resolving credentials from flags and the config file."""

    def test_explicit_values_skip_file(self, tmp_path):
        source = CredentialSource("k", "s", config_path=tmp_path / "missing")
        cred = source.load()
        assert (cred.api_key, cred.api_secret) == ("k", "s")

    def test_falls_back_to_file(self, credentials_file):
        cred = CredentialSource(config_path=credentials_file).load()
        assert cred.api_key == "file-key"
        assert cred.api_secret == "file-secret"

    def test_explicit_value_wins_over_file(self, credentials_file):
        cred = CredentialSource(api_key="flag-key", config_path=credentials_file).load()
        assert cred.api_key == "flag-key"
        assert cred.api_secret == "file-secret"

    def test_missing_file_is_config_error(self, tmp_path):
        with pytest.raises(ConfigError, match="Could not find config file"):
            CredentialSource(api_key="k", config_path=tmp_path / ".screenshotbot").load()

    def test_unparseable_file_is_config_error(self, tmp_path):
        path = tmp_path / ".screenshotbot"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            CredentialSource(config_path=path).load()

    def test_empty_key_in_file_is_config_error(self, tmp_path):
        path = tmp_path / ".screenshotbot"
        path.write_text(json.dumps({"apiKey": "", "apiSecretKey": "s"}))
        with pytest.raises(ConfigError, match="API key"):
            CredentialSource(config_path=path).load()

    def test_default_path_is_in_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / ".screenshotbot").write_text(
            json.dumps({"apiKey": "home-key", "apiSecretKey": "home-secret"})
        )
        assert CredentialSource().load().api_key == "home-key"

    def test_config_error_stage(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            CredentialSource(config_path=tmp_path / "missing").load()
        assert exc_info.value.describe().startswith("config failed:")
