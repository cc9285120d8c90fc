"""
Tests for configuration management.
"""

import pytest
import yaml

from cliff.cloudformation.retry import RetryPolicy
from cliff.config import Settings, load_settings


class TestSettings:
    """Test the Settings dataclass."""

    def test_default_initialization(self):
        """Test defaults."""
        settings = Settings()

        assert settings.region is None
        assert settings.differ == "diff -u"
        assert settings.change_set_name == "cliff"
        assert settings.poll_interval == 0.5

    def test_retry_policy(self):
        """Test the retry policy is built from settings."""
        settings = Settings(retry_initial_delay=0, retry_max_attempts=3, retry_jitter=False)
        assert settings.retry_policy() == RetryPolicy(0, 3, False)

    def test_round_trip(self):
        """Test to_dict and from_dict."""
        settings = Settings(region="eu-west-1", poll_timeout=30.0)
        assert Settings.from_dict(settings.to_dict()) == settings

    def test_unknown_keys(self):
        """Test unknown settings are rejected."""
        with pytest.raises(ValueError, match="Unknown settings: colour"):
            Settings.from_dict({"colour": "red"})


class TestLoadSettings:
    """Test settings precedence."""

    def test_defaults(self, tmp_path, monkeypatch):
        """Test defaults apply without file or environment."""
        monkeypatch.chdir(tmp_path)
        assert load_settings(environ={}) == Settings()

    def test_yaml_file(self, tmp_path):
        """Test values are read from a YAML file."""
        path = tmp_path / "cliff.yaml"
        path.write_text(yaml.dump({"differ": "builtin", "poll_interval": 1.5}))

        settings = load_settings(path, environ={})

        assert settings.differ == "builtin"
        assert settings.poll_interval == 1.5

    def test_default_file(self, tmp_path, monkeypatch):
        """Test .cliff.yaml in the working directory is picked up."""
        (tmp_path / ".cliff.yaml").write_text("region: ap-southeast-2\n")
        monkeypatch.chdir(tmp_path)

        assert load_settings(environ={}).region == "ap-southeast-2"

    def test_non_mapping_file(self, tmp_path):
        """Test a YAML file must be a mapping."""
        path = tmp_path / "cliff.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            load_settings(path, environ={})

    def test_environment_overrides_file(self, tmp_path):
        """Test environment beats the file and flags beat both."""
        path = tmp_path / "cliff.yaml"
        path.write_text("differ: builtin\nregion: us-east-1\nprofile: file\n")
        environ = {
            "CLIFF_DIFFER": "colordiff -u",
            "AWS_DEFAULT_REGION": "eu-central-1",
            "AWS_PROFILE": "env",
        }

        settings = load_settings(path, environ=environ, profile="flag", region=None)

        assert settings.differ == "colordiff -u"
        assert settings.region == "eu-central-1"
        assert settings.profile == "flag"

    def test_aws_region_preferred(self, tmp_path, monkeypatch):
        """Test AWS_REGION wins over AWS_DEFAULT_REGION."""
        monkeypatch.chdir(tmp_path)
        environ = {"AWS_REGION": "us-west-2", "AWS_DEFAULT_REGION": "us-east-1"}

        assert load_settings(environ=environ).region == "us-west-2"
