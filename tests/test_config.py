"""Tests for config.py - installer configuration loading."""

from pathlib import Path

import pytest

from config import CONFIG_ENV_VAR, ConfigError, InstallerConfig, find_config_file, load_installer_config


@pytest.fixture(autouse=True)
def _no_env_config(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


class TestInstallerConfig:
    """Test InstallerConfig defaults and validation."""

    def test_defaults(self):
        config = InstallerConfig()
        assert config.terraform_binary == 'terraform'
        assert config.apply_retries == 0
        assert config.report_dir is None
        assert config.terraform_dir.name == 'terraform'

    def test_paths_coerced(self):
        config = InstallerConfig(terraform_dir='/opt/tf', report_dir='/tmp/reports')
        assert config.terraform_dir == Path('/opt/tf')
        assert config.report_dir == Path('/tmp/reports')

    def test_from_dict(self):
        config = InstallerConfig.from_dict({'terraform_binary': 'tofu', 'apply_retries': 3})
        assert config.terraform_binary == 'tofu'
        assert config.apply_retries == 3

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match='unknown config keys: colour'):
            InstallerConfig.from_dict({'colour': 'blue'})

    @pytest.mark.parametrize('value', [-1, '10', True, 1.5])
    def test_bad_integer(self, value):
        with pytest.raises(ConfigError, match='timeout_apply'):
            InstallerConfig.from_dict({'timeout_apply': value})

    def test_bad_string(self):
        with pytest.raises(ConfigError, match='terraform_dir must be a string'):
            InstallerConfig.from_dict({'terraform_dir': 42})


class TestLoadInstallerConfig:
    """Test config file discovery and loading."""

    def test_no_file_gives_defaults(self, tmp_path):
        assert find_config_file(tmp_path) is None
        assert load_installer_config(tmp_path) == InstallerConfig()

    def test_state_dir_file(self, tmp_path):
        (tmp_path / 'installer.yaml').write_text("""
terraform_binary: tofu
terraform_dir: /srv/terraform
apply_retries: 2
""")
        config = load_installer_config(tmp_path)
        assert config.terraform_binary == 'tofu'
        assert config.terraform_dir == Path('/srv/terraform')
        assert config.apply_retries == 2

    def test_env_var_takes_precedence(self, tmp_path, monkeypatch):
        (tmp_path / 'installer.yaml').write_text("terraform_binary: tofu\n")
        explicit = tmp_path / 'explicit.yaml'
        explicit.write_text("terraform_binary: terraform-1.5\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(explicit))

        assert load_installer_config(tmp_path).terraform_binary == 'terraform-1.5'

    def test_env_var_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / 'missing.yaml'))
        with pytest.raises(ConfigError, match='does not exist'):
            load_installer_config(tmp_path)

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / 'installer.yaml').write_text("terraform_binary: [unclosed\n")
        with pytest.raises(ConfigError, match='Invalid YAML'):
            load_installer_config(tmp_path)

    def test_non_mapping(self, tmp_path):
        (tmp_path / 'installer.yaml').write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match='must be a mapping'):
            load_installer_config(tmp_path)

    def test_empty_file_gives_defaults(self, tmp_path):
        (tmp_path / 'installer.yaml').write_text("")
        assert load_installer_config(tmp_path) == InstallerConfig()
