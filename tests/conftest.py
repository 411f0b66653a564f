"""Shared pytest fixtures for stage-driver tests."""

import json
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from assets.store import Asset, AssetError, AssetFile  # noqa: E402
from tfexec import TerraformError  # noqa: E402


class FakeExecutor:
    """Records terraform calls instead of running them.

    Each apply snapshots the primary var file so tests can check what the
    stage would have read from disk.
    """

    def __init__(self, outputs=None):
        self.calls = []
        self.outputs_by_stage = outputs or {}
        self.fail_apply = set()
        self.fail_destroy = set()
        self.snapshots = {}

    def apply(self, directory, platform, stage, terraform_dir, var_files, variables=None):
        self.calls.append(('apply', stage.name, [Path(v) for v in var_files], dict(variables or {})))
        primary = Path(var_files[0])
        if primary.exists():
            self.snapshots[stage.name] = primary.read_text()
        if stage.name in self.fail_apply:
            raise TerraformError(f"terraform apply failed: {stage.name} exploded")
        (Path(directory) / stage.state_filename).write_text('{"version": 4}')

    def destroy(self, directory, platform, stage, terraform_dir, var_files):
        self.calls.append(('destroy', stage.name, [Path(v) for v in var_files]))
        if stage.name in self.fail_destroy:
            raise TerraformError(f"terraform destroy failed: {stage.name} stuck")

    def outputs(self, directory, platform, stage, terraform_dir):
        self.calls.append(('outputs', stage.name))
        return dict(self.outputs_by_stage.get(stage.name, {}))

    def applied(self):
        return [c[1] for c in self.calls if c[0] == 'apply']

    def destroyed(self):
        return [c[1] for c in self.calls if c[0] == 'destroy']


class FakeStore:
    """In-memory asset store returning fixed content."""

    def __init__(self, content=b'{"ignition":{"version":"3.2.0"},"regenerated":true}'):
        self.calls = []
        self.content = content
        self.fail_fetch = False
        self.fail_destroy = False

    def destroy(self, name):
        self.calls.append(('destroy', name))
        if self.fail_destroy:
            raise AssetError("store backend unavailable")

    def fetch(self, name):
        self.calls.append(('fetch', name))
        if self.fail_fetch:
            raise AssetError("store backend unavailable")
        return Asset(name, [AssetFile('bootstrap.ign', self.content)])


@pytest.fixture
def fake_executor():
    """Executor double with no outputs configured."""
    return FakeExecutor()


@pytest.fixture
def fake_store():
    """Asset store double."""
    return FakeStore()


@pytest.fixture
def install_dir(tmp_path):
    """Install directory with a primary variable file.

    Creates:
    - terraform.tfvars.json with a stale ignition_bootstrap value
    """
    directory = tmp_path / 'install'
    directory.mkdir()
    (directory / 'terraform.tfvars.json').write_text(json.dumps({
        'cluster_id': 'test-abc12',
        'ignition_bootstrap': 'old',
    }))
    return directory


@pytest.fixture
def terraform_dir(tmp_path):
    """Terraform module tree with a module for every registered stage."""
    from stages import get_platform_stages, list_platforms

    root = tmp_path / 'terraform'
    for platform in list_platforms():
        for stage in get_platform_stages(platform):
            stage.module_dir(root).mkdir(parents=True)
    return root


@pytest.fixture
def cluster_outputs_file(install_dir):
    """Outputs of the GCP cluster stage."""
    path = install_dir / 'cluster.tfvars.json'
    path.write_text(json.dumps({'cluster_public_ip': '1.2.3.4', 'cluster_ip': '10.0.0.5'}))
    return path
