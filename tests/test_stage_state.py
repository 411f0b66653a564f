"""Tests for stages.state module."""

import json
from unittest.mock import patch

import pytest

from stages.state import PipelineState, StageState, StateError


class TestStageState:
    """Tests for StageState dataclass."""

    def test_defaults(self):
        state = StageState(name='cluster')
        assert state.status == 'pending'
        assert state.duration is None

    def test_applied(self):
        state = StageState(name='cluster')
        state.start()
        state.applied('/install/cluster.tfvars.json')
        assert state.status == 'applied'
        assert state.outputs_file == '/install/cluster.tfvars.json'
        assert state.duration >= 0

    def test_fail(self):
        state = StageState(name='cluster')
        state.start()
        state.fail('extract', "missing 'cluster_ip'")
        assert state.status == 'failed'
        assert state.step == 'extract'
        assert state.error == "missing 'cluster_ip'"

    def test_start_clears_previous_failure(self):
        state = StageState(name='cluster')
        state.fail('apply', 'boom')
        state.start()
        assert state.status == 'running'
        assert state.error is None
        assert state.step is None

    def test_to_dict_minimal(self):
        assert StageState(name='cluster').to_dict() == {'name': 'cluster', 'status': 'pending'}

    def test_roundtrip(self):
        original = StageState(name='cluster', status='failed', step='apply', error='boom',
                              started_at=1000.0, completed_at=1010.0)
        assert StageState.from_dict(original.to_dict()) == original


class TestPipelineState:
    """Tests for PipelineState save/load."""

    def test_save_and_load(self, tmp_path):
        state = PipelineState('gcp', tmp_path)
        state.add_stage('cluster').applied('cluster.tfvars.json')
        state.add_stage('bootstrap')
        path = state.save()

        assert path == tmp_path / '.stages' / 'gcp.json'
        data = json.loads(path.read_text())
        assert data['platform'] == 'gcp'
        assert [s['name'] for s in data['stages']] == ['cluster', 'bootstrap']

        loaded = PipelineState.load('gcp', tmp_path)
        assert loaded.get_stage('cluster').status == 'applied'
        assert loaded.get_stage('bootstrap').status == 'pending'

    def test_load_missing_is_empty(self, tmp_path):
        assert PipelineState.load('gcp', tmp_path).stages == {}

    def test_add_stage_keeps_loaded_state(self, tmp_path):
        state = PipelineState('gcp', tmp_path)
        state.add_stage('cluster').mark_destroyed()
        state.save()

        loaded = PipelineState.load('gcp', tmp_path)
        assert loaded.add_stage('cluster').status == 'destroyed'

    def test_load_corrupt_raises_state_error(self, tmp_path):
        (tmp_path / '.stages').mkdir()
        (tmp_path / '.stages' / 'gcp.json').write_text('{broken')

        with pytest.raises(StateError, match='failed to load pipeline state'):
            PipelineState.load('gcp', tmp_path)

    def test_load_rejects_entries_without_name(self, tmp_path):
        (tmp_path / '.stages').mkdir()
        (tmp_path / '.stages' / 'gcp.json').write_text('{"stages": [{"status": "applied"}]}')

        with pytest.raises(StateError):
            PipelineState.load('gcp', tmp_path)

    def test_save_failure_raises_state_error(self, tmp_path):
        state = PipelineState('gcp', tmp_path)
        state.add_stage('cluster')

        with patch('stages.state.write_file_atomic', side_effect=OSError('disk full')):
            with pytest.raises(StateError, match='disk full'):
                state.save()
