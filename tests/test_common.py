#!/usr/bin/env python3
"""Tests for common.py - shared utilities.

Tests verify:
1. run_command execution and error handling
2. write_file_atomic durability and permissions
3. JSON helpers
"""

import os
import stat

import pytest

from common import dump_json, read_json_object, run_command, write_file_atomic


class TestRunCommand:
    """Test run_command utility."""

    def test_returns_success_tuple(self):
        """Should return (returncode, stdout, stderr) on success."""
        rc, stdout, stderr = run_command(['echo', 'hello'])
        assert rc == 0
        assert 'hello' in stdout
        assert stderr == ''

    def test_returns_failure_tuple(self):
        """Should return non-zero returncode on failure."""
        rc, _, _ = run_command(['false'])
        assert rc != 0

    def test_respects_cwd(self, tmp_path):
        """Should run command in specified directory."""
        (tmp_path / 'marker.txt').write_text('found')
        rc, stdout, _ = run_command(['cat', 'marker.txt'], cwd=tmp_path)
        assert rc == 0
        assert 'found' in stdout

    def test_passes_env(self):
        rc, stdout, _ = run_command(['sh', '-c', 'echo $TF_DATA_DIR'], env={**os.environ, 'TF_DATA_DIR': '/x'})
        assert stdout.strip() == '/x'

    def test_timeout_returns_error(self):
        """Should return -1 and a message when the command times out."""
        rc, _, stderr = run_command(['sleep', '5'], timeout=1)
        assert rc == -1
        assert 'timed out' in stderr

    def test_missing_binary(self):
        """Should return -1 instead of raising for a missing executable."""
        rc, _, stderr = run_command(['definitely-not-a-real-binary-xyz'])
        assert rc == -1
        assert stderr


class TestWriteFileAtomic:
    """Test write_file_atomic."""

    def test_writes_content(self, tmp_path):
        path = tmp_path / 'vars.json'
        write_file_atomic(path, b'{"a":1}')
        assert path.read_bytes() == b'{"a":1}'

    def test_overwrites(self, tmp_path):
        path = tmp_path / 'vars.json'
        path.write_text('old')
        write_file_atomic(path, b'new')
        assert path.read_text() == 'new'

    def test_mode(self, tmp_path):
        path = tmp_path / 'vars.json'
        write_file_atomic(path, b'x')
        assert stat.S_IMODE(path.stat().st_mode) == 0o640

    def test_creates_parent_and_leaves_no_temp(self, tmp_path):
        path = tmp_path / 'nested' / 'dir' / 'file.yaml'
        write_file_atomic(path, b'x')
        assert os.listdir(path.parent) == ['file.yaml']


class TestJsonHelpers:
    """Test read_json_object and dump_json."""

    def test_read_object(self, tmp_path):
        path = tmp_path / 'a.json'
        path.write_text('{"k": "v"}')
        assert read_json_object(path) == {'k': 'v'}

    def test_read_invalid(self, tmp_path):
        path = tmp_path / 'a.json'
        path.write_text('{')
        with pytest.raises(ValueError, match='not valid JSON'):
            read_json_object(path)

    def test_read_non_object(self, tmp_path):
        path = tmp_path / 'a.json'
        path.write_text('[1, 2]')
        with pytest.raises(ValueError, match='must contain a JSON object'):
            read_json_object(path)

    def test_dump_preserves_order(self):
        assert dump_json({'b': 1, 'a': 'x'}) == b'{"b":1,"a":"x"}'
