"""Pipeline state for stage-based provisioning.

Tracks per-stage status (pending, running, applied, failed, destroyed) and
persists it to {directory}/.stages/{platform}.json after every transition, so
an aborted run leaves a record of how far it got.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from common import write_file_atomic

logger = logging.getLogger(__name__)

STATE_DIR = '.stages'


class StateError(Exception):
    """Pipeline state could not be read or written."""


@dataclass
class StageState:
    """Per-stage execution state.

    Attributes:
        name: Stage name
        status: Current status (pending, running, applied, failed, destroyed)
        step: Sub-step that failed, if any
        outputs_file: Outputs file written after apply
        started_at: Timestamp when the current transition started
        completed_at: Timestamp when it finished
        error: Error message if failed
    """
    name: str
    status: str = 'pending'
    step: Optional[str] = None
    outputs_file: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None

    def start(self) -> None:
        self.status = 'running'
        self.started_at = time.time()
        self.completed_at = None
        self.step = None
        self.error = None

    def applied(self, outputs_file: Optional[str] = None) -> None:
        self.status = 'applied'
        self.completed_at = time.time()
        if outputs_file is not None:
            self.outputs_file = outputs_file

    def fail(self, step: str, error: str) -> None:
        self.status = 'failed'
        self.completed_at = time.time()
        self.step = step
        self.error = error

    def mark_destroyed(self) -> None:
        self.status = 'destroyed'
        self.completed_at = time.time()

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'name': self.name,
            'status': self.status,
        }
        for key in ('step', 'outputs_file', 'started_at', 'completed_at', 'error'):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'StageState':
        return cls(
            name=data['name'],
            status=data.get('status', 'pending'),
            step=data.get('step'),
            outputs_file=data.get('outputs_file'),
            started_at=data.get('started_at'),
            completed_at=data.get('completed_at'),
            error=data.get('error'),
        )


class PipelineState:
    """Platform-level pipeline state with save/load."""

    def __init__(self, platform: str, directory: Path):
        """Initialize pipeline state.

        Args:
            platform: Platform identifier
            directory: Install directory the state is stored under
        """
        self.platform = platform
        self.directory = Path(directory)
        self._stages: dict[str, StageState] = {}

    @property
    def path(self) -> Path:
        return self.directory / STATE_DIR / f'{self.platform}.json'

    def add_stage(self, name: str) -> StageState:
        """Register a stage for tracking, keeping any loaded state."""
        if name not in self._stages:
            self._stages[name] = StageState(name=name)
        return self._stages[name]

    def get_stage(self, name: str) -> StageState:
        """Get stage state by name.

        Raises:
            KeyError: If stage not registered
        """
        return self._stages[name]

    @property
    def stages(self) -> dict[str, StageState]:
        return dict(self._stages)

    def save(self) -> Path:
        data = {
            'platform': self.platform,
            'stages': [s.to_dict() for s in self._stages.values()],
        }
        try:
            write_file_atomic(self.path, json.dumps(data, indent=2).encode('utf-8'))
        except OSError as e:
            raise StateError(f"failed to save pipeline state {self.path}: {e}") from e
        logger.debug(f"Saved pipeline state to {self.path}")
        return self.path

    @classmethod
    def load(cls, platform: str, directory: Path) -> 'PipelineState':
        """Load state from disk; a missing file yields an empty state.

        Raises:
            StateError: If the state file is unreadable or malformed
        """
        state = cls(platform, directory)
        if not state.path.exists():
            return state

        try:
            with open(state.path, encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            loaded = [StageState.from_dict(s) for s in data.get('stages', [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise StateError(f"failed to load pipeline state {state.path}: {e}") from e

        for stage_state in loaded:
            state._stages[stage_state.name] = stage_state

        logger.debug(f"Loaded pipeline state from {state.path}")
        return state
