"""Pipeline reporting."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional


@dataclass
class StageResult:
    """Result of one stage step."""
    name: str
    step: str  # 'prepare', 'apply', 'outputs', 'extract', 'teardown', 'destroy'
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    causes: list[str] = field(default_factory=list)


@dataclass
class PipelineReport:
    """Collects stage results and writes JSON and markdown reports."""
    platform: str
    action: str
    report_dir: Optional[Path] = None
    stages: list[StageResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False

    _stage_start: Optional[datetime] = field(default=None, repr=False)

    def start(self):
        """Mark pipeline run start."""
        self.started_at = datetime.now()
        if self.report_dir is not None:
            self.report_dir.mkdir(parents=True, exist_ok=True)

    def start_stage(self, _name: str):
        """Mark stage start."""
        self._stage_start = datetime.now()

    def pass_stage(self, name: str, step: str, message: str = ''):
        """Record passed stage."""
        self._record(name, step, 'passed', message)

    def fail_stage(self, name: str, step: str, message: str = '', causes: Optional[list[str]] = None):
        """Record failed stage with the messages of the errors behind it."""
        self._record(name, step, 'failed', message, causes)

    def skip_stage(self, name: str, step: str, message: str = ''):
        """Record skipped stage."""
        self.stages.append(StageResult(name=name, step=step, status='skipped', message=message))

    def _record(self, name: str, step: str, status: str, message: str, causes: Optional[list[str]] = None):
        now = datetime.now()
        duration = (now - self._stage_start).total_seconds() if self._stage_start else 0.0
        self.stages.append(StageResult(
            name=name,
            step=step,
            status=status,
            message=message,
            duration=duration,
            started_at=self._stage_start,
            finished_at=now,
            causes=list(causes or []),
        ))
        self._stage_start = None

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def finish(self, success: bool):
        """Finalize report and write files when a report dir is set."""
        self.finished_at = datetime.now()
        self.success = success
        if self.report_dir is not None:
            self._report_path('json').write_text(json.dumps(self._document(), indent=2), encoding='utf-8')
            self._report_path('md').write_text(self._markdown(), encoding='utf-8')

    @property
    def failure(self) -> Optional[StageResult]:
        """First failed stage result, if any."""
        return next((s for s in self.stages if s.status == 'failed'), None)

    def _stage_entry(self, s: StageResult) -> dict:
        entry = {
            'name': s.name,
            'step': s.step,
            'status': s.status,
            'duration': round(s.duration, 1),
        }
        if s.message:
            entry['message'] = s.message
        if s.causes:
            entry['causes'] = list(s.causes)
        return entry

    def _document(self) -> dict:
        return {
            'platform': self.platform,
            'action': self.action,
            'success': self.success,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration': self.duration,
            'stages': [self._stage_entry(s) for s in self.stages],
        }

    def _markdown(self) -> str:
        outcome = 'passed' if self.success else 'FAILED'
        started = self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'not started'
        lines = [
            f"# {self.platform} {self.action}: {outcome}",
            "",
            f"Started {started}, took {self.duration:.1f}s.",
            "",
            "| # | Stage | Step | Result | Time |",
            "|---|-------|------|--------|------|",
        ]
        for i, s in enumerate(self.stages, 1):
            lines.append(f"| {i} | {s.name} | {s.step} | {s.status} | {s.duration:.1f}s |")

        failed = self.failure
        if failed is not None:
            lines.extend([
                "",
                "## Failure",
                "",
                f"Stage `{failed.name}` failed during `{failed.step}`:",
                "",
                f"    {failed.message}",
            ])
            if failed.causes:
                lines.extend(["", "Caused by:", ""])
                lines.extend(f"- {cause}" for cause in failed.causes)
        lines.append("")
        return '\n'.join(lines)

    def _report_path(self, ext: str) -> Path:
        """Report path: {timestamp}.{platform}-{action}.{passed|failed}.{ext}"""
        stamp = f"{self.started_at:%Y%m%d-%H%M%S}" if self.started_at else 'unknown'
        outcome = 'passed' if self.success else 'failed'
        return self.report_dir / f"{stamp}.{self.platform}-{self.action}.{outcome}.{ext}"

    def to_dict(self) -> dict:
        """Return report as dictionary for JSON output."""
        result = {
            'platform': self.platform,
            'action': self.action,
            'success': self.success,
            'duration_seconds': round(self.duration, 1),
            'stages': [self._stage_entry(s) for s in self.stages],
        }
        failed = self.failure
        if not self.success and failed is not None and failed.message:
            result['error'] = failed.message
        return result
