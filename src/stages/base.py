"""Stage descriptors and hook strategies.

A stage is one terraform module applied as a unit. Stages are declared once
per platform and never mutated. Behaviour that differs per stage is supplied
as hooks:

- extract_output runs after a successful apply and may rewrite the primary
  variable file or regenerate assets before the next stage applies.
- bootstrap_destroy runs during bootstrap teardown for stages marked
  destroy_with_bootstrap.
"""

import enum
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional, Protocol

if TYPE_CHECKING:
    from assets.store import AssetStore
    from tfexec import TerraformExecutor


class Provider(str, enum.Enum):
    """Terraform provider plugins a stage may require."""
    AWS = 'aws'
    GOOGLE = 'google'
    IBM = 'ibm'
    IGNITION = 'ignition'


class StageError(Exception):
    """A stage step failed.

    Attributes:
        stage: Stage name (None when raised outside a specific stage)
        step: Sub-step that failed (apply, outputs, extract, teardown, destroy)
    """

    def __init__(self, message: str, stage: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        self.step = step


class ExtractionError(StageError):
    """An output-extraction hook could not derive the next stage's inputs."""


class TeardownError(StageError):
    """A bootstrap teardown hook failed."""


class ExtractOutputHook(Protocol):
    """Signature of output-extraction hooks."""

    def __call__(
        self,
        stage: 'Stage',
        directory: Path,
        terraform_dir: Path,
        outputs_file: Path,
        tfvars_file: Path,
        store: 'AssetStore',
    ) -> str:
        ...


class DestroyHook(Protocol):
    """Signature of bootstrap teardown hooks."""

    def __call__(
        self,
        stage: 'Stage',
        directory: Path,
        terraform_dir: Path,
        var_files: list[Path],
        executor: 'TerraformExecutor',
    ) -> None:
        ...


def noop_extract(stage, directory, terraform_dir, outputs_file, tfvars_file, store) -> str:
    """Default extraction: the stage's outputs need no post-processing."""
    return ''


def full_destroy(stage, directory, terraform_dir, var_files, executor) -> None:
    """Default teardown: destroy every resource the stage created."""
    executor.destroy(directory, stage.platform, stage, terraform_dir, var_files)


@dataclass(frozen=True)
class Stage:
    """Declarative description of one provisioning stage.

    Attributes:
        platform: Platform identifier (e.g., 'gcp')
        name: Stage name, unique within the platform
        providers: Terraform providers required to apply the stage
        extract_output: Hook run after apply (default: no-op)
        bootstrap_destroy: Hook run during bootstrap teardown (default: full destroy)
        destroy_with_bootstrap: Whether bootstrap teardown touches this stage
    """
    platform: str
    name: str
    providers: tuple[Provider, ...] = ()
    extract_output: ExtractOutputHook = noop_extract
    bootstrap_destroy: DestroyHook = full_destroy
    destroy_with_bootstrap: bool = False

    def __post_init__(self):
        if not self.platform:
            raise ValueError("stage platform is required")
        if not self.name:
            raise ValueError(f"{self.platform}: stage name is required")
        if len(set(self.providers)) != len(self.providers):
            raise ValueError(f"{self.platform}/{self.name}: duplicate providers {list(self.providers)}")

    @property
    def state_filename(self) -> str:
        return f'terraform.{self.name}.tfstate'

    @property
    def outputs_filename(self) -> str:
        return f'{self.name}.tfvars.json'

    def module_dir(self, terraform_dir: Path) -> Path:
        return Path(terraform_dir) / self.platform / self.name

    def __str__(self) -> str:
        return f'{self.platform}/{self.name}'


def with_custom_extract_output(hook: ExtractOutputHook):
    """Stage option: run hook after the stage applies."""
    def apply(stage: Stage) -> Stage:
        return replace(stage, extract_output=hook)
    return apply


def with_normal_bootstrap_destroy():
    """Stage option: fully destroy the stage during bootstrap teardown."""
    def apply(stage: Stage) -> Stage:
        return replace(stage, destroy_with_bootstrap=True, bootstrap_destroy=full_destroy)
    return apply


def with_custom_bootstrap_destroy(hook: DestroyHook):
    """Stage option: run hook instead of a full destroy during bootstrap teardown."""
    def apply(stage: Stage) -> Stage:
        return replace(stage, destroy_with_bootstrap=True, bootstrap_destroy=hook)
    return apply


def new_stage(platform: str, name: str, providers: Iterable[Provider], *options) -> Stage:
    """Build a stage and apply options in order."""
    stage = Stage(platform=platform, name=name, providers=tuple(providers))
    for option in options:
        stage = option(stage)
    return stage


def validate_stages(stages: Iterable[Stage]) -> tuple[Stage, ...]:
    """Check a platform pipeline and return it as an immutable tuple.

    Raises:
        ValueError: Empty pipeline, mixed platforms, or duplicate stage names
    """
    stages = tuple(stages)
    if not stages:
        raise ValueError("pipeline has no stages")

    platforms = {s.platform for s in stages}
    if len(platforms) != 1:
        raise ValueError(f"pipeline mixes platforms: {sorted(platforms)}")

    seen: set[str] = set()
    for stage in stages:
        if stage.name in seen:
            raise ValueError(f"duplicate stage name '{stage.name}' for platform {stage.platform}")
        seen.add(stage.name)
    return stages
