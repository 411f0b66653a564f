"""Terraform executor for stage apply, destroy and output retrieval.

Each stage is a terraform module at {terraform_dir}/{platform}/{stage}. The
state file lives in the install directory (the orchestrator owns state,
terraform is a dumb executor), and TF_DATA_DIR is isolated per stage so
provider plugins for one stage never leak into another.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from common import run_command
from config import InstallerConfig

if TYPE_CHECKING:
    from stages.base import Stage

logger = logging.getLogger(__name__)


class TerraformError(Exception):
    """A terraform invocation failed."""


def format_variable(key: str, value) -> str:
    """Render a -var override; booleans use terraform's lowercase literals."""
    if isinstance(value, bool):
        value = 'true' if value else 'false'
    return f'-var={key}={value}'


@dataclass
class TerraformExecutor:
    """Runs terraform for a single stage at a time."""
    binary: str = 'terraform'
    timeout_init: int = 300
    timeout_apply: int = 1800
    timeout_destroy: int = 1800
    apply_retries: int = 0
    retry_delay: int = 10

    @classmethod
    def from_config(cls, config: InstallerConfig) -> 'TerraformExecutor':
        return cls(
            binary=config.terraform_binary,
            timeout_init=config.timeout_init,
            timeout_apply=config.timeout_apply,
            timeout_destroy=config.timeout_destroy,
            apply_retries=config.apply_retries,
            retry_delay=config.retry_delay,
        )

    def _prepare(self, directory: Path, stage: 'Stage', terraform_dir: Path) -> tuple[Path, dict]:
        """Resolve the module dir and build the environment for a stage."""
        module_dir = stage.module_dir(terraform_dir)
        if not module_dir.is_dir():
            raise TerraformError(f"Terraform module not found: {module_dir}")

        # TF_DATA_DIR must not hold the state file; keep it in its own tree
        data_dir = Path(directory) / '.terraform' / stage.name
        data_dir.mkdir(parents=True, exist_ok=True)
        env = {**os.environ, 'TF_DATA_DIR': str(data_dir), 'TF_IN_AUTOMATION': '1'}
        return module_dir, env

    def _init(self, stage: 'Stage', module_dir: Path, env: dict) -> None:
        logger.info(f"[{stage.name}] Running {self.binary} init...")
        rc, _, err = run_command(
            [self.binary, 'init', '-input=false', '-no-color'],
            cwd=module_dir, timeout=self.timeout_init, env=env,
        )
        if rc != 0:
            raise TerraformError(f"{self.binary} init failed: {err.strip()}")

    def apply(
        self,
        directory: Path,
        platform: str,
        stage: 'Stage',
        terraform_dir: Path,
        var_files: list[Path],
        variables: Optional[dict] = None,
    ) -> None:
        """Apply a stage, retrying up to apply_retries times on failure.

        Raises:
            TerraformError: If init fails or every apply attempt fails
        """
        module_dir, env = self._prepare(directory, stage, terraform_dir)
        self._init(stage, module_dir, env)

        state_file = Path(directory) / stage.state_filename
        cmd = [self.binary, 'apply', '-auto-approve', '-input=false', '-no-color',
               f'-state={state_file}']
        cmd += [f'-var-file={vf}' for vf in var_files]
        cmd += [format_variable(k, v) for k, v in (variables or {}).items()]

        attempts = self.apply_retries + 1
        for attempt in range(1, attempts + 1):
            logger.info(f"[{stage.name}] Running {self.binary} apply for {platform} "
                        f"(attempt {attempt}/{attempts}, state: {state_file})...")
            rc, _, err = run_command(cmd, cwd=module_dir, timeout=self.timeout_apply, env=env)
            if rc == 0:
                return
            logger.warning(f"[{stage.name}] {self.binary} apply failed: {err.strip()}")
            if attempt < attempts:
                time.sleep(self.retry_delay)

        raise TerraformError(f"{self.binary} apply failed after {attempts} attempt(s): {err.strip()}")

    def destroy(
        self,
        directory: Path,
        platform: str,
        stage: 'Stage',
        terraform_dir: Path,
        var_files: list[Path],
    ) -> None:
        """Destroy every resource of a stage. A stage without state is a no-op."""
        state_file = Path(directory) / stage.state_filename
        if not state_file.exists():
            logger.info(f"[{stage.name}] No state file at {state_file}, nothing to destroy")
            return

        module_dir, env = self._prepare(directory, stage, terraform_dir)
        self._init(stage, module_dir, env)

        cmd = [self.binary, 'destroy', '-auto-approve', '-input=false', '-no-color',
               f'-state={state_file}']
        cmd += [f'-var-file={vf}' for vf in var_files]

        logger.info(f"[{stage.name}] Running {self.binary} destroy for {platform} (state: {state_file})...")
        rc, _, err = run_command(cmd, cwd=module_dir, timeout=self.timeout_destroy, env=env)
        if rc != 0:
            raise TerraformError(f"{self.binary} destroy failed: {err.strip()}")

    def outputs(self, directory: Path, platform: str, stage: 'Stage', terraform_dir: Path) -> dict:
        """Return the stage outputs as a flat {name: value} mapping."""
        module_dir, env = self._prepare(directory, stage, terraform_dir)
        state_file = Path(directory) / stage.state_filename

        logger.debug(f"[{stage.name}] Reading {platform} outputs from {state_file}")
        rc, out, err = run_command(
            [self.binary, 'output', '-json', '-no-color', f'-state={state_file}'],
            cwd=module_dir, timeout=self.timeout_init, env=env,
        )
        if rc != 0:
            raise TerraformError(f"{self.binary} output failed: {err.strip()}")

        try:
            raw = json.loads(out or '{}')
        except json.JSONDecodeError as e:
            raise TerraformError(f"{self.binary} output returned invalid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise TerraformError(f"{self.binary} output returned {type(raw).__name__}, expected object")

        outputs = {}
        for key, entry in raw.items():
            if isinstance(entry, dict) and 'value' in entry:
                outputs[key] = entry['value']
            else:
                outputs[key] = entry
        return outputs
