"""Stage sequencer.

Applies a platform's stages strictly in order. After each apply the stage's
outputs are written to {directory}/{stage}.tfvars.json, appended to the
var files of every later stage, and handed to the stage's extract_output
hook. The next stage does not start until that hook has returned, so every
file the hook rewrote is on disk before terraform reads it.

Failures are never retried here (the executor owns retries) and never
skipped: the first failing step aborts the run with a StageError naming the
stage and the step.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Iterable, Optional

from assets.store import AssetStore, FileAssetStore
from common import cause_chain, dump_json, write_file_atomic
from reporting import PipelineReport
from stages.base import Stage, StageError, full_destroy, validate_stages
from stages.state import PipelineState, StageState, StateError
from tfexec import TerraformExecutor

logger = logging.getLogger(__name__)

StoreFactory = Callable[[Path], AssetStore]


class StageSequencer:
    """Runs apply, bootstrap teardown and destroy across a platform's stages."""

    def __init__(
        self,
        stages: Iterable[Stage],
        directory: Path,
        terraform_dir: Path,
        var_files: list[Path],
        executor: TerraformExecutor,
        store_factory: StoreFactory = FileAssetStore,
        report: Optional[PipelineReport] = None,
    ):
        """Initialize the sequencer.

        Args:
            stages: Ordered stage descriptors for one platform
            directory: Install directory holding state, outputs and assets
            terraform_dir: Root of the {platform}/{stage} terraform modules
            var_files: Variable files for every stage; the first is the
                primary variable file that hooks may rewrite
            executor: Terraform executor
            store_factory: Builds the asset store for the install directory
            report: Optional report receiving per-stage results
        """
        self.stages = validate_stages(stages)
        self.platform = self.stages[0].platform
        self.directory = Path(directory)
        self.terraform_dir = Path(terraform_dir)
        if not var_files:
            raise ValueError("at least one variable file is required")
        self.var_files = [Path(vf) for vf in var_files]
        self.executor = executor
        self.store_factory = store_factory
        self.report = report
        self._state: Optional[PipelineState] = None

    @property
    def primary_var_file(self) -> Path:
        return self.var_files[0]

    def _begin(self) -> PipelineState:
        if self.report:
            self.report.start()
        try:
            state = PipelineState.load(self.platform, self.directory)
        except StateError as e:
            logger.error(f"Cannot start {self.platform} run: {e}")
            self._finish(False)
            raise StageError(f"{self.platform} prepare failed: {e}", step='prepare') from e
        for stage in self.stages:
            state.add_stage(stage.name)
        self._state = state
        return state

    def _finish(self, success: bool) -> None:
        if self.report:
            self.report.finish(success)

    def _record_failure(self, stage_state: StageState, step: str, error: str) -> None:
        stage_state.fail(step, error)
        try:
            self._state.save()
        except StateError as e:
            logger.warning(f"[{stage_state.name}] Could not record {step} failure: {e}")

    def _run_step(self, stage: Stage, step: str, stage_state: StageState, fn: Callable, *args):
        """Run one step of a stage, converting any failure into a StageError."""
        try:
            return fn(*args)
        except Exception as e:
            message = f"{stage} {step} failed: {e}"
            logger.error(f"[{stage.name}] {step} failed: {e}")
            self._record_failure(stage_state, step, str(e))
            if self.report:
                self.report.fail_stage(stage.name, step, str(e), causes=cause_chain(e))
            raise StageError(message, stage=stage.name, step=step) from e

    def _checkpoint(self, stage: Stage, step: str, stage_state: StageState) -> None:
        """Persist pipeline state as part of a stage step."""
        self._run_step(stage, step, stage_state, self._state.save)

    def _check_var_files(self) -> None:
        missing = [str(vf) for vf in self.var_files if not vf.exists()]
        if missing:
            raise StageError(f"variable file(s) not found: {', '.join(missing)}", step='prepare')

    def _write_outputs(self, stage: Stage) -> Path:
        outputs = self.executor.outputs(self.directory, self.platform, stage, self.terraform_dir)
        path = self.directory / stage.outputs_filename
        write_file_atomic(path, dump_json(outputs))
        logger.debug(f"[{stage.name}] Wrote {len(outputs)} output(s) to {path}")
        return path

    def provision(self) -> list[Path]:
        """Apply every stage in order and return the outputs files written.

        Raises:
            StageError: On unreadable state, missing var files, or the first
                failing apply, output read or hook
        """
        state = self._begin()
        var_files = list(self.var_files)
        outputs_files: list[Path] = []
        store = None
        start = time.time()

        logger.info(f"Provisioning {len(self.stages)} {self.platform} stage(s) in {self.directory}")
        try:
            self._check_var_files()
            for stage in self.stages:
                stage_state = state.get_stage(stage.name)
                stage_state.start()
                if self.report:
                    self.report.start_stage(stage.name)
                self._checkpoint(stage, 'apply', stage_state)

                logger.info(f"[{stage.name}] Applying stage {stage}")
                self._run_step(stage, 'apply', stage_state, self.executor.apply,
                               self.directory, self.platform, stage, self.terraform_dir, list(var_files))

                outputs_file = self._run_step(stage, 'outputs', stage_state, self._write_outputs, stage)
                var_files.append(outputs_file)
                outputs_files.append(outputs_file)

                if store is None:
                    store = self.store_factory(self.directory)
                self._run_step(stage, 'extract', stage_state, stage.extract_output,
                               stage, self.directory, self.terraform_dir, outputs_file,
                               self.primary_var_file, store)

                stage_state.applied(str(outputs_file))
                self._checkpoint(stage, 'extract', stage_state)
                if self.report:
                    self.report.pass_stage(stage.name, 'apply', f"Applied {stage}")
                logger.info(f"[{stage.name}] Stage complete")
        except StageError:
            self._finish(False)
            raise

        logger.info(f"Provisioned {self.platform} in {time.time() - start:.1f}s")
        self._finish(True)
        return outputs_files

    def _teardown_var_files(self) -> list[Path]:
        """Var files used for teardown: inputs plus every existing outputs file."""
        var_files = list(self.var_files)
        for stage in self.stages:
            outputs_file = self.directory / stage.outputs_filename
            if outputs_file.exists():
                var_files.append(outputs_file)
        return var_files

    def destroy_bootstrap(self) -> None:
        """Tear down bootstrap resources, walking stages in reverse order.

        Reverse order matters: a post-bootstrap stage removes the bootstrap
        node from the load balancers before the bootstrap stage destroys it.

        Raises:
            StageError: On unreadable state or the first failing teardown hook
        """
        state = self._begin()
        var_files = self._teardown_var_files()

        try:
            for stage in reversed(self.stages):
                if not stage.destroy_with_bootstrap:
                    logger.debug(f"[{stage.name}] Not part of bootstrap teardown, skipping")
                    if self.report:
                        self.report.skip_stage(stage.name, 'teardown', 'kept after bootstrap')
                    continue

                stage_state = state.get_stage(stage.name)
                stage_state.start()
                if self.report:
                    self.report.start_stage(stage.name)

                logger.info(f"[{stage.name}] Running bootstrap teardown")
                self._run_step(stage, 'teardown', stage_state, stage.bootstrap_destroy,
                               stage, self.directory, self.terraform_dir, list(var_files), self.executor)

                if stage.bootstrap_destroy is full_destroy:
                    stage_state.mark_destroyed()
                else:
                    stage_state.applied()
                self._checkpoint(stage, 'teardown', stage_state)
                if self.report:
                    self.report.pass_stage(stage.name, 'teardown')
        except StageError:
            self._finish(False)
            raise

        self._finish(True)

    def destroy(self) -> None:
        """Destroy every stage in reverse order with the full destroy strategy.

        Raises:
            StageError: On unreadable state or the first failing destroy
        """
        state = self._begin()
        var_files = self._teardown_var_files()

        try:
            for stage in reversed(self.stages):
                stage_state = state.get_stage(stage.name)
                stage_state.start()
                if self.report:
                    self.report.start_stage(stage.name)

                logger.info(f"[{stage.name}] Destroying stage {stage}")
                self._run_step(stage, 'destroy', stage_state, full_destroy,
                               stage, self.directory, self.terraform_dir, list(var_files), self.executor)

                stage_state.mark_destroyed()
                self._checkpoint(stage, 'destroy', stage_state)
                if self.report:
                    self.report.pass_stage(stage.name, 'destroy')
        except StageError:
            self._finish(False)
            raise

        self._finish(True)

    def preview(self, action: str = 'apply') -> bool:
        """Show what would be executed without running. Returns True."""
        if action == 'apply':
            ordered = list(self.stages)
        else:
            ordered = list(reversed(self.stages))

        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  DRY-RUN: {self.platform} {action}")
        print(f"  Directory: {self.directory}")
        print(f"  Terraform: {self.terraform_dir}")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        run_count = 0
        skip_count = 0
        for stage in ordered:
            providers = ', '.join(p.value for p in stage.providers)
            if action == 'destroy-bootstrap' and not stage.destroy_with_bootstrap:
                print(f"  [SKIP] {stage.name}")
                skip_count += 1
            else:
                print(f"  [ OK ] {stage.name}")
                print(f"         Module: {stage.module_dir(self.terraform_dir)}")
                print(f"         Providers: {providers}")
                if action == 'apply':
                    print(f"         Outputs: {self.directory / stage.outputs_filename}")
                    print(f"         Extract: {stage.extract_output.__name__}")
                elif action == 'destroy-bootstrap':
                    print(f"         Teardown: {stage.bootstrap_destroy.__name__}")
                run_count += 1
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {run_count} stages to run, {skip_count} to skip")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        return True
