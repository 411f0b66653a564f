"""GCP provisioning stages.

The cluster stage creates the API load balancers. Their addresses are only
known after it applies, so its extraction hook writes the load-balancer
config document, regenerates bootstrap ignition with it, and rewrites the
ignition_bootstrap variable before the bootstrap stage runs.

During bootstrap teardown the post-bootstrap stage pulls the bootstrap
instance out of the load balancers (a partial apply), and only then does
the bootstrap stage destroy the instance.
"""

import logging
from pathlib import Path

from assets.lbconfig import LB_CONFIG_FILENAME, LB_CONFIG_NAME, create_lb_config_map
from assets.store import BOOTSTRAP_IGNITION, AssetError
from common import dump_json, read_json_object, write_file_atomic
from stages import register_platform
from stages.base import (
    ExtractionError,
    Provider,
    TeardownError,
    new_stage,
    with_custom_bootstrap_destroy,
    with_custom_extract_output,
    with_normal_bootstrap_destroy,
)
from tfexec import TerraformError

logger = logging.getLogger(__name__)

PLATFORM = 'gcp'

EXTERNAL_LB_OUTPUT = 'cluster_public_ip'
INTERNAL_LB_OUTPUT = 'cluster_ip'
IGNITION_BOOTSTRAP_VAR = 'ignition_bootstrap'
BOOTSTRAP_LB_VAR = 'gcp_bootstrap_lb'


def _require_string(outputs: dict, key: str, what: str) -> str:
    if key not in outputs:
        raise ExtractionError(f"failed to read {what} from terraform outputs: missing '{key}'")
    value = outputs[key]
    if not isinstance(value, str):
        raise ExtractionError(
            f"failed to read {what} from terraform outputs: '{key}' is {type(value).__name__}, expected string")
    return value


def extract_gcp_lb_config(stage, directory, terraform_dir, outputs_file, tfvars_file, store) -> str:
    """Propagate load-balancer addresses from cluster outputs into bootstrap ignition."""
    directory = Path(directory)
    tfvars_file = Path(tfvars_file)

    try:
        outputs = read_json_object(outputs_file)
    except (OSError, ValueError) as e:
        raise ExtractionError(f"failed to read terraform outputs {outputs_file}: {e}") from e

    # Validate both addresses before anything destructive happens
    external_ip = _require_string(outputs, EXTERNAL_LB_OUTPUT, 'External API LB address')
    internal_ip = _require_string(outputs, INTERNAL_LB_OUTPUT, 'Internal API LB address')

    try:
        contents = create_lb_config_map(LB_CONFIG_NAME, internal_ip, external_ip, stage.platform)
    except ValueError as e:
        raise ExtractionError(f"failed to create load balancer config contents: {e}") from e

    lb_config_path = directory / LB_CONFIG_FILENAME
    try:
        write_file_atomic(lb_config_path, contents.encode('utf-8'))
    except OSError as e:
        raise ExtractionError(f"failed to rewrite {lb_config_path}: {e}") from e
    logger.info(f"[{stage.name}] Wrote load balancer config (internal {internal_ip}, external {external_ip or 'none'})")

    # Invalidate bootstrap ignition so it is regenerated from the new config
    try:
        store.destroy(BOOTSTRAP_IGNITION)
    except AssetError as e:
        raise ExtractionError(f"failed to destroy {BOOTSTRAP_IGNITION}: {e}") from e
    try:
        bootstrap = store.fetch(BOOTSTRAP_IGNITION)
    except AssetError as e:
        raise ExtractionError(f"failed to fetch {BOOTSTRAP_IGNITION}: {e}") from e
    if not bootstrap.files:
        raise ExtractionError(f"failed to fetch {BOOTSTRAP_IGNITION}: asset has no files")
    ignition_file = bootstrap.files[0]
    try:
        ignition = ignition_file.data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise ExtractionError(
            f"failed to fetch {BOOTSTRAP_IGNITION}: {ignition_file.filename} is not UTF-8: {e}") from e

    try:
        tfvars = read_json_object(tfvars_file)
    except (OSError, ValueError) as e:
        raise ExtractionError(f"failed to parse {tfvars_file}: {e}") from e

    tfvars[IGNITION_BOOTSTRAP_VAR] = ignition

    try:
        write_file_atomic(tfvars_file, dump_json(tfvars))
    except OSError as e:
        raise ExtractionError(f"failed to rewrite {tfvars_file}: {e}") from e
    logger.info(f"[{stage.name}] Updated {IGNITION_BOOTSTRAP_VAR} in {tfvars_file}")

    return ''


def remove_from_load_balancers(stage, directory, terraform_dir, var_files, executor) -> None:
    """Detach the bootstrap instance from the load balancers."""
    logger.info(f"[{stage.name}] Disabling bootstrap load balancing")
    try:
        executor.apply(directory, PLATFORM, stage, terraform_dir, var_files,
                       variables={BOOTSTRAP_LB_VAR: False})
    except TerraformError as e:
        raise TeardownError(f"failed disabling bootstrap load balancing: {e}",
                            stage=stage.name, step='teardown') from e


PLATFORM_STAGES = register_platform([
    new_stage(
        PLATFORM,
        'cluster',
        [Provider.GOOGLE],
        with_custom_extract_output(extract_gcp_lb_config),
    ),
    new_stage(
        PLATFORM,
        'bootstrap',
        [Provider.GOOGLE, Provider.IGNITION],
        with_normal_bootstrap_destroy(),
    ),
    new_stage(
        PLATFORM,
        'post-bootstrap',
        [Provider.GOOGLE],
        with_custom_bootstrap_destroy(remove_from_load_balancers),
    ),
])
