"""Bootstrap ignition generation.

Produces a minimal ignition v3.2.0 config that lays down the manifests the
bootstrap node needs. Output is deterministic: identical inputs produce
byte-identical ignition, so regenerating after an unchanged stage is a no-op
as far as terraform is concerned.
"""

import base64
import json
import logging
from pathlib import Path

from assets.lbconfig import LB_CONFIG_FILENAME, parse_lb_config_map

logger = logging.getLogger(__name__)

IGNITION_VERSION = '3.2.0'
BOOTSTRAP_IGNITION_FILENAME = 'bootstrap.ign'
MANIFESTS_DIR = 'openshift'
BOOTSTRAP_MANIFESTS_PATH = '/opt/openshift/manifests'
FILE_MODE = 0o644


def data_url(content: bytes) -> str:
    """Encode file content as an ignition data URL."""
    return 'data:text/plain;charset=utf-8;base64,' + base64.b64encode(content).decode('ascii')


def _storage_file(path: str, content: bytes) -> dict:
    return {
        'path': path,
        'mode': FILE_MODE,
        'overwrite': True,
        'contents': {'source': data_url(content)},
    }


def bootstrap_manifests(directory: Path) -> list[tuple[str, bytes]]:
    """Collect (name, content) of manifests embedded in bootstrap ignition.

    Picks up the load-balancer config document when present, plus any
    YAML manifests under {directory}/openshift/, in name order.

    Raises:
        ValueError: If the load-balancer config is not a ConfigMap
    """
    directory = Path(directory)
    manifests = []

    lb_config = directory / LB_CONFIG_FILENAME
    if lb_config.exists():
        content = lb_config.read_bytes()
        data = parse_lb_config_map(content.decode('utf-8'))
        logger.debug(f"Embedding load balancer config: internal {data.get('internal-api-lb-ip')}, "
                     f"external {data.get('external-api-lb-ip') or 'none'}")
        manifests.append((LB_CONFIG_FILENAME, content))
    else:
        logger.debug(f"No load balancer config at {lb_config}")

    extra_dir = directory / MANIFESTS_DIR
    if extra_dir.is_dir():
        for path in sorted(extra_dir.glob('*.yaml')):
            if path.name == LB_CONFIG_FILENAME:
                continue
            manifests.append((path.name, path.read_bytes()))

    return manifests


def generate_bootstrap_ignition(directory: Path) -> bytes:
    """Render bootstrap ignition from the manifests found in directory."""
    files = [
        _storage_file(f'{BOOTSTRAP_MANIFESTS_PATH}/{name}', content)
        for name, content in bootstrap_manifests(directory)
    ]
    config = {
        'ignition': {'version': IGNITION_VERSION},
        'storage': {'files': files},
    }
    return json.dumps(config, sort_keys=True, separators=(',', ':')).encode('utf-8')
