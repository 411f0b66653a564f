"""Load-balancer configuration document.

The document is a ConfigMap carrying the API load-balancer addresses. It is
written to the install directory after the cluster stage and embedded in the
bootstrap ignition so bootstrap DNS can resolve the API endpoints.
"""

import yaml

LB_CONFIG_NAME = 'openshift-lbConfigForDNS'
LB_CONFIG_FILENAME = f'{LB_CONFIG_NAME}.yaml'
LB_CONFIG_NAMESPACE = 'openshift-config'


def create_lb_config_map(name: str, internal_ip: str, external_ip: str, platform: str) -> str:
    """Render the load-balancer ConfigMap as YAML.

    Args:
        name: ConfigMap name
        internal_ip: Internal API load-balancer address (required)
        external_ip: External API load-balancer address (empty for private clusters)
        platform: Platform identifier (e.g., 'gcp')

    Raises:
        ValueError: If name, platform or the internal address is empty
    """
    if not name:
        raise ValueError("load balancer config name is required")
    if not internal_ip:
        raise ValueError("internal API load balancer address is required")
    if not platform:
        raise ValueError("platform is required")

    config_map = {
        'apiVersion': 'v1',
        'kind': 'ConfigMap',
        'metadata': {
            'name': name,
            'namespace': LB_CONFIG_NAMESPACE,
        },
        'data': {
            'internal-api-lb-ip': internal_ip,
            'external-api-lb-ip': external_ip or '',
            'platform': platform,
        },
    }
    return yaml.safe_dump(config_map, default_flow_style=False, sort_keys=True)


def parse_lb_config_map(content: str) -> dict:
    """Return the data section of a rendered load-balancer ConfigMap."""
    try:
        doc = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"load balancer config is not valid YAML: {e}") from e
    if not isinstance(doc, dict) or doc.get('kind') != 'ConfigMap':
        raise ValueError("load balancer config is not a ConfigMap")
    return dict(doc.get('data') or {})
