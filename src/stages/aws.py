"""AWS provisioning stages."""

from stages import register_platform
from stages.base import Provider, new_stage, with_normal_bootstrap_destroy

PLATFORM = 'aws'

PLATFORM_STAGES = register_platform([
    new_stage(
        PLATFORM,
        'cluster',
        [Provider.AWS],
    ),
    new_stage(
        PLATFORM,
        'bootstrap',
        [Provider.AWS, Provider.IGNITION],
        with_normal_bootstrap_destroy(),
    ),
])
