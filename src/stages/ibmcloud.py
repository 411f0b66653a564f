"""IBM Cloud provisioning stages."""

from stages import register_platform
from stages.base import Provider, new_stage, with_normal_bootstrap_destroy

PLATFORM = 'ibmcloud'

PLATFORM_STAGES = register_platform([
    new_stage(
        PLATFORM,
        'network',
        [Provider.IBM],
    ),
    new_stage(
        PLATFORM,
        'bootstrap',
        [Provider.IBM, Provider.IGNITION],
        with_normal_bootstrap_destroy(),
    ),
    new_stage(
        PLATFORM,
        'master',
        [Provider.IBM, Provider.IGNITION],
    ),
])
