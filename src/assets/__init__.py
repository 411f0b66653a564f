"""Generated installer artifacts and their on-disk store."""

from assets.store import (
    BOOTSTRAP_IGNITION,
    Asset,
    AssetError,
    AssetFile,
    AssetStore,
    FileAssetStore,
)

__all__ = [
    'BOOTSTRAP_IGNITION',
    'Asset',
    'AssetError',
    'AssetFile',
    'AssetStore',
    'FileAssetStore',
]
