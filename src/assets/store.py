"""On-disk asset store.

Generated artifacts (ignition configs, manifests) are cached in the install
directory. Each asset's files are recorded in {directory}/.assets/state.json
together with a sha256 digest of their contents, so a fetch can tell a cached
asset from one that was removed or modified outside the store.

The store is the only writer of asset files. Stage hooks ask it to destroy
an asset (invalidate) and fetch it again (regenerate); they never write asset
files themselves.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from assets.ignition import BOOTSTRAP_IGNITION_FILENAME, generate_bootstrap_ignition
from common import write_file_atomic

logger = logging.getLogger(__name__)

BOOTSTRAP_IGNITION = 'Bootstrap Ignition Config'
STATE_DIR = '.assets'
STATE_FILENAME = 'state.json'


class AssetError(Exception):
    """Asset could not be fetched or destroyed."""


@dataclass
class AssetFile:
    """A single file belonging to an asset."""
    filename: str
    data: bytes


@dataclass
class Asset:
    """A named artifact made of one or more files."""
    name: str
    files: list[AssetFile] = field(default_factory=list)

    def digest(self) -> str:
        return _digest(self.files)


Generator = Callable[[Path], list[AssetFile]]


@runtime_checkable
class AssetStore(Protocol):
    """Protocol for asset stores used by stage hooks."""

    def fetch(self, name: str) -> Asset:
        """Return the asset, generating it if it is not cached."""
        ...

    def destroy(self, name: str) -> None:
        """Remove the asset so the next fetch regenerates it."""
        ...


def _digest(files: list[AssetFile]) -> str:
    h = hashlib.sha256()
    for f in files:
        h.update(f.filename.encode('utf-8'))
        h.update(b'\0')
        h.update(f.data)
        h.update(b'\0')
    return h.hexdigest()


def _bootstrap_ignition(directory: Path) -> list[AssetFile]:
    return [AssetFile(BOOTSTRAP_IGNITION_FILENAME, generate_bootstrap_ignition(directory))]


def default_generators() -> dict[str, Generator]:
    """Generators registered on every FileAssetStore."""
    return {
        BOOTSTRAP_IGNITION: _bootstrap_ignition,
    }


class FileAssetStore:
    """Asset store backed by the install directory."""

    def __init__(self, directory: Path, generators: Optional[dict[str, Generator]] = None):
        """Initialize the store.

        Args:
            directory: Install directory holding assets and store state
            generators: Extra or overriding generators keyed by asset name
        """
        self.directory = Path(directory)
        self._generators = default_generators()
        self._generators.update(generators or {})

    @property
    def state_file(self) -> Path:
        return self.directory / STATE_DIR / STATE_FILENAME

    def _load_state(self) -> dict:
        if not self.state_file.exists():
            return {}
        try:
            with open(self.state_file, encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AssetError(f"failed to read asset state {self.state_file}: {e}") from e

    def _save_state(self, state: dict) -> None:
        data = json.dumps(state, indent=2, sort_keys=True).encode('utf-8')
        write_file_atomic(self.state_file, data)

    def _load_cached(self, name: str, entry: dict) -> Optional[Asset]:
        """Return the cached asset, or None if its files are gone or changed."""
        files = []
        for filename in entry.get('files', []):
            path = self.directory / filename
            if not path.exists():
                logger.debug(f"Cached file {path} for '{name}' is missing")
                return None
            files.append(AssetFile(filename, path.read_bytes()))

        asset = Asset(name, files)
        if asset.digest() != entry.get('sha256'):
            logger.warning(f"Asset '{name}' was modified on disk, regenerating")
            return None
        return asset

    def fetch(self, name: str) -> Asset:
        """Return the asset, generating and persisting it when not cached.

        Raises:
            AssetError: Unknown asset, generator failure, or I/O failure
        """
        generator = self._generators.get(name)
        if generator is None:
            raise AssetError(f"failed to fetch {name}: no generator registered")

        try:
            state = self._load_state()
            if name in state:
                cached = self._load_cached(name, state[name])
                if cached is not None:
                    logger.debug(f"Using cached asset '{name}'")
                    return cached

            logger.info(f"Generating asset '{name}'")
            asset = Asset(name, generator(self.directory))
            for f in asset.files:
                write_file_atomic(self.directory / f.filename, f.data)

            state[name] = {
                'files': [f.filename for f in asset.files],
                'sha256': asset.digest(),
            }
            self._save_state(state)
            return asset
        except AssetError:
            raise
        except (OSError, ValueError) as e:
            raise AssetError(f"failed to fetch {name}: {e}") from e

    def destroy(self, name: str) -> None:
        """Remove an asset's files and state entry. Unknown assets are a no-op.

        Raises:
            AssetError: If files or state cannot be removed
        """
        try:
            state = self._load_state()
            entry = state.pop(name, None)
            if entry is None:
                logger.debug(f"Asset '{name}' not in store, nothing to destroy")
                return

            for filename in entry.get('files', []):
                path = self.directory / filename
                if path.exists():
                    path.unlink()
                    logger.debug(f"Removed {path}")

            self._save_state(state)
            logger.info(f"Destroyed asset '{name}'")
        except AssetError:
            raise
        except OSError as e:
            raise AssetError(f"failed to destroy {name}: {e}") from e
