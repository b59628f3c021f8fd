"""
Content-addressed asset directory.

Assets are stored flat under the configured root by file name. A name
collision with identical content reuses the stored file; a collision with
different content first looks for an earlier renamed copy with the same
content, and only then gets a fresh, unique name.
"""

import logging
import os
import random
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from ..core.exceptions import AssetIOFailure, PathEscape
from .hashing import compute_file_hash


logger = logging.getLogger(__name__)


def safe_join(root: Path, relative_path: str) -> Path:
    """
    Resolve a bundle-relative path under root.

    Args:
        root: Directory the result must stay inside
        relative_path: Forward- or back-slash separated relative path

    Returns:
        Absolute path inside root

    Raises:
        PathEscape: If the path is absolute or climbs out of root
    """
    normalized = str(relative_path).replace("\\", "/")
    pure = PurePosixPath(normalized)
    if pure.is_absolute() or (pure.parts and pure.parts[0].endswith(":")):
        raise PathEscape(
            f"Absolute asset path rejected: {relative_path}",
            asset_path=str(relative_path),
            root=str(root),
        )

    root_resolved = Path(root).resolve()
    candidate = (root_resolved / Path(*pure.parts)).resolve() if pure.parts else root_resolved
    try:
        candidate.relative_to(root_resolved)
    except ValueError:
        raise PathEscape(
            f"Asset path escapes {root_resolved}: {relative_path}",
            asset_path=str(relative_path),
            root=str(root_resolved),
        ) from None
    return candidate


def resolve_bundle_asset(assets_dir: Path, relative_path: str) -> Optional[Path]:
    """
    Find an asset inside an extracted bundle.

    Tries the structured path first, then just the file name, since bundles
    may have been repacked with a flatter layout.

    Returns:
        Path to the file, or None if neither location exists

    Raises:
        PathEscape: If the path would leave the bundle's asset directory
    """
    candidate = safe_join(assets_dir, relative_path)
    if candidate.is_file():
        return candidate

    file_name = PurePosixPath(str(relative_path).replace("\\", "/")).name
    if file_name:
        candidate = safe_join(assets_dir, file_name)
        if candidate.is_file():
            return candidate
    return None


@dataclass
class StoredAsset:
    """Outcome of placing one asset into the store."""
    relative_path: str
    copied: bool


class AssetStore:
    """
    Filesystem store for inventory and project attachments.

    Layout:
    {root}/
    ├── datasheet.pdf
    ├── example_resistor.png
    └── 1718000000000_417_datasheet.pdf   # renamed on content collision

    Example:
        >>> store = AssetStore(Path("local/vault/assets"))
        >>> stored = store.import_asset(Path("/tmp/x/assets/a.png"), "a.png")
        >>> store.locate(stored.relative_path)
    """

    def __init__(self, root: Union[str, Path], create_dirs: bool = True):
        """
        Initialize the asset store.

        Args:
            root: Asset root directory
            create_dirs: Whether to create the root automatically
        """
        self.root = Path(root)
        if create_dirs:
            self.root.mkdir(parents=True, exist_ok=True)

    def locate(self, relative_path: str) -> Path:
        """
        Resolve a stored asset path to an absolute path.

        Raises:
            PathEscape: If the path would leave the asset root
        """
        return safe_join(self.root, relative_path)

    def import_asset(self, source: Path, preferred_name: str) -> StoredAsset:
        """
        Copy a file into the store, deduplicating by name collision.

        - preferred name free: copy as-is
        - preferred name taken, same content: reuse, nothing copied
        - preferred name taken, different content: reuse an earlier renamed
          copy with the same content, else copy under a unique name

        Args:
            source: Absolute path of the file to import
            preferred_name: Desired stored name (only the basename is used)

        Returns:
            StoredAsset with the stored relative path

        Raises:
            AssetIOFailure: If the source is missing or the copy fails
        """
        source = Path(source)
        if not source.is_file():
            raise AssetIOFailure(f"Asset source not found: {source}", asset_path=str(source))

        file_name = PurePosixPath(str(preferred_name).replace("\\", "/")).name
        if not file_name or file_name in (".", ".."):
            raise AssetIOFailure(
                f"Unusable asset name: {preferred_name!r}", asset_path=str(source)
            )

        destination = self.locate(file_name)
        if destination.exists():
            src_hash = compute_file_hash(source)
            local_hash = compute_file_hash(destination)
            if src_hash and local_hash and src_hash == local_hash:
                logger.debug(f"Asset already stored with identical content: {file_name}")
                return StoredAsset(relative_path=file_name, copied=False)

            renamed = self._find_renamed_copy(file_name, src_hash)
            if renamed is not None:
                logger.debug(f"Asset already stored under renamed copy: {renamed}")
                return StoredAsset(relative_path=renamed, copied=False)

            file_name = self._unique_name(file_name)
            destination = self.locate(file_name)
            logger.debug(f"Asset name collision, storing as: {file_name}")

        self._copy(source, destination)
        return StoredAsset(relative_path=file_name, copied=True)

    def remove(self, relative_path: str) -> None:
        """Delete a stored asset if present."""
        path = self.locate(relative_path)
        try:
            path.unlink()
            logger.debug(f"Removed asset: {relative_path}")
        except FileNotFoundError:
            pass

    def _find_renamed_copy(self, file_name: str, digest: str) -> Optional[str]:
        """Find an earlier collision rename of file_name holding this digest."""
        if not digest:
            return None

        pattern = re.compile(r"^\d+_\d+_" + re.escape(file_name) + r"$")
        for candidate in sorted(self.root.iterdir()):
            if not pattern.match(candidate.name) or not candidate.is_file():
                continue
            if compute_file_hash(candidate) == digest:
                return candidate.name
        return None

    def _unique_name(self, file_name: str) -> str:
        """Build a timestamp + random suffix name that is not taken yet."""
        pure = PurePosixPath(file_name)
        stem, ext = pure.stem, pure.suffix
        while True:
            candidate = f"{int(time.time() * 1000)}_{random.randint(0, 999)}_{stem}{ext}"
            if not (self.root / candidate).exists():
                return candidate

    def _copy(self, source: Path, destination: Path) -> None:
        """Copy via a temporary sibling so a crash never leaves a torn file."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".partial")
        try:
            shutil.copyfile(source, partial)
            os.replace(partial, destination)
        except OSError as e:
            if partial.exists():
                partial.unlink()
            raise AssetIOFailure(
                f"Failed to copy asset {source} -> {destination}: {e}",
                asset_path=str(source),
            ) from e
        logger.debug(f"Copied asset: {source.name} -> {destination.name}")
