"""
Bundle archive codec.

A bundle is a zip container holding meta.json at the top level and the
referenced attachments under assets/, mirroring their relative paths.
"""

import json
import logging
import os
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Mapping, Union

from ..core.exceptions import InvalidBundle
from ..core.models import DEFAULT_MIN_STOCK, BundleMetadata


logger = logging.getLogger(__name__)

META_FILENAME = "meta.json"
ASSETS_DIRNAME = "assets"

AssetSource = Union[Path, bytes]


class BundleCodec:
    """
    Packs and unpacks bundle archives.

    Writes are atomic: the archive is built in a temporary file next to the
    destination and renamed into place only after it is complete.
    """

    def __init__(self, default_min_stock: int = DEFAULT_MIN_STOCK):
        """
        Initialize the codec.

        Args:
            default_min_stock: min_stock used for records that omit it
        """
        self.default_min_stock = default_min_stock

    def write(
        self,
        output_path: Path,
        metadata: BundleMetadata,
        assets: Mapping[str, AssetSource],
    ) -> Path:
        """
        Pack metadata and assets into an archive.

        Args:
            output_path: Destination archive path
            metadata: Document stored as meta.json
            assets: Relative asset path -> source file path or raw bytes.
                    Each key is packed once under assets/.

        Returns:
            Path to the created archive
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Packing bundle to {output_path} ({len(assets)} assets)")

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{output_path.name}.", suffix=".partial", dir=output_path.parent
        )
        os.close(fd)
        temp_path = Path(temp_name)

        try:
            with zipfile.ZipFile(temp_path, "w", zipfile.ZIP_DEFLATED) as zf:
                written = set()
                for relative_path, source in sorted(assets.items()):
                    arcname = f"{ASSETS_DIRNAME}/{_normalize_arcname(relative_path)}"
                    if arcname in written:
                        logger.debug(f"  Skipped duplicate member {arcname} for {relative_path}")
                        continue
                    written.add(arcname)
                    if isinstance(source, (bytes, bytearray)):
                        zf.writestr(arcname, bytes(source))
                    else:
                        zf.write(source, arcname)
                    logger.debug(f"  Added: {arcname}")

                zf.writestr(
                    META_FILENAME,
                    json.dumps(metadata.to_dict(), indent=2, ensure_ascii=False).encode("utf-8"),
                )

            os.replace(temp_path, output_path)
        except BaseException:
            if temp_path.exists():
                temp_path.unlink()
            raise

        logger.info(f"Created bundle: {output_path} ({output_path.stat().st_size} bytes)")
        return output_path

    def read(self, archive_path: Path, extract_dir: Path) -> Path:
        """
        Extract an archive and locate its effective root.

        The root is extract_dir itself when meta.json sits at the top, or
        its single subdirectory when the archive was zipped with a wrapper
        folder.

        Args:
            archive_path: Archive to extract
            extract_dir: Empty directory to extract into

        Returns:
            Directory containing meta.json

        Raises:
            InvalidBundle: If the archive is unreadable or has no meta.json
        """
        archive_path = Path(archive_path)
        extract_dir = Path(extract_dir)
        extract_dir.mkdir(parents=True, exist_ok=True)

        if not archive_path.is_file():
            raise InvalidBundle(f"Archive not found: {archive_path}", str(archive_path))

        logger.info(f"Unpacking {archive_path} to {extract_dir}")

        try:
            with zipfile.ZipFile(archive_path, "r") as zf:
                _check_members(zf, archive_path)
                zf.extractall(extract_dir)
        except zipfile.BadZipFile as e:
            raise InvalidBundle(f"Not a zip archive: {archive_path}", str(archive_path)) from e

        root = find_bundle_root(extract_dir)
        if root is None:
            raise InvalidBundle(
                f"Invalid bundle: missing {META_FILENAME} in {archive_path.name}",
                str(archive_path),
            )
        return root

    def read_metadata(self, working_dir: Path) -> BundleMetadata:
        """
        Load meta.json from an extracted bundle root.

        Raises:
            InvalidBundle: If meta.json is missing, not JSON, or not an object
        """
        meta_path = Path(working_dir) / META_FILENAME
        if not meta_path.is_file():
            raise InvalidBundle(f"Invalid bundle: missing {META_FILENAME}")

        try:
            with open(meta_path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise InvalidBundle(f"Unreadable {META_FILENAME}: {e}") from e

        if not isinstance(data, dict):
            raise InvalidBundle(f"{META_FILENAME} must contain a JSON object")

        metadata = BundleMetadata.from_dict(data, self.default_min_stock)
        logger.info(
            f"Loaded bundle metadata v{metadata.version}: "
            f"{len(metadata.inventory)} inventory, {len(metadata.projects)} projects, "
            f"{len(metadata.project_links)} links"
        )
        return metadata


def find_bundle_root(extract_dir: Path):
    """
    Return the directory holding meta.json, allowing one wrapper folder.

    Returns:
        Path, or None if no meta.json is found
    """
    extract_dir = Path(extract_dir)
    if (extract_dir / META_FILENAME).is_file():
        return extract_dir

    subdirs = [p for p in extract_dir.iterdir() if p.is_dir()]
    if len(subdirs) == 1 and (subdirs[0] / META_FILENAME).is_file():
        logger.debug(f"Using wrapper folder as bundle root: {subdirs[0].name}")
        return subdirs[0]

    return None


def _normalize_arcname(relative_path: str) -> str:
    parts = [p for p in PurePosixPath(str(relative_path).replace("\\", "/")).parts
             if p not in ("", ".", "..", "/")]
    return "/".join(parts)


def _check_members(zf: zipfile.ZipFile, archive_path: Path) -> None:
    """Reject member names that would extract outside the target directory."""
    for name in zf.namelist():
        normalized = name.replace("\\", "/")
        if normalized.startswith("/") or ".." in PurePosixPath(normalized).parts:
            raise InvalidBundle(
                f"Archive member escapes extraction directory: {name}",
                str(archive_path),
            )
