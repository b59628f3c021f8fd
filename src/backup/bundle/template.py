"""
Sample bundle generator.

Writes a small, importable bundle that shows operators the expected layout:
one inventory item, one project, one link between them and a handful of
placeholder attachments.
"""

import base64
import logging
from pathlib import Path
from typing import Dict

from ..core.models import BundleMetadata, InventoryRecord, ProjectLink, ProjectRecord
from .codec import BundleCodec


logger = logging.getLogger(__name__)

# 1x1 transparent PNG
_PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+P+/HgAFhAJ/wlseKgAAAABJRU5ErkJggg=="
)

TEMPLATE_INVENTORY_ID = 1001
TEMPLATE_PROJECT_ID = 2001


def build_template_metadata() -> BundleMetadata:
    """Build the sample records."""
    resistor = InventoryRecord(
        id=TEMPLATE_INVENTORY_ID,
        category="Resistor",
        name="Example Resistor",
        value="10k 1%",
        package="0805",
        quantity=500,
        location="Box-A-01",
        min_stock=50,
        image_paths=["example_resistor.png"],
        datasheet_paths=["datasheet.pdf"],
    )
    project = ProjectRecord(
        id=TEMPLATE_PROJECT_ID,
        name="Demo Project (LED Blinker)",
        description="This is a sample project to show how import works.",
        files=["schematic.pdf", "design_draft.png", "requirements.docx"],
    )
    return BundleMetadata.create(
        inventory=[resistor],
        projects=[project],
        project_links=[
            ProjectLink(
                project_id=TEMPLATE_PROJECT_ID,
                inventory_id=TEMPLATE_INVENTORY_ID,
                quantity=2,
            )
        ],
    )


def template_assets() -> Dict[str, bytes]:
    return {
        "example_resistor.png": _PLACEHOLDER_PNG,
        "design_draft.png": _PLACEHOLDER_PNG,
        "datasheet.pdf": b"Dummy PDF Content",
        "schematic.pdf": b"Dummy Schematic",
        "requirements.docx": b"Dummy Word Doc",
    }


def generate_template_bundle(output_path: Path, codec: BundleCodec) -> Path:
    """
    Write the sample bundle.

    Args:
        output_path: Destination archive path
        codec: Codec used to pack the archive

    Returns:
        Path to the written archive
    """
    metadata = build_template_metadata()
    path = codec.write(Path(output_path), metadata, template_assets())
    logger.info(f"Template bundle written to {path}")
    return path
