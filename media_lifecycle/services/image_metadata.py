"""Image metadata extraction."""

import io
from typing import Any, Dict

from PIL import Image


class ImageMetadataError(Exception):
    """Exception for image metadata extraction errors."""

    pass


def extract_image_metadata(image_bytes: bytes) -> Dict[str, Any]:
    """Extract metadata from image bytes.

    Args:
        image_bytes: Image content as bytes

    Returns:
        Dict with metadata:
            - width: Image width in pixels
            - height: Image height in pixels
            - format: Lowercase image format (png, jpeg, etc)
            - mode: Color mode (RGB, RGBA, etc)
            - size_bytes: File size in bytes

    Raises:
        ImageMetadataError: If image cannot be opened

    Examples:
        >>> metadata = extract_image_metadata(png_bytes)
        >>> metadata["format"]
        'png'
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        return {
            "width": img.width,
            "height": img.height,
            "format": img.format.lower() if img.format else None,
            "mode": img.mode,
            "size_bytes": len(image_bytes),
        }
    except Exception as e:
        raise ImageMetadataError(f"Failed to extract image metadata: {e}")


def describe_content(content: bytes) -> Dict[str, Any]:
    """Best-effort descriptive metadata for any uploaded blob.

    Non-image content still gets its byte size; dimensions and format are None.
    """
    try:
        metadata = extract_image_metadata(content)
    except ImageMetadataError:
        return {"width": None, "height": None, "format": None, "size_bytes": len(content)}
    return {
        "width": metadata["width"],
        "height": metadata["height"],
        "format": metadata["format"],
        "size_bytes": metadata["size_bytes"],
    }
