"""llamart/imaging.py

Image pre-processing for the multimodal backend.

The backend takes planar RGB bytes: every red sample, then every green
sample, then every blue sample, each plane row-major. Images are resized
to a fixed width (aspect preserved) before the planes are extracted.
"""

from __future__ import annotations

# Standard Library
import io
import logging
from dataclasses import dataclass
from pathlib import Path

# Third-Party Libraries
import numpy as np
from PIL import Image, UnidentifiedImageError

# Local Modules
from llamart.errors import ImageError, SelectionError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_WIDTH: int = 336

# Area sampling.
RESAMPLE = Image.Resampling.BOX


@dataclass(frozen=True)
class PlanarRGBImage:
    """Planar RGB pixels: R plane, then G plane, then B plane."""

    width: int
    height: int
    planes: bytes

    def __post_init__(self) -> None:
        expected = 3 * self.width * self.height
        if len(self.planes) != expected:
            raise ValueError(
                f"Planar buffer holds {len(self.planes)} bytes, expected {expected} "
                f"for {self.width}x{self.height}"
            )

    def plane(self, index: int) -> bytes:
        """Return one channel plane (0=R, 1=G, 2=B)."""
        size = self.width * self.height
        return self.planes[index * size : (index + 1) * size]

    def to_pil(self) -> Image.Image:
        """Re-interleave into an RGB Pillow image."""
        pixels = np.frombuffer(self.planes, dtype=np.uint8).reshape(3, self.height, self.width)
        return Image.fromarray(np.ascontiguousarray(pixels.transpose(1, 2, 0)))

    def to_png(self) -> bytes:
        out_io = io.BytesIO()
        self.to_pil().save(out_io, format="PNG")
        return out_io.getvalue()


def open_image(path: str | Path) -> Image.Image:
    """Open a user-selected image file.

    Args:
        path: Location of the chosen file.

    Returns:
        The decoded Pillow image.

    Raises:
        SelectionError: If no path was given or the file cannot be read as an image.
    """
    if not str(path).strip():
        raise SelectionError("Failed to select a file: no file chosen")

    source = Path(path)
    try:
        image = Image.open(source)
        image.load()
    except (OSError, UnidentifiedImageError) as exc:
        raise SelectionError(f"Failed to select a file: {exc}") from exc
    return image


def prepare_image(source: Image.Image | bytes, target_width: int = DEFAULT_IMAGE_WIDTH) -> PlanarRGBImage:
    """Resize a bitmap to ``target_width`` and extract planar RGB bytes.

    The height is ``target_width * source_height / source_width`` rounded to
    the nearest pixel. The alpha channel, if any, is discarded.

    Args:
        source: A Pillow image, or encoded image bytes.
        target_width: Output width in pixels.

    Returns:
        PlanarRGBImage with ``3 * width * height`` bytes.

    Raises:
        ImageError: If the source has no decodable pixel buffer.
    """
    if target_width <= 0:
        raise ValueError(f"target_width must be positive, got {target_width}")

    if isinstance(source, (bytes, bytearray)):
        try:
            source = Image.open(io.BytesIO(source))
            source.load()
        except (OSError, UnidentifiedImageError) as exc:
            raise ImageError("Decoded bytes are not a supported image format") from exc

    src_width, src_height = source.size
    if src_width <= 0 or src_height <= 0:
        raise ImageError(f"Image has no pixels ({src_width}x{src_height})")

    target_height = max(1, round(target_width * src_height / src_width))
    try:
        resized = source.convert("RGBA").resize((target_width, target_height), RESAMPLE)
    except (OSError, ValueError) as exc:
        raise ImageError(f"Image pixel buffer could not be decoded: {exc}") from exc

    rgba = np.asarray(resized, dtype=np.uint8)
    planes = np.ascontiguousarray(rgba[..., :3].transpose(2, 0, 1)).tobytes()

    logger.debug(
        "Prepared image %dx%d -> %dx%d planar RGB",
        src_width,
        src_height,
        target_width,
        target_height,
    )
    return PlanarRGBImage(width=target_width, height=target_height, planes=planes)
