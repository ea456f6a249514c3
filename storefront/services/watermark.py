"""
Watermark compositor.

Turns an uploaded original into a smaller, visibly marked JPEG preview.
Rendering is a pure function of (input bytes, options): the same input always
produces the same output bytes.
"""
import logging
import math
import os
import uuid
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from storefront.config import Settings
from storefront.exceptions import ImageProcessingError

logger = logging.getLogger("storefront.watermark")

# Banner layout: share of the preview canvas
BANNER_WIDTH_RATIO = 0.95
BANNER_HEIGHT_RATIO = 0.12
BANNER_TOP_RATIO = 0.60
BANNER_FILL = (0, 0, 0, 204)  # 80% black

# Diagonal layout
TILE_WIDTH_RATIO = 0.25
TILE_HEIGHT_RATIO = 0.06
TILE_MIN_WIDTH = 96
TILE_MIN_HEIGHT = 24
TILE_ANGLE = 45
TILE_TEXT_FILL = (255, 255, 255, 110)

TEXT_FILL = (255, 255, 255, 255)
MIN_FONT_SIZE = 8


class WatermarkLayout(str, Enum):
    BANNER = "banner"
    DIAGONAL = "diagonal"


@dataclass(frozen=True)
class PreviewOptions:
    """Everything that influences the rendered preview."""

    text: str = "WaterMarked Preview"
    subtext: str = "PREVIEW ONLY"
    layout: WatermarkLayout = WatermarkLayout.BANNER
    max_width: int = 1200
    max_height: int = 1200
    quality: int = 80

    @classmethod
    def from_settings(cls, settings: Settings) -> "PreviewOptions":
        return cls(
            text=settings.watermark_text,
            subtext=settings.watermark_subtext,
            layout=WatermarkLayout(settings.watermark_layout),
            max_width=settings.preview_max_width,
            max_height=settings.preview_max_height,
            quality=settings.preview_quality,
        )


@dataclass(frozen=True)
class BannerGeometry:
    width: int
    height: int
    left: int
    top: int


@dataclass(frozen=True)
class TileGeometry:
    width: int
    height: int
    gap: int


def fit_within(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """
    Fit ``width`` x ``height`` inside the box without distortion or upscaling.
    """
    if width <= 0 or height <= 0:
        raise ImageProcessingError(f"invalid image dimensions {width}x{height}")
    scale = min(max_width / width, max_height / height, 1.0)
    return max(1, round(width * scale)), max(1, round(height * scale))


def _check_overlay(kind: str, overlay_w: int, overlay_h: int, canvas_w: int, canvas_h: int) -> None:
    if overlay_w < 1 or overlay_h < 1:
        raise ImageProcessingError(
            f"image {canvas_w}x{canvas_h} too small for a {kind} watermark"
        )
    if overlay_w >= canvas_w or overlay_h >= canvas_h:
        raise ImageProcessingError(
            f"watermark too large: {overlay_w}x{overlay_h} vs image {canvas_w}x{canvas_h}"
        )


def banner_geometry(width: int, height: int) -> BannerGeometry:
    """Banner size and position for a ``width`` x ``height`` canvas."""
    banner_w = math.floor(width * BANNER_WIDTH_RATIO)
    banner_h = math.floor(height * BANNER_HEIGHT_RATIO)
    _check_overlay("banner", banner_w, banner_h, width, height)
    return BannerGeometry(
        width=banner_w,
        height=banner_h,
        left=(width - banner_w) // 2,
        top=math.floor(height * BANNER_TOP_RATIO),
    )


def tile_geometry(width: int, height: int) -> TileGeometry:
    """Size of one diagonal text tile, with a legibility floor for small images."""
    tile_w = max(math.floor(width * TILE_WIDTH_RATIO), TILE_MIN_WIDTH)
    tile_h = max(math.floor(height * TILE_HEIGHT_RATIO), TILE_MIN_HEIGHT)
    _check_overlay("diagonal", tile_w, tile_h, width, height)
    return TileGeometry(width=tile_w, height=tile_h, gap=max(tile_h, tile_w // 4))


@lru_cache(maxsize=64)
def _font(size: int) -> ImageFont.ImageFont:
    return ImageFont.load_default(size=size)


def _text_size(draw: ImageDraw.ImageDraw, text: str, font) -> Tuple[int, int, int, int]:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    return left, top, right - left, bottom - top


def _fit_font(draw: ImageDraw.ImageDraw, text: str, max_width: int, size: int):
    """Largest font (starting at ``size``) whose rendering of ``text`` fits ``max_width``."""
    size = max(size, MIN_FONT_SIZE)
    while size > MIN_FONT_SIZE:
        font = _font(size)
        if _text_size(draw, text, font)[2] <= max_width:
            return font
        size = int(size * 0.85)
    return _font(MIN_FONT_SIZE)


def _draw_centered(draw, text: str, font, box_left: int, box_width: int, center_y: float, fill) -> None:
    off_x, off_y, text_w, text_h = _text_size(draw, text, font)
    x = box_left + (box_width - text_w) / 2 - off_x
    y = center_y - text_h / 2 - off_y
    draw.text((x, y), text, font=font, fill=fill)


def _draw_banner(canvas: Image.Image, options: PreviewOptions) -> Image.Image:
    geo = banner_geometry(*canvas.size)
    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    draw.rectangle(
        (geo.left, geo.top, geo.left + geo.width - 1, geo.top + geo.height - 1),
        fill=BANNER_FILL,
    )

    padding = max(2, geo.width // 40)
    text_width = geo.width - 2 * padding
    primary = _fit_font(draw, options.text, text_width, int(geo.height * 0.42))
    _draw_centered(draw, options.text, primary, geo.left, geo.width,
                   geo.top + geo.height * 0.40, TEXT_FILL)
    if options.subtext:
        secondary = _fit_font(draw, options.subtext, text_width, int(geo.height * 0.24))
        _draw_centered(draw, options.subtext, secondary, geo.left, geo.width,
                       geo.top + geo.height * 0.78, TEXT_FILL)
    return Image.alpha_composite(canvas, overlay)


def _draw_diagonal(canvas: Image.Image, options: PreviewOptions) -> Image.Image:
    geo = tile_geometry(*canvas.size)
    tile = Image.new("RGBA", (geo.width, geo.height), (0, 0, 0, 0))
    tile_draw = ImageDraw.Draw(tile)
    font = _fit_font(tile_draw, options.text, geo.width - 4, int(geo.height * 0.8))
    _draw_centered(tile_draw, options.text, font, 0, geo.width, geo.height / 2, TILE_TEXT_FILL)
    rotated = tile.rotate(TILE_ANGLE, resample=Image.Resampling.BICUBIC, expand=True)

    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    step_x = rotated.width + geo.gap
    step_y = rotated.height // 2 + geo.gap
    width, height = canvas.size
    row = 0
    for y in range(-rotated.height // 2, height, step_y):
        # stagger every other row by half a step
        shift = (step_x // 2) if row % 2 else 0
        for x in range(-rotated.width // 2 - shift, width, step_x):
            overlay.paste(rotated, (x, y), rotated)
        row += 1
    return Image.alpha_composite(canvas, overlay)


def _decode(data: bytes, source: Optional[str]) -> Image.Image:
    try:
        image = Image.open(BytesIO(data))
        image.load()
        image = ImageOps.exif_transpose(image)
        return image.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise ImageProcessingError(f"cannot decode image ({e})", source=source) from e


def render_preview(
    data: bytes,
    options: PreviewOptions = PreviewOptions(),
    source: Optional[str] = None,
) -> bytes:
    """
    Render a watermarked preview of ``data`` and return the JPEG bytes.

    Args:
        data: Original image bytes (any format Pillow can read)
        options: Text, layout, target box and JPEG quality
        source: Identifier of the input, used in error messages

    Raises:
        ImageProcessingError: undecodable input, watermark that would not fit
            strictly inside the preview, or encoder failure
    """
    if not data:
        raise ImageProcessingError("empty input", source=source)

    image = _decode(data, source)
    # Geometry is validated before any pixel work or file write
    try:
        target = fit_within(image.width, image.height, options.max_width, options.max_height)
        if options.layout is WatermarkLayout.DIAGONAL:
            tile_geometry(*target)
        else:
            banner_geometry(*target)
    except ImageProcessingError as e:
        raise ImageProcessingError(e.reason, source=source) from e

    if image.size != target:
        image = image.resize(target, Image.Resampling.LANCZOS)

    if options.layout is WatermarkLayout.DIAGONAL:
        composed = _draw_diagonal(image, options)
    else:
        composed = _draw_banner(image, options)

    out = BytesIO()
    try:
        composed.convert("RGB").save(out, format="JPEG", quality=options.quality)
    except (OSError, ValueError) as e:
        raise ImageProcessingError(f"cannot encode preview ({e})", source=source) from e
    return out.getvalue()


def write_preview(
    data: bytes,
    destination: Path,
    options: PreviewOptions = PreviewOptions(),
    source: Optional[str] = None,
) -> Path:
    """
    Render a preview and write it to ``destination``.

    Nothing is written when rendering fails. The preview is written to a
    temporary file beside ``destination`` and moved into place, so an existing
    preview is only ever replaced by a complete one.
    """
    preview = render_preview(data, options, source=source)
    temporary = destination.with_name(f".{destination.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        temporary.write_bytes(preview)
        os.replace(temporary, destination)
    except OSError as e:
        temporary.unlink(missing_ok=True)
        raise ImageProcessingError(f"cannot write preview to {destination} ({e})", source=source) from e
    logger.debug(
        "Preview written",
        extra={"event": "watermark", "source": source, "bytes": len(preview)},
    )
    return destination
