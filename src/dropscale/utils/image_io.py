"""
Dropscale - Image File I/O

Decoding of user-supplied image files and encoding of results.
"""

import logging
from pathlib import Path
from typing import Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ..inference.bitmap import Bitmap
from ..inference.errors import InvalidImage

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90

OUTPUT_FORMATS = {
    '.png': 'PNG',
    '.jpg': 'JPEG',
    '.jpeg': 'JPEG',
}


def load_image(path: Union[str, Path]) -> Bitmap:
    """
    Decode an image file into a bitmap.

    Raises:
        InvalidImage: the file is missing or is not a decodable image
    """
    path = Path(path)
    if not path.is_file():
        raise InvalidImage(f"Image file not found: {path.name}")

    try:
        with Image.open(path) as image:
            image = ImageOps.exif_transpose(image)
            image.load()
            bitmap = Bitmap.from_pil(image)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise InvalidImage(f"Could not decode image {path.name}: {e}") from e

    logger.debug(f"📂 Loaded {path.name}: {bitmap}")
    return bitmap


def save_image(bitmap: Bitmap, path: Union[str, Path], quality: int = JPEG_QUALITY) -> Path:
    """
    Encode a bitmap to PNG (lossless) or JPEG, chosen by file extension.

    Returns:
        Path: The written file
    """
    save_path = Path(path)
    image_format = OUTPUT_FORMATS.get(save_path.suffix.lower())
    if image_format is None:
        raise ValueError(f"Unsupported output format: {save_path.suffix or '(none)'}")

    save_path.parent.mkdir(parents=True, exist_ok=True)
    image = bitmap.to_pil()

    save_kwargs = {}
    if image_format == 'JPEG':
        if image.mode == 'RGBA':
            # JPEG has no alpha channel
            background = Image.new('RGB', image.size, (255, 255, 255))
            background.paste(image, mask=image.getchannel('A'))
            image = background
        save_kwargs['quality'] = quality
        save_kwargs['optimize'] = True

    image.save(str(save_path), format=image_format, **save_kwargs)
    logger.info(f"💾 Saved: {save_path}")
    return save_path
