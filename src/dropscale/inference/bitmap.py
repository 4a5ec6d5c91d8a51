"""
Dropscale - Bitmap

Immutable in-memory image handed between the shell and the inference engine.
"""

from typing import Optional, Tuple

import numpy as np
from PIL import Image

from .errors import InvalidImage

SUPPORTED_PIXEL_FORMATS = ('L', 'RGB', 'RGBA')

_CHANNELS = {'L': 1, 'RGB': 3, 'RGBA': 4}

# Pillow modes that can be losslessly widened to a supported format
_PIL_CONVERSIONS = {
    '1': 'L',
    'LA': 'RGBA',
    'La': 'RGBA',
    'PA': 'RGBA',
    'RGBa': 'RGBA',
    'RGBX': 'RGB',
    'CMYK': 'RGB',
    'YCbCr': 'RGB',
    'LAB': 'RGB',
    'HSV': 'RGB',
}


class Bitmap:
    """
    A decoded image: a grid of 8-bit pixels plus its pixel format.

    The pixel buffer is a private, read-only copy, so a Bitmap can be passed
    around freely without anyone mutating it behind the holder's back.
    """

    __slots__ = ('_pixels', '_pixel_format')

    def __init__(self, pixels: np.ndarray, pixel_format: str):
        pixels = np.array(pixels, copy=True)
        pixels.flags.writeable = False
        self._pixels = pixels
        self._pixel_format = pixel_format

    @classmethod
    def from_array(cls, array: np.ndarray, pixel_format: Optional[str] = None) -> 'Bitmap':
        """Copy a HxW or HxWxC array into a bitmap."""
        array = np.asarray(array)
        if pixel_format is None:
            if array.ndim == 2:
                pixel_format = 'L'
            elif array.ndim == 3 and array.shape[2] == 3:
                pixel_format = 'RGB'
            elif array.ndim == 3 and array.shape[2] == 4:
                pixel_format = 'RGBA'
            else:
                raise InvalidImage(f"Unsupported pixel layout: {array.shape}")
        return cls(array, pixel_format)

    @classmethod
    def from_pil(cls, image: Image.Image) -> 'Bitmap':
        """Copy a decoded PIL image, widening its mode where needed."""
        mode = image.mode
        if mode == 'P':
            image = image.convert('RGBA' if 'transparency' in image.info else 'RGB')
        elif mode in _PIL_CONVERSIONS:
            image = image.convert(_PIL_CONVERSIONS[mode])
        elif mode not in SUPPORTED_PIXEL_FORMATS:
            raise InvalidImage(f"Unsupported image mode: {mode}")

        return cls(np.asarray(image), image.mode)

    def to_pil(self) -> Image.Image:
        """Return a new PIL image with the same pixels."""
        return Image.fromarray(np.array(self._pixels))

    @property
    def pixels(self) -> np.ndarray:
        """Read-only view of the pixel buffer."""
        return self._pixels

    @property
    def pixel_format(self) -> str:
        return self._pixel_format

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1]) if self._pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0]) if self._pixels.ndim >= 1 else 0

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def channels(self) -> int:
        return 1 if self._pixels.ndim == 2 else int(self._pixels.shape[-1])

    @property
    def has_alpha(self) -> bool:
        return self._pixel_format == 'RGBA'

    @property
    def nbytes(self) -> int:
        return int(self._pixels.nbytes)

    def tobytes(self) -> bytes:
        return self._pixels.tobytes()

    def is_well_formed(self) -> bool:
        """Check that the buffer layout matches the declared pixel format."""
        if self._pixel_format not in SUPPORTED_PIXEL_FORMATS:
            return False
        if self._pixels.dtype != np.uint8:
            return False
        expected = _CHANNELS[self._pixel_format]
        if expected == 1:
            return self._pixels.ndim == 2
        return self._pixels.ndim == 3 and self._pixels.shape[2] == expected

    def __eq__(self, other):
        if not isinstance(other, Bitmap):
            return NotImplemented
        return (
            self._pixel_format == other._pixel_format
            and np.array_equal(self._pixels, other._pixels)
        )

    def __repr__(self):
        return f"Bitmap({self.width}x{self.height}, {self._pixel_format})"
