"""Dropscale - Utilities Module"""

from .image_io import load_image, save_image, JPEG_QUALITY

__all__ = [
    'load_image',
    'save_image',
    'JPEG_QUALITY'
]
