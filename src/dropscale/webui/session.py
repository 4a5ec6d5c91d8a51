"""
Dropscale - Upscale Session

UI state for one user: the selected image, the upscaled result, the busy
flag and the last error. Front ends render this state and forward user
actions to it.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..inference.bitmap import Bitmap
from ..inference.errors import PipelineError
from ..inference.upscaler import InferenceEngine
from ..utils.image_io import load_image, save_image

logger = logging.getLogger(__name__)

MIN_SCALE = 1.0
MAX_SCALE = 4.0
SCALE_STEP = 0.5
DEFAULT_SCALE = 2.0


def clamp_scale(value: float) -> float:
    """Clamp a scale factor to the slider range and snap it to the step."""
    value = min(MAX_SCALE, max(MIN_SCALE, float(value)))
    return round(value / SCALE_STEP) * SCALE_STEP


class UpscaleSession:
    """State of a single upscaling session."""

    def __init__(self, engine: InferenceEngine):
        self.engine = engine
        self.input_image: Optional[Bitmap] = None
        self.output_image: Optional[Bitmap] = None
        self.is_processing = False
        self.error_message: Optional[str] = None
        self.scale_factor = DEFAULT_SCALE

    def select_image(self, image: Bitmap):
        """Make an already decoded image the current input."""
        self.input_image = image
        self.output_image = None
        self.error_message = None

    def open_image(self, path: Union[str, Path]) -> bool:
        """Decode a file and make it the current input."""
        try:
            image = load_image(path)
        except PipelineError as e:
            logger.warning(f"⚠️  Could not open {path}: {e}")
            self.error_message = str(e)
            return False

        self.select_image(image)
        return True

    def clear(self):
        self.input_image = None
        self.output_image = None
        self.error_message = None

    def set_scale(self, value: float) -> float:
        # Informational only: the model decides the real output size
        self.scale_factor = clamp_scale(value)
        return self.scale_factor

    @property
    def can_upscale(self) -> bool:
        return self.input_image is not None and not self.is_processing

    async def upscale(self):
        """
        Upscale the current input on a worker thread.

        Failures end up in error_message; this never raises.
        """
        if not self.can_upscale:
            return

        image = self.input_image
        self.is_processing = True
        self.error_message = None

        result, error = None, None
        try:
            result = await self.engine.upscale_async(image)
        except PipelineError as e:
            logger.warning(f"⚠️  Upscaling failed: {e}")
            error = str(e)
        except Exception as e:
            logger.exception("Unexpected upscaling failure")
            error = f"An error occurred while processing the image: {e}"
        finally:
            self.is_processing = False

        # The input may have been replaced or cleared while we were busy
        if self.input_image is not image:
            logger.debug("Discarding upscale outcome for a replaced input")
            return

        self.output_image = result
        self.error_message = error

    def save(self, path: Union[str, Path]) -> Path:
        """Write the current output as PNG or JPEG, chosen by extension."""
        if self.output_image is None:
            raise ValueError("There is no upscaled image to save")
        return save_image(self.output_image, path)

    def status_text(self) -> str:
        if self.is_processing:
            return "Processing..."
        if self.error_message:
            return f"❌ {self.error_message}"
        if self.output_image is not None:
            src, out = self.input_image, self.output_image
            return f"✅ Done: {src.width} × {src.height} → {out.width} × {out.height}"
        if self.input_image is not None:
            return "Ready to upscale"
        return "Drop an image here or click to select"
