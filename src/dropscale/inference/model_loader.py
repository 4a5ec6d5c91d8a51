"""
Dropscale - Model Loading and Device Management

Handles PyTorch device detection and loading of the packaged TorchScript
super-resolution model.
"""

import logging
import platform
from pathlib import Path
from typing import Dict, Any, Union

import psutil
import torch

from .errors import ModelLoadError

logger = logging.getLogger(__name__)

MODEL_FILENAME = "superres_x4.pt"
ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"
DEFAULT_MODEL_PATH = ASSETS_DIR / MODEL_FILENAME

ACCELERATORS = ('mps', 'cuda')
GB = 1024 ** 3


def get_device_info() -> Dict[str, Any]:
    """Describe the interpreter, PyTorch build and usable accelerators."""
    mps = getattr(torch.backends, 'mps', None)
    info = {
        "platform": platform.platform(),
        "python_version": platform.python_version(),
        "torch_version": torch.__version__,
        "cuda_available": torch.cuda.is_available(),
        "mps_available": bool(mps and mps.is_available()),
    }

    if info["cuda_available"]:
        info["cuda_device_name"] = torch.cuda.get_device_name(0)

    return info


def get_optimal_device(prefer: str = 'auto') -> torch.device:
    """
    Pick the device the model runs on.

    Args:
        prefer: 'auto' takes the first available accelerator (MPS, then
            CUDA). 'mps' or 'cuda' fall back to the CPU when missing.
            Anything else means CPU.
    """
    info = get_device_info()
    available = [kind for kind in ACCELERATORS if info[f"{kind}_available"]]

    if prefer == 'auto':
        kind = available[0] if available else 'cpu'
    elif prefer in ACCELERATORS:
        kind = prefer if prefer in available else 'cpu'
        if kind == 'cpu':
            logger.warning(f"⚠️  {prefer.upper()} not available, falling back to CPU")
    else:
        kind = 'cpu'

    if kind == 'cuda':
        logger.info(f"✅ Inference device: CUDA ({info.get('cuda_device_name', 'Unknown')})")
    else:
        logger.info(f"✅ Inference device: {kind.upper()}")

    return torch.device(kind)


def get_memory_info(device: torch.device) -> Dict[str, float]:
    """
    Memory usage for a device in GB.

    Used for logging only, so a backend that cannot report its usage
    yields zeros instead of an error.
    """
    info = {'allocated': 0.0, 'cached': 0.0, 'max_memory': 0.0}

    try:
        if device.type == 'cuda':
            info['allocated'] = torch.cuda.memory_allocated(device) / GB
            info['cached'] = torch.cuda.memory_reserved(device) / GB
            info['max_memory'] = torch.cuda.get_device_properties(device).total_memory / GB
        elif device.type == 'mps':
            info['allocated'] = torch.mps.current_allocated_memory() / GB
        else:
            vm = psutil.virtual_memory()
            info['allocated'] = (vm.total - vm.available) / GB
            info['max_memory'] = vm.total / GB
    except Exception as e:
        logger.debug(f"Memory query failed on {device}: {e}")

    return info


class ModelLoader:
    """Loads the packaged TorchScript super-resolution model."""

    def __init__(self, model_path: Union[str, Path] = DEFAULT_MODEL_PATH):
        self.model_path = Path(model_path)

    def asset_info(self) -> Dict[str, Any]:
        """Describe the model asset on disk without loading it."""
        exists = self.model_path.is_file()
        return {
            'path': str(self.model_path),
            'exists': exists,
            'size_mb': self.model_path.stat().st_size / (1024 * 1024) if exists else 0.0,
        }

    def load(self, device: torch.device, half_precision: bool = False) -> torch.jit.ScriptModule:
        """
        Load the model onto a device.

        Raises:
            ModelLoadError: if the asset is missing or cannot be deserialized
        """
        if not self.model_path.is_file():
            raise ModelLoadError(f"Model asset not found: {self.model_path}")

        logger.info(f"📦 Loading model asset: {self.model_path.name}")

        try:
            module = torch.jit.load(str(self.model_path), map_location=device)
        except Exception as e:
            raise ModelLoadError(f"Model asset is malformed: {self.model_path.name} ({e})") from e

        module.eval()
        if half_precision and device.type != 'cpu':
            module.half()

        logger.info(f"✅ Loaded {self.model_path.name} on {device}")
        return module

    @staticmethod
    def model_scale(module: torch.nn.Module, default: int) -> int:
        """Read the upscale ratio baked into the asset, if it carries one."""
        scale = getattr(module, 'scale', None)
        if scale is None:
            return default

        try:
            scale = int(scale)
        except (TypeError, ValueError) as e:
            raise ModelLoadError(f"Model asset declares an invalid scale: {scale!r}") from e

        if scale < 1:
            raise ModelLoadError(f"Model asset declares an invalid scale: {scale}")
        return scale


def describe_setup(model_path: Union[str, Path] = DEFAULT_MODEL_PATH) -> Dict[str, Any]:
    """Collect device and model asset information for diagnostics."""
    device = get_optimal_device('auto')
    loader = ModelLoader(model_path)

    setup = {
        'device': str(device),
        'memory': get_memory_info(device),
        'model': loader.asset_info(),
    }
    logger.debug(f"Setup: {setup}")
    return setup
