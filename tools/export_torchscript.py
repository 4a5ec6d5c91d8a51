#!/usr/bin/env python3
"""
Dropscale - TorchScript Export Tool

Downloads super-resolution weights and exports them as the TorchScript
asset the inference engine loads.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np
import requests
import torch
from spandrel import ModelLoader as SpandrelLoader

from dropscale.inference.bitmap import Bitmap
from dropscale.inference.model_loader import DEFAULT_MODEL_PATH
from dropscale.inference.upscaler import InferenceEngine, UpscalerConfig

logger = logging.getLogger(__name__)

WEIGHTS = {
    'realesrgan_x4': 'https://github.com/xinntao/Real-ESRGAN/releases/download/v0.1.0/RealESRGAN_x4plus.pth',
    'realesrgan_x2': 'https://github.com/xinntao/Real-ESRGAN/releases/download/v0.2.1/RealESRGAN_x2plus.pth',
    'realesrgan_anime': 'https://github.com/xinntao/Real-ESRGAN/releases/download/v0.2.2.4/RealESRGAN_x4plus_anime_6B.pth',
}


class ScaledModel(torch.nn.Module):
    """Carries the upscale ratio alongside the traced network."""

    scale: int

    def __init__(self, model: torch.nn.Module, scale: int):
        super().__init__()
        self.model = model
        self.scale = scale

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.model(x)


def download_weights(model_key: str, cache_dir: Path) -> Path:
    """Download model weights if not already present."""
    url = WEIGHTS[model_key]
    weights_file = cache_dir / Path(url).name

    if weights_file.exists():
        logger.info(f"✅ Weights already downloaded: {weights_file}")
        return weights_file

    cache_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"📥 Downloading {model_key} weights...")

    response = requests.get(url, stream=True, timeout=60)
    response.raise_for_status()

    tmp_file = weights_file.with_suffix('.part')
    with open(tmp_file, 'wb') as f:
        for chunk in response.iter_content(chunk_size=8192):
            f.write(chunk)
    tmp_file.rename(weights_file)

    logger.info(f"✅ Downloaded: {weights_file}")
    return weights_file


def export_model(weights_file: Path, output_path: Path, trace_size: int = 64) -> Path:
    """
    Trace a weights file and save it as a TorchScript asset.

    Args:
        weights_file: .pth/.safetensors weights spandrel can identify
        output_path: Where to write the TorchScript module
        trace_size: Side length of the example input used for tracing
    """
    logger.info(f"🔄 Loading architecture for {weights_file.name}")
    descriptor = SpandrelLoader(device='cpu').load_from_file(str(weights_file))
    model = descriptor.model.eval().float()
    scale = int(descriptor.scale)

    example_input = torch.rand(1, 3, trace_size, trace_size)
    logger.info(f"📊 Tracing model with input {tuple(example_input.shape)}...")

    with torch.no_grad():
        traced = torch.jit.trace(model, example_input)

    scripted = torch.jit.script(ScaledModel(traced, scale))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    scripted.save(str(output_path))

    model_size = output_path.stat().st_size / (1024 * 1024)
    logger.info(f"✅ TorchScript model saved: {output_path} ({scale}x, {model_size:.1f} MB)")
    return output_path


def verify_export(model_path: Path, size: int = 48) -> bool:
    """Run the exported asset through the engine once."""
    logger.info(f"🧪 Testing exported model: {model_path}")

    engine = InferenceEngine(UpscalerConfig(model_path=model_path, device='cpu'))
    if not engine.initialize():
        logger.error(f"❌ Exported model does not load: {engine.load_error}")
        return False

    test_image = Bitmap.from_array(np.random.randint(0, 256, (size, size, 3), dtype=np.uint8))

    start_time = time.time()
    result = engine.upscale(test_image)
    inference_time = time.time() - start_time

    expected = (size * engine.scale, size * engine.scale)
    if result.size != expected:
        logger.error(f"❌ Unexpected output size {result.size}, expected {expected}")
        return False

    logger.info(f"✅ Export test successful: {result.size} in {inference_time:.3f}s")
    return True


def main():
    """Main export script."""
    parser = argparse.ArgumentParser(description="Export a super-resolution model for Dropscale")
    parser.add_argument('--model', default='realesrgan_x4', choices=list(WEIGHTS),
                        help='Weights to download and export')
    parser.add_argument('--weights', help='Use a local weights file instead of downloading')
    parser.add_argument('--output', '-o', default=str(DEFAULT_MODEL_PATH),
                        help='Output TorchScript path')
    parser.add_argument('--cache-dir', default='models',
                        help='Where downloaded weights are kept')
    parser.add_argument('--trace-size', type=int, default=64,
                        help='Example input size used for tracing')
    parser.add_argument('--skip-test', action='store_true',
                        help='Do not run the exported model once')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose logging')

    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        if args.weights:
            weights_file = Path(args.weights)
        else:
            weights_file = download_weights(args.model, Path(args.cache_dir))

        output_path = export_model(weights_file, Path(args.output), args.trace_size)

        if not args.skip_test and not verify_export(output_path):
            sys.exit(1)

        logger.info("🎉 Export completed successfully!")

    except Exception as e:
        logger.error(f"💥 Export failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
