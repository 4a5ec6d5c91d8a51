#!/usr/bin/env python3
"""
Dropscale - Command Line Interface

Upscale a single image from the terminal, inspect the device and model
setup, or launch the web interface.
"""

import argparse
import sys
import logging
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text

from .inference.errors import PipelineError
from .inference.model_loader import DEFAULT_MODEL_PATH, get_device_info, describe_setup
from .inference.upscaler import InferenceEngine, UpscalerConfig
from .utils.image_io import load_image, save_image

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Configure root logging for the CLI and the web server."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    # Gradio's HTTP client and PIL's plugin loader are chatty at INFO/DEBUG
    for name in ('httpx', 'PIL'):
        logging.getLogger(name).setLevel(logging.WARNING)


def print_banner():
    """Print the Dropscale banner."""
    banner = Text.assemble(
        ("🔍 DROPSCALE 🔍", "bold magenta"),
        "\n",
        ("AI Image Super-Resolution", "dim")
    )
    console.print(Panel(banner, style="bold blue"))


def print_device_info():
    """Print the runtime and accelerator table used by `dropscale info`."""
    info = get_device_info()

    table = Table(title="🖥️  System Information", style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value", style="green")

    for label, key in (("Platform", 'platform'), ("Python", 'python_version'), ("PyTorch", 'torch_version')):
        table.add_row(label, info[key])

    for label, key in (("Apple Silicon (MPS)", 'mps'), ("CUDA", 'cuda')):
        if info[f"{key}_available"]:
            detail = info.get(f"{key}_device_name")
            table.add_row(label, f"✅ {detail}" if detail else "✅ Available", style="green")
        else:
            table.add_row(label, "❌ Not available", style="red")

    console.print(table)


def cmd_info(args):
    """Show system, device and model asset information."""
    print_device_info()

    setup = describe_setup(args.model)
    model = setup['model']

    console.print(f"\n📱 Selected device: {setup['device']}", style="blue")
    if model['exists']:
        console.print(f"✅ Model asset: {model['path']} ({model['size_mb']:.1f} MB)", style="green")
        return 0

    console.print(f"❌ Model asset missing: {model['path']}", style="red")
    console.print("Run tools/export_torchscript.py to create it.", style="dim")
    return 1


def cmd_upscale(args):
    """Upscale a single image file."""
    config = UpscalerConfig(
        model_path=args.model,
        device=args.device,
        half_precision=args.half_precision
    )
    engine = InferenceEngine(config)

    with console.status("🔄 Initializing AI model..."):
        available = engine.initialize()

    if not available:
        console.print(f"❌ {engine.load_error}", style="red")
        return 1

    console.print(f"✅ Model loaded ({engine.scale}x on {engine.device})", style="green")

    try:
        image = load_image(args.input)

        with console.status(f"🔄 Upscaling {image.width}x{image.height} image..."):
            result = engine.upscale(image)

        output_file = save_image(result, args.output, quality=args.quality)

    except PipelineError as e:
        console.print(f"❌ {e}", style="red")
        return 1
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        return 1

    console.print(
        f"✅ Saved {result.width}x{result.height} image: {output_file}",
        style="green"
    )

    if args.stats:
        stats_table = Table(title="📈 Upscaler Statistics")
        stats_table.add_column("Metric", style="bold")
        stats_table.add_column("Value", style="cyan")

        for key, value in engine.get_stats().items():
            if isinstance(value, float):
                stats_table.add_row(key.replace('_', ' ').title(), f"{value:.3f}")
            else:
                stats_table.add_row(key.replace('_', ' ').title(), str(value))

        console.print(stats_table)

    return 0


def cmd_serve(args):
    """Launch the web interface."""
    from .webui.app import launch_app

    engine = InferenceEngine(UpscalerConfig(model_path=args.model, device=args.device))
    if not engine.initialize():
        # The UI still starts and reports the missing model to the user
        console.print(f"⚠️  {engine.load_error}", style="yellow")

    launch_app(
        server_name=args.host,
        server_port=args.port,
        share=args.share,
        debug=args.verbose,
        engine=engine
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dropscale",
        description="🔍 Dropscale - AI image super-resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upscale a single image
  dropscale upscale -i photo.jpg -o photo_x4.png

  # Launch the web interface
  dropscale serve --port 7860

  # Show system info
  dropscale info
        """
    )

    # Global options
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    parser.add_argument('--no-banner', action='store_true', help='Skip the banner')
    parser.add_argument('--log-file', help='Also write logs to this file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    def add_model_options(sub):
        sub.add_argument('--model', '-m', default=str(DEFAULT_MODEL_PATH),
                         help='TorchScript model asset')
        sub.add_argument('--device', '-d', default='auto',
                         choices=['auto', 'mps', 'cuda', 'cpu'],
                         help='Processing device')

    info_parser = subparsers.add_parser('info', help='Show system, device and model information')
    info_parser.add_argument('--model', '-m', default=str(DEFAULT_MODEL_PATH),
                             help='TorchScript model asset')

    upscale_parser = subparsers.add_parser('upscale', help='Upscale one image')
    upscale_parser.add_argument('--input', '-i', required=True, help='Input image file')
    upscale_parser.add_argument('--output', '-o', required=True, help='Output file (.png, .jpg or .jpeg)')
    add_model_options(upscale_parser)
    upscale_parser.add_argument('--half-precision', action='store_true',
                                help='Use half precision (FP16) on GPU')
    upscale_parser.add_argument('--quality', type=int, default=90,
                                help='Output quality for JPEG (1-100)')
    upscale_parser.add_argument('--stats', action='store_true',
                                help='Show processing statistics')

    serve_parser = subparsers.add_parser('serve', help='Launch the web interface')
    add_model_options(serve_parser)
    serve_parser.add_argument('--host', default='127.0.0.1', help='Server host')
    serve_parser.add_argument('--port', type=int, default=7860, help='Server port')
    serve_parser.add_argument('--share', action='store_true', help='Create public link')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_file)

    if not args.no_banner:
        print_banner()

    if args.command == 'info':
        return cmd_info(args)
    elif args.command == 'upscale':
        return cmd_upscale(args)
    elif args.command == 'serve':
        return cmd_serve(args)
    else:
        parser.print_help()
        return 1


def run():
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        console.print("\n⚠️  Interrupted by user", style="yellow")
        sys.exit(1)


if __name__ == '__main__':
    run()
