"""
Dropscale - Gradio Interface

Single-image upscaling UI: drop or pick an image, upscale it with the
packaged model, then preview and download the result.
"""

import logging
import tempfile
import textwrap
from pathlib import Path
from typing import Optional, Tuple, Any

import gradio as gr
from PIL import Image

from ..inference.bitmap import Bitmap
from ..inference.errors import PipelineError
from ..inference.model_loader import get_device_info
from ..inference.upscaler import InferenceEngine, get_engine
from .session import UpscaleSession, MIN_SCALE, MAX_SCALE, SCALE_STEP, DEFAULT_SCALE

logger = logging.getLogger(__name__)

SAVE_FORMATS = {'PNG': '.png', 'JPEG': '.jpg'}


def get_system_info(engine: InferenceEngine) -> str:
    """Get formatted system and model information."""
    device_info = get_device_info()
    status = engine.status()

    info_md = textwrap.dedent(f"""
    # 🖥️ System Information

    **Platform:** {device_info.get('platform', 'Unknown')}  
    **Python:** {device_info.get('python_version', 'Unknown')}  
    **PyTorch:** {device_info.get('torch_version', 'Unknown')}  
    **MPS (Apple Silicon):** {'✅ Available' if device_info.get('mps_available') else '❌ Not Available'}  
    **CUDA:** {'✅ Available' if device_info.get('cuda_available') else '❌ Not Available'}  

    ## Model

    **Asset:** {status['model_path']}  
    """)

    if status['available']:
        info_md += f"**Status:** ✅ Loaded ({status['scale']}x on {status['device']})  \n"
    else:
        info_md += f"**Status:** ❌ Unavailable ({status['error'] or 'not loaded'})  \n"

    return info_md


def scale_info(scale_factor: float, engine: InferenceEngine) -> str:
    model_text = f"{engine.scale}x" if engine.scale else "unavailable"
    return f"**Scale Factor:** {scale_factor:.1f}x (model output: {model_text})"


def _session_outputs(session: UpscaleSession) -> Tuple[Any, ...]:
    output = session.output_image.to_pil() if session.output_image is not None else None
    return (
        session,
        output,
        session.status_text(),
        gr.update(interactive=session.can_upscale),
    )


def create_interface(engine: Optional[InferenceEngine] = None):
    """Create the Gradio interface."""
    engine = engine or get_engine()

    def ensure_session(session: Optional[UpscaleSession]) -> UpscaleSession:
        return session if session is not None else UpscaleSession(engine)

    def on_image_change(image: Optional[Image.Image], session: Optional[UpscaleSession]):
        session = ensure_session(session)
        if image is None:
            session.clear()
        else:
            try:
                session.select_image(Bitmap.from_pil(image))
            except PipelineError as e:
                session.clear()
                session.error_message = str(e)
        return _session_outputs(session) + (None,)

    def on_scale_change(value: float, session: Optional[UpscaleSession]):
        session = ensure_session(session)
        session.set_scale(value)
        return session, scale_info(session.scale_factor, engine)

    def on_upscale_start(session: Optional[UpscaleSession]):
        session = ensure_session(session)
        if not session.can_upscale:
            return session.status_text(), gr.update(interactive=session.can_upscale)
        return "⏳ Processing...", gr.update(interactive=False)

    async def on_upscale(session: Optional[UpscaleSession]):
        session = ensure_session(session)
        await session.upscale()
        return _session_outputs(session)

    def on_save(save_format: str, session: Optional[UpscaleSession]):
        session = ensure_session(session)
        if session.output_image is None:
            return None, "❌ Upscale an image before saving"

        out_dir = Path(tempfile.mkdtemp(prefix="dropscale_"))
        path = session.save(out_dir / f"upscaled_image{SAVE_FORMATS[save_format]}")
        return str(path), f"💾 Saved {path.name}"

    def on_clear(session: Optional[UpscaleSession]):
        session = ensure_session(session)
        session.clear()
        return (None,) + _session_outputs(session) + (None,)

    with gr.Blocks(title="Dropscale") as interface:

        gr.Markdown("# 🔍 Dropscale\nAI super-resolution for a single image")

        session_state = gr.State(None)

        with gr.Tabs():

            with gr.TabItem("🖼️ Upscale"):
                with gr.Row():
                    with gr.Column(scale=1, min_width=220):
                        scale_slider = gr.Slider(
                            minimum=MIN_SCALE,
                            maximum=MAX_SCALE,
                            step=SCALE_STEP,
                            value=DEFAULT_SCALE,
                            label="Scale Factor"
                        )
                        scale_md = gr.Markdown(scale_info(DEFAULT_SCALE, engine))
                        save_format = gr.Radio(
                            choices=list(SAVE_FORMATS),
                            value='PNG',
                            label="Save As"
                        )
                        save_btn = gr.Button("💾 Save Result")
                        download = gr.File(label="Download", interactive=False)
                        clear_btn = gr.Button("🗑️ Clear")

                    with gr.Column(scale=2):
                        input_image = gr.Image(
                            type="pil",
                            image_mode=None,
                            label="Original",
                            sources=["upload", "clipboard"],
                            height=300
                        )
                        upscale_btn = gr.Button(
                            "Upscale Image",
                            variant="primary",
                            interactive=False
                        )

                    with gr.Column(scale=2):
                        output_image = gr.Image(
                            type="pil",
                            label="Upscaled",
                            interactive=False,
                            height=300
                        )
                        status_md = gr.Markdown("Drop an image here or click to select")

            with gr.TabItem("🖥️ System Info"):
                system_info_md = gr.Markdown(value=get_system_info(engine))
                refresh_info_btn = gr.Button("🔄 Refresh System Info")

        # Event handlers
        input_image.change(
            fn=on_image_change,
            inputs=[input_image, session_state],
            outputs=[session_state, output_image, status_md, upscale_btn, download]
        )

        scale_slider.change(
            fn=on_scale_change,
            inputs=[scale_slider, session_state],
            outputs=[session_state, scale_md]
        )

        upscale_btn.click(
            fn=on_upscale_start,
            inputs=[session_state],
            outputs=[status_md, upscale_btn]
        ).then(
            fn=on_upscale,
            inputs=[session_state],
            outputs=[session_state, output_image, status_md, upscale_btn]
        )

        save_btn.click(
            fn=on_save,
            inputs=[save_format, session_state],
            outputs=[download, status_md]
        )

        clear_btn.click(
            fn=on_clear,
            inputs=[session_state],
            outputs=[input_image, session_state, output_image, status_md, upscale_btn, download]
        )

        refresh_info_btn.click(
            fn=lambda: get_system_info(engine),
            outputs=[system_info_md]
        )

    return interface


def launch_app(
    server_name: str = "127.0.0.1",
    server_port: int = 7860,
    share: bool = False,
    debug: bool = False,
    engine: Optional[InferenceEngine] = None
):
    """Launch the Dropscale web interface."""
    logger.info("🚀 Starting Dropscale web interface...")

    interface = create_interface(engine)

    interface.launch(
        server_name=server_name,
        server_port=server_port,
        share=share,
        show_error=True,
        quiet=not debug
    )
