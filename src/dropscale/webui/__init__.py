"""Dropscale - Web Interface Module"""

from .session import UpscaleSession, clamp_scale
from .app import create_interface, launch_app, get_system_info

__all__ = [
    'UpscaleSession',
    'clamp_scale',
    'create_interface',
    'launch_app',
    'get_system_info'
]
