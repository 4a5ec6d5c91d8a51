"""Allow running Dropscale with ``python -m dropscale``."""

from .cli import run

if __name__ == "__main__":
    run()
