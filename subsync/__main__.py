"""
Run subsync directly.

Usage:
    python -m subsync
    python -m subsync --check
"""

from .main import cli


if __name__ == "__main__":
    cli()
