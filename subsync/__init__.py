"""
subsync — Keep a parent repository's git submodules on their tracked branches.
"""

__version__ = "0.1.0"
