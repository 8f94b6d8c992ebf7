"""
osscmd: command-line client and transfer engine for OSS object storage.

Signs requests, splits large objects into parts, and moves them through a
bounded pool of concurrent workers with per-part retry.
"""

__version__ = "1.0.0"

from osscmd.cli import main
