"""
Main entry point for running the package as a module.

Usage:
    python -m gallery scan --sources sources.json
    python -m gallery rescan
    python -m gallery sweep
"""

import sys
from .cli import main

if __name__ == '__main__':
    sys.exit(main())
