"""
Entry point for running transcoder as a module: python -m transcoder

This allows the package to be executed directly:
    python -m transcoder movie.mkv
    python -m transcoder --help
"""

import sys

from transcoder.cli import main

if __name__ == "__main__":
    sys.exit(main())
