"""
Allow running the manifest CLI as a module.

Usage:
    python -m bungiekit_manifest status
    python -m bungiekit_manifest sync --locale en
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
