#!/usr/bin/env python3
"""
CLI entry point for running ColdCopy from a source checkout.

Delegates to ``coldcopy_local.cli.main`` so both the installed console script
and direct script execution share the same implementation.
"""

from coldcopy_local import __description__ as _DESCRIPTION, __version__ as _VERSION
from coldcopy_local.cli import ColdCopyCLI, main

__all__ = ["ColdCopyCLI", "main", "__version__", "__description__"]

__description__ = _DESCRIPTION
__version__ = _VERSION


if __name__ == "__main__":
    main()
