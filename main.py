#!/usr/bin/env python3
"""logrotor daemon: entry point."""

import os
import sys

# Ensure logrotor is importable when run as `python main.py`
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from logrotor.daemon import main

if __name__ == "__main__":
    sys.exit(main())
