#!/usr/bin/env python
"""
Launcher script for Batch Tracker.

This script ensures the correct Python path is set before launching the CLI.
"""

import sys
from pathlib import Path

# Add the src directory to the Python path
src_dir = Path(__file__).parent / "src"
sys.path.insert(0, str(src_dir))

# Now import and run the command-line interface
from batch_tracker.main import main

if __name__ == "__main__":
    sys.exit(main())
