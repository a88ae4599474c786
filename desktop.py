#!/usr/bin/env python3
"""
Quick launcher for AI Screen Assistant.

Usage:
    python desktop.py                 # Start the tray app
    python desktop.py --capture-now   # Capture once right after launch
    python desktop.py --help          # Show all options
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from screen_assistant.desktop.__main__ import main

if __name__ == "__main__":
    main()
