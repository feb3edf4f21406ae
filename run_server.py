#!/usr/bin/env python3
"""
StarLedger API Server Launcher
"""

import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from cli import main

if __name__ == '__main__':
    main(["serve", *sys.argv[1:]])
