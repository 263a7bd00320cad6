#!/usr/bin/env python3
"""Configuration Schema Runner Script

This script sets up the Python path and runs the schema tool.
"""

import sys
from pathlib import Path

# Add src to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / 'src'))

from configschema.main import main

if __name__ == '__main__':
    sys.exit(main())
