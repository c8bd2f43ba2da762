#!/usr/bin/env python3
"""
dcVar analysis script: differential correlation of gene expression per variant
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dcvar.cli.run import main

if __name__ == "__main__":
    sys.exit(main())
