#!/usr/bin/env python3
"""
osscmd: OSS object storage command-line client.

Usage:
    python run.py ls oss://bucket/prefix
    python run.py put local.txt oss://bucket/dir/
    python run.py uploadlargefile big.iso oss://bucket/images/ --partsize 20 --thread_num 16
    python run.py uploadfromdir ./site oss://bucket/www --suffix .html,.css
    python run.py get oss://bucket/big.iso ./downloads/
    python run.py deleteallobject oss://bucket/tmp --force
    python run.py meta oss://bucket/key -j meta.json
"""

import sys
from osscmd.cli import main

if __name__ == "__main__":
    sys.exit(main())
