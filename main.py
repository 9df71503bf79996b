#!/usr/bin/env python3
"""
dbsync
Main entry point for running from a checkout
"""

import sys

from dbsync.main import main

if __name__ == "__main__":
    sys.exit(main())
