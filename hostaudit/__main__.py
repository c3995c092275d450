#!/usr/bin/env python3
"""
hostaudit CLI entry point for `python -m hostaudit`.

Usage:
    python -m hostaudit scan drivers/virtio/
    python -m hostaudit filter warns.txt
    python -m hostaudit transfer old_warns.txt new_warns.txt
"""

import sys
from hostaudit.cli import main

if __name__ == "__main__":
    sys.exit(main())
