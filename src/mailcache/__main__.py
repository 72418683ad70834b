#!/usr/bin/env python3
"""
Allow running mailcache as a module: python -m mailcache

This enables the following usage:
    python -m mailcache [OPTIONS] COMMAND

Which is equivalent to:
    mailcache [OPTIONS] COMMAND
"""

from mailcache.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
