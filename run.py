#!/usr/bin/env python3
"""
Convenience wrapper to run xlat464.

Usage: sudo python3 run.py --iface <upstream interface>

Or use the module directly:
    sudo python3 -m xlat464 --iface <upstream interface>
"""

from xlat464.__main__ import main

if __name__ == "__main__":
    main()
