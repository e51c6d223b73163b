#!/usr/bin/env python3
"""
Print Bridge - silent receipt printing through a local print daemon.

Loads the trust certificate, signs every request, connects to the daemon,
discovers printers and prints a test receipt. See ``print-bridge --help``.
"""

import sys

from print_bridge.cli import main

if __name__ == "__main__":
    sys.exit(main())
