"""
Entry point for running udp_transport as a module.

Usage:
    python -m udp_transport [--config PATH] [--server]
"""

import sys
from .relay_service import main

if __name__ == "__main__":
    sys.exit(main())
