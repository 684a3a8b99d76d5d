#!/usr/bin/env python3
"""
Drive Shredder - Secure Multi-Drive Erasure Tool
Entry point: signal wiring and process exit code
"""

import sys
import signal

from .cli.cli_interface import CLIInterface

def _terminate_as_interrupt(signum, frame):
    """SIGTERM takes the same cancel path as Ctrl-C"""
    raise KeyboardInterrupt()

def main(argv=None):
    """Main entry point for the application"""
    signal.signal(signal.SIGTERM, _terminate_as_interrupt)
    cli = CLIInterface()
    sys.exit(cli.run(argv))

if __name__ == "__main__":
    main()
