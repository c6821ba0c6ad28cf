#!/usr/bin/env python
"""
Run tests for Beacon.

Usage:
    python run_tests.py                  # Run all tests
    python run_tests.py tests/services   # Run one test package
    python run_tests.py -k poller        # Select tests by keyword
"""

import subprocess
import sys


def main():
    """Run pytest with provided arguments."""
    args = [sys.executable, "-m", "pytest"] + sys.argv[1:]

    if "-v" not in args and "--verbose" not in args and "-q" not in args:
        args.append("-v")

    result = subprocess.run(args)
    sys.exit(result.returncode)


if __name__ == "__main__":
    main()
