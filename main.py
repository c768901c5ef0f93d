#!/usr/bin/env python3
"""
Stagehand - scheduled media reposting.
Main entry point for the application.
"""

import sys

from stagehand.cli import main

if __name__ == "__main__":
    sys.exit(main())
