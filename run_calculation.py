#!/usr/bin/env python
"""
Entry point for interactive template execution.
Usage: python run_calculation.py
"""

import logging

from calcengine.analytics.cli import main
from calcengine.config import LOG_LEVEL

if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL)
    main()
