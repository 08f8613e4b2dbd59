#!/usr/bin/env python3
"""Convenience runner for the GPS track segment matcher.

Usage:
    python run.py --input tracks.json --delta-m 30
"""
import logging
from track_matching.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    raise SystemExit(main())
