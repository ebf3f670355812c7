#!/usr/bin/env python3
"""
Run one or more cross-project defect prediction experiments.

Usage:
    python run_experiments.py experiments/example.json
    python run_experiments.py experiments/ --workers 4   # every *.json in the folder
    python run_experiments.py experiments/ --verbose     # debug logging

Re-running an experiment skips test versions whose results already exist,
so an interrupted run can simply be started again.
"""

import sys

from cross_diviner.runner import main


if __name__ == "__main__":
    sys.exit(main())
