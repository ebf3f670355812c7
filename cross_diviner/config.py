"""
Configuration and constants for Cross Diviner.
"""

from pathlib import Path

# =============================================================================
# DATA CONVENTIONS
# =============================================================================

# Name of the label column in every instance table (1 = defective)
LABEL_COL = 'is_buggy'

# Column used as effort when a dataset provides one (lines of code)
DEFAULT_EFFORT_COL = 'loc'

# Prefix marking bug-matrix columns in the CSV datasets
BUG_MATRIX_PREFIX = 'bugs_'

# =============================================================================
# RESULTS
# =============================================================================

RESULT_SEPARATOR = ';'
DEFAULT_RESULTS_PATH = Path('results')
DEFAULT_REPETITIONS = 1

# Merged training data is dumped here after every merge (best effort)
DIAGNOSTIC_PATH = Path('data') / 'traindata.csv'

# Effort share used by the effort-aware metric (bugs found at 20% effort)
EFFORT_THRESHOLD = 0.2

# =============================================================================
# EXECUTION
# =============================================================================

RANDOM_STATE = 42
DEFAULT_WORKERS = 2

LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'

# =============================================================================
# RULE MINING
# =============================================================================

# Defaults for the blackboard rule search (-A, -C, -P, -T in minutes)
MINING_AGENTS = 1
MINING_MAX_COMPLEXITY = 30
MINING_WITHIN_PERCENT = 0.1
MINING_TIME_MINUTES = 1.0
