"""
Cross Diviner - Cross-Project Defect Prediction Experiments
===========================================================

Runs repeatable cross-project defect prediction experiments: every software
version in turn becomes test data, the other eligible versions become
training data, and a configurable pipeline of processing, selection and
training strategies produces models that are evaluated on the test version.

Key idea: the pipeline is data. Each experiment file lists the strategies
per stage, so experiments are compared by swapping entries, not code.
"""

from .config import (
    LABEL_COL,
    RESULT_SEPARATOR,
    DIAGNOSTIC_PATH,
)

from .errors import (
    ConfigurationError,
    NoTrainingDataAvailable,
    StrategyExecutionError,
    NoRuleFoundError,
    DiagnosticWriteError,
)

from .versions import SoftwareVersion

from .pool import TrainingPool

from .merge import (
    make_single_training_set,
    make_single_bug_matrix,
    make_single_efforts,
)

from .experiment import (
    ExperimentConfiguration,
    configuration_from_dict,
    load_configuration,
)

from .execution import (
    VersionState,
    CrossProjectExperiment,
    CrossVersionExperiment,
    RelaxedCrossProjectExperiment,
    make_experiment,
)

from .runner import run_experiments

__version__ = "0.1.0"

__all__ = [
    # Config
    "LABEL_COL",
    "RESULT_SEPARATOR",
    "DIAGNOSTIC_PATH",
    # Errors
    "ConfigurationError",
    "NoTrainingDataAvailable",
    "StrategyExecutionError",
    "NoRuleFoundError",
    "DiagnosticWriteError",
    # Data
    "SoftwareVersion",
    "TrainingPool",
    # Merge
    "make_single_training_set",
    "make_single_bug_matrix",
    "make_single_efforts",
    # Configuration
    "ExperimentConfiguration",
    "configuration_from_dict",
    "load_configuration",
    # Execution
    "VersionState",
    "CrossProjectExperiment",
    "CrossVersionExperiment",
    "RelaxedCrossProjectExperiment",
    "make_experiment",
    "run_experiments",
]
