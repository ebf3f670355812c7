"""
Interfaces for the pluggable pipeline stages.

Every stage kind of an experiment has its own abstract class. The run loop
only ever calls the methods declared here, so any class implementing one of
these interfaces can be named in an experiment configuration.

Set-wise stages work on the whole TrainingPool (one table per training
version). Point-wise stages work on the single merged training table.
"""

import shlex
from abc import ABC, abstractmethod

import numpy as np
import pandas as pd

from .errors import ConfigurationError


# =============================================================================
# PARAMETERS
# =============================================================================

def parse_options(parameters: str) -> dict[str, str]:
    """
    Parse an option string like "-k 10 -C RandomForest -V" into a dict.

    A flag followed by another flag (or by nothing) maps to 'true'.
    """
    tokens = shlex.split(parameters or '')
    options = {}
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if not token.startswith('-') or len(token) < 2:
            raise ConfigurationError(f'Unexpected option value {token!r} in {parameters!r}')
        key = token.lstrip('-')
        value = 'true'
        if i + 1 < len(tokens) and not _is_flag(tokens[i + 1]):
            value = tokens[i + 1]
            i += 1
        options[key] = value
        i += 1
    return options


def _is_flag(token: str) -> bool:
    if not token.startswith('-'):
        return False
    try:
        float(token)
    except ValueError:
        return True
    return False


def get_option(options: dict, key: str, default=None, cast=str):
    """Typed lookup of a parsed option; malformed values are configuration errors"""
    if key not in options:
        return default
    raw = options[key]
    try:
        if cast is bool:
            return raw.lower() in ('1', 'true', 'yes')
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f'Invalid value {raw!r} for option -{key}: {e}') from e


class Parameterizable(ABC):
    """Common base: every strategy is configured through a parameter string"""

    display_name: str = None

    def set_parameter(self, parameters: str):
        """Configure the strategy. The default accepts no options."""
        if parameters and parameters.strip():
            raise ConfigurationError(f'{type(self).__name__} takes no parameters, got {parameters!r}')

    @property
    def name(self) -> str:
        return self.display_name or type(self).__name__


# =============================================================================
# TRAINED MODELS
# =============================================================================

class TrainedModel(ABC):
    """A classifier produced by a trainer stage and handed to the evaluators"""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def predict_proba(self, instances: pd.DataFrame) -> np.ndarray:
        """Probability of the defective class for every row"""

    def predict(self, instances: pd.DataFrame) -> np.ndarray:
        return (self.predict_proba(instances) >= 0.5).astype(int)

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.name!r})'


# =============================================================================
# DATA PROCESSING
# =============================================================================

class VersionProcessingStrategy(Parameterizable):
    """Adapts one training version to one test version before pooling"""

    @abstractmethod
    def apply(self, test_version, train_version, traindata: pd.DataFrame):
        """Rewrite `traindata` in place"""


class SetWiseProcessingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, testdata: pd.DataFrame, pool):
        """Mutate the test table and/or the pool's tables in place"""


class ProcessingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame):
        """Mutate the test table and/or the merged training table in place"""


# =============================================================================
# DATA SELECTION
# =============================================================================

class SetWiseDataselectionStrategy(Parameterizable):

    @abstractmethod
    def apply(self, testdata: pd.DataFrame, pool):
        """Shrink or reorder the pool in place"""


class PointWiseDataselectionStrategy(Parameterizable):

    @abstractmethod
    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame) -> pd.DataFrame:
        """
        Return the selected training rows as a new table.

        Must not modify `traindata`. Selected rows keep their index labels.
        """


# =============================================================================
# TRAINING
# =============================================================================

class SetWiseTrainingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, traindata_set: list[pd.DataFrame]) -> TrainedModel:
        pass


class SetWiseTestdataAwareTrainingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, traindata_set: list[pd.DataFrame], testdata: pd.DataFrame) -> TrainedModel:
        pass


class SetWiseBugMatrixAwareTrainingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, traindata_set: list[pd.DataFrame], bugmatrix_set: list[pd.DataFrame],
              efforts_set: list[list[float]]) -> TrainedModel:
        pass


class TrainingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, traindata: pd.DataFrame) -> TrainedModel:
        pass


class TestAwareTrainingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, traindata: pd.DataFrame, testdata: pd.DataFrame) -> TrainedModel:
        pass


class BugMatrixAwareTrainingStrategy(Parameterizable):

    @abstractmethod
    def apply(self, traindata: pd.DataFrame, bugmatrix: pd.DataFrame,
              efforts: list[float]) -> TrainedModel:
        pass


# =============================================================================
# EVALUATION
# =============================================================================

class EvaluationStrategy(Parameterizable):

    output_path = None
    experiment_name = None

    def set_output(self, path, experiment_name: str):
        """Result file and experiment; set by the run loop before the first call"""
        self.output_path = path
        self.experiment_name = experiment_name

    @abstractmethod
    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame, models: list[TrainedModel],
              efforts: list[float], num_bugs: list[float], bug_matrix: pd.DataFrame,
              write_header: bool, storages: list, version_name: str = None):
        pass
