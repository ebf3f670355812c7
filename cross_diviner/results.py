"""
Result storage and the resumability oracle.
"""

import csv
import threading
from abc import abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from .config import RESULT_SEPARATOR
from .errors import ConfigurationError
from .strategies import Parameterizable, get_option, parse_options


@dataclass
class ExperimentResult:
    """Evaluation of one trained model on one test version"""
    experiment_name: str
    version_name: str
    trainer_name: str
    size_test: int = 0
    size_training: int = 0
    metrics: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'experiment': self.experiment_name,
            'version': self.version_name,
            'trainer': self.trainer_name,
            'size_test': self.size_test,
            'size_training': self.size_training,
            **self.metrics,
        }


class ResultStorage(Parameterizable):

    @abstractmethod
    def add_result(self, result: ExperimentResult):
        pass

    @abstractmethod
    def contains_result(self, experiment_name: str, version_name: str, trainer_name: str) -> int:
        """Number of stored results for this experiment, version and trainer"""


class FileResultStorage(ResultStorage):
    """
    Long-format result table: one `;` separated row per model and test version.

    -f <file>   path of the result table
    """

    COLUMNS = ['experiment', 'version', 'trainer', 'size_test', 'size_training']

    def __init__(self, path=None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        path = get_option(options, 'f')
        if not path:
            raise ConfigurationError('FileResultStorage requires a file (-f)')
        self.path = Path(path)

    def add_result(self, result: ExperimentResult):
        row = result.to_dict()
        columns = self.COLUMNS + sorted(k for k in row if k not in self.COLUMNS)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            exists = self.path.exists() and self.path.stat().st_size > 0
            if exists:
                columns = list(pd.read_csv(self.path, sep=RESULT_SEPARATOR, nrows=0).columns)
            pd.DataFrame([row]).reindex(columns=columns).to_csv(
                self.path, sep=RESULT_SEPARATOR, index=False, mode='a', header=not exists
            )

    def contains_result(self, experiment_name: str, version_name: str, trainer_name: str) -> int:
        with self._lock:
            if not self.path.exists() or self.path.stat().st_size == 0:
                return 0
            df = pd.read_csv(self.path, sep=RESULT_SEPARATOR, dtype=str)
        match = (
            (df['experiment'] == experiment_name)
            & (df['version'] == version_name)
            & (df['trainer'] == trainer_name)
        )
        return int(match.sum())


# =============================================================================
# RESUMABILITY
# =============================================================================

def count_result_rows(path, version_name: str) -> int:
    """Rows of a `;` separated result file that belong to a version"""
    path = Path(path)
    if not path.exists():
        return 0
    # Row by row: a resumed file holds one header line per run
    with open(path, newline='') as f:
        return sum(1 for row in csv.reader(f, delimiter=RESULT_SEPARATOR)
                   if row and row[0] == version_name)


def results_available(test_version, config) -> int:
    """
    How many results already exist for a test version.

    With result storages, this is the smallest count over every storage and
    every configured trainer. Otherwise the experiment's result file is
    counted.
    """
    if config.result_storages:
        names = [t.name for t in config.all_trainers]
        if not names:
            return 0
        return min(
            storage.contains_result(config.experiment_name, test_version.name, name)
            for storage in config.result_storages
            for name in names
        )
    return count_result_rows(config.result_file, test_version.name)
