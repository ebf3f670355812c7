"""
The per-test-version pool of training data.
"""

from dataclasses import dataclass

import pandas as pd


@dataclass(eq=False)
class TrainingData:
    """Instances, bug matrix and efforts of one training version"""
    version: object
    instances: pd.DataFrame
    bug_matrix: pd.DataFrame
    efforts: list[float]

    def __len__(self) -> int:
        return len(self.instances)


class TrainingPool:
    """
    Ordered collection of training data, one record per source version.

    Records are keyed by version identity, so the instance tables, bug
    matrices and effort lists handed out by the properties below are always
    positionally aligned.
    """

    def __init__(self, records=None):
        self._records: list[TrainingData] = []
        for record in records or []:
            self._append(record)

    def add(self, version, instances: pd.DataFrame, bug_matrix: pd.DataFrame,
            efforts: list[float]) -> bool:
        """Append a record; returns False if it duplicates an existing entry"""
        return self._append(TrainingData(version, instances, bug_matrix, efforts))

    def _append(self, record: TrainingData) -> bool:
        for existing in self._records:
            if existing.version is record.version or existing.instances is record.instances:
                return False
        self._records.append(record)
        return True

    def retain(self, predicate):
        """Keep only the records for which predicate(record) holds, in order"""
        self._records = [r for r in self._records if predicate(r)]

    def reorder(self, order: list[int]):
        """Rearrange (and possibly shrink) the pool to the given positions"""
        self._records = [self._records[i] for i in order]

    def check_aligned(self):
        """Raise ValueError if any record's parts disagree in row count"""
        for r in self._records:
            if not (len(r.instances) == len(r.bug_matrix) == len(r.efforts)):
                raise ValueError(
                    f'Training data of {getattr(r.version, "name", r.version)} is misaligned: '
                    f'{len(r.instances)} instances, {len(r.bug_matrix)} bug matrix rows, '
                    f'{len(r.efforts)} efforts'
                )

    @property
    def records(self) -> list[TrainingData]:
        return list(self._records)

    @property
    def versions(self) -> list:
        return [r.version for r in self._records]

    @property
    def instances(self) -> list[pd.DataFrame]:
        return [r.instances for r in self._records]

    @property
    def bug_matrices(self) -> list[pd.DataFrame]:
        return [r.bug_matrix for r in self._records]

    @property
    def efforts(self) -> list[list[float]]:
        return [r.efforts for r in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(list(self._records))

    def __bool__(self) -> bool:
        return bool(self._records)
