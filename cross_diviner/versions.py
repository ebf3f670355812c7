"""
Software versions: one dataset snapshot per project release.
"""

from dataclasses import dataclass, field

import pandas as pd

from .config import LABEL_COL


@dataclass(eq=False)
class SoftwareVersion:
    """
    A single version of a software project.

    Rows of `instances`, `bug_matrix`, `efforts` and `num_bugs` refer to the
    same entities in the same order. Equality is identity: two loaded
    versions are never interchangeable even when their data is equal.
    """
    dataset: str
    project: str
    version: str
    instances: pd.DataFrame
    bug_matrix: pd.DataFrame = None
    efforts: list[float] = None
    num_bugs: list[float] = None
    release_order: int = 0
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        n = len(self.instances)
        if self.bug_matrix is None:
            self.bug_matrix = pd.DataFrame(index=range(n))
        if self.efforts is None:
            self.efforts = [1.0] * n
        if self.num_bugs is None:
            self.num_bugs = [float(v) for v in self.instances[LABEL_COL]]
        if len(self.bug_matrix) != n or len(self.efforts) != n or len(self.num_bugs) != n:
            raise ValueError(
                f'{self.name}: instances ({n}), bug matrix ({len(self.bug_matrix)}), '
                f'efforts ({len(self.efforts)}) and bug counts ({len(self.num_bugs)}) differ in length'
            )

    @property
    def name(self) -> str:
        return f'{self.project}-{self.version}'

    @property
    def sort_key(self) -> tuple:
        return (self.dataset, self.project, self.release_order, self.version)

    def __lt__(self, other: 'SoftwareVersion') -> bool:
        return self.sort_key < other.sort_key

    def __repr__(self) -> str:
        return f'SoftwareVersion({self.name!r}, instances={len(self.instances)})'


def feature_columns(df: pd.DataFrame) -> list[str]:
    """All columns except the label"""
    return [c for c in df.columns if c != LABEL_COL]


def split_features(df: pd.DataFrame) -> tuple[pd.DataFrame, pd.Series]:
    """Split an instance table into (X, y)"""
    X = df[feature_columns(df)].fillna(0)
    y = df[LABEL_COL].astype(int)
    return X, y
