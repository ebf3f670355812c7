"""
Data selection: choosing training versions (set-wise) or rows (point-wise).
"""

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist
from sklearn.neighbors import NearestNeighbors

from .strategies import (
    PointWiseDataselectionStrategy,
    SetWiseDataselectionStrategy,
    get_option,
    parse_options,
)
from .versions import feature_columns


def common_features(testdata: pd.DataFrame, traindata_set: list[pd.DataFrame]) -> list[str]:
    """Features present in the test data and in every training table"""
    return [c for c in feature_columns(testdata) if all(c in t.columns for t in traindata_set)]


def characteristics(df: pd.DataFrame, cols: list[str]) -> np.ndarray:
    """Distributional characteristics of a table: per-feature mean and std"""
    values = df[cols].fillna(0).astype(float)
    return np.concatenate([values.mean().to_numpy(), values.std(ddof=0).to_numpy()])


def characteristic_distances(testdata: pd.DataFrame, traindata_set: list[pd.DataFrame]) -> np.ndarray:
    """
    Euclidean distance of each training table's characteristics to the test data's.

    Characteristics are standardized across all tables first so that no
    single feature dominates the distance.
    """
    cols = common_features(testdata, traindata_set)
    if not cols:
        return np.zeros(len(traindata_set))

    matrix = np.vstack([characteristics(testdata, cols)] +
                       [characteristics(t, cols) for t in traindata_set])
    std = matrix.std(axis=0)
    std[std == 0] = 1.0
    matrix = (matrix - matrix.mean(axis=0)) / std
    return cdist(matrix[:1], matrix[1:], metric='euclidean')[0]


# =============================================================================
# SET-WISE SELECTION
# =============================================================================

class SetWiseKNNSelection(SetWiseDataselectionStrategy):
    """
    Keeps the k training versions whose characteristics are closest to the test data.

    -k <n>   number of versions to keep (default 5)
    """

    def __init__(self, k: int = 5):
        self.k = k

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        self.k = get_option(options, 'k', self.k, int)

    def apply(self, testdata: pd.DataFrame, pool):
        if len(pool) <= self.k:
            return
        distances = characteristic_distances(testdata, pool.instances)
        nearest = np.argsort(distances, kind='stable')[:self.k]
        pool.reorder(sorted(nearest.tolist()))


# =============================================================================
# POINT-WISE SELECTION
# =============================================================================

class NearestNeighborFilter(PointWiseDataselectionStrategy):
    """
    Burak filter: keeps the training rows among the k nearest neighbors of any test row.

    -k <n>   neighbors per test row (default 10)
    """

    def __init__(self, k: int = 10):
        self.k = k

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        self.k = get_option(options, 'k', self.k, int)

    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame) -> pd.DataFrame:
        cols = common_features(testdata, [traindata])
        if traindata.empty or testdata.empty or not cols:
            return traindata.copy()

        k = min(self.k, len(traindata))
        nn = NearestNeighbors(n_neighbors=k).fit(traindata[cols].fillna(0).astype(float))
        _, neighbors = nn.kneighbors(testdata[cols].fillna(0).astype(float))
        positions = np.unique(neighbors.ravel())
        return traindata.iloc[positions].copy()
