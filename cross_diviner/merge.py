"""
Merging the training pool into a single training set.
"""

import logging
from itertools import chain
from pathlib import Path

import numpy as np
import pandas as pd

from .config import DIAGNOSTIC_PATH, RESULT_SEPARATOR
from .errors import DiagnosticWriteError

logger = logging.getLogger(__name__)


def make_single_training_set(traindata_set: list[pd.DataFrame]) -> pd.DataFrame:
    """
    Concatenate instance tables in pool order.

    The first table's columns are authoritative; the result has a fresh
    RangeIndex whose positions match the merged bug matrix rows.
    """
    if not traindata_set:
        raise ValueError('Cannot merge an empty training set')
    columns = list(traindata_set[0].columns)
    return pd.concat([t[columns] for t in traindata_set], ignore_index=True)


def make_single_bug_matrix(bugmatrix_set: list[pd.DataFrame]) -> pd.DataFrame:
    """
    Combine bug matrices with differing columns into one matrix.

    Columns are the union of all source columns in first-seen order. Rows are
    the source rows in pool order. Columns a source does not have are 0.0
    for that source's rows.
    """
    name_to_index = {}
    for bug_matrix in bugmatrix_set:
        for col in bug_matrix.columns:
            if col not in name_to_index:
                name_to_index[col] = len(name_to_index)

    n = sum(len(b) for b in bugmatrix_set)
    values = np.zeros((n, len(name_to_index)), dtype=float)

    row = 0
    for bug_matrix in bugmatrix_set:
        rows = len(bug_matrix)
        if rows and len(bug_matrix.columns):
            cols = [name_to_index[c] for c in bug_matrix.columns]
            values[row:row + rows, cols] = bug_matrix.to_numpy(dtype=float)
        row += rows

    return pd.DataFrame(values, columns=list(name_to_index))


def make_single_efforts(efforts_set: list[list[float]]) -> list[float]:
    """Concatenate effort lists in pool order"""
    return list(chain.from_iterable(efforts_set))


def dump_diagnostic(traindata: pd.DataFrame, bugmatrix: pd.DataFrame, path=DIAGNOSTIC_PATH) -> bool:
    """
    Write the merged training data next to its bug matrix (best effort).

    Never raises; failures are logged and reported through the return value.
    """
    try:
        _write_diagnostic(traindata, bugmatrix, Path(path))
    except DiagnosticWriteError as e:
        logger.warning(f'Could not write diagnostic dump: {e}')
        return False
    return True


def _write_diagnostic(traindata: pd.DataFrame, bugmatrix: pd.DataFrame, path: Path):
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        both = pd.concat(
            [traindata.reset_index(drop=True), bugmatrix.reset_index(drop=True)], axis=1
        )
        both.to_csv(path, sep=RESULT_SEPARATOR, index=False)
    except Exception as e:
        raise DiagnosticWriteError(f'{path}: {e}') from e


def align_bug_data(traindata: pd.DataFrame, bugmatrix: pd.DataFrame,
                   efforts: list[float]) -> tuple[pd.DataFrame, list[float]]:
    """
    Restrict the merged bug matrix and efforts to the rows left in traindata.

    Point-wise stages keep the index labels of the merged training set, so
    the surviving labels point at bug matrix positions.
    """
    if len(traindata) == len(bugmatrix) and traindata.index.equals(bugmatrix.index):
        return bugmatrix, list(efforts)
    positions = traindata.index.to_numpy()
    if not np.issubdtype(positions.dtype, np.integer) or (
            len(positions) and (positions.min() < 0 or positions.max() >= len(bugmatrix))):
        raise ValueError(
            f'Training data ({len(traindata)} rows) cannot be aligned with '
            f'bug matrix ({len(bugmatrix)} rows)'
        )
    efforts = np.asarray(efforts, dtype=float)
    return bugmatrix.iloc[positions].reset_index(drop=True), efforts[positions].tolist()
