"""
Data processing strategies: version adaptation, normalization, resampling.
"""

import numpy as np
import pandas as pd
from imblearn.under_sampling import RandomUnderSampler
from sklearn.preprocessing import StandardScaler

from .config import LABEL_COL, RANDOM_STATE
from .strategies import (
    ProcessingStrategy,
    SetWiseProcessingStrategy,
    VersionProcessingStrategy,
    get_option,
    parse_options,
)
from .versions import feature_columns


def _shared_features(testdata: pd.DataFrame, traindata: pd.DataFrame) -> list[str]:
    return [c for c in feature_columns(traindata) if c in testdata.columns]


def zscore(df: pd.DataFrame):
    """Standardize the feature columns of df in place (constant columns become 0)"""
    cols = feature_columns(df)
    if not cols or df.empty:
        return
    df[cols] = StandardScaler().fit_transform(df[cols].fillna(0).astype(float))


# =============================================================================
# VERSION PROCESSING
# =============================================================================

class TestRelativeNormalization(VersionProcessingStrategy):
    """
    Rescales a training version to the distribution of the test version.

    Every feature is shifted and stretched so that its mean and standard
    deviation match the test data's.
    """

    def apply(self, test_version, train_version, traindata: pd.DataFrame):
        testdata = test_version.instances
        cols = _shared_features(testdata, traindata)
        if not cols:
            return

        train = traindata[cols].fillna(0).astype(float)
        test = testdata[cols].fillna(0).astype(float)
        train_std = train.std(ddof=0).replace(0, 1.0)
        traindata[cols] = (train - train.mean()) / train_std * test.std(ddof=0) + test.mean()


# =============================================================================
# SET-WISE PROCESSING
# =============================================================================

class SetWiseZScoreNormalization(SetWiseProcessingStrategy):
    """Standardizes the test data and each training version separately"""

    def apply(self, testdata: pd.DataFrame, pool):
        zscore(testdata)
        for traindata in pool.instances:
            zscore(traindata)


# =============================================================================
# POINT-WISE PROCESSING
# =============================================================================

class ZScoreNormalization(ProcessingStrategy):
    """
    Standardizes test and training data.

    -t   use the training data's statistics for both tables
    """

    def __init__(self, use_training_stats: bool = False):
        self.use_training_stats = use_training_stats

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        self.use_training_stats = get_option(options, 't', False, bool)

    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame):
        if not self.use_training_stats:
            zscore(testdata)
            zscore(traindata)
            return

        cols = _shared_features(testdata, traindata)
        scaler = StandardScaler().fit(traindata[cols].fillna(0).astype(float))
        traindata[cols] = scaler.transform(traindata[cols].fillna(0).astype(float))
        testdata[cols] = scaler.transform(testdata[cols].fillna(0).astype(float))


class LogarithmTransform(ProcessingStrategy):
    """Applies sign(x) * log(1 + |x|) to all features of both tables"""

    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame):
        for df in (testdata, traindata):
            cols = feature_columns(df)
            values = df[cols].fillna(0).astype(float)
            df[cols] = np.sign(values) * np.log1p(values.abs())


class Undersampling(ProcessingStrategy):
    """
    Randomly drops majority-class training rows until both classes are equal.

    The kept rows keep their index labels.

    -s <seed>   random seed
    """

    def __init__(self, seed: int = RANDOM_STATE):
        self.seed = seed

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        self.seed = get_option(options, 's', self.seed, int)

    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame):
        labels = traindata[LABEL_COL]
        if labels.nunique() < 2:
            return

        sampler = RandomUnderSampler(random_state=self.seed)
        sampler.fit_resample(traindata[feature_columns(traindata)].fillna(0), labels)
        keep = traindata.index[sampler.sample_indices_]
        traindata.drop(index=traindata.index.difference(keep), inplace=True)
