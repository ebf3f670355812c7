"""
Evaluation of trained models on the test version.
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    matthews_corrcoef,
    precision_score,
    recall_score,
    roc_auc_score,
)

from .config import EFFORT_THRESHOLD, LABEL_COL, RESULT_SEPARATOR
from .results import ExperimentResult
from .strategies import EvaluationStrategy, TrainedModel

logger = logging.getLogger(__name__)

METRICS = [
    'tp', 'fp', 'tn', 'fn', 'recall', 'precision', 'fscore', 'gscore',
    'mcc', 'auc', 'accuracy', 'bugs_at_20_effort',
]


def bugs_found_at_effort(scores: np.ndarray, efforts, num_bugs, threshold: float = EFFORT_THRESHOLD) -> float:
    """
    Share of all bugs found when inspecting instances by descending score
    until `threshold` of the total effort is spent.
    """
    efforts = np.asarray(efforts, dtype=float)
    num_bugs = np.asarray(num_bugs, dtype=float)
    total_bugs = num_bugs.sum()
    if total_bugs == 0 or len(efforts) == 0:
        return 0.0

    # Cheaper instances first among equal scores
    order = np.lexsort((efforts, -scores))
    inspected = np.cumsum(efforts[order]) <= threshold * efforts.sum()
    return float(num_bugs[order][inspected].sum() / total_bugs)


def compute_metrics(y_true, scores: np.ndarray, y_pred: np.ndarray, efforts, num_bugs) -> dict:
    """Classification and effort-aware metrics for one model"""
    tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
    recall = recall_score(y_true, y_pred, zero_division=0)
    pf = fp / (fp + tn) if (fp + tn) else 0.0
    gscore = 2 * recall * (1 - pf) / (recall + 1 - pf) if (recall + 1 - pf) else 0.0

    if len(np.unique(y_true)) == 2:
        auc = roc_auc_score(y_true, scores)
    else:
        auc = float('nan')

    return {
        'tp': int(tp),
        'fp': int(fp),
        'tn': int(tn),
        'fn': int(fn),
        'recall': recall,
        'precision': precision_score(y_true, y_pred, zero_division=0),
        'fscore': f1_score(y_true, y_pred, zero_division=0),
        'gscore': gscore,
        'mcc': matthews_corrcoef(y_true, y_pred) if len(y_true) else 0.0,
        'auc': auc,
        'accuracy': accuracy_score(y_true, y_pred) if len(y_true) else 0.0,
        'bugs_at_20_effort': bugs_found_at_effort(scores, efforts, num_bugs),
    }


class NormalEvaluation(EvaluationStrategy):
    """
    Evaluates every model on the test data.

    Appends one row per call to the result file:
    version;size_test;size_training;<model>_<metric>;...
    """

    def apply(self, testdata: pd.DataFrame, traindata: pd.DataFrame, models: list[TrainedModel],
              efforts: list[float], num_bugs: list[float], bug_matrix: pd.DataFrame,
              write_header: bool, storages: list, version_name: str = None):
        if self.output_path is None:
            raise ValueError(f'{self.name}: no result file set')

        y_true = testdata[LABEL_COL].astype(int).to_numpy()
        row = {
            'version': version_name,
            'size_test': len(testdata),
            'size_training': len(traindata),
        }

        for model in models:
            scores = np.asarray(model.predict_proba(testdata), dtype=float)
            y_pred = (scores >= 0.5).astype(int)
            metrics = compute_metrics(y_true, scores, y_pred, efforts, num_bugs)
            for metric in METRICS:
                row[f'{model.name}_{metric}'] = metrics[metric]

            result = ExperimentResult(
                experiment_name=self.experiment_name,
                version_name=version_name,
                trainer_name=model.name,
                size_test=len(testdata),
                size_training=len(traindata),
                metrics=metrics,
            )
            for storage in storages:
                storage.add_result(result)

        path = Path(self.output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame([row]).to_csv(
            path, sep=RESULT_SEPARATOR, index=False, mode='a', header=write_header
        )
        logger.debug(f'{version_name}: wrote results of {len(models)} models to {path}')
