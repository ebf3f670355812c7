"""
Training strategies and the models they produce.
"""

import logging

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.pipeline import Pipeline, make_pipeline
from sklearn.preprocessing import StandardScaler
from xgboost import XGBClassifier

from .config import (
    MINING_AGENTS,
    MINING_MAX_COMPLEXITY,
    MINING_TIME_MINUTES,
    MINING_WITHIN_PERCENT,
    RANDOM_STATE,
)
from .dataselection import characteristic_distances, common_features
from .errors import ConfigurationError, NoRuleFoundError
from .merge import align_bug_data
from .rulemining import RuleMiner, RuleSet
from .strategies import (
    BugMatrixAwareTrainingStrategy,
    SetWiseBugMatrixAwareTrainingStrategy,
    SetWiseTestdataAwareTrainingStrategy,
    SetWiseTrainingStrategy,
    TestAwareTrainingStrategy,
    TrainedModel,
    TrainingStrategy,
    get_option,
    parse_options,
)
from .versions import split_features

logger = logging.getLogger(__name__)


# =============================================================================
# CLASSIFIERS
# =============================================================================

CLASSIFIERS = {
    # Scale features for Logistic Regression
    'LogisticRegression': lambda: make_pipeline(
        StandardScaler(), LogisticRegression(random_state=RANDOM_STATE, max_iter=1000)
    ),
    'RandomForest': lambda: RandomForestClassifier(
        n_estimators=100, max_depth=4, random_state=RANDOM_STATE
    ),
    'XGBoost': lambda: XGBClassifier(
        n_estimators=100, max_depth=4, learning_rate=0.1, random_state=RANDOM_STATE, verbosity=0
    ),
}

FIX_CLASS = 'FixClass'


def make_classifier(name: str):
    """Create a fresh, unfitted classifier by name"""
    if name not in CLASSIFIERS:
        raise ConfigurationError(
            f'Unknown classifier {name!r}; choose from {sorted(CLASSIFIERS) + [FIX_CLASS]}'
        )
    return CLASSIFIERS[name]()


def fit_classifier(name: str, traindata: pd.DataFrame, sample_weight=None) -> TrainedModel:
    """
    Fit the named classifier on an instance table.

    Training data with a single class yields a model that always predicts it.
    """
    X, y = split_features(traindata)
    if y.nunique() < 2:
        fixed = int(y.iloc[0]) if len(y) else 0
        logger.info(f'{name}: training data has a single class; predicting {fixed}')
        return FixedClassModel(name, fixed)

    model = make_classifier(name)
    if sample_weight is None:
        model.fit(X, y)
    elif isinstance(model, Pipeline):
        model.fit(X, y, **{f'{model.steps[-1][0]}__sample_weight': sample_weight})
    else:
        model.fit(X, y, sample_weight=sample_weight)
    return EstimatorModel(name, model, list(X.columns))


# =============================================================================
# MODELS
# =============================================================================

class EstimatorModel(TrainedModel):
    """A fitted scikit-learn compatible classifier"""

    def __init__(self, name: str, estimator, features: list[str]):
        super().__init__(name)
        self.estimator = estimator
        self.features = features

    def predict_proba(self, instances: pd.DataFrame) -> np.ndarray:
        X = instances.reindex(columns=self.features).fillna(0)
        proba = self.estimator.predict_proba(X)
        return proba[:, list(self.estimator.classes_).index(1)]


class FixedClassModel(TrainedModel):
    """Always predicts the same class"""

    def __init__(self, name: str, fixed_class: int = 0):
        super().__init__(name)
        self.fixed_class = fixed_class

    def predict_proba(self, instances: pd.DataFrame) -> np.ndarray:
        return np.full(len(instances), float(self.fixed_class))


class VotingModel(TrainedModel):
    """Weighted average of the member models' probabilities"""

    def __init__(self, name: str, members: list[TrainedModel], weights=None):
        super().__init__(name)
        self.members = members
        self.weights = np.ones(len(members)) if weights is None else np.asarray(weights, dtype=float)

    def predict_proba(self, instances: pd.DataFrame) -> np.ndarray:
        probas = np.vstack([m.predict_proba(instances) for m in self.members])
        return np.average(probas, axis=0, weights=self.weights)


class RuleSetModel(TrainedModel):
    """Flags every instance matched by the mined rule set"""

    def __init__(self, name: str, ruleset: RuleSet):
        super().__init__(name)
        self.ruleset = ruleset

    def predict_proba(self, instances: pd.DataFrame) -> np.ndarray:
        return self.ruleset.apply(instances.fillna(0)).astype(float)


# =============================================================================
# OPTIONS
# =============================================================================

class ClassifierOptions:
    """
    Shared options of the classifier-based trainers.

    -C <name>   classifier (LogisticRegression, RandomForest, XGBoost, FixClass)
    -c <class>  class predicted by FixClass (default 0)
    """

    classifier = 'RandomForest'
    fixed_class = 0

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        self.classifier = get_option(options, 'C', self.classifier)
        self.fixed_class = get_option(options, 'c', self.fixed_class, int)
        if self.classifier != FIX_CLASS:
            make_classifier(self.classifier)

    @property
    def name(self) -> str:
        return self.display_name or f'{type(self).__name__}-{self.classifier}'

    def fit(self, traindata: pd.DataFrame, sample_weight=None) -> TrainedModel:
        if self.classifier == FIX_CLASS:
            return FixedClassModel(self.name, self.fixed_class)
        model = fit_classifier(self.classifier, traindata, sample_weight)
        model.name = self.name
        return model


class MiningOptions:
    """
    Shared options of the rule-mining trainers.

    -A <n>        number of agents
    -C <n>        maximum rule complexity
    -P <x>        cost tolerance when preferring simpler rules
    -T <minutes>  search time budget
    -V            log agent progress
    -s <seed>     random seed
    """

    miner = RuleMiner()

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        agents = get_option(options, 'A', MINING_AGENTS, int)
        if agents < 1:
            raise ConfigurationError(f'Rule mining needs at least one agent, got {agents}')
        self.miner = RuleMiner(
            agents=agents,
            max_complexity=get_option(options, 'C', MINING_MAX_COMPLEXITY, float),
            within_percent=get_option(options, 'P', MINING_WITHIN_PERCENT, float),
            time_seconds=60 * get_option(options, 'T', MINING_TIME_MINUTES, float),
            verbose=get_option(options, 'V', False, bool),
            seed=get_option(options, 's', RANDOM_STATE, int),
        )


# =============================================================================
# POINT-WISE TRAINERS
# =============================================================================

class ClassifierTraining(ClassifierOptions, TrainingStrategy):
    """Trains one classifier on the merged training data"""

    def apply(self, traindata: pd.DataFrame) -> TrainedModel:
        return self.fit(traindata)


class ImportanceWeightedTraining(ClassifierOptions, TestAwareTrainingStrategy):
    """
    Weights training rows by how much they resemble the test data.

    A logistic regression separates training from test rows; the odds of a
    training row being a test row become its sample weight (clipped).
    """

    def apply(self, traindata: pd.DataFrame, testdata: pd.DataFrame) -> TrainedModel:
        return self.fit(traindata, sample_weight=importance_weights(traindata, testdata))


def importance_weights(traindata: pd.DataFrame, testdata: pd.DataFrame,
                       clip: tuple[float, float] = (0.1, 10.0)) -> np.ndarray:
    cols = common_features(testdata, [traindata])
    if not cols or testdata.empty or traindata.empty:
        return np.ones(len(traindata))

    X = pd.concat([traindata[cols], testdata[cols]], ignore_index=True).fillna(0).astype(float)
    origin = np.r_[np.zeros(len(traindata)), np.ones(len(testdata))]
    domain = make_pipeline(StandardScaler(), LogisticRegression(max_iter=1000))
    domain.fit(X, origin)

    p_test = domain.predict_proba(X.iloc[:len(traindata)])[:, 1]
    p_test = np.clip(p_test, 1e-6, 1 - 1e-6)
    weights = p_test / (1 - p_test) * len(traindata) / len(testdata)
    return np.clip(weights, *clip)


class RuleMiningTraining(MiningOptions, BugMatrixAwareTrainingStrategy):
    """Mines an effort-aware rule set on the merged training data"""

    def apply(self, traindata: pd.DataFrame, bugmatrix: pd.DataFrame,
              efforts: list[float]) -> TrainedModel:
        bugmatrix, efforts = align_bug_data(traindata, bugmatrix, efforts)
        blackboard = self.miner.mine(traindata, bugmatrix, efforts)
        best = self.miner.best_rule(blackboard)
        if best is None:
            raise NoRuleFoundError(
                f'{self.name}: no rule in the Pareto front with complexity <= {self.miner.max_complexity}'
            )
        logger.info(f'{self.name} best rule:\n{best}')
        return RuleSetModel(self.name, best)


# =============================================================================
# SET-WISE TRAINERS
# =============================================================================

class SetWiseVotingTraining(ClassifierOptions, SetWiseTrainingStrategy):
    """One classifier per training version; predictions are averaged"""

    def apply(self, traindata_set: list[pd.DataFrame]) -> TrainedModel:
        members = [self.fit(traindata) for traindata in traindata_set]
        return VotingModel(self.name, members)


class SimilarityWeightedVotingTraining(ClassifierOptions, SetWiseTestdataAwareTrainingStrategy):
    """Like SetWiseVotingTraining, but versions resembling the test data count more"""

    def apply(self, traindata_set: list[pd.DataFrame], testdata: pd.DataFrame) -> TrainedModel:
        members = [self.fit(traindata) for traindata in traindata_set]
        weights = 1.0 / (1.0 + characteristic_distances(testdata, traindata_set))
        return VotingModel(self.name, members, weights)


class SetWiseRuleMiningTraining(MiningOptions, SetWiseBugMatrixAwareTrainingStrategy):
    """
    Mines one rule set per training version, then lets the versions vote.

    Every version scores the rules mined on all other versions against its
    own data and votes for the best scoring one(s). The rule with most votes
    wins; ties go to the earlier version.
    """

    def apply(self, traindata_set: list[pd.DataFrame], bugmatrix_set: list[pd.DataFrame],
              efforts_set: list[list[float]]) -> TrainedModel:
        blackboards = []
        best_rules = []
        for i, (traindata, bugmatrix, efforts) in enumerate(zip(traindata_set, bugmatrix_set, efforts_set)):
            blackboard = self.miner.mine(traindata, bugmatrix, efforts)
            best = self.miner.best_rule(blackboard)
            if best is None:
                raise NoRuleFoundError(
                    f'{self.name}: training version {i + 1} of {len(traindata_set)} produced no '
                    f'rule with complexity <= {self.miner.max_complexity}'
                )
            blackboards.append(blackboard)
            best_rules.append(best)

        best = best_rules[vote(blackboards, best_rules)]
        logger.info(f'{self.name} best rule:\n{best}')
        return RuleSetModel(self.name, best)


def vote(blackboards: list, rules: list[RuleSet]) -> int:
    """Index of the rule preferred by most of the other versions' data"""
    votes = np.zeros(len(rules), dtype=int)
    for i, blackboard in enumerate(blackboards):
        scores = {j: blackboard.score(rule) for j, rule in enumerate(rules) if j != i}
        if not scores:
            continue
        top = max(scores.values())
        for j, score in scores.items():
            if score == top:
                votes[j] += 1
    return int(np.argmax(votes))
