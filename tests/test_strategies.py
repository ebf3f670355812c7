#!/usr/bin/env python3
"""
Tests for the built-in processing, selection, training and evaluation strategies.

Usage:
    python -m pytest tests/test_strategies.py -v
"""

import threading

import numpy as np
import pandas as pd
import pytest

from cross_diviner.pool import TrainingPool


def make_pool(versions):
    pool = TrainingPool()
    for v in versions:
        pool.add(v, v.instances, v.bug_matrix, v.efforts)
    return pool


def scaled(version, factor):
    """Multiply the feature columns of a version in place"""
    for col in ('loc', 'wmc', 'cbo'):
        version.instances[col] = version.instances[col] * factor
    return version


# =============================================================================
# DATA PROCESSING
# =============================================================================

def test_zscore_in_place(make_version):
    """Features are standardized, the label is left alone"""
    from cross_diviner.dataprocessing import zscore

    df = make_version('ant').instances
    labels = df['is_buggy'].copy()
    zscore(df)

    assert np.allclose(df[['loc', 'wmc', 'cbo']].mean(), 0.0)
    assert np.allclose(df[['loc', 'wmc', 'cbo']].std(ddof=0), 1.0)
    pd.testing.assert_series_equal(df['is_buggy'], labels)


def test_test_relative_normalization(make_version):
    """A training version takes on the test version's mean and deviation"""
    from cross_diviner.dataprocessing import TestRelativeNormalization

    test = make_version('ant', seed=1)
    train = scaled(make_version('camel', seed=2), 10)
    TestRelativeNormalization().apply(test, train, train.instances)

    for col in ('loc', 'wmc', 'cbo'):
        assert train.instances[col].mean() == pytest.approx(test.instances[col].mean())
        assert train.instances[col].std(ddof=0) == pytest.approx(test.instances[col].std(ddof=0))


def test_zscore_with_training_statistics(make_version):
    """With -t both tables are scaled by the training data's statistics"""
    from cross_diviner.dataprocessing import ZScoreNormalization

    test = make_version('ant', seed=1).instances
    train = make_version('camel', seed=2).instances
    expected = (test['loc'] - train['loc'].mean()) / train['loc'].std(ddof=0)

    strategy = ZScoreNormalization()
    strategy.set_parameter('-t')
    strategy.apply(test, train)

    assert np.allclose(train['loc'].mean(), 0.0)
    assert np.allclose(test['loc'], expected)


def test_logarithm_transform():
    """sign(x) * log(1 + |x|) on the features of both tables"""
    from cross_diviner.dataprocessing import LogarithmTransform

    test = pd.DataFrame({'loc': [0.0, np.e - 1], 'is_buggy': [0, 1]})
    train = pd.DataFrame({'loc': [-(np.e - 1)], 'is_buggy': [1]})
    LogarithmTransform().apply(test, train)

    assert test['loc'].tolist() == pytest.approx([0.0, 1.0])
    assert train['loc'].tolist() == pytest.approx([-1.0])
    assert test['is_buggy'].tolist() == [0, 1]


def test_undersampling_balances_and_keeps_labels():
    """Majority rows are dropped in place; kept rows keep their index"""
    from cross_diviner.dataprocessing import Undersampling

    train = pd.DataFrame({'loc': range(8), 'is_buggy': [0, 0, 0, 0, 0, 0, 1, 1]},
                         index=range(100, 108))
    Undersampling(seed=1).apply(pd.DataFrame(), train)

    assert train['is_buggy'].value_counts().tolist() == [2, 2]
    assert set(train.index) <= set(range(100, 108))
    assert {106, 107} <= set(train.index)


def test_undersampling_single_class_untouched():
    """Nothing to balance with one class"""
    from cross_diviner.dataprocessing import Undersampling

    train = pd.DataFrame({'loc': range(4), 'is_buggy': [0, 0, 0, 0]})
    Undersampling().apply(pd.DataFrame(), train)
    assert len(train) == 4


# =============================================================================
# DATA SELECTION
# =============================================================================

def test_setwise_knn_keeps_closest_versions(make_version):
    """The k most similar versions survive, in their original pool order"""
    from cross_diviner.dataselection import SetWiseKNNSelection

    test = make_version('ant', seed=1)
    far = scaled(make_version('camel', seed=2), 50)
    near = make_version('jedit', seed=3)
    nearer = make_version('log4j', seed=1)
    pool = make_pool([far, near, nearer])

    selector = SetWiseKNNSelection()
    selector.set_parameter('-k 2')
    selector.apply(test.instances, pool)

    assert [v.project for v in pool.versions] == ['jedit', 'log4j']
    pool.check_aligned()


def test_setwise_knn_small_pool_unchanged(make_version):
    """Pools no larger than k are left alone"""
    from cross_diviner.dataselection import SetWiseKNNSelection

    versions = [make_version(p, seed=i) for i, p in enumerate(['a', 'b', 'c'])]
    pool = make_pool(versions)
    SetWiseKNNSelection(k=5).apply(versions[0].instances, pool)
    assert pool.versions == versions


def test_characteristic_distances(make_version):
    """Identical data has distance zero, scaled data is further away"""
    from cross_diviner.dataselection import characteristic_distances

    test = make_version('ant', seed=1).instances
    same = make_version('camel', seed=1).instances
    other = scaled(make_version('jedit', seed=1), 10).instances

    distances = characteristic_distances(test, [same, other])
    assert distances[0] == pytest.approx(0.0)
    assert distances[1] > 0


def test_nearest_neighbor_filter_selects_neighbors():
    """Training rows next to test rows are kept with their labels; the input is untouched"""
    from cross_diviner.dataselection import NearestNeighborFilter

    train = pd.DataFrame({'loc': [1.0, 2.0, 50.0, 51.0, 100.0], 'is_buggy': [0, 0, 1, 1, 0]},
                         index=[10, 11, 12, 13, 14])
    snapshot = train.copy()
    test = pd.DataFrame({'loc': [50.2, 99.0], 'is_buggy': [1, 0]})

    selector = NearestNeighborFilter()
    selector.set_parameter('-k 1')
    selected = selector.apply(test, train)

    assert list(selected.index) == [12, 14]
    assert selected['loc'].tolist() == [50.0, 100.0]
    pd.testing.assert_frame_equal(train, snapshot)


def test_nearest_neighbor_filter_k_larger_than_data():
    """k is capped at the number of training rows"""
    from cross_diviner.dataselection import NearestNeighborFilter

    train = pd.DataFrame({'loc': [1.0, 2.0], 'is_buggy': [0, 1]})
    test = pd.DataFrame({'loc': [1.5], 'is_buggy': [0]})
    selected = NearestNeighborFilter(k=10).apply(test, train)
    assert len(selected) == 2


# =============================================================================
# TRAINING
# =============================================================================

@pytest.mark.parametrize('classifier', ['LogisticRegression', 'RandomForest', 'XGBoost'])
def test_classifier_training(make_version, classifier):
    """Every classifier yields probabilities for the defective class"""
    from cross_diviner.training import ClassifierTraining

    train = make_version('ant', n=60, seed=1).instances
    test = make_version('camel', seed=2).instances

    trainer = ClassifierTraining()
    trainer.set_parameter(f'-C {classifier}')
    model = trainer.apply(train)
    proba = model.predict_proba(test)

    assert model.name == f'ClassifierTraining-{classifier}'
    assert proba.shape == (len(test),)
    assert ((proba >= 0) & (proba <= 1)).all()
    assert set(model.predict(test)) <= {0, 1}


def test_classifier_training_display_name(make_version):
    """A configured name overrides the generated one"""
    from cross_diviner.training import ClassifierTraining

    trainer = ClassifierTraining()
    trainer.display_name = 'RF'
    assert trainer.apply(make_version('ant').instances).name == 'RF'


def test_fix_class():
    """FixClass predicts one class for every row"""
    from cross_diviner.training import ClassifierTraining

    trainer = ClassifierTraining()
    trainer.set_parameter('-C FixClass -c 1')
    model = trainer.apply(pd.DataFrame({'loc': [1.0], 'is_buggy': [0]}))
    assert model.predict_proba(pd.DataFrame({'loc': [1.0, 2.0, 3.0]})).tolist() == [1.0, 1.0, 1.0]


def test_single_class_training_data():
    """Single-class training data gives a constant model instead of an error"""
    from cross_diviner.training import FixedClassModel, fit_classifier

    train = pd.DataFrame({'loc': [1.0, 2.0, 3.0], 'is_buggy': [1, 1, 1]})
    model = fit_classifier('RandomForest', train)
    assert isinstance(model, FixedClassModel)
    assert model.fixed_class == 1


def test_unknown_classifier():
    """Unknown classifier names are configuration errors"""
    from cross_diviner.errors import ConfigurationError
    from cross_diviner.training import ClassifierTraining

    with pytest.raises(ConfigurationError):
        ClassifierTraining().set_parameter('-C SVM')


def test_importance_weights(make_version):
    """Weights are positive, clipped and favor rows resembling the test data"""
    from cross_diviner.training import importance_weights

    test = make_version('ant', seed=1).instances
    near = make_version('camel', seed=2).instances
    far = scaled(make_version('jedit', seed=3), 5).instances
    train = pd.concat([near, far], ignore_index=True)

    weights = importance_weights(train, test)

    assert weights.shape == (len(train),)
    assert ((weights >= 0.1) & (weights <= 10.0)).all()
    assert weights[:len(near)].mean() > weights[len(near):].mean()


def test_importance_weights_empty_test():
    """No test rows means uniform weights"""
    from cross_diviner.training import importance_weights

    train = pd.DataFrame({'loc': [1.0, 2.0], 'is_buggy': [0, 1]})
    assert importance_weights(train, train.iloc[:0]).tolist() == [1.0, 1.0]


def test_importance_weighted_training(make_version):
    """The test-aware trainer fits on weighted training data"""
    from cross_diviner.training import EstimatorModel, ImportanceWeightedTraining

    trainer = ImportanceWeightedTraining()
    trainer.set_parameter('-C LogisticRegression')
    model = trainer.apply(make_version('ant', seed=1).instances, make_version('camel', seed=2).instances)
    assert isinstance(model, EstimatorModel)


def test_setwise_voting(make_version):
    """One member per training version; probabilities are averaged"""
    from cross_diviner.training import SetWiseVotingTraining, VotingModel

    trainer = SetWiseVotingTraining()
    trainer.set_parameter('-C FixClass -c 1')
    model = trainer.apply([make_version('a').instances, make_version('b').instances])

    assert isinstance(model, VotingModel)
    assert len(model.members) == 2


def test_voting_model_weights():
    """Member probabilities are combined by weight"""
    from cross_diviner.training import FixedClassModel, VotingModel

    model = VotingModel('v', [FixedClassModel('one', 1), FixedClassModel('zero', 0)], weights=[3, 1])
    assert model.predict_proba(pd.DataFrame({'loc': [1.0]})).tolist() == [0.75]


def test_similarity_weighted_voting(make_version):
    """The version closest to the test data gets the largest weight"""
    from cross_diviner.training import SimilarityWeightedVotingTraining

    test = make_version('ant', seed=1).instances
    same = make_version('camel', seed=1).instances
    far = scaled(make_version('jedit', seed=2), 20).instances

    trainer = SimilarityWeightedVotingTraining()
    trainer.set_parameter('-C RandomForest')
    model = trainer.apply([far, same], test)

    assert model.weights[1] == pytest.approx(1.0)
    assert model.weights[0] < model.weights[1]


# =============================================================================
# RULE MINING
# =============================================================================

def rule(*conditions):
    from cross_diviner.rulemining import Condition, Rule, RuleSet

    return RuleSet((Rule(tuple(Condition(*c) for c in conditions)),))


def make_blackboard(version):
    from cross_diviner.rulemining import Blackboard

    return Blackboard.from_training_data(version.instances, version.bug_matrix, version.efforts)


def test_ruleset_apply():
    """Rules are conjunctions, rule sets disjunctions"""
    from cross_diviner.rulemining import Condition, Rule, RuleSet

    data = pd.DataFrame({'loc': [10.0, 300.0, 300.0], 'wmc': [1.0, 1.0, 20.0]})
    both = RuleSet((Rule((Condition('loc', 100, True), Condition('wmc', 10, True))),))
    either = RuleSet((Rule((Condition('loc', 100, False),)), Rule((Condition('wmc', 10, True),))))

    assert both.apply(data).tolist() == [0, 0, 1]
    assert either.apply(data).tolist() == [1, 0, 1]
    assert both.complexity == 2
    assert either.features == ['loc', 'wmc']


def test_blackboard_bugs_from_label_without_bug_matrix(make_version):
    """Versions without bug-matrix columns count one bug per defective row"""
    v = make_version('ant', bug_cols=())
    blackboard = make_blackboard(v)
    assert blackboard.total_bugs == v.instances['is_buggy'].sum()


def test_blackboard_front_is_non_dominated(make_version):
    """Dominated and duplicate candidates never enter the front"""
    blackboard = make_blackboard(make_version('ant'))

    assert blackboard.offer(rule(('loc', 0, True)))        # flags everything
    assert blackboard.offer(rule(('wmc', 1000, True)))     # flags nothing
    assert not blackboard.offer(rule(('loc', 0, True)))
    assert not blackboard.offer(rule(('loc', 0, True), ('loc', -1, True)))
    blackboard.offer(rule(('loc', 255, True)))

    front = blackboard.front
    for a in front:
        assert not any(b.dominates(a) for b in front if b is not a)


def test_best_rule_respects_complexity(make_version):
    """Nothing qualifies below the simplest candidate's complexity"""
    blackboard = make_blackboard(make_version('ant'))
    blackboard.offer(rule(('loc', 255, True)))
    blackboard.offer(rule(('loc', 255, True), ('wmc', 0, True)))

    assert blackboard.best_rule(max_complexity=0, within_percent=0.1) is None
    assert blackboard.best_rule(max_complexity=30, within_percent=0.1).complexity >= 1


def test_best_rule_prefers_simple_rules_within_tolerance():
    """A simpler rule close enough to the best cost beats the best rule"""
    from cross_diviner.rulemining import Blackboard, Condition, Rule, RuleSet

    data = pd.DataFrame({'loc': [1.0, 2.0, 3.0, 4.0]})
    blackboard = Blackboard(data, bugs=[1, 0, 0, 1], efforts=[1, 1, 1, 1])
    best = RuleSet((Rule((Condition('loc', 1, False),)), Rule((Condition('loc', 3, True),))))
    simple = rule(('loc', 2, True))
    assert blackboard.offer(best)      # cost 0.5, complexity 2
    assert blackboard.offer(simple)    # cost 1.0, complexity 1

    assert blackboard.best_rule(30, 0.0) == best
    assert blackboard.best_rule(30, 1.5) == simple
    assert blackboard.best_rule(1, 0.0) == simple


def test_miner_stops_all_agents(make_version):
    """After mining returns, no agent thread is alive and the front is filled"""
    from cross_diviner.rulemining import RuleMiner

    v = make_version('ant', n=60)
    miner = RuleMiner(agents=2, time_seconds=0.2)
    blackboard = miner.mine(v.instances, v.bug_matrix, v.efforts)

    assert not [t for t in threading.enumerate() if t.name.startswith('mining-agent')]
    assert blackboard.front
    assert blackboard.evaluations >= 2
    assert miner.best_rule(blackboard) is not None


def test_miner_with_zero_budget(make_version):
    """Every agent contributes at least one candidate"""
    from cross_diviner.rulemining import RuleMiner

    v = make_version('ant')
    blackboard = RuleMiner(agents=3, time_seconds=0).mine(v.instances, v.bug_matrix, v.efforts)
    assert blackboard.evaluations >= 3


def test_rule_mining_training(make_version):
    """The trainer returns a model flagging what its rule set matches"""
    from cross_diviner.training import RuleMiningTraining, RuleSetModel

    v = make_version('ant', n=60)
    trainer = RuleMiningTraining()
    trainer.set_parameter('-A 2 -T 0.004 -s 7')
    model = trainer.apply(v.instances, v.bug_matrix, v.efforts)

    assert isinstance(model, RuleSetModel)
    assert set(model.predict_proba(v.instances)) <= {0.0, 1.0}


def test_rule_mining_training_no_rule(make_version):
    """A complexity ceiling of zero admits no rule"""
    from cross_diviner.errors import NoRuleFoundError, StrategyExecutionError
    from cross_diviner.training import RuleMiningTraining

    v = make_version('ant')
    trainer = RuleMiningTraining()
    trainer.set_parameter('-C 0 -T 0.002')

    with pytest.raises(NoRuleFoundError):
        trainer.apply(v.instances, v.bug_matrix, v.efforts)
    assert issubclass(NoRuleFoundError, StrategyExecutionError)


def test_rule_mining_rejects_no_agents():
    """At least one agent is needed"""
    from cross_diviner.errors import ConfigurationError
    from cross_diviner.training import RuleMiningTraining

    with pytest.raises(ConfigurationError):
        RuleMiningTraining().set_parameter('-A 0')


def test_vote_picks_rule_preferred_by_other_versions(make_version):
    """Each version judges the others' rules; the majority choice wins"""
    from cross_diviner.training import vote

    blackboards = [make_blackboard(make_version(p, n=60, seed=i)) for i, p in enumerate('abc')]
    rules = [
        rule(('loc', 50, False)),    # misses almost every bug
        rule(('loc', 255, True)),    # large files are the defective ones
        rule(('wmc', 1000, True)),   # flags nothing
    ]
    assert vote(blackboards, rules) == 1


def test_setwise_rule_mining(make_version):
    """One rule set per version, then a vote"""
    from cross_diviner.training import RuleSetModel, SetWiseRuleMiningTraining

    versions = [make_version(p, n=50, seed=i) for i, p in enumerate('ab')]
    trainer = SetWiseRuleMiningTraining()
    trainer.set_parameter('-T 0.002')
    model = trainer.apply([v.instances for v in versions], [v.bug_matrix for v in versions],
                          [v.efforts for v in versions])
    assert isinstance(model, RuleSetModel)


def test_setwise_rule_mining_fails_on_version_without_rule(make_version):
    """A version without a rule aborts training instead of leaving the vote"""
    from cross_diviner.config import LABEL_COL
    from cross_diviner.errors import NoRuleFoundError
    from cross_diviner.training import SetWiseRuleMiningTraining

    good, featureless = make_version('a', n=50, seed=0), make_version('b', n=50, seed=1)
    trainer = SetWiseRuleMiningTraining()
    trainer.set_parameter('-A 1 -C 10 -T 0.001')

    with pytest.raises(NoRuleFoundError, match='training version 2 of 2'):
        trainer.apply([good.instances, featureless.instances[[LABEL_COL]]],
                      [good.bug_matrix, featureless.bug_matrix],
                      [good.efforts, featureless.efforts])


def test_mining_time_is_given_in_minutes():
    """-T sets the search budget in minutes"""
    from cross_diviner.training import RuleMiningTraining

    trainer = RuleMiningTraining()
    trainer.set_parameter('-T 2')
    assert trainer.miner.time_seconds == 120
    trainer.set_parameter('-T 0.5')
    assert trainer.miner.time_seconds == 30


# =============================================================================
# EVALUATION
# =============================================================================

def test_bugs_found_at_effort():
    """Bugs in the highest scored instances within 20% of the effort"""
    from cross_diviner.evaluation import bugs_found_at_effort

    scores = np.array([0.9, 0.8, 0.1, 0.2])
    efforts = [1.0, 1.0, 1.0, 7.0]
    num_bugs = [2.0, 0.0, 1.0, 1.0]
    assert bugs_found_at_effort(scores, efforts, num_bugs) == pytest.approx(0.5)
    assert bugs_found_at_effort(scores, efforts, [0, 0, 0, 0]) == 0.0


def test_bugs_found_at_effort_prefers_cheap_ties():
    """Among equal scores the cheaper instance is inspected first"""
    from cross_diviner.evaluation import bugs_found_at_effort

    scores = np.array([0.5, 0.5])
    assert bugs_found_at_effort(scores, [9.0, 1.0], [0.0, 1.0]) == 1.0


def test_compute_metrics():
    """Confusion counts and derived scores"""
    from cross_diviner.evaluation import METRICS, compute_metrics

    y_true = np.array([1, 0, 1, 0])
    scores = np.array([0.9, 0.1, 0.4, 0.2])
    metrics = compute_metrics(y_true, scores, (scores >= 0.5).astype(int), [1, 1, 1, 1], [1, 0, 1, 0])

    assert set(metrics) == set(METRICS)
    assert (metrics['tp'], metrics['fp'], metrics['tn'], metrics['fn']) == (1, 0, 2, 1)
    assert metrics['recall'] == 0.5
    assert metrics['precision'] == 1.0
    assert metrics['accuracy'] == 0.75
    assert metrics['auc'] == 1.0


def test_compute_metrics_single_class():
    """AUC is undefined when the test data has one class"""
    from cross_diviner.evaluation import compute_metrics

    metrics = compute_metrics(np.array([0, 0]), np.array([0.2, 0.7]), np.array([0, 1]), [1, 1], [0, 0])
    assert np.isnan(metrics['auc'])
    assert metrics['fp'] == 1


def test_normal_evaluation_writes_rows(tmp_path, make_version):
    """One header, one row per call, one column group per model"""
    from cross_diviner.evaluation import NormalEvaluation
    from cross_diviner.results import FileResultStorage
    from cross_diviner.training import FixedClassModel

    v = make_version('ant')
    storage = FileResultStorage(tmp_path / 'long.csv')
    evaluation = NormalEvaluation()
    evaluation.set_output(tmp_path / 'results' / 'exp.csv', 'exp')
    models = [FixedClassModel('all', 1), FixedClassModel('none', 0)]

    for write_header in (True, False):
        evaluation.apply(v.instances, v.instances.iloc[:10], models, v.efforts, v.num_bugs,
                         v.bug_matrix, write_header, [storage], version_name=v.name)

    table = pd.read_csv(tmp_path / 'results' / 'exp.csv', sep=';')
    assert list(table.columns[:3]) == ['version', 'size_test', 'size_training']
    assert 'all_recall' in table.columns and 'none_auc' in table.columns
    assert table['version'].tolist() == ['ant-1.0', 'ant-1.0']
    assert table['size_training'].tolist() == [10, 10]
    assert table['all_recall'].tolist() == [1.0, 1.0]

    assert storage.contains_result('exp', 'ant-1.0', 'all') == 2
    assert storage.contains_result('exp', 'ant-1.0', 'missing') == 0


def test_normal_evaluation_requires_output(make_version):
    """The run loop must set the result file first"""
    from cross_diviner.evaluation import NormalEvaluation

    v = make_version('ant')
    with pytest.raises(ValueError):
        NormalEvaluation().apply(v.instances, v.instances, [], v.efforts, v.num_bugs,
                                 v.bug_matrix, True, [], version_name=v.name)


# =============================================================================
# RESULTS
# =============================================================================

def test_results_available_from_storages(tmp_path, make_version):
    """The smallest count over all storages and trainers decides"""
    from cross_diviner.experiment import ExperimentConfiguration
    from cross_diviner.results import ExperimentResult, FileResultStorage, results_available
    from cross_diviner.training import ClassifierTraining

    v = make_version('ant')
    storage = FileResultStorage(tmp_path / 'long.csv')
    trainers = [ClassifierTraining(), ClassifierTraining()]
    trainers[0].display_name, trainers[1].display_name = 'RF', 'LR'
    config = ExperimentConfiguration(experiment_name='exp', trainers=trainers, result_storages=[storage])

    assert results_available(v, config) == 0
    storage.add_result(ExperimentResult('exp', v.name, 'RF', metrics={'auc': 0.7}))
    assert results_available(v, config) == 0
    storage.add_result(ExperimentResult('exp', v.name, 'LR', metrics={'auc': 0.6}))
    assert results_available(v, config) == 1
    storage.add_result(ExperimentResult('other', v.name, 'LR'))
    assert results_available(v, config) == 1


def test_results_available_from_result_file(tmp_path, make_version):
    """Without storages the rows of the result file are counted"""
    from cross_diviner.experiment import ExperimentConfiguration
    from cross_diviner.results import results_available

    v = make_version('ant')
    config = ExperimentConfiguration(experiment_name='exp', results_path=tmp_path)
    assert results_available(v, config) == 0

    config.result_file.write_text('version;size_test\nant-1.0;40\ncamel-1.0;40\nant-1.0;40\n')
    assert results_available(v, config) == 2

    # a resumed run appended its own header
    with open(config.result_file, 'a') as f:
        f.write('version;size_test\nant-1.0;40\n')
    assert results_available(v, config) == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
