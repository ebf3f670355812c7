"""
Experiment execution: the per-test-version pipeline.

For every version accepted by the test version filters, in version order:

    1. skip it if enough results already exist
    2. collect the eligible training versions into a TrainingPool
    3. set-wise preprocessors, selectors, postprocessors
    4. set-wise trainers (plain, test-data aware, bug-matrix aware)
    5. merge the pool into one training set
    6. preprocessors, point-wise selectors, postprocessors
    7. trainers (plain, test aware, bug-matrix aware)
    8. evaluators, with all models trained for this version

Any exception raised by a strategy ends the whole run. A run never writes
partial results for a version silently; it either finishes the version or
stops.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

import pandas as pd

from .errors import NoTrainingDataAvailable, StrategyExecutionError
from .filters import filter_versions, is_version
from .merge import dump_diagnostic, make_single_bug_matrix, make_single_efforts, make_single_training_set
from .pool import TrainingPool
from .results import results_available
from .strategies import TrainedModel


class VersionState(Enum):
    CANDIDATE = 'candidate'
    SKIPPED_DONE = 'skipped_done'
    SKIPPED_NO_TRAINING_DATA = 'skipped_no_training_data'
    PROCESSED = 'processed'
    EVALUATED = 'evaluated'


class AbstractCrossProjectExperiment(ABC):
    """
    Runs one experiment configuration.

    Subclasses decide which versions may serve as training data for a test
    version. Instances share nothing mutable with each other except the
    results directory, so several can run concurrently.
    """

    def __init__(self, config, logger: logging.Logger = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.write_header = True

    @abstractmethod
    def is_training_version(self, training_version, test_version, versions: list) -> bool:
        """Whether training_version may be used to predict test_version"""

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def load_versions(self) -> list:
        versions = []
        for loader in self.config.loaders:
            versions.extend(loader.load())
        filter_versions(versions, self.config.version_filters)
        versions.sort()
        return versions

    def assemble_training_pool(self, test_version, versions: list) -> TrainingPool:
        """
        Collect the training data for one test version.

        Version processors adapt every training version to the test version
        before it is added. Raises NoTrainingDataAvailable if nothing is eligible.
        """
        pool = TrainingPool()
        for training_version in versions:
            if training_version is test_version:
                continue
            if not is_version(training_version, versions, self.config.training_version_filters):
                continue
            if not self.is_training_version(training_version, test_version, versions):
                continue

            traindata = training_version.instances
            for processor in self.config.training_version_processors:
                self._apply(test_version, 'version processor', processor,
                            test_version, training_version, traindata)
            pool.add(training_version, traindata, training_version.bug_matrix, training_version.efforts)

        if not pool:
            raise NoTrainingDataAvailable(test_version.name)
        return pool

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self) -> dict:
        """Process every test version; returns the final state per version name"""
        self.write_header = True
        versions = self.load_versions()
        candidates = [v for v in versions if is_version(v, versions, self.config.test_version_filters)]

        for evaluator in self.config.evaluators:
            evaluator.set_output(self.config.result_file, self.config.experiment_name)

        states = {}
        for position, test_version in enumerate(candidates, 1):
            states[test_version.name] = self.run_version(
                test_version, versions, (position, len(candidates))
            )
        return states

    def run_version(self, test_version, versions: list, progress: tuple = (1, 1)) -> VersionState:
        config = self.config

        def log(message, level=logging.INFO):
            self._log(progress, test_version, message, level)

        log('starting')
        if results_available(test_version, config) >= config.repetitions:
            log('results already available; skipped')
            return VersionState.SKIPPED_DONE

        testdata = test_version.instances
        try:
            pool = self.assemble_training_pool(test_version, versions)
        except NoTrainingDataAvailable:
            log('no training data this product; skipped', logging.WARNING)
            return VersionState.SKIPPED_NO_TRAINING_DATA

        for processor in config.setwise_preprocessors:
            log(f'applying setwise preprocessor {processor.name}')
            self._apply(test_version, 'setwise preprocessor', processor, testdata, pool)
        for selector in config.setwise_selectors:
            log(f'applying setwise selection {selector.name}')
            self._apply(test_version, 'setwise selection', selector, testdata, pool)
        for processor in config.setwise_postprocessors:
            log(f'applying setwise postprocessor {processor.name}')
            self._apply(test_version, 'setwise postprocessor', processor, testdata, pool)

        if not pool:
            log('setwise selection left no training data; skipped', logging.WARNING)
            return VersionState.SKIPPED_NO_TRAINING_DATA

        models = []
        for trainer in config.setwise_trainers:
            log(f'applying setwise trainer {trainer.name}')
            models.append(self._train(test_version, trainer, pool.instances))
        for trainer in config.setwise_testdata_aware_trainers:
            log(f'applying testdata aware setwise trainer {trainer.name}')
            models.append(self._train(test_version, trainer, pool.instances, testdata))
        for trainer in config.setwise_bugmatrix_aware_trainers:
            log(f'applying bugmatrix aware setwise trainer {trainer.name}')
            try:
                pool.check_aligned()
            except ValueError as e:
                raise StrategyExecutionError(f'{test_version.name}: {e}') from e
            models.append(self._train(test_version, trainer, pool.instances, pool.bug_matrices, pool.efforts))

        traindata = make_single_training_set(pool.instances)
        trainbugs = make_single_bug_matrix(pool.bug_matrices)
        dump_diagnostic(traindata, trainbugs, config.diagnostic_path)
        trainefforts = make_single_efforts(pool.efforts)

        for processor in config.preprocessors:
            log(f'applying preprocessor {processor.name}')
            self._apply(test_version, 'preprocessor', processor, testdata, traindata)
        for selector in config.pointwise_selectors:
            log(f'applying pointwise selection {selector.name}')
            selected = self._apply(test_version, 'pointwise selection', selector, testdata, traindata)
            if not isinstance(selected, pd.DataFrame):
                raise StrategyExecutionError(
                    f'{test_version.name}: pointwise selection {selector.name} returned '
                    f'{type(selected).__name__}, not a DataFrame'
                )
            traindata = selected
        for processor in config.postprocessors:
            log(f'applying postprocessor {processor.name}')
            self._apply(test_version, 'postprocessor', processor, testdata, traindata)

        for trainer in config.trainers:
            log(f'applying trainer {trainer.name}')
            models.append(self._train(test_version, trainer, traindata))
        for trainer in config.testaware_trainers:
            log(f'applying test aware trainer {trainer.name}')
            models.append(self._train(test_version, trainer, traindata, testdata))
        for trainer in config.bugmatrix_aware_trainers:
            log(f'applying bugmatrix aware trainer {trainer.name}')
            models.append(self._train(test_version, trainer, traindata, trainbugs, trainefforts))

        state = VersionState.PROCESSED
        Path(config.results_path).mkdir(parents=True, exist_ok=True)
        for evaluator in config.evaluators:
            log(f'applying evaluator {evaluator.name}')
            self._apply(
                test_version, 'evaluator', evaluator,
                testdata, traindata, list(models), test_version.efforts, test_version.num_bugs,
                test_version.bug_matrix, self.write_header, config.result_storages,
                version_name=test_version.name,
            )
            self.write_header = False
            state = VersionState.EVALUATED

        log('finished')
        return state

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _apply(self, test_version, stage: str, strategy, *args, **kwargs):
        """Call a strategy; any failure becomes a StrategyExecutionError"""
        try:
            return strategy.apply(*args, **kwargs)
        except StrategyExecutionError:
            raise
        except Exception as e:
            raise StrategyExecutionError(
                f'{test_version.name}: {stage} {strategy.name} failed: {e}'
            ) from e

    def _train(self, test_version, trainer, *args) -> TrainedModel:
        model = self._apply(test_version, 'trainer', trainer, *args)
        if not isinstance(model, TrainedModel):
            raise StrategyExecutionError(
                f'{test_version.name}: trainer {trainer.name} returned {type(model).__name__}, '
                f'not a TrainedModel'
            )
        return model

    def _log(self, progress: tuple, version, message: str, level=logging.INFO):
        position, total = progress
        self.logger.log(
            level, f'[{self.config.experiment_name}] [{position:02d}/{total:02d}] {version.name}: {message}'
        )


# =============================================================================
# TRAINING DATA POLICIES
# =============================================================================

class CrossProjectExperiment(AbstractCrossProjectExperiment):
    """Trains on every version of the other projects"""

    def is_training_version(self, training_version, test_version, versions: list) -> bool:
        return training_version.project != test_version.project


class CrossVersionExperiment(AbstractCrossProjectExperiment):
    """Trains on the earlier versions of the same project"""

    def is_training_version(self, training_version, test_version, versions: list) -> bool:
        return (training_version.project == test_version.project
                and training_version.release_order < test_version.release_order)


class RelaxedCrossProjectExperiment(AbstractCrossProjectExperiment):
    """Trains on the other projects plus the earlier versions of the same project"""

    def is_training_version(self, training_version, test_version, versions: list) -> bool:
        if training_version.project != test_version.project:
            return True
        return training_version.release_order < test_version.release_order


EXECUTION_STRATEGIES = {
    cls.__name__: cls
    for cls in (CrossProjectExperiment, CrossVersionExperiment, RelaxedCrossProjectExperiment)
}


def make_experiment(config, logger: logging.Logger = None) -> AbstractCrossProjectExperiment:
    return EXECUTION_STRATEGIES[config.execution_strategy](config, logger)
