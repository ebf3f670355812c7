"""
Experiment configuration: which strategies run in which stage.

An experiment is described by a JSON document. Every stage entry names a
strategy class and its parameter string:

    {
        "experiment_name": "rf-cross-project",
        "results_path": "results",
        "repetitions": 1,
        "execution_strategy": "CrossProjectExperiment",
        "loaders": [{"type": "CsvFolderLoader", "params": "-d data/promise"}],
        "test_version_filters": [{"type": "MinInstanceNumberFilter", "params": "-n 100"}],
        "preprocessors": ["ZScoreNormalization"],
        "trainers": [{"type": "ClassifierTraining", "params": "-C RandomForest", "name": "RF"}],
        "evaluators": ["NormalEvaluation"]
    }

Short class names are looked up in the default module of the stage kind;
anything else must be a dotted path. All classes are resolved, checked and
parameterized when the configuration is loaded, never during the run.
"""

import importlib
import inspect
import json
from dataclasses import dataclass, field
from pathlib import Path

from .config import DEFAULT_REPETITIONS, DEFAULT_RESULTS_PATH, DIAGNOSTIC_PATH
from .errors import ConfigurationError
from .execution import EXECUTION_STRATEGIES
from .filters import VersionFilter
from .loader import VersionLoader
from .results import ResultStorage
from .strategies import (
    BugMatrixAwareTrainingStrategy,
    EvaluationStrategy,
    PointWiseDataselectionStrategy,
    ProcessingStrategy,
    SetWiseBugMatrixAwareTrainingStrategy,
    SetWiseDataselectionStrategy,
    SetWiseProcessingStrategy,
    SetWiseTestdataAwareTrainingStrategy,
    SetWiseTrainingStrategy,
    TestAwareTrainingStrategy,
    TrainingStrategy,
    VersionProcessingStrategy,
)

# =============================================================================
# STAGE KINDS
# =============================================================================

# key -> (interface, module searched for short class names)
STAGE_KINDS = {
    'loaders': (VersionLoader, 'cross_diviner.loader'),
    'version_filters': (VersionFilter, 'cross_diviner.filters'),
    'test_version_filters': (VersionFilter, 'cross_diviner.filters'),
    'training_version_filters': (VersionFilter, 'cross_diviner.filters'),
    'training_version_processors': (VersionProcessingStrategy, 'cross_diviner.dataprocessing'),
    'setwise_preprocessors': (SetWiseProcessingStrategy, 'cross_diviner.dataprocessing'),
    'setwise_selectors': (SetWiseDataselectionStrategy, 'cross_diviner.dataselection'),
    'setwise_postprocessors': (SetWiseProcessingStrategy, 'cross_diviner.dataprocessing'),
    'setwise_trainers': (SetWiseTrainingStrategy, 'cross_diviner.training'),
    'setwise_testdata_aware_trainers': (SetWiseTestdataAwareTrainingStrategy, 'cross_diviner.training'),
    'setwise_bugmatrix_aware_trainers': (SetWiseBugMatrixAwareTrainingStrategy, 'cross_diviner.training'),
    'preprocessors': (ProcessingStrategy, 'cross_diviner.dataprocessing'),
    'pointwise_selectors': (PointWiseDataselectionStrategy, 'cross_diviner.dataselection'),
    'postprocessors': (ProcessingStrategy, 'cross_diviner.dataprocessing'),
    'trainers': (TrainingStrategy, 'cross_diviner.training'),
    'testaware_trainers': (TestAwareTrainingStrategy, 'cross_diviner.training'),
    'bugmatrix_aware_trainers': (BugMatrixAwareTrainingStrategy, 'cross_diviner.training'),
    'evaluators': (EvaluationStrategy, 'cross_diviner.evaluation'),
    'result_storages': (ResultStorage, 'cross_diviner.results'),
}

# Trainer kinds in the order their models reach the evaluators
TRAINER_KINDS = [
    'setwise_trainers',
    'setwise_testdata_aware_trainers',
    'setwise_bugmatrix_aware_trainers',
    'trainers',
    'testaware_trainers',
    'bugmatrix_aware_trainers',
]

SCALAR_KEYS = {'experiment_name', 'results_path', 'repetitions', 'execution_strategy', 'diagnostic_path'}


@dataclass(frozen=True)
class ExperimentConfiguration:
    """Everything one run needs; not modified while the run executes"""
    experiment_name: str
    results_path: Path = DEFAULT_RESULTS_PATH
    repetitions: int = DEFAULT_REPETITIONS
    execution_strategy: str = 'CrossProjectExperiment'
    diagnostic_path: Path = DIAGNOSTIC_PATH
    loaders: list = field(default_factory=list)
    version_filters: list = field(default_factory=list)
    test_version_filters: list = field(default_factory=list)
    training_version_filters: list = field(default_factory=list)
    training_version_processors: list = field(default_factory=list)
    setwise_preprocessors: list = field(default_factory=list)
    setwise_selectors: list = field(default_factory=list)
    setwise_postprocessors: list = field(default_factory=list)
    setwise_trainers: list = field(default_factory=list)
    setwise_testdata_aware_trainers: list = field(default_factory=list)
    setwise_bugmatrix_aware_trainers: list = field(default_factory=list)
    preprocessors: list = field(default_factory=list)
    pointwise_selectors: list = field(default_factory=list)
    postprocessors: list = field(default_factory=list)
    trainers: list = field(default_factory=list)
    testaware_trainers: list = field(default_factory=list)
    bugmatrix_aware_trainers: list = field(default_factory=list)
    evaluators: list = field(default_factory=list)
    result_storages: list = field(default_factory=list)

    @property
    def result_file(self) -> Path:
        return Path(self.results_path) / f'{self.experiment_name}.csv'

    @property
    def all_trainers(self) -> list:
        """Every configured trainer, set-wise first, in invocation order"""
        return [t for kind in TRAINER_KINDS for t in getattr(self, kind)]


# =============================================================================
# LOADING
# =============================================================================

def resolve_class(name: str, base: type, default_module: str) -> type:
    """Find a strategy class by short name or dotted path and check its interface"""
    if '.' in name:
        module_name, _, class_name = name.rpartition('.')
    else:
        module_name, class_name = default_module, name

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f'Cannot import module {module_name!r} for {name!r}: {e}') from e

    cls = getattr(module, class_name, None)
    if not inspect.isclass(cls):
        raise ConfigurationError(f'Unknown strategy {name!r} (looked in {module_name})')
    if not issubclass(cls, base):
        raise ConfigurationError(f'{name!r} does not implement {base.__name__}')
    if inspect.isabstract(cls):
        raise ConfigurationError(f'{name!r} is abstract')
    return cls


def build_strategy(kind: str, entry):
    """Instantiate and parameterize one stage entry"""
    if kind not in STAGE_KINDS:
        raise ConfigurationError(f'Unknown stage kind {kind!r}')
    base, default_module = STAGE_KINDS[kind]

    if isinstance(entry, str):
        entry = {'type': entry}
    if not isinstance(entry, dict) or 'type' not in entry:
        raise ConfigurationError(f'{kind}: entries need a "type", got {entry!r}')
    unknown = set(entry) - {'type', 'params', 'name'}
    if unknown:
        raise ConfigurationError(f'{kind}: unknown entry keys {sorted(unknown)}')

    cls = resolve_class(entry['type'], base, default_module)
    try:
        strategy = cls()
        strategy.set_parameter(entry.get('params', ''))
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f'{kind}: cannot set up {entry["type"]}: {e}') from e

    if entry.get('name'):
        strategy.display_name = entry['name']
    return strategy


def configuration_from_dict(data: dict, default_name: str = None) -> ExperimentConfiguration:
    """Build a validated configuration from parsed JSON"""
    if not isinstance(data, dict):
        raise ConfigurationError('Experiment configuration must be a JSON object')
    unknown = set(data) - SCALAR_KEYS - set(STAGE_KINDS)
    if unknown:
        raise ConfigurationError(f'Unknown configuration keys: {sorted(unknown)}')

    name = data.get('experiment_name', default_name)
    if not name:
        raise ConfigurationError('experiment_name is required')

    repetitions = data.get('repetitions', DEFAULT_REPETITIONS)
    if not isinstance(repetitions, int) or isinstance(repetitions, bool) or repetitions < 1:
        raise ConfigurationError(f'repetitions must be a positive integer, got {repetitions!r}')

    execution_strategy = data.get('execution_strategy', 'CrossProjectExperiment')
    if execution_strategy not in EXECUTION_STRATEGIES:
        raise ConfigurationError(
            f'Unknown execution strategy {execution_strategy!r}; choose from {sorted(EXECUTION_STRATEGIES)}'
        )

    stages = {}
    for kind in STAGE_KINDS:
        entries = data.get(kind, [])
        if not isinstance(entries, list):
            raise ConfigurationError(f'{kind} must be a list')
        stages[kind] = [build_strategy(kind, entry) for entry in entries]

    if not stages['loaders']:
        raise ConfigurationError('At least one loader is required')

    config = ExperimentConfiguration(
        experiment_name=name,
        results_path=Path(data.get('results_path', DEFAULT_RESULTS_PATH)),
        repetitions=repetitions,
        execution_strategy=execution_strategy,
        diagnostic_path=Path(data.get('diagnostic_path', DIAGNOSTIC_PATH)),
        **stages,
    )

    names = [t.name for t in config.all_trainers]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f'Trainer names must be unique; duplicated: {duplicates}')
    return config


def load_configuration(path) -> ExperimentConfiguration:
    """Read and validate an experiment file"""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f'Cannot read experiment file {path}: {e}') from e
    return configuration_from_dict(data, default_name=path.stem)
