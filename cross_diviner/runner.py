"""
Running several experiments concurrently.

Usage:
    python run_experiments.py experiments/rf.json
    python run_experiments.py experiments/ --workers 4
"""

import argparse
import logging
import sys
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from .config import DEFAULT_WORKERS, LOG_FORMAT
from .errors import ConfigurationError, CrossDivinerError
from .execution import make_experiment
from .experiment import load_configuration

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure the shared log channel once, at process start"""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def collect_config_paths(paths: list) -> list[Path]:
    """Expand directories into the experiment files they contain"""
    configs = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            configs.extend(sorted(path.glob('*.json')))
        elif path.is_file():
            configs.append(path)
        else:
            raise ConfigurationError(f'Experiment file not found: {path}')
    if not configs:
        raise ConfigurationError(f'No experiment files in {", ".join(map(str, paths))}')
    return configs


def run_experiment(config) -> dict:
    """Run a single configuration; returns version name -> VersionState"""
    experiment = make_experiment(config, logging.getLogger(f'cross_diviner.experiment.{config.experiment_name}'))
    return experiment.run()


def run_experiments(config_paths: list, max_workers: int = DEFAULT_WORKERS) -> dict:
    """
    Run experiments as independent units of work.

    All configurations are loaded (and validated) before any experiment
    starts. A failing experiment does not stop the others; once all have
    finished, the first failure is re-raised.
    """
    configs = [load_configuration(p) for p in config_paths]

    results = {}
    failures = []
    start_time = time.time()

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(run_experiment, config): config for config in configs}

        for future in as_completed(futures):
            config = futures[future]
            try:
                results[config.experiment_name] = future.result()
                logger.info(f'Experiment {config.experiment_name} finished '
                            f'({time.time() - start_time:.1f}s elapsed)')
            except Exception as e:
                logger.error(f'Experiment {config.experiment_name} aborted: {e}')
                failures.append(e)

    if failures:
        raise failures[0]
    return results


def print_summary(results: dict):
    print(f"\n{'='*60}")
    print('EXPERIMENT SUMMARY')
    print(f"{'='*60}")
    for name, states in results.items():
        counts = Counter(state.value for state in states.values())
        print(f'  {name:<30} {len(states):>3} test versions  {dict(counts)}')


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Run cross-project defect prediction experiments')
    parser.add_argument('experiments', nargs='+', help='Experiment JSON files or folders of them')
    parser.add_argument('--workers', type=int, default=DEFAULT_WORKERS,
                        help='Experiments run concurrently')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    try:
        results = run_experiments(collect_config_paths(args.experiments), max_workers=args.workers)
        print_summary(results)
    except ConfigurationError as e:
        print(f'Configuration error: {e}', file=sys.stderr)
        return 2
    except CrossDivinerError as e:
        print(f'Experiment failed: {e}', file=sys.stderr)
        return 1
    return 0
