"""
Effort-aware rule mining with cooperating agents.

Several agents search concurrently for rule sets that flag defective
instances. A rule set is a disjunction of rules; a rule is a conjunction of
threshold conditions. Every candidate is scored on two costs, the bugs it
misses and the effort needed to inspect what it flags, plus its complexity.
The agents share a Blackboard holding the Pareto front of the best known
candidates.

The miner runs for a fixed time budget, then signals the agents to stop and
waits for all of them before the front is read.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .config import (
    LABEL_COL,
    MINING_AGENTS,
    MINING_MAX_COMPLEXITY,
    MINING_TIME_MINUTES,
    MINING_WITHIN_PERCENT,
    RANDOM_STATE,
)
from .versions import feature_columns

logger = logging.getLogger(__name__)


# =============================================================================
# RULES
# =============================================================================

@dataclass(frozen=True)
class Condition:
    feature: str
    threshold: float
    greater: bool  # x > threshold, otherwise x <= threshold

    def holds(self, values: np.ndarray) -> np.ndarray:
        return values > self.threshold if self.greater else values <= self.threshold

    def __str__(self) -> str:
        return f"{self.feature} {'>' if self.greater else '<='} {self.threshold:g}"


@dataclass(frozen=True)
class Rule:
    conditions: tuple[Condition, ...]

    def __str__(self) -> str:
        return ' AND '.join(str(c) for c in self.conditions) or 'TRUE'


@dataclass(frozen=True)
class RuleSet:
    rules: tuple[Rule, ...]

    @property
    def complexity(self) -> int:
        return sum(len(r.conditions) for r in self.rules)

    @property
    def features(self) -> list[str]:
        return sorted({c.feature for r in self.rules for c in r.conditions})

    def apply(self, data: pd.DataFrame) -> np.ndarray:
        """1 for every row matched by at least one rule"""
        flagged = np.zeros(len(data), dtype=bool)
        for rule in self.rules:
            matched = np.ones(len(data), dtype=bool)
            for c in rule.conditions:
                matched &= c.holds(data[c.feature].to_numpy(dtype=float))
            flagged |= matched
        return flagged.astype(int)

    def __str__(self) -> str:
        if not self.rules:
            return 'never'
        return '\n'.join(f'IF {r} THEN 1' for r in self.rules)


@dataclass(frozen=True)
class Candidate:
    ruleset: RuleSet
    missed_bugs: float
    effort: float

    @property
    def complexity(self) -> int:
        return self.ruleset.complexity

    def objectives(self) -> tuple:
        return (self.missed_bugs, self.effort, self.complexity)

    def dominates(self, other: 'Candidate') -> bool:
        mine, theirs = self.objectives(), other.objectives()
        return all(a <= b for a, b in zip(mine, theirs)) and mine != theirs


# =============================================================================
# BLACKBOARD
# =============================================================================

class Blackboard:
    """
    Shared state of one mining run: the data and the Pareto front.

    The front is only touched while holding the lock; evaluation of a
    candidate happens outside of it.
    """

    def __init__(self, instances: pd.DataFrame, bugs: np.ndarray, efforts: np.ndarray):
        self.data = instances.fillna(0)
        self.bugs = np.asarray(bugs, dtype=float)
        self.efforts = np.asarray(efforts, dtype=float)
        self.total_bugs = float(self.bugs.sum())
        self.total_effort = float(self.efforts.sum())
        self.evaluations = 0
        self._front: list[Candidate] = []
        self._lock = threading.Lock()

    @classmethod
    def from_training_data(cls, traindata: pd.DataFrame, bugmatrix: pd.DataFrame,
                           efforts: list[float]) -> 'Blackboard':
        """Bugs per row come from the bug matrix, or the label when it has no columns"""
        if len(bugmatrix.columns):
            bugs = bugmatrix.to_numpy(dtype=float).sum(axis=1)
        else:
            bugs = traindata[LABEL_COL].to_numpy(dtype=float)
        return cls(traindata[feature_columns(traindata)], bugs, efforts)

    def evaluate(self, ruleset: RuleSet) -> Candidate:
        flagged = ruleset.apply(self.data).astype(bool)
        return Candidate(
            ruleset=ruleset,
            missed_bugs=float(self.bugs[~flagged].sum()),
            effort=float(self.efforts[flagged].sum()),
        )

    def cost(self, candidate: Candidate) -> float:
        """Normalized cost: share of bugs missed plus share of effort spent"""
        missed = candidate.missed_bugs / self.total_bugs if self.total_bugs else 0.0
        effort = candidate.effort / self.total_effort if self.total_effort else 0.0
        return missed + effort

    def score(self, ruleset: RuleSet) -> float:
        """Higher is better; used to compare rules mined on other data"""
        return -self.cost(self.evaluate(ruleset))

    def offer(self, ruleset: RuleSet) -> bool:
        """Evaluate a candidate and add it to the front unless it is dominated"""
        candidate = self.evaluate(ruleset)
        with self._lock:
            self.evaluations += 1
            for existing in self._front:
                if existing.dominates(candidate) or existing.objectives() == candidate.objectives():
                    return False
            self._front = [c for c in self._front if not candidate.dominates(c)]
            self._front.append(candidate)
            return True

    def pick(self, rng: np.random.Generator) -> RuleSet | None:
        with self._lock:
            if not self._front:
                return None
            return self._front[rng.integers(len(self._front))].ruleset

    @property
    def front(self) -> list[Candidate]:
        with self._lock:
            return list(self._front)

    def best_rule(self, max_complexity: float, within_percent: float) -> RuleSet | None:
        """
        Simplest rule set whose cost is within `within_percent` of the best cost.

        Only rule sets with complexity <= max_complexity are considered;
        returns None if there is none.
        """
        allowed = [c for c in self.front if c.complexity <= max_complexity]
        if not allowed:
            return None
        costs = [self.cost(c) for c in allowed]
        best = min(costs)
        near = [(c.complexity, cost, i) for i, (c, cost) in enumerate(zip(allowed, costs))
                if cost <= best * (1 + within_percent)]
        return allowed[min(near)[2]].ruleset


# =============================================================================
# AGENTS
# =============================================================================

class MiningAgent:
    """Proposes new candidates by random generation and mutation of the front"""

    def __init__(self, blackboard: Blackboard, stop: threading.Event, seed: int):
        self.blackboard = blackboard
        self.stop = stop
        self.rng = np.random.default_rng(seed)
        self.thresholds = {
            col: np.unique(np.quantile(blackboard.data[col].to_numpy(dtype=float),
                                       np.linspace(0.1, 0.9, 9)))
            for col in blackboard.data.columns
        } if len(blackboard.data) else {}
        self.features = [c for c, t in self.thresholds.items() if len(t)]
        self.proposals = 0

    def run(self) -> int:
        if not self.features:
            return 0
        # At least one proposal, even with an exhausted budget
        while True:
            self.blackboard.offer(self.propose())
            self.proposals += 1
            if self.stop.is_set():
                return self.proposals

    def propose(self) -> RuleSet:
        base = self.blackboard.pick(self.rng)
        if base is None or self.rng.random() < 0.2:
            return RuleSet((Rule((self.random_condition(),)),))
        return self.mutate(base)

    def random_condition(self) -> Condition:
        feature = self.features[self.rng.integers(len(self.features))]
        thresholds = self.thresholds[feature]
        return Condition(feature, float(thresholds[self.rng.integers(len(thresholds))]),
                         bool(self.rng.random() < 0.5))

    def mutate(self, ruleset: RuleSet) -> RuleSet:
        rules = list(ruleset.rules)
        i = self.rng.integers(len(rules))
        conditions = list(rules[i].conditions)
        move = self.rng.integers(4)

        if move == 0:
            conditions.append(self.random_condition())
        elif move == 1 and len(conditions) > 1:
            conditions.pop(self.rng.integers(len(conditions)))
        elif move == 2:
            old = conditions[self.rng.integers(len(conditions))]
            threshold = float(self.rng.choice(self.thresholds[old.feature]))
            conditions[conditions.index(old)] = Condition(old.feature, threshold, old.greater)
        else:
            rules.append(Rule((self.random_condition(),)))
            return RuleSet(tuple(rules))

        rules[i] = Rule(tuple(conditions))
        return RuleSet(tuple(rules))


# =============================================================================
# MINER
# =============================================================================

class RuleMiner:
    """
    Runs a team of agents on one training set for a fixed time.

    Args:
        agents: number of concurrent agents
        time_seconds: search budget in seconds
        max_complexity: ceiling on the number of conditions of the chosen rule set
        within_percent: cost tolerance when preferring simpler rule sets
    """

    def __init__(self, agents: int = MINING_AGENTS, time_seconds: float = 60 * MINING_TIME_MINUTES,
                 max_complexity: float = MINING_MAX_COMPLEXITY,
                 within_percent: float = MINING_WITHIN_PERCENT,
                 seed: int = RANDOM_STATE, verbose: bool = False):
        self.agents = agents
        self.time_seconds = time_seconds
        self.max_complexity = max_complexity
        self.within_percent = within_percent
        self.seed = seed
        self.verbose = verbose

    def mine(self, traindata: pd.DataFrame, bugmatrix: pd.DataFrame, efforts: list[float]) -> Blackboard:
        blackboard = Blackboard.from_training_data(traindata, bugmatrix, efforts)
        stop = threading.Event()
        start = time.monotonic()

        executor = ThreadPoolExecutor(max_workers=self.agents, thread_name_prefix='mining-agent')
        try:
            futures = []
            for i in range(self.agents):
                agent = MiningAgent(blackboard, stop, seed=self.seed + i)
                futures.append(executor.submit(agent.run))
                if self.verbose:
                    logger.info(f'Agent started. {i + 1} agents now running.')

            # Returns early only if an agent dies
            wait(futures, timeout=self.time_seconds, return_when=FIRST_EXCEPTION)
        finally:
            if self.verbose:
                logger.info('Stopping all agents.')
            stop.set()
            executor.shutdown(wait=True)

        for future in futures:
            future.result()

        if self.verbose:
            logger.info(
                f'All agents stopped after {time.monotonic() - start:.1f}s, '
                f'{blackboard.evaluations} candidates evaluated, front size {len(blackboard.front)}'
            )
        return blackboard

    def best_rule(self, blackboard: Blackboard) -> RuleSet | None:
        return blackboard.best_rule(self.max_complexity, self.within_percent)
