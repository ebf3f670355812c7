"""
Shared fixtures: small synthetic software versions.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cross_diviner.config import LABEL_COL
from cross_diviner.versions import SoftwareVersion


def pytest_pycollect_makeitem(collector, name, obj):
    # Package classes such as TestRelativeNormalization are not test classes
    if isinstance(obj, type) and obj.__module__.startswith('cross_diviner.'):
        return []


def build_version(project: str, version: str = '1.0', n: int = 40, seed: int = 0,
                  release_order: int = 0, bug_cols=('bugs_a',), dataset: str = 'synthetic'):
    """A version whose large files are the defective ones"""
    rng = np.random.default_rng(seed)
    loc = rng.integers(10, 500, n).astype(float)
    wmc = rng.integers(1, 30, n).astype(float)
    cbo = rng.integers(0, 15, n).astype(float)
    bugs = (loc > np.median(loc)).astype(int) * rng.integers(1, 3, n)

    instances = pd.DataFrame({'loc': loc, 'wmc': wmc, 'cbo': cbo, LABEL_COL: (bugs > 0).astype(int)})
    bug_matrix = pd.DataFrame({col: bugs.astype(float) for col in bug_cols}, index=range(n))
    return SoftwareVersion(
        dataset=dataset,
        project=project,
        version=version,
        instances=instances,
        bug_matrix=bug_matrix,
        efforts=loc.tolist(),
        num_bugs=bugs.astype(float).tolist(),
        release_order=release_order,
    )


@pytest.fixture
def make_version():
    return build_version


@pytest.fixture
def three_projects():
    return [
        build_version('ant', '1.7', seed=1),
        build_version('camel', '1.6', seed=2, bug_cols=('bugs_a', 'bugs_b')),
        build_version('jedit', '4.3', seed=3, bug_cols=('bugs_c',)),
    ]
