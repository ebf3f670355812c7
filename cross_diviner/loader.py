"""
Loading software versions from disk.
"""

import logging
import re
from abc import abstractmethod
from pathlib import Path

import pandas as pd

from .config import BUG_MATRIX_PREFIX, DEFAULT_EFFORT_COL, LABEL_COL
from .errors import ConfigurationError
from .strategies import Parameterizable, get_option, parse_options
from .versions import SoftwareVersion

logger = logging.getLogger(__name__)


class VersionLoader(Parameterizable):

    @abstractmethod
    def load(self) -> list[SoftwareVersion]:
        pass


def version_key(version: str) -> tuple:
    """Natural sort key: '1.10' sorts after '1.9'"""
    parts = re.split(r'(\d+)', version)
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p)


class CsvFolderLoader(VersionLoader):
    """
    Loads <root>/<project>/<version>.csv files.

    Options:
        -d <dir>     dataset root folder (required)
        -l <col>     column holding the bug count (default: bug)
        -e <col>     effort column (default: loc); 1.0 per row when missing
        -b <prefix>  prefix of bug-matrix columns (default: bugs_)

    Non-numeric columns are dropped. The bug count becomes the binary label
    and the per-row bug count list; bug-matrix columns are moved out of the
    instance table.
    """

    def __init__(self, root=None, label_col: str = 'bug', effort_col: str = DEFAULT_EFFORT_COL,
                 bug_prefix: str = BUG_MATRIX_PREFIX):
        self.root = Path(root) if root else None
        self.label_col = label_col
        self.effort_col = effort_col
        self.bug_prefix = bug_prefix

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        root = get_option(options, 'd')
        if not root:
            raise ConfigurationError('CsvFolderLoader requires a dataset folder (-d)')
        self.root = Path(root)
        self.label_col = get_option(options, 'l', self.label_col)
        self.effort_col = get_option(options, 'e', self.effort_col)
        self.bug_prefix = get_option(options, 'b', self.bug_prefix)

    def load(self) -> list[SoftwareVersion]:
        if self.root is None or not self.root.is_dir():
            raise FileNotFoundError(f'Dataset folder not found: {self.root}')

        versions = []
        for project_dir in sorted(p for p in self.root.iterdir() if p.is_dir()):
            files = sorted(project_dir.glob('*.csv'), key=lambda f: version_key(f.stem))
            for order, csv_file in enumerate(files):
                versions.append(self.load_version(csv_file, project_dir.name, order))

        logger.info(f'Loaded {len(versions)} versions from {self.root}')
        return versions

    def load_version(self, csv_file: Path, project: str, release_order: int = 0) -> SoftwareVersion:
        df = pd.read_csv(csv_file)
        if self.label_col not in df.columns:
            raise ValueError(f'{csv_file} is missing the label column {self.label_col!r}')

        df = df.select_dtypes(include='number')
        bug_cols = [c for c in df.columns if c.startswith(self.bug_prefix)]
        bug_matrix = df[bug_cols].astype(float).reset_index(drop=True)

        num_bugs = df[self.label_col].astype(float).tolist()
        if self.effort_col in df.columns:
            efforts = df[self.effort_col].astype(float).tolist()
        else:
            efforts = [1.0] * len(df)

        instances = df.drop(columns=bug_cols + [self.label_col]).reset_index(drop=True)
        instances[LABEL_COL] = [1 if n > 0 else 0 for n in num_bugs]

        return SoftwareVersion(
            dataset=self.root.name,
            project=project,
            version=csv_file.stem,
            instances=instances,
            bug_matrix=bug_matrix,
            efforts=efforts,
            num_bugs=num_bugs,
            release_order=release_order,
        )
