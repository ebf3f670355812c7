"""
Version filters: decide which versions may be used as test or training data.

A filter's apply() returns True when the version must be REMOVED.
"""

import re
from abc import abstractmethod

from .config import LABEL_COL
from .errors import ConfigurationError
from .strategies import Parameterizable, get_option, parse_options


class VersionFilter(Parameterizable):

    @abstractmethod
    def apply(self, version, versions: list) -> bool:
        """True if `version` is filtered out (given all versions for context)"""


def is_version(version, versions: list, filters: list[VersionFilter]) -> bool:
    """True if none of the filters removes the version"""
    return not any(f.apply(version, versions) for f in filters)


def filter_versions(versions: list, filters: list[VersionFilter]):
    """Remove filtered versions from the list, in place"""
    if not filters:
        return
    keep = [v for v in versions if is_version(v, versions, filters)]
    versions[:] = keep


# =============================================================================
# FILTERS
# =============================================================================

class MinInstanceNumberFilter(VersionFilter):
    """Removes versions with fewer than -n instances"""

    def __init__(self, min_instances: int = 100):
        self.min_instances = min_instances

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        self.min_instances = get_option(options, 'n', self.min_instances, int)

    def apply(self, version, versions: list) -> bool:
        return len(version.instances) < self.min_instances


class MinClassNumberFilter(VersionFilter):
    """Removes versions with fewer than -n defective instances"""

    def __init__(self, min_defective: int = 5):
        self.min_defective = min_defective

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        self.min_defective = get_option(options, 'n', self.min_defective, int)

    def apply(self, version, versions: list) -> bool:
        return int((version.instances[LABEL_COL] > 0).sum()) < self.min_defective


class ProjectFilter(VersionFilter):
    """
    Filters by project name.

    -p <regex>   project pattern (full match)
    -x           exclude matching projects instead of keeping only them
    """

    def __init__(self, pattern: str = '.*', exclude: bool = False):
        self.pattern = re.compile(pattern)
        self.exclude = exclude

    def set_parameter(self, parameters: str):
        options = parse_options(parameters)
        try:
            self.pattern = re.compile(get_option(options, 'p', '.*'))
        except re.error as e:
            raise ConfigurationError(f'Invalid project pattern: {e}') from e
        self.exclude = get_option(options, 'x', False, bool)

    def apply(self, version, versions: list) -> bool:
        matches = bool(self.pattern.fullmatch(version.project))
        return matches if self.exclude else not matches


class LatestVersionFilter(VersionFilter):
    """Keeps only the newest version of every project"""

    def apply(self, version, versions: list) -> bool:
        return any(
            v.project == version.project and v.release_order > version.release_order
            for v in versions
        )
