"""
Error taxonomy for experiment execution.
"""


class CrossDivinerError(Exception):
    """Base class for all errors raised by this package"""


class ConfigurationError(CrossDivinerError):
    """Malformed experiment configuration or stage parameters"""


class NoTrainingDataAvailable(CrossDivinerError):
    """No eligible training version exists for a test version"""

    def __init__(self, version_name: str):
        super().__init__(f'no training data available for {version_name}')
        self.version_name = version_name


class StrategyExecutionError(CrossDivinerError):
    """A pipeline stage failed; aborts the whole run"""


class NoRuleFoundError(StrategyExecutionError):
    """Rule search ended without a rule below the complexity ceiling"""


class DiagnosticWriteError(CrossDivinerError):
    """The diagnostic dump of the merged training data could not be written"""
