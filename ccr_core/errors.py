"""
Exception hierarchy of the CCR exposure engine.

Input validation of single objects raises ``ValueError``; the classes below
signal failures of a whole calculation step so that callers can catch all
engine errors with a single handler.
"""


class CCRError(Exception):
    """Base exception for counterparty credit risk calculations."""

    pass


class CalibrationError(CCRError):
    """
    Raised when a factor model entry cannot be calibrated.

    The message always names the offending market variable (and tenor when
    relevant) so that a failing curve can be identified in a large run.

    Attributes
    ----------
    variable : str | None
        Name of the market variable that failed
    """

    def __init__(self, message: str, variable: str | None = None) -> None:
        super().__init__(message)
        self.variable = variable


class RegressionError(CCRError):
    """
    Raised when a least-squares Monte Carlo regression is ill-posed.

    Typical cause is a rank-deficient basis at a decision date. The error is
    never replaced by intrinsic value.
    """

    pass


class SimulationError(CCRError):
    """Raised when a simulation run is configured inconsistently."""

    pass
