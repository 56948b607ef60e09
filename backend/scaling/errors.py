"""
errors.py — Exceptions and warnings raised by the scaling engine.
"""


class InvalidInputError(ValueError):
    """The result table or run parameters cannot be scaled."""


class DegenerateFitWarning(UserWarning):
    """A subject's results are all identical, so its logistic fit is flat."""


class NonFiniteResultError(FloatingPointError):
    """A percentile, polyscore or polyrank came out as NaN or Inf."""
