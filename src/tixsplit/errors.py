class ProtocolError(Exception):
    """
    Base class of every error a caller is expected to handle when setting up a payout contract.

    Aggregation, input validation and tree construction failures are all surfaced as a subclass
    of this type, so a caller can reject a round configuration with a single except clause.
    """


class SetupError(ProtocolError):
    """Invalid or degenerate public keys were given to the key aggregation."""


class ValidationError(ProtocolError, ValueError):
    """Malformed hashes, keys, amounts or delays were supplied."""


class TreeBuildError(ProtocolError):
    """The taproot script tree could not be assembled from the given leaves."""


class InternalInvariantViolation(AssertionError):
    """
    A value that the construction guarantees to exist was missing, or two values that must agree
    did not.

    This signals a bug, not a bad input: it is intentionally not a ProtocolError, so that it is
    never handled together with recoverable failures.
    """
