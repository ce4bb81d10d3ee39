"""Mediation error taxonomy."""


class MediationError(Exception):
    """Base class for mediation errors."""
    pass


class ValidationError(MediationError):
    """A required field is missing, empty, or malformed. Nothing was changed."""
    pass


class NotFoundError(MediationError):
    """Unknown session, or no summary yet for the requested partner."""
    pass


class UpstreamError(MediationError):
    """The completion call or the storage layer failed.

    Fatal for the current turn; nothing from the turn is persisted and the
    user may resubmit.
    """
    pass
