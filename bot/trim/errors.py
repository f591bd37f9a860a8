class TrimError(Exception):
    """Both trim strategies failed. The user can pick a window and retry."""


class DraftStateError(Exception):
    pass


class DraftValidationError(Exception):
    pass
