class SourceError(RuntimeError):
    """Raised when a chain read, event query or submission keeps failing after retries."""
    def __init__(self, operation: str, cause: Exception | None = None):
        super().__init__(f"Chain source error during {operation}: {cause}")
        self.operation = operation
        self.cause = cause


class CalendarUntrustworthy(RuntimeError):
    """
    The due-date calendar can no longer be verified against chain state.

    reason is one of:
      - "count_mismatch": still too many entries after reconciliation
      - "missing_commitments": chain reports more pregnant kitties than we track
      - "unverifiable_subject": a per-kitty status read failed during reconciliation
    """
    def __init__(self, reason: str, expected: int | None = None, actual: int | None = None,
                 subject_id: int | None = None):
        if reason == "unverifiable_subject":
            detail = f"could not verify kitty {subject_id}"
        else:
            detail = f"chain reports {expected} pregnant kitties, calendar has {actual}"
        super().__init__(f"Due date calendar untrustworthy ({reason}): {detail}")
        self.reason = reason
        self.expected = expected
        self.actual = actual
        self.subject_id = subject_id
