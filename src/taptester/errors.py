"""errors.py - Harness-level error conditions."""


class HarnessError(RuntimeError):
    """Raised for misuse of the harness itself, never for assertion failures."""
