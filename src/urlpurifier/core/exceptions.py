class URLPurifierError(Exception):
    pass

class InvalidURLError(URLPurifierError, ValueError):
    """URL passed to the engine could not be parsed."""
    pass

class RuleSetError(URLPurifierError):
    pass

class InvalidRuleError(RuleSetError):
    """A rule pattern failed to compile or is structurally unusable."""
    pass

class NonConvergenceError(URLPurifierError):
    """Cleaning did not reach a fixpoint within the pass limit."""
    pass

class ConfigError(URLPurifierError):
    pass

class SyncError(URLPurifierError):
    pass

class HashMismatchError(SyncError):
    """Downloaded rules do not match the published hash."""
    pass
