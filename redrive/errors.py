class ConfigurationError(ValueError):
    pass


class RemoteServiceError(Exception):
    """A transport or service fault reported by a queue or topic call"""

    def __init__(self, operation: str, target: str, reason: str):
        Exception.__init__(self, f'{operation} on {target} failed: {reason}')
        self.operation = operation
        self.target = target
        self.reason = reason
