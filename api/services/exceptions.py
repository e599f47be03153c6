class ValidationError(ValueError):
    """Raised when a user action carries invalid input (empty URL, bad interval)."""


class TargetNotFound(LookupError):
    pass


class StoreUnavailable(Exception):
    def __init__(self, detail):
        super().__init__(detail)
        self.detail = detail

    def __str__(self):
        return str(self.detail)


class ProbeTimeout(Exception):
    pass


class ProbeNetworkFailure(Exception):
    pass
