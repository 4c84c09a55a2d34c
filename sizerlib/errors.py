class FetchError(Exception):
    """A single URL could not be fetched."""

    def __init__(self, url: str, reason: str):
        super().__init__(reason)
        self.url = url


class PayloadError(ValueError):
    pass


class AdmissionRejected(RuntimeError):
    pass
