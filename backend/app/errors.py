"""Error taxonomy for the doorlog backend.

Request validation is handled by pydantic and mapped to 400 in ``main``;
the errors here cover the store and its configuration.
"""


class DoorLogServerError(Exception):
    """Base for backend errors."""

    pass


class ConfigurationError(DoorLogServerError):
    """Credentials or spreadsheet id missing or unusable. Fatal for the request."""

    pass


class RemoteStoreError(DoorLogServerError):
    """The spreadsheet could not be read or written (network, timeout, non-2xx).

    Transient from the client's point of view: it retries through its queue.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundInRemote(DoorLogServerError):
    """No row resolved for a selector."""

    pass
