class ZurlError(Exception):
    """Base class for errors surfaced by the link and folder core."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ZurlError):
    status_code = 404


class ValidationError(ZurlError):
    status_code = 422


class ConflictError(ZurlError):
    """The document changed underneath the caller (moved to another folder, slug taken, ...)."""

    status_code = 409


class StoreError(ZurlError):
    """A read or commit against the database failed."""

    status_code = 503
