__all__ = [
    "BaseError",
    "BadRequestError",
    "LoadError",
    "NotSupportedError",
]


class BaseError(Exception):
    status_code: int


class BadRequestError(BaseError):
    status_code = 400


class NotSupportedError(BaseError):
    status_code = 415


class LoadError(BaseError):
    status_code = 500
