from fastapi import HTTPException, status


class UploadError(HTTPException):
    code: str = "UploadError"
    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=detail)


class Unauthorized(UploadError):
    code = "Unauthorized"
    status_code_default = status.HTTP_401_UNAUTHORIZED


class Forbidden(UploadError):
    code = "Forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN


class MissingParameter(UploadError):
    code = "MissingParameter"
    status_code_default = status.HTTP_400_BAD_REQUEST


class InvalidArgument(UploadError):
    code = "InvalidArgument"
    status_code_default = status.HTTP_400_BAD_REQUEST


class UploadIncomplete(UploadError):
    code = "UploadIncomplete"
    status_code_default = status.HTTP_400_BAD_REQUEST


class UpstreamUnavailable(UploadError):
    code = "UpstreamUnavailable"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR


class RateLimited(UploadError):
    code = "RateLimited"
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS
