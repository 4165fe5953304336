from voxhub.schemas.uploads import CompletedPart, InitiateMultipartResponse


class ClientUploadError(Exception):
    pass


class ApiError(ClientUploadError):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message


class InitiationFailed(ClientUploadError):
    pass


class UploadFailed(ClientUploadError):
    def __init__(self, message: str, part_number: int | None = None):
        super().__init__(message)
        self.part_number = part_number


class FinalizeFailed(ClientUploadError):
    # Carries the open session so the caller can retry finalize or abort.
    def __init__(self, message: str, session: InitiateMultipartResponse, parts: list[CompletedPart]):
        super().__init__(message)
        self.session = session
        self.parts = parts
