from pydantic import BaseModel


class ErrorBody(BaseModel):
    error: str
    code: str


class CurrentUser(BaseModel):
    id: str
