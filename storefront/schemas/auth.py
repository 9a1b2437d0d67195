from pydantic import BaseModel, constr


class LoginRequest(BaseModel):
    email: constr(strip_whitespace=True, min_length=3, max_length=255)
    password: constr(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str
