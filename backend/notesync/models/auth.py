from pydantic import BaseModel, Field

# user ids become directory names in the stores
USER_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


class Credentials(BaseModel):
    user_id: str = Field(min_length=3, max_length=64, pattern=USER_ID_PATTERN)
    password: str = Field(min_length=8, max_length=128)


class RegisterOut(BaseModel):
    user_id: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
