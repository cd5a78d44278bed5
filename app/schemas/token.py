from pydantic import BaseModel, field_validator


class TokenPayload(BaseModel):
    """Claims the exam service reads from an identity token. Tokens are issued elsewhere."""
    sub: str
    exp: int | None = None

    @field_validator("sub")
    def validate_sub(cls, v):
        if not v or not v.strip():
            raise ValueError("Token subject cannot be empty.")
        return v
