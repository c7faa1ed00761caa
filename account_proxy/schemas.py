from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Profile ---

class ProfileUpdate(BaseModel):
    """
    Editable profile fields.

    Identity fields (``name``, ``email``, ``_id``) are not declared, so
    ``extra="forbid"`` rejects them.
    """

    fullname: str | None = Field(None, max_length=100)
    github: str | None = Field(None, max_length=100)
    twitter: str | None = Field(None, max_length=100)
    homepage: str | None = Field(None, max_length=255)
    freenode: str | None = Field(None, max_length=100)

    model_config = ConfigDict(extra="forbid")


class Profile(BaseModel):
    """
    What a profile page shows.

    Any other field of the remote record, such as the password hash or the
    verification key, is dropped from the response.
    """

    name: str
    email: str | None = None
    email_verified: bool | None = None
    resource: dict = {}
    stars: list | None = None
    packages: list | dict | None = None

    model_config = ConfigDict(extra="ignore")


# --- Account ---

class LoginForm(BaseModel):
    name: str = Field(min_length=1, max_length=214)
    password: str = Field(min_length=1)


class SignupForm(BaseModel):
    name: str = Field(min_length=1, max_length=214)
    password: str = Field(min_length=1)
    verify: str
    email: str = Field(max_length=255)
    npmweekly: bool = False

    @model_validator(mode="after")
    def passwords_match(self) -> "SignupForm":
        if self.password != self.verify:
            raise ValueError("passwords don't match")
        return self


class EmailConfirmation(BaseModel):
    verification_key: str = Field(min_length=1)


# --- Metrics ---

class MetricsResponse(BaseModel):
    cache_enabled: bool
    cache_info: dict = {}
