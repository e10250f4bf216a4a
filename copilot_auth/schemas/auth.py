from pydantic import BaseModel, ConfigDict, Field


class DeviceAuthorizationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int = Field(gt=0)
    interval: int = Field(default=5, ge=0)


class DeviceTokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    error: str | None = None
    error_description: str | None = None


class ServiceToken(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    token: str = Field(min_length=1)
    expires_at: int
    refresh_in: int

    def remaining(self, now: float) -> float:
        return self.expires_at - now


class Principal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str
    id: int | None = None
    name: str | None = None
