from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Union


# ----- Health -----
class HealthResponse(BaseModel):
    status: str
    app: str
    env: str


# ----- Well-known -----
class ProtectedResourceMetadata(BaseModel):
    resource: Union[str, List[str]]
    authorization_servers: List[str]
    bearer_methods_supported: List[str]


class AuthorizationServerMetadata(BaseModel):
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    response_types_supported: List[str]
    grant_types_supported: List[str]
    token_endpoint_auth_methods_supported: List[str]
    code_challenge_methods_supported: List[str]


# ----- Authorization -----
class AuthorizeRequest(BaseModel):
    client_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    response_type: Optional[str] = None
    state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None


# ----- Token -----
class TokenRequest(BaseModel):
    grant_type: Optional[str] = None
    code: Optional[str] = None
    redirect_uri: Optional[str] = None
    refresh_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    code_verifier: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str


class OAuthErrorResponse(BaseModel):
    error: str
    error_description: Optional[str] = None


# ----- Admin -----
class ClientCreateRequest(BaseModel):
    client_id: str = Field(min_length=1, max_length=128)
    client_secret: Optional[str] = None
    name: str = ""
    redirect_uris: Union[List[str], str]
    upstream_token: str = Field(min_length=1)


class ClientResponse(BaseModel):
    client_id: str
    name: str
    redirect_uris: List[str]
    active: bool
    has_secret: bool


class RevokeResponse(BaseModel):
    client_id: str
    revoked: int


class EndpointRegisterRequest(BaseModel):
    name: str
    plugin_id: str
    path: str = Field(pattern=r"^/")
    description: Optional[str] = None


class EndpointResponse(BaseModel):
    name: str
    plugin_id: str
    path: str
    description: Optional[str] = None
    active: bool

    model_config = ConfigDict(from_attributes=True)


class EndpointCheckResponse(BaseModel):
    path: str
    protected: bool


class SweepResponse(BaseModel):
    tokens_removed: int
    codes_removed: int
