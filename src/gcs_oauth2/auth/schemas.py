"""
Wire and file schemas for credential material.

Pydantic models for the JSON documents this library reads:
credential files (authorized user, service account) and endpoint
responses (OAuth2 token endpoint, metadata service).
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuthorizedUserFile(BaseModel):
    """Schema for an ``authorized_user`` credentials file.

    Example:
        >>> AuthorizedUserFile.model_validate({
        ...     "type": "authorized_user",
        ...     "client_id": "123.apps.googleusercontent.com",
        ...     "client_secret": "s3cr3t",
        ...     "refresh_token": "1//0g",
        ... })
    """

    model_config = ConfigDict(extra="ignore")

    client_id: str = Field(..., description="OAuth2 client identifier")
    client_secret: str = Field(..., description="OAuth2 client secret")
    refresh_token: str = Field(..., description="Long-lived refresh token")
    type: Optional[str] = Field(default=None, description="Credential file type")

    @field_validator("client_id", "client_secret", "refresh_token")
    @classmethod
    def validate_non_empty_strings(cls, v: str, info) -> str:
        """Ensure string fields are not empty or whitespace-only."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v


class ServiceAccountFile(BaseModel):
    """Schema for a ``service_account`` JSON key file."""

    model_config = ConfigDict(extra="ignore")

    client_email: str = Field(..., description="Service account email address")
    private_key: str = Field(..., description="PEM-encoded RSA private key")
    private_key_id: Optional[str] = Field(
        default=None, description="Key identifier, sent as the JWT 'kid'"
    )
    token_uri: Optional[str] = Field(
        default=None, description="OAuth2 token endpoint for this account"
    )
    project_id: Optional[str] = Field(default=None, description="Owning project")
    type: Optional[str] = Field(default=None, description="Credential file type")

    @field_validator("client_email", "private_key")
    @classmethod
    def validate_non_empty_strings(cls, v: str, info) -> str:
        """Ensure string fields are not empty or whitespace-only."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v


class TokenResponse(BaseModel):
    """Schema for OAuth2 token endpoint and metadata token responses."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., description="Bearer token value")
    expires_in: int = Field(..., description="Lifetime in seconds")
    token_type: str = Field(..., description="Token type, normally 'Bearer'")


class MetadataServerResponse(BaseModel):
    """Schema for the metadata service's per-account description."""

    model_config = ConfigDict(extra="ignore")

    email: str = Field(..., description="Service account email address")
    scopes: Union[List[str], str] = Field(
        ..., description="Granted scopes, as an array or a single string"
    )
