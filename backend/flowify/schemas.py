from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from .database import AssetStatus

# --- Schemas for API Requests ---

class SignupRequest(BaseModel):
    """
    Schema for the request body of POST /users.
    The password is stored as supplied.
    """
    email: str = Field(..., min_length=3, max_length=255, description="Email address, unique per user.")
    password: str = Field(..., min_length=1, description="Password value.")


class ModifyImageRequest(BaseModel):
    """
    Schema for the request body of POST /modify-image.
    """
    asset_id: int = Field(..., ge=1, description="Identifier of a previously uploaded asset.")
    prompt: str = Field(..., min_length=1, description="Free-text instruction for the image model.")


# --- Schemas for Internal Use (e.g., by CRUD functions) ---

class UserCreateInternal(BaseModel):
    email: str
    password: str


class AssetCreateInternal(BaseModel):
    user_id: int
    original_filename: str
    uploaded_path: str


# --- Schemas for API Responses ---

class SignupResponse(BaseModel):
    message: str
    status: str = "success"
    user_id: int


class AssetUploadResponse(BaseModel):
    message: str
    status: str = "success"
    asset_id: int
    url: str


class ModifyImageResponse(BaseModel):
    modified_image_url: str
    message: str
    status: str = "success"


class AssetResponse(BaseModel):
    """
    Schema for representing a creative asset in API responses.
    """
    id: int
    user_id: int
    original_filename: str
    uploaded_path: str
    modified_path: Optional[str] = None
    prompt: Optional[str] = None
    status: AssetStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
