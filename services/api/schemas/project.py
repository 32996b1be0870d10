"""
Pydantic schemas for projects with validation.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ProjectCreate(BaseModel):
    """Schema for creating a project."""
    name: str = Field(..., min_length=1, max_length=200, description="Project name")
    description: str = Field("", max_length=2000)
    password: str = Field("", description="Password required to open the project")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Project name cannot be blank")
        return v


class ProjectOut(BaseModel):
    """Schema for project output (never includes the password hash)."""
    id: str
    name: str
    description: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PasswordCheck(BaseModel):
    password: str = ""


class PasswordChange(BaseModel):
    current_password: str = ""
    new_password: str = ""
    confirm_password: Optional[str] = None

    @model_validator(mode="after")
    def validate_confirmation(self) -> "PasswordChange":
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError("New passwords do not match")
        return self
