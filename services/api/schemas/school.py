"""
Pydantic schemas for schools and students.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.enums import EntityStatus


def _not_deleted(v: Optional[EntityStatus]) -> Optional[EntityStatus]:
    if v == EntityStatus.DELETED:
        raise ValueError("Use the delete operation to delete")
    return v


class SchoolCreate(BaseModel):
    """Schema for creating a school."""
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    school_status: EntityStatus = EntityStatus.ACTIVE

    @field_validator("school_status")
    @classmethod
    def validate_status(cls, v):
        return _not_deleted(v)


class SchoolUpdate(BaseModel):
    """Partial update for school fields."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    school_status: Optional[EntityStatus] = None

    @field_validator("school_status")
    @classmethod
    def validate_status(cls, v):
        return _not_deleted(v)


class StudentCreate(BaseModel):
    """Schema for creating a student."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    date_of_birth: Optional[str] = Field(None, description="ISO date")
    school: str = Field(..., description="School id")
    student_status: EntityStatus = EntityStatus.ACTIVE

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError(f"Invalid email: {v}")
        return v

    @field_validator("student_status")
    @classmethod
    def validate_status(cls, v: EntityStatus) -> EntityStatus:
        return _not_deleted(v)


class StudentUpdate(BaseModel):
    """Partial update for student fields. The school cannot change."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, min_length=3, max_length=254)
    date_of_birth: Optional[str] = None
    student_status: Optional[EntityStatus] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError(f"Invalid email: {v}")
        return v

    @field_validator("student_status")
    @classmethod
    def validate_status(cls, v: Optional[EntityStatus]) -> Optional[EntityStatus]:
        return _not_deleted(v)
