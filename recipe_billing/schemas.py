from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator

from recipe_billing.core.timeutil import ensure_utc


DisplayName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]


class RegisterRequest(BaseModel):
    name: DisplayName
    email: EmailStr
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    email: EmailStr
    created_at: datetime = Field(serialization_alias='createdAt')
    updated_at: datetime = Field(serialization_alias='updatedAt')

    @field_validator('created_at', 'updated_at')
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class AuthResponse(UserResponse):
    token: str


class SubscribeRequest(BaseModel):
    # checked against the plan catalog by the route
    plan: str = ''


class FavoriteCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipe_id: str = Field(alias='recipeId', min_length=1)
    recipe_name: str = Field(alias='recipeName', min_length=1)
    recipe_image: str | None = Field(default=None, alias='recipeImage')


class FavoriteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    recipe_id: str = Field(serialization_alias='recipeId')
    recipe_name: str = Field(serialization_alias='recipeName')
    recipe_image: str | None = Field(default=None, serialization_alias='recipeImage')
    created_at: datetime = Field(serialization_alias='createdAt')

    @field_validator('created_at')
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)
