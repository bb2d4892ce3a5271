"""Staged form data schemas."""

from pydantic import BaseModel


class SignUpDraft(BaseModel):
    email: str
    password: str
    name: str


class ProfileDraft(BaseModel):
    name: str
    email: str
