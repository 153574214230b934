"""Persona profile handed to the response engine."""

from pydantic import BaseModel, Field


class PersonaProfile(BaseModel):
    """Who the persona is and how they speak."""

    id: str
    name: str = "your loved one"
    relationship: str = "friend"
    personality_traits: str = ""
    common_phrases: list[str] = Field(default_factory=list)
