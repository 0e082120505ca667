from pydantic import BaseModel, Field
from typing import Any, List, Optional, Union


class PreferenceItem(BaseModel):
    """One key/value pair to store"""
    key: str = Field(..., min_length=1, max_length=100, description="Preference key")
    value: Any = Field(..., description="Any JSON-serializable value")


class SetPreferencesInput(BaseModel):
    """Schema for storing one or more preferences atomically"""
    preferences: List[PreferenceItem] = Field(..., min_length=1)


class GetPreferencesInput(BaseModel):
    """The preference read takes no arguments"""


class RemovePreferenceItemInput(BaseModel):
    """Schema for removing one item from a list preference"""
    key: str = Field(..., min_length=1, max_length=100)
    item: Union[str, int] = Field(..., description="Name for person lists, value for plain lists")


class EnrichedPerson(BaseModel):
    """Person name decorated with a TMDB profile picture on the read path"""
    name: str
    profile_url: Optional[str] = None
    id: int = 0
