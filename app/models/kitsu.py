"""
Kitsu Response Models
JSON:API resources flattened to their attributes
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class KitsuEpisode(BaseModel):
    """Attributes of a Kitsu episode resource"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    number: Optional[int] = None
    season_number: Optional[int] = Field(None, alias="seasonNumber")
    canonical_title: Optional[str] = Field(None, alias="canonicalTitle")
    titles: Dict[str, Optional[str]] = Field(default_factory=dict)
    description: Optional[str] = None
    airdate: Optional[str] = None
    thumbnail: Optional[Dict[str, Any]] = None
