"""
AniList Response Models
Parsed GraphQL payloads - missing fields default instead of failing
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class AniListModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MediaTitle(AniListModel):
    romaji: Optional[str] = None
    english: Optional[str] = None
    native: Optional[str] = None


class CoverImage(AniListModel):
    extra_large: Optional[str] = Field(None, alias="extraLarge")
    large: Optional[str] = None


class FuzzyDate(AniListModel):
    year: Optional[int] = None
    month: Optional[int] = None
    day: Optional[int] = None


class Studio(AniListModel):
    name: str
    site_url: Optional[str] = Field(None, alias="siteUrl")


class StudioConnection(AniListModel):
    nodes: List[Studio] = Field(default_factory=list)


class Trailer(AniListModel):
    id: Optional[str] = None
    site: Optional[str] = None


class Media(AniListModel):
    """One AniList media item"""
    id: int
    title: MediaTitle = Field(default_factory=MediaTitle)
    cover_image: Optional[CoverImage] = Field(None, alias="coverImage")
    banner_image: Optional[str] = Field(None, alias="bannerImage")
    description: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    format: Optional[str] = None
    status: Optional[str] = None
    episodes: Optional[int] = None
    duration: Optional[int] = None
    season: Optional[str] = None
    season_year: Optional[int] = Field(None, alias="seasonYear")
    average_score: Optional[int] = Field(None, alias="averageScore")
    popularity: Optional[int] = None
    studios: Optional[StudioConnection] = None
    trailer: Optional[Trailer] = None
    site_url: Optional[str] = Field(None, alias="siteUrl")
    start_date: Optional[FuzzyDate] = Field(None, alias="startDate")
    end_date: Optional[FuzzyDate] = Field(None, alias="endDate")


class PageInfo(AniListModel):
    has_next_page: bool = Field(False, alias="hasNextPage")
    total: Optional[int] = None


class Page(AniListModel):
    """A paginated media list"""
    page_info: PageInfo = Field(default_factory=PageInfo, alias="pageInfo")
    media: List[Media] = Field(default_factory=list)
