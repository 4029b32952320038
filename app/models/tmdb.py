"""
TMDB Response Models
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class TMDBModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Genre(TMDBModel):
    id: Optional[int] = None
    name: str


class Video(TMDBModel):
    key: Optional[str] = None
    site: Optional[str] = None
    type: Optional[str] = None


class VideoList(TMDBModel):
    results: List[Video] = Field(default_factory=list)


class Series(TMDBModel):
    """/tv/{id} with videos appended"""
    id: int
    name: str = ""
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    genres: List[Genre] = Field(default_factory=list)
    status: Optional[str] = None
    vote_average: Optional[float] = None
    first_air_date: Optional[str] = None
    last_air_date: Optional[str] = None
    episode_run_time: List[int] = Field(default_factory=list)
    number_of_seasons: Optional[int] = None
    videos: Optional[VideoList] = None


class Episode(TMDBModel):
    episode_number: Optional[int] = None
    season_number: int = 1
    name: Optional[str] = None
    overview: Optional[str] = None
    still_path: Optional[str] = None
    air_date: Optional[str] = None


class Season(TMDBModel):
    season_number: Optional[int] = None
    episodes: List[Episode] = Field(default_factory=list)


class ExternalIds(TMDBModel):
    imdb_id: Optional[str] = None
    tvdb_id: Optional[int] = None


class CastMember(TMDBModel):
    name: str


class AggregateCredits(TMDBModel):
    cast: List[CastMember] = Field(default_factory=list)
