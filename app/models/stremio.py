"""
Stremio Protocol Models
Pydantic models for Stremio addon protocol
"""
from pydantic import BaseModel, Field
from typing import List, Optional


class ManifestExtra(BaseModel):
    name: str
    isRequired: bool = False
    options: Optional[List[str]] = None


class ManifestCatalog(BaseModel):
    """Catalog definition in manifest"""
    type: str
    id: str
    name: str
    extra: List[ManifestExtra] = Field(default_factory=list)


class Manifest(BaseModel):
    """Stremio addon manifest"""
    id: str = "com.animecatalogue.stremio"
    version: str = "1.0.0"
    name: str = "Anime Catalogue"
    description: str = "Trending, seasonal, and popular anime from AniList."

    resources: List[str] = ["catalog", "meta"]
    types: List[str] = ["series", "movie", "anime"]
    idPrefixes: List[str] = ["kitsu:", "anilist:", "tmdb:"]

    catalogs: List[ManifestCatalog]

    behaviorHints: dict = {
        "configurable": False,
        "configurationRequired": False,
        "adult": False,
        "p2p": False
    }


class Link(BaseModel):
    name: str
    category: str
    url: Optional[str] = None


class Trailer(BaseModel):
    source: str
    type: str = "Trailer"


class Video(BaseModel):
    """One episode entry of a series meta"""
    id: str
    title: str
    season: int
    episode: int
    released: Optional[str] = None
    thumbnail: Optional[str] = None
    overview: Optional[str] = None


class MetaPreview(BaseModel):
    """Catalog item (poster) metadata"""
    id: str
    type: str
    name: str
    poster: Optional[str] = None
    posterShape: str = "poster"
    background: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    releaseInfo: Optional[str] = None
    imdbRating: Optional[str] = None


class MetaDetail(MetaPreview):
    """Full item metadata for the meta resource"""
    runtime: Optional[str] = None
    episodeCount: Optional[int] = None
    status: Optional[str] = None
    imdbId: Optional[str] = None
    cast: Optional[List[str]] = None
    trailers: Optional[List[Trailer]] = None
    links: Optional[List[Link]] = None
    videos: Optional[List[Video]] = None


class CatalogResponse(BaseModel):
    """Catalog endpoint response"""
    metas: List[MetaPreview]
    cacheMaxAge: Optional[int] = None
    staleRevalidate: Optional[int] = None
    staleError: Optional[int] = None


class MetaResponse(BaseModel):
    """Meta endpoint response"""
    meta: Optional[MetaDetail] = None
    cacheMaxAge: Optional[int] = None
    staleRevalidate: Optional[int] = None
    staleError: Optional[int] = None
