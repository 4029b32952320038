"""
Meta Builder
Converts AniList, TMDB and Kitsu payloads into Stremio meta objects
"""
import html
import re
from datetime import date, datetime
from typing import List, Optional, Tuple
from app.models.anilist import Media, MediaTitle
from app.models.kitsu import KitsuEpisode
from app.models import tmdb as tmdb_models
from app.models.stremio import Link, MetaDetail, MetaPreview, Trailer, Video

TMDB_IMG = "https://image.tmdb.org/t/p"

ANILIST_STATUS = {
    "FINISHED": "Ended",
    "RELEASING": "Continuing",
    "NOT_YET_RELEASED": "Upcoming",
    "CANCELLED": "Cancelled",
    "HIATUS": "On Hiatus",
}

TMDB_STATUS = {
    "Returning Series": "Continuing",
    "Ended": "Ended",
    "Canceled": "Cancelled",
    "In Production": "Upcoming",
    "Planned": "Upcoming",
}

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


def current_season(today: Optional[date] = None) -> Tuple[str, int]:
    """
    Map a date to the AniList season enum and year

    Args:
        today: Date to map (defaults to today)

    Returns:
        (season, year), e.g. ("FALL", 2026)
    """
    today = today or date.today()
    if today.month <= 3:
        season = "WINTER"
    elif today.month <= 6:
        season = "SPRING"
    elif today.month <= 9:
        season = "SUMMER"
    else:
        season = "FALL"
    return season, today.year


def format_to_type(media_format: Optional[str]) -> str:
    """AniList format -> Stremio type"""
    if media_format in ("MOVIE", "MUSIC"):
        return "movie"
    return "series"


def strip_html(text: Optional[str]) -> str:
    if not text:
        return ""
    text = _BR_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def get_title(title: Optional[MediaTitle]) -> str:
    """Preferred display title: English, then romaji, then native"""
    if title is None:
        return "Unknown"
    return title.english or title.romaji or title.native or "Unknown"


def _iso_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        day = date.fromisoformat(value[:10])
    except ValueError:
        return None
    return datetime(day.year, day.month, day.day).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _tmdb_image(path: Optional[str], size: str) -> Optional[str]:
    return f"{TMDB_IMG}/{size}{path}" if path else None


def build_meta_preview(media: Media, stremio_id: str, override_type: Optional[str] = None) -> MetaPreview:
    """
    Build a catalog meta preview item

    Args:
        media: AniList media object
        stremio_id: Resolved Stremio ID (e.g. "kitsu:12345")
        override_type: Force a type (the discover catalog uses "anime")

    Returns:
        MetaPreview
    """
    poster = None
    if media.cover_image:
        poster = media.cover_image.extra_large or media.cover_image.large

    release_info = None
    if media.start_date and media.start_date.year:
        release_info = str(media.start_date.year)
        end_year = media.end_date.year if media.end_date else None
        if end_year and end_year != media.start_date.year:
            release_info += f"-{end_year}"

    return MetaPreview(
        id=stremio_id,
        type=override_type or format_to_type(media.format),
        name=get_title(media.title),
        poster=poster,
        background=media.banner_image,
        genres=list(media.genres),
        description=strip_html(media.description),
        releaseInfo=release_info,
        imdbRating=f"{media.average_score / 10:.1f}" if media.average_score else None,
    )


def build_full_meta(media: Media, stremio_id: str) -> MetaDetail:
    """Build a full meta object from an AniList record (no episode list)"""
    preview = build_meta_preview(media, stremio_id)
    meta = MetaDetail(**preview.model_dump())

    if media.duration:
        meta.runtime = f"{media.duration} min"
    if media.episodes:
        meta.episodeCount = media.episodes

    trailer = media.trailer
    if trailer and trailer.site == "youtube" and trailer.id:
        meta.trailers = [Trailer(source=trailer.id)]

    links: List[Link] = []
    if media.site_url:
        links.append(Link(name="AniList", category="Sites", url=media.site_url))
    if media.studios and media.studios.nodes:
        studio = media.studios.nodes[0]
        links.append(Link(name=studio.name, category="Studios", url=studio.site_url))
    meta.links = links

    if media.status:
        meta.status = ANILIST_STATUS.get(media.status, media.status)

    return meta


def build_meta_from_tmdb(
    series: tmdb_models.Series,
    episodes: List[tmdb_models.Episode],
    stremio_id: str,
    imdb_id: Optional[str] = None,
    credits: Optional[tmdb_models.AggregateCredits] = None,
) -> MetaDetail:
    """
    Build a full series meta from TMDB data

    Video IDs use the IMDB ID as their base when one is known so stream
    addons can route through their IMDB path.

    Args:
        series: TMDB /tv/{id} response
        episodes: Flat episode list from TMDBClient.get_all_episodes()
        stremio_id: Stremio ID the meta is served under
        imdb_id: IMDB ID from the external ids endpoint
        credits: Aggregate credits

    Returns:
        MetaDetail with videos
    """
    meta = MetaDetail(
        id=stremio_id,
        type="series",
        name=series.name,
        poster=_tmdb_image(series.poster_path, "w500"),
        background=_tmdb_image(series.backdrop_path, "original"),
        description=series.overview or "",
        genres=[genre.name for genre in series.genres],
        status=TMDB_STATUS.get(series.status, series.status) if series.status else None,
        imdbId=imdb_id,
    )

    if credits and credits.cast:
        meta.cast = [member.name for member in credits.cast[:10]]

    if series.videos:
        for video in series.videos.results:
            if video.site == "YouTube" and video.type == "Trailer" and video.key:
                meta.trailers = [Trailer(source=video.key)]
                break

    if series.vote_average:
        meta.imdbRating = f"{series.vote_average:.1f}"

    if series.first_air_date:
        meta.releaseInfo = series.first_air_date[:4]
        if series.last_air_date and series.status == "Ended":
            meta.releaseInfo += f"-{series.last_air_date[:4]}"

    if series.episode_run_time:
        meta.runtime = f"{series.episode_run_time[0]} min"

    video_base = imdb_id or stremio_id
    meta.videos = [
        Video(
            id=f"{video_base}:{ep.season_number}:{ep.episode_number}",
            title=ep.name or f"Episode {ep.episode_number}",
            season=ep.season_number,
            episode=ep.episode_number,
            thumbnail=_tmdb_image(ep.still_path, "w300"),
            overview=ep.overview or None,
            released=_iso_date(ep.air_date),
        )
        for ep in episodes
        if ep.episode_number is not None
    ]
    return meta


def build_videos_from_kitsu(episodes: List[KitsuEpisode], stremio_id: str) -> List[Video]:
    """Convert Kitsu episodes into a Stremio videos list"""
    videos = []
    for ep in episodes:
        if ep.number is None:
            continue
        season = ep.season_number or 1
        title = (
            ep.canonical_title
            or ep.titles.get("en_jp")
            or ep.titles.get("en")
            or f"Episode {ep.number}"
        )
        thumbnail = ep.thumbnail.get("original") if ep.thumbnail else None
        videos.append(Video(
            id=f"{stremio_id}:{season}:{ep.number}",
            title=title,
            season=season,
            episode=ep.number,
            released=_iso_date(ep.airdate),
            thumbnail=thumbnail if isinstance(thumbnail, str) else None,
            overview=ep.description or None,
        ))
    return videos
