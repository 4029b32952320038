"""
AniList GraphQL Queries
"""

MEDIA_FIELDS = """
  id
  title {
    romaji
    english
    native
  }
  coverImage {
    extraLarge
    large
  }
  bannerImage
  description(asHtml: false)
  genres
  format
  status
  episodes
  duration
  season
  seasonYear
  averageScore
  popularity
  studios(isMain: true) {
    nodes {
      name
      siteUrl
    }
  }
  trailer {
    id
    site
  }
  siteUrl
  startDate {
    year
    month
    day
  }
  endDate {
    year
    month
    day
  }
"""


def _page_query(name: str, params: str, media_args: str) -> str:
    return f"""
  query {name}($page: Int, $perPage: Int{params}) {{
    Page(page: $page, perPage: $perPage) {{
      pageInfo {{
        hasNextPage
        total
      }}
      media(type: ANIME, isAdult: false, {media_args}) {{
        {MEDIA_FIELDS}
      }}
    }}
  }}
"""


TRENDING_QUERY = _page_query("TrendingAnime", "", "sort: TRENDING_DESC")

SEASON_QUERY = _page_query(
    "SeasonAnime",
    ", $season: MediaSeason, $seasonYear: Int",
    "sort: POPULARITY_DESC, season: $season, seasonYear: $seasonYear",
)

POPULAR_QUERY = _page_query("PopularAnime", "", "sort: POPULARITY_DESC")

TOP_QUERY = _page_query("TopAnime", "", "sort: SCORE_DESC")

ANIME_DISCOVER_QUERY = _page_query(
    "AnimeDiscover",
    ", $genre: String, $format: MediaFormat, $status: MediaStatus, $year: Int",
    "sort: POPULARITY_DESC, genre: $genre, format: $format, status: $status, seasonYear: $year",
)

MEDIA_BY_ID_QUERY = f"""
  query MediaById($id: Int) {{
    Media(id: $id, type: ANIME) {{
      {MEDIA_FIELDS}
    }}
  }}
"""
