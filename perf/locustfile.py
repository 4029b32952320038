"""Locust load script for the anime catalogue addon.
Usage:
  locust -f perf/locustfile.py --host http://localhost:7070
"""
import os
import random
from locust import HttpUser, task, between

META_IDS = [i.strip() for i in os.getenv("ADDON_META_IDS", "anilist:16498,kitsu:7442").split(",") if i.strip()]
CATALOGS = ["anilist-trending", "anilist-season", "anilist-popular", "anilist-top"]
GENRES = ["Action", "Comedy", "Drama", "Romance", "Sci-Fi"]


class AddonUser(HttpUser):
    wait_time = between(0.2, 1.0)

    @task(1)
    def manifest(self):
        self.client.get("/manifest.json")

    @task(4)
    def home_catalog(self):
        catalog_id = random.choice(CATALOGS)
        self.client.get(f"/catalog/series/{catalog_id}.json", name="/catalog/series/[id].json")

    @task(2)
    def paged_catalog(self):
        # Several users landing on the same page exercises request coalescing
        skip = random.choice([100, 200])
        self.client.get(f"/catalog/series/anilist-trending/skip={skip}.json", name="/catalog/series/[id]/skip.json")

    @task(2)
    def discover(self):
        genre = random.choice(GENRES)
        self.client.get(f"/catalog/anime/anilist-anime/genre={genre}.json", name="/catalog/anime/anilist-anime/[extra].json")

    @task(2)
    def meta(self):
        if META_IDS:
            self.client.get(f"/meta/series/{random.choice(META_IDS)}.json", name="/meta/series/[id].json")
