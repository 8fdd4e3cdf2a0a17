"""Persisted per-provider lookup tables (feed URLs, place hints)."""
import json
import logging
import os
from typing import Dict, List

logger = logging.getLogger(__name__)

ICAL_URLS_FILE = 'ical-urls.json'
HANDLE_LOCATIONS_FILE = 'handle-locations.json'
CITIES_FILE = 'cities.json'
POPUP_CITIES_FILE = 'popup-cities.json'


class ArtifactStore:
    """JSON lookup tables under DATA_DIR/<provider>/.

    A missing or unreadable file loads as an empty table, which sends the
    dependent resolution path to its next fallback.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def path(self, provider: str, filename: str) -> str:
        return os.path.join(self.data_dir, provider, filename)

    def load(self, provider: str, filename: str) -> dict:
        """
        Load a JSON object artifact.

        Args:
            provider: Provider directory name (e.g. "luma")
            filename: Artifact file name

        Returns:
            Parsed object, or {} when absent or invalid
        """
        path = self.path(provider, filename)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info(f"Artifact not found, using empty table: {path}")
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load artifact {path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Artifact {path} is not a JSON object, ignoring")
            return {}
        return data

    def save(self, provider: str, filename: str, data: dict) -> None:
        """Write an artifact, replacing the previous file atomically."""
        path = self.path(provider, filename)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, path)
        logger.info(f"Saved artifact {path} ({len(data)} entries)")

    def ical_urls(self, provider: str) -> Dict[str, str]:
        """Community slug -> iCal feed URL."""
        return {
            str(key): str(url)
            for key, url in self.load(provider, ICAL_URLS_FILE).items()
            if url
        }

    def handle_locations(self, provider: str) -> Dict[str, dict]:
        """Community slug -> {name, city, country, timezone}."""
        return {
            str(key): value
            for key, value in self.load(provider, HANDLE_LOCATIONS_FILE).items()
            if isinstance(value, dict)
        }

    def city_titles(self, provider: str) -> Dict[str, str]:
        """Popup city slug -> display title, from {"cities": [{slug, title}]}."""
        cities = self.load(provider, CITIES_FILE).get('cities', [])
        return {
            city['slug']: city['title']
            for city in cities
            if isinstance(city, dict) and city.get('slug') and city.get('title')
        }

    def popup_cities(self, provider: str) -> List[dict]:
        """Popup city detail records, from {"cities": [{citySlug, title, ...}]}."""
        cities = self.load(provider, POPUP_CITIES_FILE).get('cities', [])
        return [city for city in cities if isinstance(city, dict)]
