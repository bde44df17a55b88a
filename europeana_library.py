#!/usr/bin/env python3
# europeana_library.py
"""
Europeana Library - Search client for the Europeana Search API
"""

import logging
import urllib.parse
from typing import Any, Dict, List, Optional

import requests

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("europeana_library")

EUROPEANA_API_URL = 'https://api.europeana.eu/record/v2/search.json'
EUROPEANA_PORTAL_URL = 'https://www.europeana.eu/search'


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    return str(value) if value is not None else None


class EuropeanaClient:
    """
    Europeana Search API client.
    """

    def __init__(self, api_key: str, base_url: str = EUROPEANA_API_URL,
                 timeout: int = 30, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_query(self, query: str, exclude_providers: Optional[List[str]] = None) -> str:
        """Search terms with NOT clauses for excluded data providers."""
        for provider in exclude_providers or []:
            query += f' NOT DATA_PROVIDER:"{provider}"'
        return query

    def get_more_link(self, query: str) -> str:
        """Link to the full result list on the Europeana portal."""
        return f"{EUROPEANA_PORTAL_URL}?{urllib.parse.urlencode({'query': query})}"

    def search(self, query: str, limit: int = 5,
               exclude_providers: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Search Europeana.

        Args:
            query: Search terms
            limit: Maximum number of items
            exclude_providers: Data providers to leave out

        Returns:
            {'feedTitle', 'sourceLink', 'worksArray': [{'title', 'link',
            'enclosure', 'provider'}]}; an empty dictionary on failure
        """
        full_query = self.build_query(query, exclude_providers)
        params = {'query': full_query, 'rows': limit, 'wskey': self.api_key}
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Error querying Europeana: {e}")
            return {}
        except ValueError as e:
            logger.error(f"Error parsing Europeana response: {e}")
            return {}

        if not data.get('success', True):
            logger.error(f"Europeana search failed: {data.get('error')}")
            return {}

        works = []
        for item in data.get('items', [])[:limit]:
            works.append({
                'title': _first(item.get('title')) or '',
                'link': item.get('guid', ''),
                'enclosure': _first(item.get('edmPreview')),
                'provider': _first(item.get('dataProvider')) or '',
            })

        logger.info(f"Europeana returned {data.get('totalResults', 0)} items for '{query}'")
        return {
            'feedTitle': f"Europeana results for {query}",
            'sourceLink': self.get_more_link(full_query),
            'worksArray': works,
        }
