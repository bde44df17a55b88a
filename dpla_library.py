#!/usr/bin/env python3
# dpla_library.py
"""
DPLA Library - Search client for the Digital Public Library of America API
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
from bs4 import BeautifulSoup

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("dpla_library")

DPLA_API_URL = 'https://api.dp.la/v2/items'
DPLA_ITEM_URL = 'https://dp.la/item/'

# Catalogue facet fields and the DPLA fields they correspond to
FORMAT_MAP = {
    'authorStr': 'sourceResource.creator',
    'building': 'provider.name',
    'format': 'sourceResource.format',
    'geographic_facet': 'sourceResource.spatial.region',
    'institution': 'provider.name',
    'language': 'sourceResource.language.name',
    'publishDate': 'sourceResource.date.begin',
}

RETURN_FIELDS = [
    'id', 'dataProvider', 'sourceResource.title', 'sourceResource.description',
]


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get('name')
    return str(value) if value is not None else None


class DPLAClient:
    """
    DPLA items API client.
    """

    def __init__(self, api_key: str, base_url: str = DPLA_API_URL, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_params(self, query: str, filters: Optional[Mapping[str, List[str]]] = None,
                     limit: int = 5) -> Dict[str, Any]:
        """
        Build DPLA request parameters; filters on mapped facet fields are
        passed on as comma-separated DPLA field values.
        """
        params = {
            'q': query,
            'fields': ','.join(RETURN_FIELDS),
            'api_key': self.api_key,
            'page_size': limit,
        }
        for field, values in (filters or {}).items():
            if field in FORMAT_MAP and values:
                params[FORMAT_MAP[field]] = ','.join(values)
        return params

    def search(self, query: str, filters: Optional[Mapping[str, List[str]]] = None,
               limit: int = 5) -> List[Dict[str, Any]]:
        """
        Search DPLA.

        Args:
            query: Search terms
            filters: Active catalogue filters ({field: [values]})
            limit: Maximum number of items

        Returns:
            List of {'title', 'provider', 'link', 'desc'?} dictionaries
        """
        try:
            response = self.session.get(
                self.base_url, params=self.build_params(query, filters, limit),
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Error querying DPLA: {e}")
            return []
        except ValueError as e:
            logger.error(f"Error parsing DPLA response: {e}")
            return []

        results = []
        for doc in data.get('docs', [])[:limit]:
            item = {
                'title': _first(doc.get('sourceResource.title')) or '',
                'provider': _first(doc.get('dataProvider')) or '',
                'link': DPLA_ITEM_URL + str(doc.get('id', '')),
            }
            desc = _first(doc.get('sourceResource.description'))
            if desc:
                item['desc'] = BeautifulSoup(desc, 'html.parser').get_text(' ', strip=True)
            results.append(item)

        logger.info(f"DPLA returned {len(results)} items for '{query}'")
        return results
