#!/usr/bin/env python3
# viaf_library.py
"""
VIAF Library - Wikipedia page names from the Virtual International Authority File
"""

import logging
import urllib.parse
import xml.etree.ElementTree as ET
from typing import Optional

import requests

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("viaf_library")

VIAF_SEARCH_URL = 'https://viaf.org/viaf/search'


class ViafClient:
    """
    Looks up personal names in VIAF through its SRU interface.
    """

    def __init__(self, base_url: str = VIAF_SEARCH_URL, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_wikipedia_name(self, author: str) -> Optional[str]:
        """
        Find the Wikipedia page name for an author.

        Args:
            author: Author name as found in the catalogue

        Returns:
            Page name taken from the first Wikipedia link of the best VIAF
            match, or None
        """
        params = {
            'query': f'local.personalNames all "{author}"',
            'sortKeys': 'holdingscount',
            'maximumRecords': 1,
            'httpAccept': 'application/xml',
        }
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            root = ET.fromstring(response.content)
        except requests.RequestException as e:
            logger.error(f"Error querying VIAF for {author}: {e}")
            return None
        except ET.ParseError as e:
            logger.error(f"Error parsing VIAF response for {author}: {e}")
            return None

        for elem in root.iter():
            # xLink elements live in the VIAF terms namespace
            if not elem.tag.endswith('}xLink') and elem.tag != 'xLink':
                continue
            link = (elem.text or '').strip()
            if 'wikipedia' in link:
                name = urllib.parse.unquote(link.rstrip('/').rsplit('/', 1)[-1])
                logger.debug(f"VIAF maps {author} to Wikipedia page {name}")
                return name

        return None
