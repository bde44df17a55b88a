#!/usr/bin/env python3
# finto_library.py
"""
Finto Library - Client for the Finto (Skosmos) ontology REST API

Looks up concepts of the General Finnish Ontology (YSO) and other Finto
vocabularies by term, and classifies single-concept hits so search terms can
be refined: a term that is only an alternative label of a concept is a
non-descriptor, a concept with narrower concepts yields hyponyms, and
several hits are specifiers.
"""

import logging
import urllib.parse
from typing import Any, Dict, List, Mapping, Optional

import requests

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("finto_library")

FINTO_API_URL = 'https://api.finto.fi/rest/v1'

SUPPORTED_LANGUAGES = ('fi', 'sv', 'en')

# Keys and result types of extended search results
RESULT_TYPE = 'result_type'
RESULTS = 'results'
NARROWER_RESULTS = 'narrower_results'
TYPE_NONDESCRIPTOR = 'nondescriptor'
TYPE_SPECIFIER = 'specifier'
TYPE_HYPONYM = 'hyponym'
TYPE_OTHER = 'other'


class FintoClient:
    """
    Finto REST API client.
    """

    def __init__(self, base_url: str = FINTO_API_URL, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'VuFind',
        })

    @classmethod
    def from_config(cls, config: Mapping[str, Any],
                    session: Optional[requests.Session] = None) -> 'FintoClient':
        """Create a client from a [Finto] section (base_url, http_timeout)."""
        timeout = config.get('http_timeout') or 30
        return cls(
            base_url=config.get('base_url') or FINTO_API_URL,
            timeout=int(timeout),
            session=session,
        )

    def is_supported_language(self, lang: str) -> bool:
        return lang in SUPPORTED_LANGUAGES

    def search(self, query: str, lang: Optional[str] = None,
               other: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Search concepts by term.

        Args:
            query: Term to search for
            lang: Language of the labels to match ('fi', 'sv', 'en')
            other: Further /search parameters (overriding the default vocabulary 'yso')

        Returns:
            Decoded API response with a 'results' list, or None on failure
        """
        params: Dict[str, Any] = {'vocab': 'yso'}
        params.update(other or {})
        params['query'] = query.strip()
        if lang:
            params['lang'] = lang
        return self._make_request(['search'], params)

    def narrower(self, vocid: str, uri: str, lang: Optional[str] = None,
                 sort: bool = False) -> List[Dict[str, Any]]:
        """
        Narrower concepts of a concept.

        Args:
            vocid: Vocabulary id, e.g. 'yso'
            uri: URI of the concept
            lang: Label language
            sort: Sort the concepts by preferred label

        Returns:
            List of concepts ({'uri', 'prefLabel'}), empty on failure
        """
        params = {'vocid': vocid, 'uri': uri}
        if lang:
            params['lang'] = lang
        data = self._make_request([vocid, 'narrower'], params) or {}
        concepts = data.get('narrower') or []
        if sort and lang and concepts:
            concepts = sorted(concepts, key=lambda c: str(c.get('prefLabel', '')).casefold())
        return concepts

    def extended_search(self, query: str, lang: Optional[str] = None,
                        other: Optional[Mapping[str, Any]] = None,
                        narrower: bool = True) -> Dict[str, Any]:
        """
        Search concepts and classify the hits.

        Several hits are specifiers. A single hit whose alternative or
        hidden label is the query is a non-descriptor. Otherwise, when
        narrower is set, the narrower concepts of a single hit are fetched
        and make it a hyponym result. Anything else is 'other'.

        Returns:
            {'result_type', 'results', 'narrower_results'?}, or an empty
            dictionary when nothing was found
        """
        results = self.search(query, lang, other)
        if not results or not results.get('results'):
            return {}

        extended: Dict[str, Any] = {RESULTS: results}
        hits = results['results']
        if len(hits) > 1:
            extended[RESULT_TYPE] = TYPE_SPECIFIER
            return extended

        hit = hits[0]
        if hit.get('altLabel') == query or hit.get('hiddenLabel') == query:
            extended[RESULT_TYPE] = TYPE_NONDESCRIPTOR
        elif narrower:
            narrower_results = self.narrower(
                hit.get('vocab', 'yso'), hit['uri'], hit.get('lang'), True
            )
            if narrower_results:
                extended[RESULT_TYPE] = TYPE_HYPONYM
                extended[NARROWER_RESULTS] = narrower_results
        extended.setdefault(RESULT_TYPE, TYPE_OTHER)
        return extended

    def _make_request(self, hierarchy: List[str],
                      params: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        url = self.base_url + ''.join(
            '/' + urllib.parse.quote(value, safe='') for value in hierarchy
        )
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Error querying Finto at {url}: {e}")
            return None

        try:
            data = response.json()
        except ValueError:
            data = None

        # An error status with a JSON body is left to the caller
        if response.status_code >= 400 and data is None:
            logger.error(f"GET request for '{url}' with params {dict(params)} failed: "
                         f"{response.status_code}, response content: {response.text}")
            return None
        logger.debug(f"GET request {url} returned {response.status_code}")
        return data if isinstance(data, dict) else None
