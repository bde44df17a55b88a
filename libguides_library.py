#!/usr/bin/env python3
# libguides_library.py
"""
LibGuides Library - Client for the LibGuides (Springshare) API

Only the A-Z database list is supported. Requests are authorised with an
OAuth2 client-credentials token, which is kept until it expires.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import requests

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("libguides_library")

DEFAULT_API_URL = 'https://lgapi-us.libapps.com/1.2'


class LibGuidesClient:
    """
    LibGuides API client.
    """

    def __init__(self, base_url: str = DEFAULT_API_URL, client_id: str = '',
                 client_secret: str = '', timeout: int = 30,
                 session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            base_url: API base URL
            client_id: OAuth client id
            client_secret: OAuth client secret
            timeout: Request timeout in seconds
            session: Optional requests session
        """
        self.base_url = base_url.rstrip('/')
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.session = session or requests.Session()
        self.access_token: Optional[str] = None
        self.token_expires = 0.0

    @classmethod
    def from_config(cls, config: Any, **kwargs) -> 'LibGuidesClient':
        """Create a client from the [General] section of LibGuidesAPI.ini."""
        return cls(
            base_url=config.get('api_base_url') or DEFAULT_API_URL,
            client_id=config.get('client_id', ''),
            client_secret=config.get('client_secret', ''),
            **kwargs
        )

    def _authenticate(self) -> bool:
        if self.access_token and time.time() < self.token_expires:
            return True

        try:
            response = self.session.post(
                f"{self.base_url}/oauth/token",
                data={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'grant_type': 'client_credentials',
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            token = response.json()
        except requests.RequestException as e:
            logger.error(f"Error authenticating with LibGuides: {e}")
            return False
        except ValueError as e:
            logger.error(f"Invalid LibGuides token response: {e}")
            return False

        if 'access_token' not in token:
            logger.error(f"LibGuides did not return an access token: {token}")
            return False

        self.access_token = token['access_token']
        self.token_expires = time.time() + int(token.get('expires_in', 3600))
        logger.debug("Obtained LibGuides access token")
        return True

    def get_az(self) -> List[Dict[str, Any]]:
        """
        Load all A-Z databases.

        Returns:
            List of database dictionaries (name, url, alt_names, ...); empty on failure
        """
        if not self._authenticate():
            return []

        try:
            response = self.session.get(
                f"{self.base_url}/az",
                params={'expand': 'az_props'},
                headers={'Authorization': f"Bearer {self.access_token}"},
                timeout=self.timeout
            )
            response.raise_for_status()
            databases = response.json()
        except requests.RequestException as e:
            logger.error(f"Error loading LibGuides A-Z list: {e}")
            return []
        except ValueError as e:
            logger.error(f"Error parsing LibGuides A-Z list: {e}")
            return []

        if not isinstance(databases, list):
            logger.warning("Unexpected LibGuides A-Z response format")
            return []

        logger.info(f"Loaded {len(databases)} LibGuides databases")
        return databases
