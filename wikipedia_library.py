#!/usr/bin/env python3
# wikipedia_library.py
"""
Wikipedia Library - Author biographies from the Wikipedia API

This module fetches the wikitext of an author's Wikipedia page and turns the
lead section into a short HTML biography with an optional portrait image.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("wikipedia_library")

# Infobox template names by language
INFOBOX_TAGS = ['Bio', 'Ficha de escritor', 'Infobox', 'Info/Biografia']

# Infobox keys holding the image name and caption
INFOBOX_IMAGE_KEYS = ('img', 'image', 'image:', 'image_name', 'imagem', 'imagen', 'immagine')
INFOBOX_CAPTION_KEYS = ('caption', 'img_capt', 'image_caption', 'legenda', 'textoimagen')

# Namespace prefixes of image files by language
FILE_TAGS = ['Archivo', 'Bestand', 'Datei', 'Ficheiro', 'Fichier', 'File', 'Image']

REDIRECT_TOKENS = ['#REDIRECT', '#WEITERLEITUNG', '#OMDIRIGERING']

BODY_IMAGE_RE = re.compile(
    r'\[\[(' + '|'.join(FILE_TAGS) + r'):([^\]]*?\.jpg[^\]]*?)\]\]'
)

SEARCH_LINK = '<a href="___baseurl___?lookfor=%22{target}%22&amp;type=AllFields">{text}</a>'


def _balanced_blocks(text: str, open_char: str, close_char: str) -> List[str]:
    """
    Return the top-level balanced blocks of a text, e.g. every outermost
    '{...}' including nested braces. Unclosed blocks are ignored.
    """
    blocks = []
    depth = 0
    start = 0
    for pos, char in enumerate(text):
        if char == open_char:
            if depth == 0:
                start = pos
            depth += 1
        elif char == close_char and depth > 0:
            depth -= 1
            if depth == 0:
                blocks.append(text[start:pos + 1])
    return blocks


class WikipediaClient:
    """
    Client for author information from Wikipedia.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30,
                 translator: Optional[Callable[[str], str]] = None):
        """
        Initialize the client.

        Args:
            session: Optional requests session
            timeout: Request timeout in seconds
            translator: Function translating interface strings ('pronounced')
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.translator = translator or (lambda text: text)
        self.lang = 'en'
        self.pages_retrieved: Dict[str, bool] = {}

    def set_language(self, lang: str) -> None:
        """Set the Wikipedia language, dropping regional suffixes ('en-gb' -> 'en')."""
        self.lang = lang[:2]

    def reset(self) -> None:
        """Forget retrieved pages; the loop guard covers a single lookup."""
        self.pages_retrieved = {}

    def _api_url(self) -> str:
        return f"https://{self.lang}.wikipedia.org/w/api.php"

    def get(self, author: str) -> Optional[Dict[str, Any]]:
        """
        Get information about an author.

        Args:
            author: Page title to look up

        Returns:
            Dictionary with name, description, wiki_lang and optionally image
            and altimage; an empty dictionary if the page was already
            retrieved by this client; None if the page does not exist or the
            request failed
        """
        # The same page twice means a redirect loop
        if self._already_retrieved(author):
            return {}

        params = {
            'action': 'query',
            'prop': 'revisions',
            'rvprop': 'content',
            'rvslots': 'main',
            'format': 'json',
            'titles': author,
        }
        try:
            response = self.session.get(self._api_url(), params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Error querying Wikipedia for {author}: {e}")
            return None
        except ValueError as e:
            logger.error(f"Error parsing Wikipedia response for {author}: {e}")
            return None

        return self._parse_wikipedia(data)

    def _already_retrieved(self, author: str) -> bool:
        if author in self.pages_retrieved:
            return True
        self.pages_retrieved[author] = True
        return False

    def _parse_wikipedia(self, raw_body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pages = raw_body.get('query', {}).get('pages', {})
        if not pages or '-1' in pages:
            return None

        name, redirect_to, content = self._check_for_redirect(pages)
        if redirect_to:
            logger.debug(f"Following Wikipedia redirect to {redirect_to}")
            return self.get(redirect_to)

        infobox = self._extract_infobox(content)
        body = self._extract_body_text(content, infobox)
        info: Dict[str, Any] = {
            'name': name,
            'description': self.sanitize_body(body),
            'wiki_lang': self.lang,
        }

        image_name = image_caption = None
        if infobox:
            image_name, image_caption = self._extract_image_from_infobox(infobox)
        if image_name is None:
            image_name, image_caption = self._extract_image_from_body(content)

        if image_name is not None:
            image_url = self.get_image_url(image_name)
            if image_url:
                info['image'] = image_url
                info['altimage'] = image_caption if image_caption is not None else name

        return info

    def _check_for_redirect(self, pages: Dict[str, Any]) -> Tuple[Optional[str], Optional[str], str]:
        """Find the first page that is not a redirect."""
        name = redirect_to = None
        content = ''
        for page in pages.values():
            name = page.get('title')
            revisions = page.get('revisions') or [{}]
            revision = revisions[0]
            content = revision.get('slots', {}).get('main', {}).get('*', revision.get('*', ''))

            first_line = content.split('\n', 1)[0]
            redirect_to = None
            for token in REDIRECT_TOKENS:
                if token.lower() in first_line.lower():
                    match = re.search(r'\[\[(.*)\]\]', first_line)
                    redirect_to = match.group(1) if match else None
                    break
            if not redirect_to:
                break
        return name, redirect_to, content

    def _extract_infobox(self, content: str) -> Optional[str]:
        for block in _balanced_blocks(content, '{', '}'):
            for tag in INFOBOX_TAGS:
                if block.startswith('{{' + tag):
                    return block
        return None

    def _extract_body_text(self, content: str, infobox: Optional[str]) -> str:
        if infobox:
            start = content.find(infobox)
            return content[start + len(infobox):]
        return content

    def _extract_image_from_infobox(self, infobox: str) -> Tuple[Optional[str], Optional[str]]:
        image_name = image_caption = None
        inner = re.sub(r'^\s+', '', infobox[2:-2], flags=re.MULTILINE)
        for row in inner.split('\n|'):
            key, _, value = row.partition('=')
            key = key.strip().lower()
            value = value.strip()
            if key in INFOBOX_IMAGE_KEYS:
                image_name = value.replace(' ', '_')
            elif key in INFOBOX_CAPTION_KEYS:
                image_caption = value
        return image_name, image_caption

    def _extract_image_from_body(self, content: str) -> Tuple[Optional[str], Optional[str]]:
        match = BODY_IMAGE_RE.search(content)
        if not match:
            return None, None
        parts = match.group(2).split('|')
        image_name = parts[0].replace(' ', '_')
        image_caption = None
        if len(parts) > 1:
            caption = re.sub(r'\{\{.*?\}\}', '', parts[-1])
            image_caption = BeautifulSoup(caption, 'html.parser').get_text()
        return image_name, image_caption

    def strip_image_and_file_links(self, body: str) -> str:
        """Remove [[File:...]] and [[Image:...]] links, including nested links in captions."""
        for block in _balanced_blocks(body, '[', ']'):
            if block.lower().startswith(('[[file:', '[[image:')):
                body = body.replace(block, '')
        return body

    def sanitize_body(self, body: str) -> str:
        """
        Turn the wikitext before the first heading into simple HTML.

        Args:
            body: Wikitext

        Returns:
            HTML fragment with search links for wiki links
        """
        heading = body.find('==')
        if heading != -1:
            body = body[:heading]
        body = self.strip_image_and_file_links(body.strip())

        replacements = [
            (r'\[\[([^\]|]*?)\]\]',
             lambda m: SEARCH_LINK.format(target=m.group(1), text=m.group(1))),
            (r'\[\[([^\]]*?)\|([^\]]*?)\]\]',
             lambda m: SEARCH_LINK.format(target=m.group(1), text=m.group(2))),
            (r'\{\{pron-en\|([^}]*?)\}\}',
             lambda m: f"{self.translator('pronounced')} /{m.group(1)}/"),
            (r'\{\{ndash\}\}', lambda m: ' - '),
            # Citations and other templates
            (r'\{\{[^}]*?\}\}', lambda m: ''),
            (r'<ref[^/]*?>.*?</ref>', lambda m: ''),
            (r'<ref.*?/>', lambda m: ''),
            (r'<!--.*?-->\n*', lambda m: ''),
            (r"'''([^']*?)'''", lambda m: f"<strong>{m.group(1)}</strong>"),
            (r'^\n*', lambda m: ''),
            (r'\n{2,}', lambda m: '<br><br>'),
        ]
        for pattern, replacement in replacements:
            body = re.sub(pattern, replacement, body, flags=re.DOTALL)
        return body

    def get_image_url(self, image_name: str) -> Optional[str]:
        """
        Look up the URL of an image (150px thumbnail size).

        Args:
            image_name: File name without namespace

        Returns:
            URL of the image or None
        """
        params = {
            'prop': 'imageinfo',
            'action': 'query',
            'iiprop': 'url',
            'iiurlwidth': 150,
            'format': 'json',
            'titles': f"Image:{image_name}",
        }
        try:
            response = self.session.get(self._api_url(), params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Error looking up Wikipedia image {image_name}: {e}")
            return None

        text = response.text
        if not text:
            return None

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}

        for page in data.get('query', {}).get('pages', {}).values():
            imageinfo = page.get('imageinfo') or []
            if imageinfo and imageinfo[0].get('url'):
                return imageinfo[0]['url']

        # Fall back to the first URL anywhere in the response
        match = re.search(r'"https?://([^"]*)"', text)
        if match:
            return 'https://' + match.group(1)
        return None
