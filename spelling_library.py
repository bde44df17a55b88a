#!/usr/bin/env python3
# spelling_library.py
"""
Spelling Library - Spelling suggestions from Solr spellcheck responses

This module holds the spellcheck data returned by Solr and turns it into
user-facing suggestions: which query terms look misspelled, what they
could be replaced with, and the expanded query for each replacement.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("spelling_library")

NUMERIC_RE = re.compile(r'^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$')

# Entries of the Solr suggestion list that are not terms
NON_TERM_KEYS = ('collation', 'correctlySpelled')


class Spellcheck:
    """
    Ordered spellcheck suggestions for a query, with an optional secondary
    set from a fallback search.
    """

    def __init__(self, terms: Optional[List[Tuple[str, Dict[str, Any]]]] = None,
                 query: str = ''):
        self.terms: Dict[str, Dict[str, Any]] = {}
        for term, info in terms or []:
            self.terms[term] = info
        self.query = query
        self.secondary: Optional['Spellcheck'] = None

    @classmethod
    def from_solr(cls, raw: Any, query: str) -> 'Spellcheck':
        """
        Build a Spellcheck from the 'suggestions' part of a Solr response.

        Accepts the array-of-pairs layout (json.nl=arrarr), the flat layout
        and the map layout.
        """
        pairs: List[Tuple[str, Any]] = []
        if isinstance(raw, dict):
            pairs = list(raw.items())
        elif raw and all(isinstance(item, (list, tuple)) and len(item) == 2 for item in raw):
            pairs = [(item[0], item[1]) for item in raw]
        elif raw:
            pairs = list(zip(raw[::2], raw[1::2]))

        terms = [
            (str(term), info) for term, info in pairs
            if term not in NON_TERM_KEYS and isinstance(info, dict)
        ]
        return cls(terms, query)

    def get_query(self) -> str:
        return self.query

    def get_secondary(self) -> Optional['Spellcheck']:
        return self.secondary

    def set_secondary(self, spellcheck: Optional['Spellcheck']) -> None:
        self.secondary = spellcheck

    def merge(self, spellcheck: 'Spellcheck') -> None:
        """
        Merge another spellcheck into this one. Unseen terms are appended;
        for terms present in both, the longer suggestion list wins. The other
        spellcheck is also kept as secondary suggestions.
        """
        for term, info in spellcheck:
            current = self.terms.get(term)
            if current is None or (len(info.get('suggestion', []))
                                   > len(current.get('suggestion', []))):
                self.terms[term] = info

        if self.secondary is None:
            self.secondary = Spellcheck(list(spellcheck), spellcheck.get_query())
        else:
            self.secondary.merge(spellcheck)

    def __iter__(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        return iter(list(self.terms.items()))

    def __len__(self) -> int:
        return len(self.terms)

    def __repr__(self) -> str:
        return f"Spellcheck({list(self.terms)!r}, query={self.query!r})"


def _setting(config: Any, name: str, default: Any) -> Any:
    if config is None:
        return default
    value = config.get(name) if hasattr(config, 'get') else getattr(config, name, None)
    return default if value is None else value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


class SpellingProcessor:
    """
    Filters and formats spelling suggestions.
    """

    def __init__(self, config: Any = None,
                 normalizer: Optional[Callable[[str], str]] = None):
        """
        Initialize the processor.

        Args:
            config: Mapping with optional limit, skip_numeric, expand and phrase
                settings (the [Spelling] section of config.ini)
            normalizer: Optional function used when comparing terms to the query
        """
        self.spelling_limit = int(_setting(config, 'limit', 3))
        self.spell_skip_numeric = _as_bool(_setting(config, 'skip_numeric', True))
        self.expand = _as_bool(_setting(config, 'expand', True))
        self.phrase = _as_bool(_setting(config, 'phrase', False))
        self.normalizer = normalizer

    def should_skip_numeric_spelling(self) -> bool:
        return self.spell_skip_numeric

    def get_spelling_limit(self) -> int:
        return self.spelling_limit

    def tokenize(self, value: str) -> List[str]:
        """
        Split a query into words and quoted phrases, dropping Boolean
        operators and parentheses.

        Args:
            value: Query string

        Returns:
            List of tokens
        """
        joins = ['AND', 'OR', 'NOT']
        value = value.replace('(', ' ').replace(')', ' ').strip()

        tokens: List[str] = []
        state = {'pos': 0}

        def next_token(delimiters: str) -> Optional[str]:
            pos = state['pos']
            while pos < len(value) and value[pos] in delimiters:
                pos += 1
            if pos >= len(value):
                state['pos'] = pos
                return None
            start = pos
            while pos < len(value) and value[pos] not in delimiters:
                pos += 1
            state['pos'] = pos + 1
            return value[start:pos]

        token = next_token(' \t')
        while token is not None:
            # Quoted phrases are kept together
            if token.startswith('"') and not token.endswith('"'):
                token += ' ' + (next_token('"') or '') + '"'
            if token not in joins:
                tokens.append(token)
            token = next_token(' \t')

        # Drop a closing quote added above if the input did not have one
        if tokens and tokens[-1].endswith('"') and not value.endswith('"'):
            tokens[-1] = tokens[-1][:-1]

        return tokens

    def get_suggestions(self, spellcheck: Spellcheck, query: Any) -> Dict[str, Dict[str, Any]]:
        """
        Pick the useful suggestions from a spellcheck result.

        Args:
            spellcheck: Spellcheck from the search backend
            query: Query object the spellcheck belongs to

        Returns:
            {term: {'freq': original frequency, 'suggestions': {word: freq}}}

        Raises:
            ValueError: If Solr did not return extended results
        """
        all_suggestions: Dict[str, Dict[str, Any]] = {}
        for term, info in spellcheck:
            if self._should_skip_term(query, term, False):
                continue
            suggestions = self._format_and_filter_suggestions(query, info)
            if suggestions:
                all_suggestions[term] = {
                    'freq': info.get('origFreq', 0),
                    'suggestions': suggestions,
                }

        # Fall back to the secondary suggestions
        secondary = spellcheck.get_secondary()
        if not all_suggestions and secondary:
            logger.debug("No primary spelling suggestions, trying secondary")
            return self.get_suggestions(secondary, query)
        return all_suggestions

    def process_suggestions(self, suggestions: Dict[str, Dict[str, Any]],
                            query: str, params: Any) -> Dict[str, Dict[str, Any]]:
        """
        Turn suggestions into replacement data for display.

        Args:
            suggestions: Output of get_suggestions
            query: The query string
            params: Search params (used for whole-query labels in phrase mode)

        Returns:
            {target: {'freq', 'suggestions': {label: {'freq', 'new_term', 'expand_term'}}}}
        """
        result: Dict[str, Dict[str, Any]] = {}
        for term, details in suggestions.items():
            target_term = ''
            for token in self.tokenize(query):
                # Replace the whole token that contains the term
                if str(term) in token:
                    target_term = token
                    self._do_single_replace(term, target_term, True, details, result, params)
            if target_term == '':
                self._do_single_replace(term, term, False, details, result, params)
        return result

    def _format_and_filter_suggestions(self, query: Any, info: Dict[str, Any]) -> Dict[str, int]:
        entries = info.get('suggestion') or []
        if entries and not isinstance(entries[0], dict):
            raise ValueError(
                'Unexpected suggestion format; spellcheck.extendedResults must be set to true.'
            )
        suggestions: Dict[str, int] = {}
        for suggestion in entries:
            if len(suggestions) >= self.get_spelling_limit():
                break
            word = suggestion['word']
            if not self._should_skip_term(query, word, True):
                suggestions[word] = suggestion.get('freq', 0)
        return suggestions

    def _should_skip_term(self, query: Any, term: str, query_contains: bool) -> bool:
        if self.should_skip_numeric_spelling() and NUMERIC_RE.match(str(term)):
            return True
        # Terms are skipped when their presence in the query matches the flag
        return query_contains == query.contains_term(term, self.normalizer)

    def _do_single_replace(self, term: str, target_term: str, in_token: bool,
                           details: Dict[str, Any], result: Dict[str, Dict[str, Any]],
                           params: Any) -> None:
        entry = result.setdefault(target_term, {})
        entry['freq'] = details['freq']
        for word, freq in details['suggestions'].items():
            replacement = target_term.replace(term, word) if in_token else word

            if self.phrase:
                label = params.get_display_query_with_replaced_term(target_term, replacement)
            else:
                label = replacement

            suggestion = {'freq': freq, 'new_term': replacement}
            if self.expand:
                # Shingles need an extra pair of parentheses
                if ' ' in target_term:
                    suggestion['expand_term'] = f"(({target_term}) OR ({replacement}))"
                else:
                    suggestion['expand_term'] = f"({target_term} OR {replacement})"
            entry.setdefault('suggestions', {})[label] = suggestion
