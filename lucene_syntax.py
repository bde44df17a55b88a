#!/usr/bin/env python3
# lucene_syntax.py
"""
Lucene Syntax - Helpers for detecting and normalizing Lucene query syntax

This module cleans up user-entered search strings before they are sent to a
Solr index: it fixes fancy quotes, stray operators, unbalanced parentheses,
broken boosts and brackets, and can make Boolean operators and range
queries case insensitive.
"""

import logging
import re
from typing import Callable, Iterable, List, Optional, Union

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("lucene_syntax")

# Regular expression matching Solr range queries
SOLR_RANGE_RE = r'(\[.+\s+TO\s+.+\])|(\{.+\s+TO\s+.+\})'

# Lookahead that only succeeds when the match is NOT inside a quoted phrase
INSIDE_QUOTES = r'(?=(?:[^"]*"[^"]*")*[^"]*$)'

ALL_BOOLEANS = ['AND', 'OR', 'NOT']

# Fancy quotes and their plain replacements
FANCY_QUOTES = {
    '«': '"',   # «
    '»': '"',   # »
    '‘': "'",   # ‘
    '’': "'",   # ’
    '‚': "'",   # ‚
    '‛': "'",   # ‛
    '“': '"',   # “
    '”': '"',   # ”
    '„': '"',   # „
    '‟': '"',   # ‟
    '‹': "'",   # ‹
    '›': "'",   # ›
}

TIMESTAMP_RE = re.compile(
    r'[0-9]{4}-[0-9]{2}-[0-9]{2}t[0-9]{2}:[0-9]{2}:[0-9]{2}z', re.IGNORECASE
)


class LuceneSyntaxHelper:
    """
    Helper for inspecting and normalizing Lucene query strings.
    """

    def __init__(self,
                 case_sensitive_booleans: Union[bool, int, str] = True,
                 case_sensitive_ranges: bool = True):
        """
        Initialize the helper.

        Args:
            case_sensitive_booleans: True if all Boolean operators are case
                sensitive, False if none are, or a comma-separated list of the
                operators that should stay case sensitive
            case_sensitive_ranges: Whether range queries are case sensitive
        """
        self.case_sensitive_booleans = case_sensitive_booleans
        self.case_sensitive_ranges = case_sensitive_ranges

    def contains_booleans(self, search_string: str) -> bool:
        """Does the string contain Boolean operators outside of quotes?"""
        bool_re = r'((\s+(AND|OR|NOT)\s+)|^NOT\s+)' + INSIDE_QUOTES
        check_string = self.capitalize_case_insensitive_booleans(search_string)
        return re.search(bool_re, check_string) is not None

    def contains_ranges(self, search_string: str) -> bool:
        """Does the string contain range queries?"""
        flags = 0 if self.case_sensitive_ranges else re.IGNORECASE
        return re.search(SOLR_RANGE_RE, search_string, flags) is not None

    def contains_advanced_lucene_syntax(self, search_string: str) -> bool:
        """
        Check whether a search string uses syntax that only the standard Lucene
        parser understands (fields, groups, ranges, Booleans, wildcards, fuzzy
        matches or boosts).

        Args:
            search_string: The user query

        Returns:
            True if advanced syntax was found
        """
        if search_string == '*:*':
            return True

        # Quoted phrases are replaced by a dummy keyword so that nothing inside
        # them is mistaken for syntax.
        search_string = re.sub(r'"[^"]*"', 'quoted', search_string)

        # Field specifiers
        if re.search(r'[^\s\\]:[^\s]', search_string):
            return True

        # Unescaped parentheses
        stripped = search_string.replace('\\(', '').replace('\\)', '')
        if '(' in stripped and ')' in stripped:
            return True

        if (self.contains_ranges(search_string)
                or self.contains_booleans(search_string)
                or '*' in search_string or '?' in search_string
                or '~' in search_string):
            return True

        # Boosts
        if re.search(r'\^[0-9]+', search_string):
            return True

        return False

    def normalize_search_string(self, search_string: str) -> str:
        """
        Normalize a search string so that it is safe to send to Solr.

        Args:
            search_string: The raw user query

        Returns:
            The normalized query (possibly empty)
        """
        search_string = self._prepare_for_lucene_syntax(search_string)

        search_string = self.capitalize_case_insensitive_booleans(search_string)

        if not self.case_sensitive_ranges:
            search_string = self.capitalize_ranges(search_string)

        return search_string

    def capitalize_case_insensitive_booleans(self, string: str) -> str:
        """Upper-case the Boolean operators that are configured as case insensitive."""
        return self.capitalize_booleans(string, self._get_bools_to_cap())

    def capitalize_booleans(self, string: str,
                            bools: Optional[Iterable[str]] = None) -> str:
        """
        Upper-case the given Boolean operators wherever they appear outside of
        quoted phrases.

        Args:
            string: The query string
            bools: Operators to capitalize (defaults to AND, OR and NOT)

        Returns:
            The adjusted query string
        """
        bools = list(ALL_BOOLEANS if bools is None else bools)
        if not bools:
            return string

        for op in bools:
            string = re.sub(
                r'\s+' + op + r'\s+' + INSIDE_QUOTES, ' ' + op + ' ', string,
                flags=re.IGNORECASE
            )

        if 'NOT' in bools:
            string = re.sub(
                r'\(NOT\s+' + INSIDE_QUOTES, '(NOT ', string, flags=re.IGNORECASE
            )

        return string.strip()

    def capitalize_ranges(self, string: str) -> str:
        """
        Make range queries case insensitive: alphabetic ranges are expanded to
        an OR of their lower- and upper-cased versions.
        """
        patterns = [
            r'(\[)([^\]]+)\s+TO\s+([^\]]+)(\])' + INSIDE_QUOTES,
            r'(\{)([^}]+)\s+TO\s+([^}]+)(\})' + INSIDE_QUOTES,
        ]
        for pattern in patterns:
            string = re.sub(pattern, self._capitalize_ranges_callback, string,
                            flags=re.IGNORECASE)
        return string.strip()

    def extract_search_terms(self, query: str) -> str:
        """
        Extract the bare search terms from a query, discarding field names,
        local parameters, fuzziness, boosts and leading +/- modifiers.

        Args:
            query: Lucene query string

        Returns:
            Space-separated search terms
        """
        result: List[str] = []
        state = {'collected': '', 'discard_parens': 0}

        query = re.sub(r'\{!.+?\}', '', query)
        query = re.sub(r'~[^\s]*', '', query)
        query = re.sub(r'\^[^\s]*', '', query)

        def collect(ch: str, quoted: bool, esc: bool) -> None:
            if not quoted:
                # Closing parens matching previously discarded opening ones
                if not esc and ch == ')' and state['discard_parens'] > 0:
                    state['discard_parens'] -= 1
                    return
                if ch == ' ' and state['collected'] != '':
                    result.append(state['collected'])
                    state['collected'] = ''
                    return
                # Anything before a colon is a field name
                if not esc and ch == ':':
                    state['discard_parens'] += self._count_non_quoted(
                        '(', state['collected']
                    )
                    state['collected'] = ''
                    return
            state['collected'] += ch

        self._process_query_string(collect, query)

        if state['collected'] != '':
            result.append(state['collected'])

        return ' '.join(term.lstrip('+-') for term in result)

    def has_case_sensitive_booleans(self) -> bool:
        """Are any Boolean operators left case sensitive?"""
        return len(ALL_BOOLEANS) > len(self._get_bools_to_cap())

    def has_case_sensitive_ranges(self) -> bool:
        return bool(self.case_sensitive_ranges)

    # Internal helpers

    def _normalize_fancy_quotes(self, value: str) -> str:
        return value.translate(str.maketrans(FANCY_QUOTES))

    def _normalize_wildcards(self, value: str) -> str:
        # Leading wildcards are not allowed
        if value.startswith('*') or value.startswith('?'):
            return value[1:]
        return value

    def _normalize_parens(self, value: str) -> str:
        start = self._count_non_quoted('(', value)
        end = self._count_non_quoted(')', value)
        if start != end:
            return self._remove_non_quoted(['(', ')'], value)
        return value

    def _normalize_boosts(self, value: str) -> str:
        # Drop every ^ unless all of them are followed by digits
        count = value.count('^')
        valid = len(re.findall(r'[^^]+\^[0-9]', value))
        if count and count != valid:
            return value.replace('^', '')
        return value

    def _normalize_braces_and_brackets(self, value: str) -> str:
        """
        Escape brackets and braces that are not part of a range query. Valid
        ranges are swapped for placeholder tokens first and restored after the
        escaping step; the placeholders cannot occur in the input because
        _normalize_boosts has already dealt with stray carets.
        """
        flags = 0 if self.case_sensitive_ranges else re.IGNORECASE
        value = re.sub(r'\[([^\[\]\s]+\s+TO\s+[^\[\]\s]+)\]',
                       r'^^lbrack^^\1^^rbrack^^', value, flags=flags)
        value = re.sub(r'\{([^\{\}\s]+\s+TO\s+[^\{\}\s]+)\}',
                       r'^^lbrace^^\1^^rbrace^^', value, flags=flags)
        value = re.sub(r'(?<!\\)([\[\]\{\}])', r'\\\1', value)
        for token, char in (('^^lbrack^^', '['), ('^^rbrack^^', ']'),
                            ('^^lbrace^^', '{'), ('^^rbrace^^', '}')):
            value = value.replace(token, char)
        return value

    def _normalize_unquoted_text(self, value: str) -> str:
        # Freestanding hyphens and pluses
        value = re.sub(r'(\s+[+-]+$|\s+[+-]+\s+|^[+-]+\s+)' + INSIDE_QUOTES,
                       ' ', value)
        # Standalone slashes are quoted
        value = re.sub(r'(\s+[/]+\s+)' + INSIDE_QUOTES, ' "/" ', value)
        # Leading and trailing slashes
        value = re.sub(r'(\s+[/]+$|^[/]+\s+)' + INSIDE_QUOTES, ' ', value)

        # A proximity of 1 is meaningless
        value = re.sub(r'~1(\.0*)?$', '', value)
        value = re.sub(r'~1(\.0*)?\s+' + INSIDE_QUOTES, ' ', value)

        # Empty parentheses cause a fatal Solr error
        empty_parens = re.compile(r'\(\s*\)' + INSIDE_QUOTES)
        while empty_parens.search(value):
            value = empty_parens.sub('', value)

        return value

    def _normalize_colons(self, value: str) -> str:
        value = re.sub(r':+', ':', value)
        value = re.sub(r'(:[:\s]+|[:\s]+:)' + INSIDE_QUOTES, ' ', value)
        return value.strip(':')

    def _prepare_for_lucene_syntax(self, value: str) -> str:
        value = self._normalize_fancy_quotes(value)

        # A lone operator is treated as a plain word
        lone = value.strip()
        if lone in ALL_BOOLEANS:
            return lone.lower()

        # Nothing but operators and control characters
        stripped = value
        for operator in ['AND', 'OR', 'NOT', '+', '-', '"', '&&', '||']:
            stripped = stripped.replace(operator, '')
        if stripped.strip() == '':
            return ''

        if lone == '*:*':
            return ''

        # Order is significant
        value = self._normalize_wildcards(value)
        value = self._normalize_parens(value)
        value = self._normalize_boosts(value)
        value = self._normalize_braces_and_brackets(value)
        value = self._normalize_unquoted_text(value)
        value = self._normalize_colons(value)

        return value.strip('/ ')

    def _get_bools_to_cap(self) -> List[str]:
        setting = self.case_sensitive_booleans
        if setting in (False, '0'):
            return list(ALL_BOOLEANS)
        if setting in (True, '1'):
            return []
        sensitive = [part.strip().upper() for part in str(setting).split(',')]
        return [op for op in ALL_BOOLEANS if op not in sensitive]

    def _capitalize_ranges_callback(self, match: re.Match) -> str:
        open_char, start, end, close_char = (
            match.group(1), match.group(2), match.group(3), match.group(4)
        )

        if start.upper() != start.lower() or end.upper() != end.lower():
            lower = f"{open_char}{start.lower().strip()} TO {end.lower().strip()}{close_char}"
            upper = f"{open_char}{start.upper().strip()} TO {end.upper().strip()}{close_char}"
            # Lower-casing a timestamp would make it illegal
            if TIMESTAMP_RE.search(start) or TIMESTAMP_RE.search(end):
                return upper
            return f"({lower} OR {upper})"

        return f"{open_char}{start.strip()} TO {end.strip()}{close_char}"

    def _count_non_quoted(self, needle: str, haystack: str) -> int:
        count = [0]

        def check(ch: str, quoted: bool, esc: bool) -> None:
            if not quoted and not esc and ch == needle:
                count[0] += 1

        self._process_query_string(check, haystack)
        return count[0]

    def _remove_non_quoted(self, needles: List[str], haystack: str) -> str:
        kept: List[str] = []

        def keep(ch: str, quoted: bool, esc: bool) -> None:
            if quoted or esc or ch not in needles:
                kept.append(ch)

        self._process_query_string(keep, haystack)
        return ''.join(kept)

    def _process_query_string(self, callback: Callable[[str, bool, bool], None],
                              value: str) -> None:
        """Walk a query one character at a time, tracking quote and escape state."""
        quoted = False
        escaped = False
        for ch in value:
            if ch == '\\':
                escaped = not escaped
            if not escaped and ch == '"':
                quoted = not quoted
            callback(ch, quoted, escaped)
            if ch != '\\':
                escaped = False
