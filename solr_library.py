#!/usr/bin/env python3
# solr_library.py
"""
Solr Library - Query model, query builder and client for VuFind-style Solr indexes

This module turns user searches (single queries or nested query groups) into
Solr request parameters using configurable search specifications, and talks
to a Solr core over HTTP to return parsed records, facets and spelling data.
"""

import copy
import logging
import re
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import requests
import yaml

from lucene_syntax import INSIDE_QUOTES, LuceneSyntaxHelper
from spelling_library import Spellcheck

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("solr_library")

# Common Solr endpoints of a VuFind installation
SOLR_ENDPOINTS = {
    'biblio': {
        'name': 'Bibliographic index',
        'url': 'http://localhost:8983/solr/biblio',
        'description': 'Main VuFind bibliographic core',
        'examples': {
            'all': '*:*',
            'title': 'title:"origin of species"',
            'author': 'author:darwin',
        },
    },
    'authority': {
        'name': 'Authority index',
        'url': 'http://localhost:8983/solr/authority',
        'description': 'Name and subject authority records (MainHeading, SeeAlso, UseFor)',
        'examples': {
            'heading': 'heading:"Twain, Mark"',
            'use_for': 'use_for:Clemens',
        },
    },
    'reserves': {
        'name': 'Course reserves index',
        'url': 'http://localhost:8983/solr/reserves',
        'description': 'Course reserves (course, instructor and department data)',
        'examples': {
            'course': 'course:"Biology 101"',
        },
    },
    'website': {
        'name': 'Website index',
        'url': 'http://localhost:8983/solr/website',
        'description': 'Crawled web pages of the library website',
        'examples': {
            'hours': 'opening hours',
        },
    },
}

BOOLEAN_OPERATORS = ['AND', 'OR', 'NOT']


@dataclass
class BiblioRecord:
    """Data class for bibliographic records."""
    id: str
    title: str
    authors: List[str] = field(default_factory=list)
    year: Optional[str] = None
    publisher: Optional[str] = None
    isbn: Optional[str] = None
    issn: Optional[str] = None
    urls: List[str] = field(default_factory=list)
    abstract: Optional[str] = None
    language: Optional[str] = None
    format: Optional[str] = None
    subjects: List[str] = field(default_factory=list)
    series: Optional[str] = None
    extent: Optional[str] = None  # Number of pages, duration, etc.
    edition: Optional[str] = None
    raw_data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "authors": self.authors,
            "year": self.year,
            "publisher": self.publisher,
            "isbn": self.isbn,
            "issn": self.issn,
            "urls": self.urls,
            "abstract": self.abstract,
            "language": self.language,
            "format": self.format,
            "subjects": self.subjects,
            "series": self.series,
            "extent": self.extent,
            "edition": self.edition
        }

    def __str__(self) -> str:
        """String representation of the record."""
        authors_str = ", ".join(self.authors) if self.authors else "Unknown"
        return f"{self.title} by {authors_str} ({self.year or 'n.d.'}, {self.publisher or 'Unknown'})"


class ParamBag:
    """
    Ordered collection of multi-valued request parameters.
    """

    def __init__(self, params: Optional[Dict[str, Any]] = None):
        self.params: Dict[str, List[Any]] = {}
        for name, value in (params or {}).items():
            self.set(name, value)

    def get(self, name: str) -> Optional[List[Any]]:
        """Return all values of a parameter, or None if it is not set."""
        return self.params.get(name)

    def has_param(self, name: str) -> bool:
        return name in self.params

    def contains(self, name: str, value: Any) -> bool:
        return value in self.params.get(name, [])

    def set(self, name: str, value: Any) -> None:
        """Replace the values of a parameter."""
        if isinstance(value, (list, tuple)):
            self.params[name] = list(value)
        else:
            self.params[name] = [value]

    def add(self, name: str, value: Any) -> None:
        """Append one or more values to a parameter."""
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        self.params.setdefault(name, []).extend(values)

    def remove(self, name: str) -> None:
        self.params.pop(name, None)

    def merge_with(self, other: 'ParamBag') -> None:
        """Add all parameters of another bag to this one."""
        for name, values in other.params.items():
            self.add(name, values)

    def to_dict(self) -> Dict[str, List[Any]]:
        return {name: list(values) for name, values in self.params.items()}

    def to_list(self) -> List[str]:
        """Return the parameters as URL-encoded name=value strings."""
        return [
            f"{urllib.parse.quote_plus(name)}={urllib.parse.quote_plus(str(value))}"
            for name, value in self.request()
        ]

    def request(self) -> List[Tuple[str, Any]]:
        """Return the parameters as (name, value) pairs for requests."""
        return [(name, value) for name, values in self.params.items() for value in values]

    def __repr__(self) -> str:
        return f"ParamBag({self.params!r})"


class Query:
    """
    A single search string with an optional search handler.
    """

    def __init__(self, string: str = '', handler: Optional[str] = None,
                 operator: Optional[str] = None):
        self.query_string = string
        self.handler = handler
        self.operator = operator

    def get_string(self) -> str:
        return self.query_string

    def set_string(self, string: str) -> None:
        self.query_string = string

    def get_handler(self) -> Optional[str]:
        return self.handler

    def set_handler(self, handler: Optional[str]) -> None:
        self.handler = handler

    def get_operator(self) -> Optional[str]:
        return self.operator

    def set_operator(self, operator: Optional[str]) -> None:
        self.operator = operator

    def get_all_terms(self) -> str:
        return self.get_string()

    def contains_term(self, needle: str,
                      normalizer: Optional[Callable[[str], str]] = None) -> bool:
        """
        Does the query contain the given term as a whole word?

        Args:
            needle: Term to look for
            normalizer: Optional function applied to both needle and query

        Returns:
            True if the term was found
        """
        haystack = self.query_string
        if normalizer:
            needle = normalizer(needle)
            haystack = normalizer(haystack)
        return re.search(r'\b' + re.escape(needle) + r'\b', haystack) is not None

    def replace_term(self, old: str, new: str,
                     normalizer: Optional[Callable[[str], str]] = None) -> None:
        """
        Replace every occurrence of a term, ignoring case. Word boundaries
        are only required at ends of the term that are word characters.
        """
        if normalizer:
            old = normalizer(old)
            self.query_string = normalizer(self.query_string)
        lead = r'\b' if re.match(r'\w', old) else ''
        trail = r'\b' if re.search(r'\w$', old) else ''
        self.query_string = re.sub(
            lead + re.escape(old) + trail, lambda m: new, self.query_string,
            flags=re.IGNORECASE
        )


    def __repr__(self) -> str:
        return f"Query({self.query_string!r}, handler={self.handler!r})"


class QueryGroup:
    """
    A Boolean combination of queries and nested groups.
    """

    def __init__(self, operator: str, queries: Optional[List[Union[Query, 'QueryGroup']]] = None,
                 reduced_handler: Optional[str] = None):
        self.operator = 'AND'
        self.negation = False
        self.set_operator(operator)
        self.queries = list(queries or [])
        self.reduced_handler = reduced_handler

    def set_operator(self, operator: str) -> None:
        """
        Set the Boolean operator. NOT is stored as a negated OR group.

        Raises:
            ValueError: If the operator is not AND, OR or NOT
        """
        if operator not in BOOLEAN_OPERATORS:
            raise ValueError(f"Unknown or invalid boolean operator: {operator}")
        if operator == 'NOT':
            self.operator = 'OR'
            self.negation = True
        else:
            self.operator = operator
            self.negation = False

    def get_operator(self) -> str:
        return self.operator

    def is_negated(self) -> bool:
        return self.negation

    def get_queries(self) -> List[Union[Query, 'QueryGroup']]:
        return self.queries

    def set_queries(self, queries: List[Union[Query, 'QueryGroup']]) -> None:
        self.queries = list(queries)

    def add_query(self, query: Union[Query, 'QueryGroup']) -> None:
        self.queries.append(query)

    def get_reduced_handler(self) -> Optional[str]:
        return self.reduced_handler

    def set_reduced_handler(self, handler: Optional[str]) -> None:
        self.reduced_handler = handler

    def unset_reduced_handler(self) -> None:
        self.reduced_handler = None

    def get_all_terms(self) -> str:
        return ' '.join(query.get_all_terms() for query in self.queries).strip()

    def contains_term(self, needle: str,
                      normalizer: Optional[Callable[[str], str]] = None) -> bool:
        return any(query.contains_term(needle, normalizer) for query in self.queries)

    def replace_term(self, old: str, new: str,
                     normalizer: Optional[Callable[[str], str]] = None) -> None:
        for query in self.queries:
            query.replace_term(old, new, normalizer)

    def __repr__(self) -> str:
        prefix = 'NOT ' if self.negation else ''
        return f"QueryGroup({prefix}{self.operator}, {self.queries!r})"


def _php_style_regex(pattern: str) -> Tuple[str, int]:
    """
    Split a delimited regular expression such as '/abc/i' into a Python
    pattern and flags. Undelimited patterns are returned unchanged.
    """
    flag_map = {'i': re.IGNORECASE, 'm': re.MULTILINE, 's': re.DOTALL,
                'x': re.VERBOSE, 'u': 0}
    if len(pattern) > 2 and not pattern[0].isalnum() and pattern[0] != '\\':
        delimiter = pattern[0]
        end = pattern.rfind(delimiter)
        if end > 0:
            flags = 0
            for modifier in pattern[end + 1:]:
                flags |= flag_map.get(modifier, 0)
            return pattern[1:end], flags
    return pattern, 0


def _php_style_replacement(replacement: str) -> str:
    # $1 and ${1} back-references
    return re.sub(r'\$\{?(\d+)\}?', r'\\g<\1>', replacement)


def _format_weight(weight: Any) -> Optional[str]:
    """Return the weight as a string if it is a positive number, else None."""
    if weight is None or isinstance(weight, bool):
        return None
    try:
        if float(weight) > 0:
            return str(weight)
    except (TypeError, ValueError):
        pass
    return None


def _addslashes(value: str) -> str:
    return value.replace('\\', '\\\\').replace("'", "\\'").replace('"', '\\"')


class SearchHandler:
    """
    Builds Solr query strings for one search type (e.g. AllFields, Title)
    from its search specification.
    """


    def __init__(self, spec: Dict[str, Any], default_dismax_handler: str = 'dismax'):
        """
        Initialize the handler.

        Args:
            spec: Search specification for this handler
            default_dismax_handler: Dismax flavour to use when the spec names none
        """
        spec = spec or {}
        self.specs: Dict[str, Any] = {
            'CustomMunge': copy.deepcopy(spec.get('CustomMunge') or {}),
            'DismaxFields': list(spec.get('DismaxFields') or []),
            'DismaxHandler': spec.get('DismaxHandler') or default_dismax_handler,
            'QueryFields': copy.deepcopy(spec.get('QueryFields') or {}),
            'DismaxParams': [list(param) for param in spec.get('DismaxParams') or []],
            'FilterQuery': spec.get('FilterQuery') or '',
        }

        # Solr's own default for mm depends on the dismax flavour
        if not any(param[0] == 'mm' for param in self.specs['DismaxParams']):
            self.specs['DismaxParams'].append(['mm', self._default_must_match()])

    # Public API

    def create_advanced_query_string(self, search: str, advanced: bool = True) -> str:
        return self._create_query_string(search, advanced)

    def create_simple_query_string(self, search: str) -> str:
        return self._create_query_string(search, False)

    def create_boost_query_string(self, search: str) -> str:
        """
        Append the handler's boost queries (bq) and boost functions (bf) to an
        advanced search so that they still affect relevance.

        Args:
            search: Query string

        Returns:
            The boosted query, or the input if there is nothing to add
        """
        boost_query = []
        if self.has_dismax():
            for name, value in self.get_dismax_params():
                if name == 'bq':
                    boost_query.append(value)
                elif name == 'bf':
                    # Several space-separated functions, each with its own boost
                    for boost_function in str(value).split(' '):
                        if boost_function:
                            parts = boost_function.split('^', 1)
                            boost = f"^{parts[1]}" if len(parts) > 1 else ''
                            escaped = parts[0].replace('"', '\\"')
                            boost_query.append(f'_val_:"{escaped}"{boost}')
        if boost_query:
            return f"({search}) AND (*:* OR {' OR '.join(boost_query)})"
        return search

    def has_dismax(self) -> bool:
        return bool(self.specs['DismaxFields'])

    def get_dismax_handler(self) -> str:
        return self.specs['DismaxHandler']

    def has_extended_dismax(self) -> bool:
        return self.has_dismax() and self.get_dismax_handler() == 'edismax'

    def get_dismax_fields(self) -> List[str]:
        return self.specs['DismaxFields']

    def get_dismax_params(self) -> List[List[Any]]:
        return self.specs['DismaxParams']

    def get_filter_query(self) -> Optional[str]:
        return self.specs['FilterQuery'] or None

    def has_filter_query(self) -> bool:
        return bool(self.specs['FilterQuery'])

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.specs)

    # Internal API

    def _default_must_match(self) -> str:
        return '0%' if self.get_dismax_handler() == 'edismax' else '100%'

    def _dismax_subquery(self, search: str) -> str:
        dismax_params = []
        for param in self.specs['DismaxParams']:
            value = str(param[1]).replace("'", "\\'")
            dismax_params.append(f"{param[0]}='{value}'")
        dismax_query = '{!%s qf="%s" %s}%s' % (
            self.get_dismax_handler(),
            ' '.join(self.specs['DismaxFields']),
            ' '.join(dismax_params),
            search,
        )
        return f'_query_:"{_addslashes(dismax_query)}"'

    def _munge_values(self, search: str, tokenize: bool = True) -> Dict[str, str]:
        """
        Calculate the munge values (onephrase, and, or, identity and any
        custom munges) for a search string.

        Raises:
            ValueError: For an unknown custom munge operation
        """
        if tokenize:
            tokens = self._tokenize(search)
            munge_values = {
                'onephrase': '"%s"' % ' '.join(tokens).replace('"', ''),
                'and': ' AND '.join(tokens),
                'or': ' OR '.join(tokens),
            }
        else:
            munge_values = {'and': search, 'or': search}
            # Quotes are omitted for NOT queries, quoted input and single words
            if '"' in search or ' NOT ' in search or not re.search(r'\s', search):
                munge_values['onephrase'] = search
            else:
                munge_values['onephrase'] = f'"{search}"'

        munge_values['identity'] = search

        for munge_name, munge_ops in self.specs['CustomMunge'].items():
            value = search
            for operation in munge_ops:
                op_name = operation[0]
                if op_name == 'append':
                    value += str(operation[1])
                elif op_name == 'lowercase':
                    value = value.lower()
                elif op_name == 'uppercase':
                    value = value.upper()
                elif op_name == 'preg_replace':
                    pattern, flags = _php_style_regex(operation[1])
                    value = re.sub(pattern, _php_style_replacement(str(operation[2])),
                                   value, flags=flags)
                else:
                    raise ValueError(f"Unknown munge operation: {op_name}")
            munge_values[munge_name] = value

        return munge_values

    def _create_query_string(self, search: str, advanced: bool = False) -> str:
        # Basic searches (and every edismax search) go through a dismax subquery
        if (self.has_extended_dismax() or not advanced) and self.has_dismax():
            query = self._dismax_subquery(search)
        else:
            munge_rules = self.specs['QueryFields']
            if munge_rules:
                munge_values = self._munge_values(search, not advanced)
                query = self._munge(munge_rules, munge_values)
            else:
                query = search
        if self.has_filter_query():
            query = f"({query}) AND ({self.get_filter_query()})"
        return f"({query})"

    def _munge(self, munge_rules: Any, munge_values: Dict[str, str],
               joiner: str = 'OR') -> str:
        clauses = []
        items = munge_rules.items() if isinstance(munge_rules, dict) else enumerate(munge_rules)
        for fld, clause_array in items:
            if isinstance(fld, int) or str(fld).isdigit():
                # Nested group: the first entry holds the joiner and weight
                if isinstance(clause_array, dict):
                    entries = list(clause_array.items())
                    join_and_weight = entries[0][1]
                    sub_rules = dict(entries[1:])
                else:
                    join_and_weight = clause_array[0]
                    sub_rules = {}
                    for rule in clause_array[1:]:
                        sub_rules.update(rule)
                inner = self._munge(sub_rules, munge_values, join_and_weight[0])
                clause = f"({inner})"
                weight = _format_weight(join_and_weight[1] if len(join_and_weight) > 1 else None)
                if weight:
                    clause += f"^{weight}"
                clauses.append(clause)
            else:
                for munge_name, *rest in clause_array:
                    clause = f"{fld}:({munge_values[munge_name]})"
                    weight = _format_weight(rest[0] if rest else None)
                    if weight:
                        clause += f"^{weight}"
                    clauses.append(clause)

        return f" {joiner.strip()} ".join(clauses)

    def _tokenize(self, string: str) -> List[str]:
        """
        Split a search into words and quoted phrases. Boolean operators are
        kept attached to the neighbouring words.
        """
        # Escaped quotes are swapped for ASCII 26 so the regex stays simple
        string = string.replace('\\"', chr(26))
        phrases = [
            phrase.replace(chr(26), '\\"')
            for phrase in re.findall(r'[^\s"]+|"[^"]*"', string)
        ]

        tokens = []
        token: List[str] = []
        i = 0
        while i < len(phrases):
            token.append(phrases[i])
            i += 1
            nxt = phrases[i] if i < len(phrases) else None
            if nxt in BOOLEAN_OPERATORS:
                token.append(nxt)
                i += 1
                if i >= len(phrases):
                    tokens.append(' '.join(token))
            else:
                tokens.append(' '.join(token))
                token = []

        return tokens


def load_search_specs(path: str) -> Dict[str, Any]:
    """
    Load search specifications from a YAML file.

    Args:
        path: Path to searchspecs.yaml

    Returns:
        Dictionary of handler name to specification

    Raises:
        ValueError: If the file is not valid YAML
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if not data:
        logger.warning(f"No search specs found in {path}")
        return {}
    logger.debug(f"Loaded {len(data)} search specs from {path}")
    return data


def parse_range(value: str) -> Optional[Dict[str, str]]:
    """
    Parse a Solr range such as '[1900 TO 1950]'.

    Returns:
        Dict with 'from' and 'to' keys, or None if the value is not a range
    """
    match = re.search(r'\[([^\]]+)\s+TO\s+([^\]]+)\]', value)
    if not match:
        return None
    return {'from': match.group(1).strip(), 'to': match.group(2).strip()}


class QueryBuilder:
    """
    Turns Query and QueryGroup objects into Solr request parameters.
    """

    def __init__(self, specs: Optional[Dict[str, Any]] = None,
                 default_dismax_handler: str = 'dismax'):
        """
        Initialize the builder.

        Args:
            specs: Search specifications keyed by handler name
            default_dismax_handler: Dismax flavour for specs that do not name one
        """
        self.default_dismax_handler = default_dismax_handler
        self.specs: Dict[str, SearchHandler] = {}
        self.exact_specs: Dict[str, SearchHandler] = {}
        self.create_highlighting_query = False
        self.create_spelling_query = False
        self.lucene_helper: Optional[LuceneSyntaxHelper] = None
        self.set_specs(specs or {})

    # Public API

    def build(self, query: Union[Query, QueryGroup]) -> ParamBag:
        """
        Build Solr parameters for a query. The query object is left untouched.

        Args:
            query: Query or QueryGroup

        Returns:
            ParamBag with q and any handler-specific parameters
        """
        params = ParamBag()

        # The spelling query must be taken from the raw terms before any
        # syntax is added
        if self.create_spelling_query:
            params.set(
                'spellcheck.q',
                self.get_lucene_helper().extract_search_terms(query.get_all_terms())
            )

        if isinstance(query, QueryGroup):
            query = self._reduce_query_group(query)
        else:
            query = copy.copy(query)
            query.set_string(self._normalize(query.get_string()))

        string = query.get_string() or '*:*'

        handler = self._get_search_handler(query.get_handler(), string)
        if handler:
            if (not handler.has_extended_dismax()
                    and self.get_lucene_helper().contains_advanced_lucene_syntax(string)):
                string = self._create_advanced_inner_search_string(string, handler)
                if handler.has_dismax():
                    old_string = string
                    string = handler.create_boost_query_string(string)
                    # Highlighting should ignore the boost clauses
                    if self.create_highlighting_query and old_string != string:
                        params.set('hl.q', old_string)
            elif handler.has_dismax():
                params.set('qf', ' '.join(handler.get_dismax_fields()))
                params.set('qt', handler.get_dismax_handler())
                for name, value in handler.get_dismax_params():
                    params.add(name, value)
                if handler.has_filter_query():
                    params.add('fq', handler.get_filter_query())
            else:
                string = handler.create_simple_query_string(string)

        params.set('q', string)
        logger.debug(f"Built Solr parameters: {params}")

        return params

    def set_create_highlighting_query(self, enable: bool) -> None:
        self.create_highlighting_query = enable

    def set_create_spelling_query(self, enable: bool) -> None:
        self.create_spelling_query = enable

    def set_specs(self, specs: Dict[str, Any]) -> None:
        """Register search handlers; ExactSettings become separate exact-match handlers."""
        for handler, spec in specs.items():
            spec = dict(spec or {})
            exact = spec.pop('ExactSettings', None)
            if exact is not None:
                self.exact_specs[handler.lower()] = SearchHandler(
                    exact, self.default_dismax_handler
                )
            self.specs[handler.lower()] = SearchHandler(spec, self.default_dismax_handler)

    def get_lucene_helper(self) -> LuceneSyntaxHelper:
        if self.lucene_helper is None:
            self.lucene_helper = LuceneSyntaxHelper()
        return self.lucene_helper

    def set_lucene_helper(self, helper: LuceneSyntaxHelper) -> None:
        self.lucene_helper = helper

    # Internal API

    def _normalize(self, string: str) -> str:
        return self._fix_trailing_question_marks(
            self.get_lucene_helper().normalize_search_string(string)
        )

    def _get_search_handler(self, handler: Optional[str],
                            search_string: Optional[str]) -> Optional[SearchHandler]:
        if not handler:
            return None
        handler = handler.lower()
        if handler in self.exact_specs:
            search_string = (search_string or '').strip()
            if (len(search_string) > 1 and search_string.startswith('"')
                    and search_string.endswith('"')):
                return self.exact_specs[handler]
        return self.specs.get(handler)

    def _reduce_query_group(self, group: QueryGroup) -> Query:
        return Query(self._reduce_query_group_components(group),
                     group.get_reduced_handler())

    def _reduce_query_group_components(self, component: Union[Query, QueryGroup]) -> str:
        if isinstance(component, QueryGroup):
            reduced = [
                part for part in map(self._reduce_query_group_components,
                                     component.get_queries())
                if part != ''
            ]
            search_string = 'NOT ' if component.is_negated() else ''
            if reduced:
                search_string += '(%s)' % f" {component.get_operator()} ".join(reduced)
            return search_string

        search_string = self._normalize(component.get_string())
        handler = self._get_search_handler(component.get_handler(), search_string)
        if handler and search_string != '':
            search_string = self._create_search_string(search_string, handler)
        return search_string

    def _create_search_string(self, string: str, handler: Optional[SearchHandler] = None) -> str:
        if string is None:
            return ''
        advanced = self.get_lucene_helper().contains_advanced_lucene_syntax(string)
        if advanced and handler:
            return handler.create_advanced_query_string(string)
        if handler:
            return handler.create_simple_query_string(string)
        return string

    def _fix_trailing_question_marks(self, string: str) -> str:
        """
        Make a trailing question mark match both a wildcard and a literal
        question mark, e.g. 'this?' becomes '(this?) OR (this\\?)'.
        """
        multiword = re.search(r'[^\s][\s:]+[^\s]', string) is not None

        def expand(match: re.Match) -> str:
            term = match.group(1)
            escaped = term.replace('\\?', '?').replace('?', '\\?')
            replacement = f"({term}) OR ({escaped})"
            if multiword:
                replacement = f"({replacement}) "
            return replacement

        string = re.sub(r'([^\s:()]+\?)(\s|$)' + INSIDE_QUOTES, expand, string)
        return string.rstrip()

    def _create_advanced_inner_search_string(self, string: str,
                                             handler: Optional[SearchHandler]) -> str:
        # Match-all searches with a filter query become the filter itself
        if string.strip() == '*:*' and handler and handler.has_filter_query():
            return handler.get_filter_query()

        # Field-specific queries cannot be spread over the handler's fields
        if ':' in string:
            return string

        return handler.create_advanced_query_string(string, False) if handler else string


@dataclass
class SolrResponse:
    """Parsed Solr search response."""
    total: int = 0
    records: List[BiblioRecord] = field(default_factory=list)
    facet_fields: Dict[str, List[Tuple[str, int]]] = field(default_factory=dict)
    spellcheck: Optional[Spellcheck] = None
    raw: Dict[str, Any] = field(default_factory=dict)
    error_status: Optional[int] = None  # HTTP status of a failed request


class SolrClient:
    """
    Minimal Solr connector returning parsed VuFind records.
    """

    # Registry of document parsers by schema name
    parsers: Dict[str, Callable[[Dict[str, Any]], BiblioRecord]] = {}

    @classmethod
    def register_parser(cls, schema_name):
        """Decorator to register a parser function for a specific schema."""
        def decorator(parser_func):
            cls.parsers[schema_name] = parser_func
            return parser_func
        return decorator

    def __init__(self,
                 base_url: str,
                 timeout: int = 30,
                 handler: str = 'select',
                 schema: str = 'vufind',
                 session: Optional[requests.Session] = None):
        """
        Initialize the Solr client.

        Args:
            base_url: Core URL, e.g. http://localhost:8983/solr/biblio
            timeout: Request timeout in seconds
            handler: Request handler path for searches
            schema: Name of the registered document parser
            session: Optional requests session
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.handler = handler
        self.schema = schema
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})

    def _request(self, path: str,
                 params: List[Tuple[str, Any]]) -> Tuple[Optional[Dict[str, Any]], Optional[int]]:
        """
        Send a GET request to the core.

        Returns:
            Tuple of (decoded JSON or None, HTTP status of a failed request)
        """
        url = f"{self.base_url}/{path}"
        params = list(params) + [('wt', 'json'), ('json.nl', 'arrarr')]
        logger.debug(f"Querying: {url} {params}")
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json(), None
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error(f"Solr returned an error for {url}: {e}")
            return None, status
        except requests.RequestException as e:
            logger.error(f"Error querying Solr at {url}: {e}")
        except ValueError as e:
            logger.error(f"Error parsing Solr response from {url}: {e}")
        return None, None

    def search(self, params: ParamBag, offset: int = 0, limit: int = 20) -> SolrResponse:
        """
        Run a search.

        Args:
            params: Parameters from QueryBuilder (plus filters, facets, ...)
            offset: Index of the first record
            limit: Number of records

        Returns:
            SolrResponse (empty if the request failed)
        """
        request_params = params.request() + [('start', offset), ('rows', limit)]
        data, status = self._request(self.handler, request_params)
        if not data:
            return SolrResponse(error_status=status)

        parser = self.parsers.get(self.schema, parse_vufind_document)
        body = data.get('response', {})
        records = []
        for doc in body.get('docs', []):
            try:
                records.append(parser(doc))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Error parsing record {doc.get('id', 'unknown')}: {e}")

        facet_fields = {}
        for name, counts in data.get('facet_counts', {}).get('facet_fields', {}).items():
            facet_fields[name] = [(str(value), int(count)) for value, count in counts]

        query = params.get('spellcheck.q') or params.get('q') or ['']
        spellcheck = Spellcheck.from_solr(
            data.get('spellcheck', {}).get('suggestions', []), query[0]
        )

        logger.info(f"Solr returned {body.get('numFound', 0)} records")
        return SolrResponse(
            total=int(body.get('numFound', 0)),
            records=records,
            facet_fields=facet_fields,
            spellcheck=spellcheck,
            raw=data,
        )

    def get_record(self, record_id: str) -> Optional[BiblioRecord]:
        """Fetch a single record by id."""
        escaped = record_id.replace('\\', '\\\\').replace('"', '\\"')
        response = self.search(ParamBag({'q': f'id:"{escaped}"'}), limit=1)
        return response.records[0] if response.records else None

    def terms(self, fld: str, start: str = '', limit: int = 10) -> List[Tuple[str, int]]:
        """
        List index terms of a field starting after a given term.

        Returns:
            List of (term, count) pairs
        """
        data, _ = self._request('terms', [
            ('terms', 'true'), ('terms.fl', fld), ('terms.lower', start),
            ('terms.lower.incl', 'false'), ('terms.limit', limit),
            ('terms.sort', 'index'),
        ])
        if not data:
            return []
        return [(str(term), int(count)) for term, count in data.get('terms', {}).get(fld, [])]


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return str(value[0]) if value else None
    return str(value) if value is not None else None


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


@SolrClient.register_parser('vufind')
def parse_vufind_document(doc: Dict[str, Any]) -> BiblioRecord:
    """Parse a document of the standard VuFind biblio schema."""
    authors = _as_list(doc.get('author')) + _as_list(doc.get('author2'))
    year = _first(doc.get('publishDate'))
    if year:
        match = re.search(r'\d{4}', year)
        year = match.group(0) if match else year

    return BiblioRecord(
        id=str(doc['id']),
        title=_first(doc.get('title')) or _first(doc.get('title_short')) or 'Untitled',
        authors=authors,
        year=year,
        publisher=_first(doc.get('publisher')),
        isbn=_first(doc.get('isbn')),
        issn=_first(doc.get('issn')),
        urls=_as_list(doc.get('url')),
        abstract=_first(doc.get('description')),
        language=_first(doc.get('language')),
        format=_first(doc.get('format')),
        subjects=_as_list(doc.get('topic')),
        series=_first(doc.get('series')),
        extent=_first(doc.get('physical')),
        edition=_first(doc.get('edition')),
        raw_data=doc
    )
