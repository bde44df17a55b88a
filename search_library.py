#!/usr/bin/env python3
# search_library.py
"""
Search Library - Search parameters, results and facet helpers for a Solr catalogue

SearchParams holds everything the user asked for (query, filters, facets,
sorting, paging) and turns it into backend parameters. SearchResults runs
the search through a SolrClient and exposes totals, records, facets and
spelling suggestions to the recommendation modules.
"""

import copy
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from solr_library import (BiblioRecord, ParamBag, Query, QueryBuilder, QueryGroup,
                          SolrClient, SolrResponse)
from spelling_library import Spellcheck, SpellingProcessor

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("search_library")

# Sort aliases and their Solr fields
SORT_TABLE = {
    'year': ('publishDateSort', 'desc'),
    'publishDateSort': ('publishDateSort', 'desc'),
    'author': ('author_sort', 'asc'),
    'authorStr': ('author_sort', 'asc'),
    'title': ('title_sort', 'asc'),
    'relevance': ('score', 'desc'),
    'callnumber': ('callnumber-sort', 'asc'),
}

# Facet fields holding authority ids of authors
AUTHOR_ID_FACET = 'author2_id_str_mv'
AUTHOR_ID_ROLE_FACET = 'author2_id_role_str_mv'
AUTHOR_ID_ROLE_SEPARATOR = '###'


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class HierarchicalFacetHelper:
    """
    Helper for hierarchical facet values such as '0/Book/' and '1/Book/Science/'.
    """

    def format_display_text(self, display_text: str, all_levels: bool = False,
                            separator: str = '/') -> str:
        """
        Format a hierarchical facet value for display.

        Args:
            display_text: Raw value, e.g. '1/Book/Science/'
            all_levels: Show the whole path instead of the last level
            separator: Separator between levels when all_levels is set

        Returns:
            'Science', or 'Book/Science' with all_levels
        """
        parts = display_text.split('/')
        if len(parts) > 1 and parts[0].isdigit():
            level = int(parts[0])
            parts = parts[1:level + 2]
            return separator.join(parts) if all_levels else parts[-1]
        return display_text

    def build_facet_array(self, field_name: str, facet_list: List[Dict[str, Any]],
                          sort: str = 'count') -> List[Dict[str, Any]]:
        """
        Build a facet tree from a flat hierarchical facet list.

        Args:
            field_name: Facet field name
            facet_list: Flat list of facet items ({'value', 'count', ...})
            sort: 'count' keeps the index order, 'top' sorts the top level
                alphabetically and 'all' sorts every level

        Returns:
            Top-level items, each with 'children'
        """
        nodes: Dict[str, Dict[str, Any]] = {}
        order: List[str] = []
        for item in facet_list:
            value = str(item['value'])
            parts = value.split('/')
            level = int(parts[0]) if len(parts) > 1 and parts[0].isdigit() else 0
            parent = None
            if level > 0:
                parent = f"{level - 1}/" + '/'.join(parts[1:level + 1]) + '/'
            node = dict(item)
            node.update({
                'displayText': self.format_display_text(value),
                'level': level,
                'parent': parent,
                'hasAppliedChildren': False,
                'children': [],
            })
            nodes[value] = node
            order.append(value)

        top: List[Dict[str, Any]] = []
        for value in order:
            node = nodes[value]
            parent = nodes.get(node['parent']) if node['parent'] else None
            if parent is None:
                top.append(node)
            else:
                parent['children'].append(node)

        for node in top:
            self._update_applied_children(node)

        if sort in ('top', 'all'):
            top.sort(key=lambda n: n['displayText'].lower())
        if sort == 'all':
            self._sort_children(top)

        logger.debug(f"Built facet tree for {field_name} with {len(top)} top-level items")
        return top

    def filter_facets(self, field_name: str, facets: List[Dict[str, Any]],
                      params: Any = None) -> List[Dict[str, Any]]:
        """
        Apply include and exclude prefix rules to a hierarchical facet list.
        Items with children are filtered recursively.
        """
        filters = params.get_hierarchical_facet_filters(field_name) if params else []
        excludes = params.get_hierarchical_exclude_filters(field_name) if params else []
        if not filters and not excludes:
            return facets
        return self._filter_items(facets, filters, excludes)

    def _filter_items(self, facets: List[Dict[str, Any]], filters: List[str],
                      excludes: List[str]) -> List[Dict[str, Any]]:
        result = []
        for item in facets:
            value = str(item['value'])
            if filters and not any(value.startswith(prefix) for prefix in filters):
                continue
            if any(value.startswith(prefix) for prefix in excludes):
                continue
            if item.get('children'):
                item = dict(item)
                item['children'] = self._filter_items(item['children'], filters, excludes)
            result.append(item)
        return result

    def _update_applied_children(self, node: Dict[str, Any]) -> bool:
        applied = False
        for child in node['children']:
            if self._update_applied_children(child) or child.get('isApplied'):
                applied = True
        node['hasAppliedChildren'] = applied
        return applied

    def _sort_children(self, nodes: List[Dict[str, Any]]) -> None:
        for node in nodes:
            node['children'].sort(key=lambda n: n['displayText'].lower())
            self._sort_children(node['children'])


class SearchParams:
    """
    Parameters of a single search: query, filters, facets, sort and paging.
    """

    def __init__(self, facet_helper: Optional[HierarchicalFacetHelper] = None):
        self.query: Union[Query, QueryGroup] = Query('')
        self.page = 1
        self.limit = 20
        self.sort: Optional[str] = 'relevance'
        self.sort_tie_breaker: Optional[str] = None
        self.filter_list: Dict[str, List[str]] = {}
        self.hidden_filters: Dict[str, List[str]] = {}
        self.facet_config: Dict[str, str] = {}
        self.or_facets: List[str] = []
        self.checkbox_facets: Dict[str, List[Dict[str, Any]]] = {}
        self.facet_limit = 30
        self.facet_limit_by_field: Dict[str, int] = {}
        self.facet_prefix_by_field: Dict[str, str] = {}
        self.facet_matches_by_field: Dict[str, str] = {}
        self.facet_offset: Optional[int] = None
        self.facet_prefix: Optional[str] = None
        self.facet_contains: Optional[str] = None
        self.facet_sort: Optional[str] = None
        self.index_sorted_facets: List[str] = []
        self.spellcheck_enabled = True
        self.highlight_enabled = False
        self.hierarchical_facets: List[str] = []
        self.hierarchical_facet_separators: Dict[str, str] = {}
        self.hierarchical_facet_filters: Dict[str, List[str]] = {}
        self.hierarchical_exclude_filters: Dict[str, List[str]] = {}
        self.search_handler_labels: Dict[str, str] = {}
        self.facet_helper = facet_helper

    # Query

    def init_from_request(self, request: Mapping[str, Any]) -> None:
        """
        Initialize from request parameters (lookfor, type, filter, daterange,
        page, limit, sort).
        """
        self.set_basic_search(request.get('lookfor', '') or '', request.get('type'))

        for current in _as_list(request.get('filter')):
            self.add_filter(current)
        self._init_date_filters(request)

        try:
            self.page = max(1, int(request.get('page', 1)))
        except (TypeError, ValueError):
            self.page = 1
        try:
            self.limit = max(0, int(request.get('limit', self.limit)))
        except (TypeError, ValueError):
            pass
        if request.get('sort'):
            self.sort = request.get('sort')

    def set_basic_search(self, lookfor: str, handler: Optional[str] = None) -> None:
        self.query = Query(lookfor, handler or 'AllFields')

    def set_query(self, query: Union[Query, QueryGroup]) -> None:
        self.query = query

    def get_query(self) -> Union[Query, QueryGroup]:
        return self.query

    def get_search_handler(self) -> Optional[str]:
        if isinstance(self.query, Query):
            return self.query.get_handler()
        return None

    def get_display_query(self) -> str:
        """Human-readable version of the query (without filters)."""
        if isinstance(self.query, QueryGroup):
            return self._build_advanced_display_query()
        return self.query.get_string()

    def replace_search_term(self, old: str, new: str) -> None:
        """Replace a term in the search (case insensitive)."""
        self.query.replace_term(old, new)

    def get_display_query_with_replaced_term(self, old: str, new: str) -> str:
        saved = copy.deepcopy(self.query)
        self.replace_search_term(old, new)
        display = self.get_display_query()
        self.query = saved
        return display

    def _build_advanced_display_query(self) -> str:
        groups = []
        excludes = []
        for group in self.query.get_queries():
            members = group.get_queries() if isinstance(group, QueryGroup) else [group]
            parts = [
                f"{self.search_handler_labels.get(q.get_handler(), q.get_handler())}:{q.get_string()}"
                for q in members if isinstance(q, Query)
            ]
            if isinstance(group, QueryGroup) and group.is_negated():
                excludes.append(' OR '.join(parts))
            else:
                operator = group.get_operator() if isinstance(group, QueryGroup) else 'AND'
                groups.append(f" {operator} ".join(parts))

        output = ''
        if groups:
            output = '(' + f") {self.query.get_operator()} (".join(groups) + ')'
        if excludes:
            output += ' NOT ((' + ') OR ('.join(excludes) + '))'
        return output.strip()

    # Filters

    def parse_filter(self, filter_string: str) -> Tuple[str, str]:
        """
        Split a 'field:value' filter, removing quotes around the value.

        Returns:
            Tuple of (field, value)
        """
        field, _, value = filter_string.partition(':')
        if value.startswith('"'):
            value = value[1:]
        if value.endswith('"'):
            value = value[:-1]
        return field, value.strip()

    def has_filter(self, filter_string: str) -> bool:
        field, value = self.parse_filter(filter_string)
        return value in self.filter_list.get(field, [])

    def add_filter(self, filter_string: str) -> None:
        """Add a filter ('~field:value' for OR filters) unless it is present."""
        field, value = self.parse_filter(filter_string)
        if not self.has_filter(filter_string):
            self.filter_list.setdefault(field, []).append(value)

    def remove_filter(self, filter_string: str) -> None:
        field, value = self.parse_filter(filter_string)
        if field in self.filter_list:
            self.filter_list[field] = [v for v in self.filter_list[field] if v != value]

    def remove_all_filters(self, field: Optional[str] = None) -> None:
        if field is None:
            self.filter_list = {}
        else:
            self.filter_list[field] = []

    def add_hidden_filter(self, filter_string: str) -> None:
        field, value = self.parse_filter(filter_string)
        if value not in self.hidden_filters.get(field, []):
            self.hidden_filters.setdefault(field, []).append(value)

    def get_hidden_filters(self) -> Dict[str, List[str]]:
        return self.hidden_filters

    def get_raw_filters(self) -> Dict[str, List[str]]:
        return {field: list(values) for field, values in self.filter_list.items()}

    def get_author_id_filter(self, include_role: bool = False) -> List[str]:
        """
        Author authority ids from the active author id filters.

        Args:
            include_role: Keep the 'id###role' form of role filters

        Returns:
            List of ids in filter order
        """
        ids = []
        for field in (AUTHOR_ID_FACET, '~' + AUTHOR_ID_FACET,
                      AUTHOR_ID_ROLE_FACET, '~' + AUTHOR_ID_ROLE_FACET):
            for value in self.filter_list.get(field, []):
                if not include_role:
                    value = value.split(AUTHOR_ID_ROLE_SEPARATOR, 1)[0]
                if value not in ids:
                    ids.append(value)
        return ids

    def get_filter_list(self, exclude_checkbox_filters: bool = False) -> Dict[str, List[Dict[str, Any]]]:
        """
        Active filters grouped by facet label.

        Args:
            exclude_checkbox_filters: Leave out filters that belong to checkbox facets

        Returns:
            {label: [{'value', 'displayText', 'field', 'operator'}]}
        """
        skip: Dict[str, List[str]] = {}
        if exclude_checkbox_filters:
            for facets in self.checkbox_facets.values():
                for facet in facets:
                    field, value = self.parse_filter(facet['filter'])
                    skip.setdefault(field, []).append(value)

        result: Dict[str, List[Dict[str, Any]]] = {}
        for field, values in self.filter_list.items():
            operator = 'OR' if field.startswith('~') else 'AND'
            clean_field = field.lstrip('~')
            for value in values:
                if value in skip.get(field, []):
                    continue
                label = self.get_facet_label(clean_field)
                result.setdefault(label, []).append(
                    self._format_filter_list_entry(clean_field, value, operator)
                )
        return result

    def _format_filter_list_entry(self, field: str, value: str, operator: str) -> Dict[str, Any]:
        entry = {'value': value, 'displayText': value, 'field': field, 'operator': operator}

        simple = re.match(r'^\[(.*) TO (.*)\]$', value)
        insensitive = re.match(r'^\(\[(.*) TO (.*)\] OR \[(.*) TO (.*)\]\)$', value)
        if simple:
            entry['displayText'] = f"{simple.group(1)} - {simple.group(2)}"
        elif insensitive:
            if (insensitive.group(3).lower() == insensitive.group(1).lower()
                    and insensitive.group(4).lower() == insensitive.group(2).lower()):
                entry['displayText'] = f"{insensitive.group(1)} - {insensitive.group(2)}"
        elif self.facet_helper and field in self.hierarchical_facets:
            separator = self.hierarchical_facet_separators.get(field, '/')
            entry['displayText'] = self.facet_helper.format_display_text(value, True, separator)
        return entry

    def get_filter_settings(self) -> List[str]:
        """
        Filter queries (fq) for the active and hidden filters. Values are
        quoted unless they are ranges or end in a wildcard; '#' filters are
        used as-is and OR filters are combined into one tagged query per field.
        """
        filter_query: List[str] = []
        or_filters: Dict[str, List[str]] = {}

        merged: Dict[str, List[str]] = {}
        for source in (self.hidden_filters, self.filter_list):
            for field, values in source.items():
                merged.setdefault(field, []).extend(values)

        for field, values in merged.items():
            or_facet = field.startswith('~')
            if or_facet:
                field = field[1:]
            for value in values:
                if field == '#':
                    q = value
                elif value.endswith('*') or re.search(r'\[[^\]]+\s+TO\s+[^\]]+\]', value):
                    q = f"{field}:{value}"
                else:
                    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
                    q = f'{field}:"{escaped}"'
                if or_facet:
                    or_filters.setdefault(field, []).append(q)
                else:
                    filter_query.append(q)

        for field, parts in or_filters.items():
            filter_query.append(f"{{!tag={field}_filter}}{field}:({' OR '.join(parts)})")
        return filter_query

    def _init_date_filters(self, request: Mapping[str, Any]) -> None:
        for field in _as_list(request.get('daterange')):
            start = self.format_year_for_date_range(request.get(f"{field}from"))
            end = self.format_year_for_date_range(request.get(f"{field}to"))
            if start == '*' and end == '*':
                continue
            self.add_filter(self.build_date_range_filter(field, start, end))

    def format_year_for_date_range(self, year: Any) -> str:
        year = str(year).strip() if year is not None else ''
        if not re.search(r'\d{2,4}', year):
            return '*'
        if len(year) == 2:
            return '19' + year
        if len(year) == 3:
            return '0' + year
        return year

    def build_date_range_filter(self, field: str, start: str, end: str) -> str:
        """Build '[from TO to]' filter, swapping the bounds if they are reversed."""
        if start != '*' and end != '*':
            try:
                reversed_range = int(end) < int(start)
            except ValueError:
                reversed_range = end < start
            if reversed_range:
                start, end = end, start
        return f"{field}:[{start} TO {end}]"

    # Facets

    def add_facet(self, field: str, label: Optional[str] = None, ored: bool = False) -> None:
        self.facet_config[field] = label or field
        if ored and field not in self.or_facets:
            self.or_facets.append(field)

    def get_facet_label(self, field: str) -> str:
        return self.facet_config.get(field.lstrip('~'), 'Other')

    def get_facet_config(self) -> Dict[str, str]:
        return dict(self.facet_config)

    def reset_facet_config(self) -> None:
        self.facet_config = {}

    def get_facet_operator(self, field: str) -> str:
        return 'OR' if field in self.or_facets else 'AND'

    def set_facet_limit(self, limit: int) -> None:
        self.facet_limit = limit

    def get_facet_limit_for_field(self, field: str) -> int:
        return self.facet_limit_by_field.get(field, self.facet_limit)

    def set_facet_prefix_for_field(self, field: str, prefix: str) -> None:
        self.facet_prefix_by_field[field] = prefix

    def get_hierarchical_facet_filters(self, field: str) -> List[str]:
        return self.hierarchical_facet_filters.get(field, [])

    def get_hierarchical_exclude_filters(self, field: str) -> List[str]:
        return self.hierarchical_exclude_filters.get(field, [])

    def add_checkbox_facet(self, filter_string: str, desc: str, dynamic: bool = False) -> None:
        """Register a checkbox that applies the given filter when checked."""
        field = filter_string.split(':', 1)[0]
        facets = self.checkbox_facets.setdefault(field, [])
        if not any(facet['filter'] == filter_string for facet in facets):
            facets.append({'desc': desc, 'filter': filter_string, 'dynamic': dynamic})

    def get_checkbox_facets(self, include: Optional[List[str]] = None,
                            include_dynamic: bool = True) -> List[Dict[str, Any]]:
        """
        Checkbox facets with their selection state.

        Args:
            include: Filters to return (None for all)
            include_dynamic: Also return dynamic checkboxes not in include
        """
        result = []
        for facets in self.checkbox_facets.values():
            for facet in facets:
                if facet['dynamic']:
                    if not include_dynamic and (include is None or facet['filter'] not in include):
                        continue
                elif include is not None and facet['filter'] not in include:
                    continue
                item = dict(facet)
                item['selected'] = self.has_filter(facet['filter'])
                item['alwaysVisible'] = False
                result.append(item)
        return result

    def get_facet_settings(self) -> Dict[str, Any]:
        """Facet parameters (without the 'facet.' prefix) for the configured facets."""
        facet_set: Dict[str, Any] = {}
        if not self.facet_config:
            return facet_set

        facet_set['limit'] = self.facet_limit
        fields = []
        for field in self.facet_config:
            field_limit = self.get_facet_limit_for_field(field)
            if field_limit != self.facet_limit:
                facet_set[f"f.{field}.facet.limit"] = field_limit
            if self.facet_prefix_by_field.get(field):
                facet_set[f"f.{field}.facet.prefix"] = self.facet_prefix_by_field[field]
            if self.facet_matches_by_field.get(field):
                facet_set[f"f.{field}.facet.matches"] = self.facet_matches_by_field[field]
            if self.get_facet_operator(field) == 'OR':
                fields.append(f"{{!ex={field}_filter}}{field}")
            else:
                fields.append(field)
        facet_set['field'] = fields

        if self.facet_contains is not None:
            facet_set['contains'] = self.facet_contains
        if self.facet_offset is not None:
            facet_set['offset'] = self.facet_offset
        if self.facet_prefix is not None:
            facet_set['prefix'] = self.facet_prefix
        facet_set['sort'] = self.facet_sort or 'count'
        for field in self.index_sorted_facets:
            facet_set[f"f.{field}.facet.sort"] = 'index'
        return facet_set

    # Backend

    def normalize_sort(self, sort: str) -> str:
        """
        Translate sort aliases ('year', 'title', 'relevance', ...) into Solr
        sort clauses, adding the tie breaker and dropping duplicate fields.
        """
        if self.sort_tie_breaker:
            sort = f"{sort},{self.sort_tie_breaker}"

        normalized = []
        fields: List[str] = []
        for component in sort.split(','):
            parts = component.strip().split(' ')
            field = parts[0]
            order = parts[1] if len(parts) > 1 and parts[1] else None
            if field in SORT_TABLE:
                solr_field, default_order = SORT_TABLE[field]
                normalized.append(f"{solr_field} {order or default_order}")
                fields.append(solr_field)
            elif field not in fields:
                normalized.append(f"{field} {order or 'asc'}")
                fields.append(field)
        return ','.join(normalized)

    def get_backend_parameters(self, spellcheck: Optional[bool] = None,
                               highlight: Optional[bool] = None) -> ParamBag:
        """
        Backend parameters for spellcheck, facets, filters, sort and highlighting.

        Args:
            spellcheck: Override the spellcheck setting
            highlight: Override the highlighting setting
        """
        spellcheck = self.spellcheck_enabled if spellcheck is None else spellcheck
        highlight = self.highlight_enabled if highlight is None else highlight

        params = ParamBag()
        params.set('spellcheck', 'true' if spellcheck else 'false')

        facets = self.get_facet_settings()
        if facets:
            params.add('facet', 'true')
            for key, value in facets.items():
                full_key = key if key.startswith('f.') else f"facet.{key}"
                params.add(full_key, value)
            params.add('facet.mincount', 1)

        for filter_query in self.get_filter_settings():
            params.add('fq', filter_query)

        if self.sort:
            params.add('sort', self.normalize_sort(self.sort))

        if not highlight:
            params.add('hl', 'false')

        return params


class SearchResults:
    """
    Runs a search and keeps its results for the recommendation modules.
    """

    def __init__(self, params: SearchParams, client: SolrClient,
                 query_builder: Optional[QueryBuilder] = None,
                 spelling_processor: Optional[SpellingProcessor] = None):
        self.params = params
        self.client = client
        self.query_builder = query_builder or QueryBuilder()
        self.spelling_processor = spelling_processor or SpellingProcessor()
        self.result_total: Optional[int] = None
        self.results: List[BiblioRecord] = []
        self.response_facets: Optional[Dict[str, List[Tuple[str, int]]]] = None
        self.spellcheck: Optional[Spellcheck] = None
        self.spelling_query = ''
        self.suggestions: Dict[str, Dict[str, Any]] = {}

    def get_params(self) -> SearchParams:
        return self.params

    def perform_and_process_search(self) -> None:
        """Run the search and store totals, records, facets and spelling suggestions."""
        query = self.params.get_query()
        response = self._search(query)

        # Retry once with escaped colons if Solr could not parse the query
        if response.error_status == 400:
            fixed = self._fix_bad_query(copy.deepcopy(query))
            if fixed is not None:
                logger.info("Retrying search with escaped colons")
                response = self._search(fixed)

        self.result_total = response.total
        self.results = response.records
        self.response_facets = response.facet_fields
        self.spellcheck = response.spellcheck or Spellcheck([], '')
        self.spelling_query = self.spellcheck.get_query()
        self.suggestions = self.spelling_processor.get_suggestions(self.spellcheck, query)

    def _search(self, query: Union[Query, QueryGroup]) -> SolrResponse:
        self.query_builder.set_create_spelling_query(self.params.spellcheck_enabled)
        self.query_builder.set_create_highlighting_query(self.params.highlight_enabled)
        request = self.query_builder.build(query)
        request.merge_with(self.params.get_backend_parameters())
        offset = (self.params.page - 1) * self.params.limit
        return self.client.search(request, offset, self.params.limit)

    def _fix_bad_query(self, query: Union[Query, QueryGroup]) -> Optional[Union[Query, QueryGroup]]:
        if isinstance(query, QueryGroup):
            fixed_any = False
            new_queries = []
            for current in query.get_queries():
                fixed = self._fix_bad_query(current)
                fixed_any = fixed_any or fixed is not None
                new_queries.append(fixed if fixed is not None else current)
            if fixed_any:
                query.set_queries(new_queries)
                return query
            return None

        old = query.get_string()
        new = old.replace('\\:', ':').replace(':', '\\:')
        if new != old:
            query.set_string(new)
            return query
        return None

    def _ensure_search(self) -> None:
        if self.result_total is None:
            self.perform_and_process_search()

    def get_result_total(self) -> int:
        self._ensure_search()
        return self.result_total

    def get_results(self) -> List[BiblioRecord]:
        self._ensure_search()
        return self.results

    def get_raw_spellcheck(self) -> Spellcheck:
        self._ensure_search()
        return self.spellcheck

    def get_raw_suggestions(self) -> Dict[str, Dict[str, Any]]:
        self._ensure_search()
        return self.suggestions

    def get_spelling_suggestions(self) -> Dict[str, Dict[str, Any]]:
        """Spelling suggestions prepared for display."""
        self._ensure_search()
        return self.spelling_processor.process_suggestions(
            self.suggestions, self.spelling_query, self.params
        )

    def get_facet_list(self, filter_fields: Optional[Mapping[str, Optional[str]]] = None) -> Dict[str, Dict[str, Any]]:
        """
        Facets of the last search.

        Args:
            filter_fields: {field: label} of the facets to return (None for all
                configured facets; a None label uses the configured one)

        Returns:
            {field: {'label', 'list': [{'value', 'displayText', 'count',
            'operator', 'isApplied'}]}}
        """
        self._ensure_search()
        if filter_fields is None:
            filter_fields = self.params.get_facet_config()

        result: Dict[str, Dict[str, Any]] = {}
        for field, label in filter_fields.items():
            if field not in self.response_facets:
                continue
            operator = self.params.get_facet_operator(field)
            hierarchical = (self.params.facet_helper is not None
                            and field in self.params.hierarchical_facets)
            items = []
            for value, count in self.response_facets[field]:
                display = (self.params.facet_helper.format_display_text(value)
                           if hierarchical else value)
                items.append({
                    'value': value,
                    'displayText': display,
                    'count': count,
                    'operator': operator,
                    'isApplied': (self.params.has_filter(f"{field}:{value}")
                                  or self.params.has_filter(f"~{field}:{value}")),
                })
            result[field] = {
                'label': label or self.params.get_facet_label(field),
                'list': items,
            }
        return result
