#!/usr/bin/env python3
# recommend_library.py
"""
Recommend Library - Recommendation modules for search result pages

A recommendation module is created for a single request from a
'Name:settings' string. It is configured with set_config(), may adjust the
search parameters in init() before the search runs, and reads the search
results in process(). Its getters return plain dictionaries and lists for
rendering.

Modules are registered with the RecommendPluginManager.register_module
decorator and created through a plugin manager that hands each module the
services it asks for (config loader, facet helper, API clients, ...).
"""

import copy
import csv
import logging
import re
import time
import urllib.parse
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional, Tuple

from config_library import Config, ConfigLoader
from dpla_library import DPLAClient
from europeana_library import EuropeanaClient
from finto_library import (NARROWER_RESULTS, RESULT_TYPE, RESULTS, TYPE_HYPONYM, TYPE_OTHER,
                           FintoClient)
from search_library import (AUTHOR_ID_ROLE_FACET, AUTHOR_ID_ROLE_SEPARATOR, SearchParams,
                            SearchResults)
from solr_library import Query, parse_range
from viaf_library import ViafClient
from wikipedia_library import WikipediaClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("recommend_library")

# LibGuides A-Z name lookups shared by all Databases modules: {key: (expires, data)}
_LIBGUIDES_CACHE: Dict[str, Tuple[float, Dict[str, Dict[str, Any]]]] = {}

# Ontology recommendations
TOPIC_URI_PREFIX = 'topic_uri_str_mv:'
ONTOLOGY_SHOWN_KEY = 'ontologyRecommend'
SEARCH_RESULTS_URL = '/Search/Results'


def _section(config: Config, name: str) -> Dict[str, Any]:
    """Return a config section (or nested setting) as a plain dict."""
    value = config.get(name)
    if isinstance(value, Config):
        return value.to_dict()
    return {}


def _setting_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, Config):
        return list(value.to_dict().values())
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _is_false(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == 'false' or value.strip() == ''
    return not value


def _number(value: Any) -> Optional[int]:
    """Integer value of a numeric setting, None for missing or non-numeric ones."""
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class RecommendModule:
    """
    Base class of all recommendation modules.
    """

    # Names of the plugin manager services passed to the constructor
    services: Tuple[str, ...] = ()

    def __init__(self, config_loader: Optional[ConfigLoader] = None, **services):
        self.config_loader = config_loader or ConfigLoader()
        self.results: Optional[SearchResults] = None

    def set_config(self, settings: str) -> None:
        """Apply the settings part of the 'Name:settings' string."""

    def init(self, params: SearchParams, request: Mapping[str, Any]) -> None:
        """Adjust search parameters before the search is run."""

    def process(self, results: SearchResults) -> None:
        """Read what the module needs from the search results."""
        self.results = results


class RecommendPluginManager:
    """
    Creates recommendation modules by name.
    """

    # Registry of module classes by name
    modules: Dict[str, type] = {}

    @classmethod
    def register_module(cls, name):
        """Decorator to register a recommendation module class under a name."""
        def decorator(module_class):
            cls.modules[name.lower()] = module_class
            return module_class
        return decorator

    def __init__(self, config_loader: Optional[ConfigLoader] = None, **services):
        """
        Initialize the plugin manager.

        Args:
            config_loader: Loader shared by all modules
            **services: Services modules may ask for (facet_helper, wikipedia,
                wikipedia_factory, viaf, libguides_getter,
                authority_results_factory, dpla_client, europeana_client, language)
        """
        self.config_loader = config_loader or ConfigLoader()
        self.services = services

    def has(self, name: str) -> bool:
        return name.lower() in self.modules

    def get(self, name: str) -> RecommendModule:
        """
        Create a module.

        Raises:
            KeyError: If no module of that name is registered
        """
        module_class = self.modules.get(name.lower())
        if module_class is None:
            raise KeyError(f"Unknown recommendation module: {name}")
        services = {key: self.services[key] for key in module_class.services
                    if key in self.services}
        return module_class(self.config_loader, **services)

    def build(self, spec: str) -> RecommendModule:
        """Create and configure a module from a 'Name:settings' string."""
        name, _, settings = spec.partition(':')
        module = self.get(name)
        module.set_config(settings)
        logger.debug(f"Created recommendation module {name} with settings '{settings}'")
        return module


class FacetsModule(RecommendModule):
    """
    Shared facet settings of SideFacets and TopFacets.
    """

    def __init__(self, config_loader: Optional[ConfigLoader] = None, **services):
        super().__init__(config_loader, **services)
        self.or_facets: List[str] = []

    def load_boolean_configs(self, config: Config, all_facets: List[str],
                             section: str = 'Results_Settings') -> None:
        """Read the orFacets setting ('*' for all facets)."""
        settings = config.get(section)
        if not settings:
            return
        or_fields = str(settings.get('orFacets') or '').strip()
        if or_fields == '*':
            self.or_facets = list(all_facets)
        elif or_fields:
            self.or_facets = [f.strip() for f in or_fields.split(',')]


@RecommendPluginManager.register_module('SideFacets')
class SideFacets(FacetsModule):
    """
    Facets and checkbox filters shown beside the search results.
    """

    services = ('facet_helper',)

    def __init__(self, config_loader: Optional[ConfigLoader] = None, facet_helper=None, **services):
        super().__init__(config_loader, **services)
        self.facet_helper = facet_helper
        self.main_facets: Dict[str, str] = {}
        self.checkbox_facets: Dict[str, str] = {}
        self.show_dynamic_checkbox_facets = True
        self.date_facets: List[str] = []
        self.full_date_facets: List[str] = []
        self.generic_range_facets: List[str] = []
        self.numeric_range_facets: List[str] = []
        self.show_more_settings: Dict[str, Any] = {}
        self.show_in_lightbox_settings: Dict[str, Any] = {}
        self.collapsed_facets: Any = False
        self.hierarchical_facets: List[str] = []
        self.hierarchical_facet_sort_options: Dict[str, str] = {}

    def set_config(self, settings: str) -> None:
        """
        Settings: 'Results:CheckboxSection:facets:showDynamic'. A checkbox
        section prefixed with '~' lists descriptions as keys.
        """
        parts = settings.split(':')
        main_section = parts[0] if parts[0] else 'Results'
        checkbox_section = parts[1] if len(parts) > 1 else ''
        ini_name = parts[2] if len(parts) > 2 and parts[2] else 'facets'
        show_dynamic = parts[3] if len(parts) > 3 else True

        config = self.config_loader.get(ini_name)
        self.main_facets = _section(config, main_section)
        self.load_boolean_configs(config, list(self.main_facets))

        special = _section(config, 'SpecialFacets')
        self.date_facets = _setting_list(special.get('dateRange'))
        self.full_date_facets = _setting_list(special.get('fullDateRange'))
        self.generic_range_facets = _setting_list(special.get('genericRange'))
        self.numeric_range_facets = _setting_list(special.get('numericRange'))

        flip_checkboxes = checkbox_section.startswith('~')
        if flip_checkboxes:
            checkbox_section = checkbox_section[1:]
        self.checkbox_facets = _section(config, checkbox_section) if checkbox_section else {}
        if flip_checkboxes:
            self.checkbox_facets = {str(v): k for k, v in self.checkbox_facets.items()}
        if _is_false(show_dynamic):
            self.show_dynamic_checkbox_facets = False

        results_settings = _section(config, 'Results_Settings')
        if isinstance(results_settings.get('showMore'), dict):
            self.show_more_settings = results_settings['showMore']
        if isinstance(results_settings.get('showMoreInLightbox'), dict):
            self.show_in_lightbox_settings = results_settings['showMoreInLightbox']
        if results_settings.get('collapsedFacets'):
            self.collapsed_facets = results_settings['collapsedFacets']

        self.hierarchical_facets = _setting_list(special.get('hierarchical'))
        sort_options = special.get('hierarchicalFacetSortOptions')
        if isinstance(sort_options, dict):
            self.hierarchical_facet_sort_options = sort_options

    def init(self, params: SearchParams, request: Mapping[str, Any]) -> None:
        main_facets = self.main_facets
        enabled = request.get('enabledFacets') if request is not None else None
        if enabled is not None:
            main_facets = {k: v for k, v in main_facets.items() if k in enabled}

        for name, desc in main_facets.items():
            params.add_facet(name, desc, name in self.or_facets)
        for filter_string, desc in self.checkbox_facets.items():
            params.add_checkbox_facet(filter_string, desc)

        for field in self.hierarchical_facets:
            if field not in params.hierarchical_facets:
                params.hierarchical_facets.append(field)
        if self.facet_helper is not None and params.facet_helper is None:
            params.facet_helper = self.facet_helper

    def get_checkbox_facet_set(self) -> List[Dict[str, Any]]:
        return self.results.get_params().get_checkbox_facets(
            list(self.checkbox_facets), self.show_dynamic_checkbox_facets
        )

    def get_facet_set(self) -> Dict[str, Dict[str, Any]]:
        """
        Facet list of the results, with hierarchical facets filtered by the helper.

        Raises:
            RuntimeError: If a hierarchical facet is present but no helper is available
        """
        facet_set = self.results.get_facet_list(self.main_facets)
        for field in self.hierarchical_facets:
            if field not in facet_set:
                continue
            if self.facet_helper is None:
                raise RuntimeError('SideFacets: hierarchical facet helper unavailable')
            facet_set[field]['list'] = self.facet_helper.filter_facets(
                field, facet_set[field]['list'], self.results.get_params()
            )
        return facet_set

    def get_hierarchical_facet_trees(self) -> Dict[str, List[Dict[str, Any]]]:
        """Hierarchical facets of the facet set as trees, sorted by their sort options."""
        facet_set = self.get_facet_set()
        trees = {}
        for field in self.hierarchical_facets:
            if field in facet_set:
                trees[field] = self.facet_helper.build_facet_array(
                    field, facet_set[field]['list'],
                    self.hierarchical_facet_sort_options.get(field, 'count')
                )
        return trees

    def get_date_facets(self) -> Dict[str, List[str]]:

        return self._get_range_facets(self.date_facets)

    def get_full_date_facets(self) -> Dict[str, List[str]]:
        return self._get_range_facets(self.full_date_facets)

    def get_generic_range_facets(self) -> Dict[str, List[str]]:
        return self._get_range_facets(self.generic_range_facets)

    def get_numeric_range_facets(self) -> Dict[str, List[str]]:
        return self._get_range_facets(self.numeric_range_facets)

    def get_all_range_facets(self) -> Dict[str, Dict[str, Any]]:
        """All range facets as {field: {'type', 'values': [from, to]}}."""
        raw = {
            'date': self.get_date_facets(),
            'fulldate': self.get_full_date_facets(),
            'generic': self.get_generic_range_facets(),
            'numeric': self.get_numeric_range_facets(),
        }
        processed = {}
        for range_type, values in raw.items():
            for field, bounds in values.items():
                processed[field] = {'type': range_type, 'values': bounds}
        return processed

    def get_collapsed_facets(self) -> List[str]:
        if not self.collapsed_facets:
            return []
        if self.collapsed_facets == '*':
            return list(self.main_facets)
        return [f.strip() for f in str(self.collapsed_facets).split(',')]

    def get_show_more_setting(self, facet_name: str, default: int = 6) -> int:
        """Number of values shown before 'more'; invalid settings use the default."""
        value = self.show_more_settings.get(facet_name, self.show_more_settings.get('*'))
        try:
            value = int(value) if value is not None else None
        except (TypeError, ValueError):
            value = None
        return value if value is not None and value > 0 else default

    def get_show_in_lightbox_setting(self, facet_name: str) -> str:
        if facet_name in self.show_in_lightbox_settings:
            return self.show_in_lightbox_settings[facet_name]
        return self.show_in_lightbox_settings.get('*', 'more')

    def get_hierarchical_facets(self) -> List[str]:
        return self.hierarchical_facets

    def get_hierarchical_facet_sort_options(self) -> Dict[str, str]:
        return self.hierarchical_facet_sort_options

    def _get_range_facets(self, fields: List[str]) -> Dict[str, List[str]]:
        filters = self.results.get_params().get_raw_filters()
        result = {}
        for field in fields:
            start = end = ''
            for current in filters.get(field, []):
                parsed = parse_range(current)
                if parsed:
                    start = '' if parsed['from'] == '*' else parsed['from']
                    end = '' if parsed['to'] == '*' else parsed['to']
                    break
            result[field] = [start, end]
        return result


@RecommendPluginManager.register_module('TopFacets')
class TopFacets(FacetsModule):
    """
    Facets shown above the search results.
    """

    def __init__(self, config_loader: Optional[ConfigLoader] = None, **services):
        super().__init__(config_loader, **services)
        self.facets: Dict[str, str] = {}
        self.base_settings: Dict[str, Any] = {}

    def set_config(self, settings: str) -> None:
        """Settings: 'ResultsTop:facets'."""
        parts = settings.split(':')
        main_section = parts[0] if parts[0] else 'ResultsTop'
        ini_name = parts[1] if len(parts) > 1 and parts[1] else 'facets'

        config = self.config_loader.get(ini_name)
        self.facets = _section(config, main_section)
        results_settings = _section(config, 'Results_Settings')
        self.base_settings = {
            'rows': results_settings.get('top_rows'),
            'cols': results_settings.get('top_cols'),
        }
        self.load_boolean_configs(config, list(self.facets))

    def init(self, params: SearchParams, request: Mapping[str, Any]) -> None:
        for name, desc in self.facets.items():
            params.add_facet(name, desc, name in self.or_facets)

    def get_top_facet_set(self) -> Dict[str, Dict[str, Any]]:
        return self.results.get_facet_list(self.facets)

    def get_base_settings(self) -> Dict[str, Any]:
        return self.base_settings


@RecommendPluginManager.register_module('Databases')
class Databases(RecommendModule):
    """
    Links to databases matching the result facets or the query.
    """

    services = ('libguides_getter',)

    def __init__(self, config_loader: Optional[ConfigLoader] = None,
                 libguides_getter: Optional[Callable[[], Any]] = None, **services):
        super().__init__(config_loader, **services)
        self.libguides_getter = libguides_getter
        self.limit = 5
        self.config_file_databases: Dict[str, Dict[str, Any]] = {}
        self.result_facet: List[str] = []
        self.result_facet_name_key = 'value'
        self.use_query = True
        self.use_query_min_length = 3
        self.use_libguides = False
        self.use_libguides_alternate_names = True
        self.link_to_all_databases: Any = False
        self.cache_lifetime = 600

    def set_config(self, settings: str) -> None:
        """
        Settings: 'limit:ConfigFile'.

        Raises:
            ValueError: If the config file has no Databases section
        """
        parts = settings.split(':')
        if parts[0].isdigit() and int(parts[0]) > 0:
            self.limit = int(parts[0])
        config_file = parts[1] if len(parts) > 1 and parts[1] else 'EDS'

        databases_config = _section(self.config_loader.get(config_file), 'Databases')
        if not databases_config:
            raise ValueError(f"Databases config file {config_file} must have section 'Databases'.")

        urls = databases_config.get('url')
        if isinstance(urls, dict):
            self.config_file_databases = {
                name: {'name': name, 'url': url} for name, url in urls.items()
            }
        if databases_config.get('resultFacet') is not None:
            self.result_facet = [str(f) for f in _setting_list(databases_config['resultFacet'])]
        self.result_facet_name_key = databases_config.get(
            'resultFacetNameKey', self.result_facet_name_key
        )
        if databases_config.get('useQuery') is not None:
            self.use_query = not _is_false(databases_config['useQuery'])
        if databases_config.get('useQueryMinLength') is not None:
            self.use_query_min_length = int(databases_config['useQueryMinLength'])
        if databases_config.get('useLibGuides') is not None:
            self.use_libguides = not _is_false(databases_config['useLibGuides'])

        if self.use_libguides:
            api_config = self.config_loader.get('LibGuidesAPI')
            get_az = _section(api_config, 'GetAZ')
            self.cache_lifetime = int(get_az.get('cache_lifetime', 600))
            if databases_config.get('useLibGuidesAlternateNames') is not None:
                self.use_libguides_alternate_names = not _is_false(
                    databases_config['useLibGuidesAlternateNames']
                )
            self.link_to_all_databases = databases_config.get(
                'linkToAllDatabases', self.link_to_all_databases
            )

    def get_results(self) -> List[Dict[str, Any]]:
        """
        Databases for the current search, de-duplicated by URL.

        Returns:
            List of database dictionaries with at least 'name' and 'url'
        """
        if not self.result_facet:
            logger.error('At least one facet key is required.')
            return []

        top_facet, *path = self.result_facet
        try:
            result_databases = self.results.get_facet_list({top_facet: None})[top_facet]
            for key in path:
                if not result_databases:
                    break
                result_databases = result_databases[key]
        except (KeyError, TypeError):
            logger.error('Error using configured facets to find list of result databases.')
            return []

        name_to_database = self._get_databases()
        # Keyed by URL so a database listed under alternate names appears once
        databases: Dict[str, Dict[str, Any]] = {}

        if self.use_query:
            query = self.results.get_params().get_query()
            lookfor = query.get_string().lower() if isinstance(query, Query) else ''
            if len(lookfor) >= self.use_query_min_length:
                for name, info in name_to_database.items():
                    if lookfor in name.lower():
                        databases[info['url']] = info
                    if len(databases) >= self.limit:
                        return list(databases.values())

        for result_database in result_databases or []:
            try:
                name = result_database[self.result_facet_name_key]
            except (KeyError, TypeError):
                logger.error(f"Name key '{self.result_facet_name_key}' not found for database.")
                continue
            info = name_to_database.get(name)
            if info:
                databases[info['url']] = info
            if len(databases) >= self.limit:
                break

        return list(databases.values())

    def get_link_to_all_databases(self) -> Any:
        return self.link_to_all_databases

    def _get_databases(self) -> Dict[str, Dict[str, Any]]:
        databases: Dict[str, Dict[str, Any]] = {}
        if self.use_libguides:
            databases.update(self._get_libguides_databases())
        databases.update(self.config_file_databases)
        return databases

    def _get_libguides_databases(self) -> Dict[str, Dict[str, Any]]:
        cache_key = 'libGuidesAZ-nameToDatabase'
        cached = _LIBGUIDES_CACHE.get(cache_key)
        if cached and cached[0] > time.time() and cached[1]:
            return cached[1]

        if self.libguides_getter is None:
            logger.warning('LibGuides is enabled but no LibGuides client is available')
            return {}

        name_to_database: Dict[str, Dict[str, Any]] = {}
        for database in self.libguides_getter().get_az():
            name_to_database[database['name']] = dict(database)
            # alt_names is single-valued free text
            if self.use_libguides_alternate_names and database.get('alt_names'):
                name_to_database[database['alt_names']] = dict(database)

        _LIBGUIDES_CACHE[cache_key] = (time.time() + self.cache_lifetime, name_to_database)
        return name_to_database


@RecommendPluginManager.register_module('AuthorInfo')
class AuthorInfo(RecommendModule):
    """
    Biography of the searched author from Wikipedia.
    """

    services = ('wikipedia', 'wikipedia_factory', 'viaf', 'language')

    def __init__(self, config_loader: Optional[ConfigLoader] = None,
                 wikipedia: Optional[WikipediaClient] = None, viaf: Optional[ViafClient] = None,
                 language: str = 'en',
                 wikipedia_factory: Optional[Callable[[], WikipediaClient]] = None, **services):
        super().__init__(config_loader, **services)
        if wikipedia is None:
            wikipedia = wikipedia_factory() if wikipedia_factory else WikipediaClient()
        self.wikipedia = wikipedia
        self.viaf = viaf
        self.language = language
        self.sources = 'Wikipedia'
        self.use_viaf = False

    def set_config(self, settings: str) -> None:
        """Settings: 'sources:useViaf'."""
        parts = settings.split(':')
        if parts[0].strip():
            self.sources = parts[0]
        self.use_viaf = len(parts) > 1 and not _is_false(parts[1])

    def get_author_info(self) -> Optional[Dict[str, Any]]:
        """Wikipedia details of the author, or None."""
        if 'wikipedia' not in self.sources.lower():
            return None

        name = None
        if self.use_viaf:
            name = self._get_wikipedia_name_from_viaf()
        if not name:
            name = self.get_author()
        if not name:
            return None

        self.wikipedia.reset()
        self.wikipedia.set_language(self.language)
        return self.wikipedia.get(name)

    def get_author(self) -> str:
        """
        Author name from the search query: quotes and dates removed and
        'Last, First' turned into 'First Last'.
        """
        query = self.results.get_params().get_query() if self.results else None
        if not isinstance(query, Query):
            return ''
        author = query.get_string().replace('"', '')
        author = re.sub(r'\d+-\d*', '', author)
        if ',' in author:
            last, first = author.split(',', 1)
            author = f"{first.strip().rstrip(',')} {last.strip()}"
        author = author.strip()
        # Trailing period, unless it ends an initial
        if len(author) > 1 and author.endswith('.') and not re.search(r'\s[A-Z]\.$', author):
            author = author[:-1]
        return author.strip()

    def _get_wikipedia_name_from_viaf(self) -> Optional[str]:
        author = self.get_author()
        if not author:
            return None
        viaf = self.viaf or ViafClient()
        return viaf.get_wikipedia_name(author)


@RecommendPluginManager.register_module('SpellingSuggestions')
class SpellingSuggestions(RecommendModule):
    """
    Spelling suggestions for the current search.
    """

    def get_suggestions(self) -> Dict[str, Dict[str, Any]]:
        return self.results.get_spelling_suggestions() if self.results else {}


@RecommendPluginManager.register_module('AuthorityRecommend')
class AuthorityRecommend(RecommendModule):
    """
    Authority records related to the search: headings the search terms are
    used for and see-also references. With author id filters active, the
    matching authority records are looked up and listed first.
    """

    services = ('authority_results_factory',)

    def __init__(self, config_loader: Optional[ConfigLoader] = None,
                 authority_results_factory: Optional[Callable[[], SearchResults]] = None,
                 **services):
        super().__init__(config_loader, **services)
        self.authority_results_factory = authority_results_factory
        self.filters: List[str] = []
        self.result_limit = 0
        self.mode = '*'
        self.lookfor: Optional[str] = None
        self.author_ids: List[str] = []
        self.header = 'See also'
        self.recommendations: List[Any] = []

    def set_config(self, settings: str) -> None:
        """Settings: 'Field:Value' filter pairs plus '__resultlimit__:N' and '__mode__:M'."""
        parts = settings.split(':')
        for i in range(0, len(parts) - 1, 2):
            key, value = parts[i], parts[i + 1]
            if key == '__resultlimit__':
                self.result_limit = int(value) if value.isdigit() else 0
            elif key == '__mode__':
                self.mode = value.lower()
            else:
                self.filters.append(f"{key}:{value}")

    def init(self, params: SearchParams, request: Mapping[str, Any]) -> None:
        ids = params.get_author_id_filter()
        if ids:
            self.author_ids = ids
            self.lookfor = ' OR '.join(f'(id:"{author_id}")' for author_id in ids)
            self.header = 'Author'
        else:
            self.lookfor = request.get('lookfor') or None

    def process(self, results: SearchResults) -> None:
        self.results = results
        if not self.lookfor:
            return
        if 0 < self.result_limit < results.get_result_total():
            logger.debug("Skipping authority lookup, result limit exceeded")
            return

        if self.is_mode_active('usefor'):
            self.recommendations.extend(self._perform_search(self.lookfor, 'MainHeading'))
        if self.is_mode_active('seealso'):
            self.recommendations.extend(self._perform_search(self.lookfor, 'SeeAlso'))

    def is_mode_active(self, mode: str) -> bool:
        return self.mode in ('*', mode)

    def get_header(self) -> str:
        return self.header

    def get_recommendations(self) -> List[Any]:
        """Authority records, duplicates removed, author id matches first in filter order."""
        unique = []
        seen = set()
        for record in self.recommendations:
            if record.id not in seen:
                seen.add(record.id)
                unique.append(record)
        if not self.author_ids:
            return unique

        ordered = sorted(
            (r for r in unique if r.id in self.author_ids),
            key=lambda r: self.author_ids.index(r.id)
        )
        return ordered + [r for r in unique if r.id not in self.author_ids]

    def get_roles(self, author_id: str) -> List[Dict[str, Any]]:
        """
        Roles of an author in the current search, from the author id role facet.

        The search is repeated on a copy of the parameters with the role facet
        restricted to 'id###' values.

        Args:
            author_id: Authority id of the author

        Returns:
            Facet items with 'displayText' and 'role' set to the role and
            'enabled' telling whether the id/role filter is active
        """
        if self.results is None:
            return []
        params = copy.deepcopy(self.results.get_params())
        author_id_filters = params.get_author_id_filter(True)
        params.add_facet(AUTHOR_ID_ROLE_FACET)
        params.set_facet_prefix_for_field(AUTHOR_ID_ROLE_FACET,
                                          author_id + AUTHOR_ID_ROLE_SEPARATOR)

        results = SearchResults(params, self.results.client, self.results.query_builder,
                                self.results.spelling_processor)
        results.perform_and_process_search()
        facets = results.get_facet_list({AUTHOR_ID_ROLE_FACET: None})
        if AUTHOR_ID_ROLE_FACET not in facets:
            return []

        roles = facets[AUTHOR_ID_ROLE_FACET]['list']
        for role in roles:
            _, _, role_code = str(role['value']).partition(AUTHOR_ID_ROLE_SEPARATOR)
            role['displayText'] = role_code
            role['role'] = role_code
            role['enabled'] = role['value'] in author_id_filters
        return roles

    def _perform_search(self, lookfor: str, handler: str) -> List[Any]:
        if self.authority_results_factory is None:
            logger.warning('No authority index available for AuthorityRecommend')
            return []
        results = self.authority_results_factory()
        params = results.get_params()
        params.set_basic_search(lookfor, handler)
        for current in self.filters:
            params.add_filter(current)
        results.perform_and_process_search()
        return results.get_results()


@RecommendPluginManager.register_module('DPLATerms')
class DPLATerms(RecommendModule):
    """
    Items from the Digital Public Library of America for the current search.
    """

    services = ('dpla_client',)

    def __init__(self, config_loader: Optional[ConfigLoader] = None,
                 dpla_client: Optional[DPLAClient] = None, **services):
        super().__init__(config_loader, **services)
        self.client = dpla_client
        self.limit = 5
        self.collapsed = False
        self.items: List[Dict[str, Any]] = []

    def set_config(self, settings: str) -> None:
        """Settings: 'limit:collapsed'."""
        parts = settings.split(':')
        if parts[0].isdigit() and int(parts[0]) > 0:
            self.limit = int(parts[0])
        self.collapsed = len(parts) > 1 and not _is_false(parts[1])
        if self.client is None:
            api_key = _section(self.config_loader.get('config'), 'DPLA').get('apiKey')
            if not api_key:
                raise ValueError('DPLA API key missing from configuration')
            self.client = DPLAClient(api_key)

    def process(self, results: SearchResults) -> None:
        self.results = results
        params = results.get_params()
        query = params.get_query()
        lookfor = query.get_string() if isinstance(query, Query) else ''
        self.items = self.client.search(lookfor, params.get_raw_filters(), self.limit)

    def get_results(self) -> List[Dict[str, Any]]:
        return self.items

    def is_collapsed(self) -> bool:
        return self.collapsed


@RecommendPluginManager.register_module('EuropeanaResults')
class EuropeanaResults(RecommendModule):
    """
    Items from Europeana for the current search.
    """

    services = ('europeana_client',)

    def __init__(self, config_loader: Optional[ConfigLoader] = None,
                 europeana_client: Optional[EuropeanaClient] = None, **services):
        super().__init__(config_loader, **services)
        self.client = europeana_client
        self.limit = 5
        self.exclude_providers: List[str] = []
        self.lookfor = ''
        self.data: Dict[str, Any] = {}

    def set_config(self, settings: str) -> None:
        """Settings: 'limit:provider1,provider2' (providers to leave out)."""
        parts = settings.split(':')
        if parts[0].isdigit() and int(parts[0]) > 0:
            self.limit = int(parts[0])
        if len(parts) > 1 and parts[1]:
            self.exclude_providers = [p.strip() for p in parts[1].split(',')]
        if self.client is None:
            api_key = _section(self.config_loader.get('config'), 'Europeana').get('apiKey')
            if not api_key:
                raise ValueError('Europeana API key missing from configuration')
            self.client = EuropeanaClient(api_key)

    def init(self, params: SearchParams, request: Mapping[str, Any]) -> None:
        self.lookfor = request.get('lookfor', '') or ''

    def process(self, results: SearchResults) -> None:
        self.results = results
        if self.lookfor:
            self.data = self.client.search(self.lookfor, self.limit, self.exclude_providers)

    def get_results(self) -> Dict[str, Any]:
        return self.data


@RecommendPluginManager.register_module('Ontology')
class Ontology(RecommendModule):
    """
    Search term refinements from the Finto ontology service: narrower
    concepts (hyponyms), preferred terms for non-descriptors and specifiers
    for ambiguous terms. Each recommendation links to a search with the term
    replaced by the concept label and restricted to the concept URI.
    """

    services = ('finto_client', 'language', 'session_state', 'search_url')

    def __init__(self, config_loader: Optional[ConfigLoader] = None,
                 finto_client: Optional[FintoClient] = None, language: str = 'en',
                 session_state: Optional[MutableMapping[str, Any]] = None,
                 search_url: str = SEARCH_RESULTS_URL, **services):
        super().__init__(config_loader, **services)
        self.finto = finto_client
        self.language = language
        self.session_state = session_state if session_state is not None else {}
        self.search_url = search_url
        self.max_api_calls: Optional[int] = None
        self.max_recommendations: Optional[int] = None
        self.max_small_result_total: Optional[int] = None
        self.min_large_result_total: Optional[int] = None
        self.max_times_shown_per_session: Optional[int] = None
        self.request: Dict[str, Any] = {}
        self.lookfor = ''
        self.lookfor_terms: List[str] = []
        self.recommendations: Optional[Dict[str, Dict[str, List[Dict[str, str]]]]] = None
        self.recommendation_uris: List[str] = []
        self.api_call_total = 0
        self.recommendation_total = 0

    def set_config(self, settings: str) -> None:
        """Settings: 'section:ini', by default 'OntologyModuleRecommendations:searches'."""
        parts = settings.split(':')
        section = parts[0] or 'OntologyModuleRecommendations'
        ini_name = parts[1] if len(parts) > 1 and parts[1] else 'searches'

        config = _section(self.config_loader.get(ini_name), section)
        self.max_api_calls = _number(config.get('maxApiCalls'))
        self.max_recommendations = _number(config.get('maxRecommendations'))
        self.max_small_result_total = _number(config.get('maxSmallResultTotal'))
        self.min_large_result_total = _number(config.get('minLargeResultTotal'))
        self.max_times_shown_per_session = _number(config.get('maxTimesShownPerSession'))

        if self.finto is None:
            self.finto = FintoClient.from_config(_section(self.config_loader.get('config'), 'Finto'))

    def init(self, params: SearchParams, request: Mapping[str, Any]) -> None:
        self.request = dict(request)
        lookfor = request.get('lookfor') or ''
        if not lookfor and params is not None:
            lookfor = params.get_query().get_all_terms()
        self.lookfor = lookfor.strip()

    def get_lookfor(self) -> str:
        return self.lookfor

    def get_recommendations(self) -> Optional[Dict[str, Dict[str, List[Dict[str, str]]]]]:
        """
        Recommendations grouped by result type and search term:
        {type: {term: [{'label', 'href'}]}}. None when there is nothing to
        look up, the language is not supported or the recommendations have
        been shown often enough in this session.
        """
        if self.recommendations is not None:
            return self.recommendations
        if not self.lookfor:
            return None

        language = 'en' if self.language.startswith('en-') else self.language
        if not self.finto.is_supported_language(language):
            return None

        times_shown = self.session_state.get(ONTOLOGY_SHOWN_KEY)
        times_shown = times_shown if isinstance(times_shown, int) else 0
        if (self.max_times_shown_per_session is not None
                and times_shown > self.max_times_shown_per_session):
            return None

        result_total = self.request.get('resultTotal')
        if result_total is None:
            result_total = self.results.get_result_total() if self.results else 0

        self.recommendations = {}
        # Quoted phrases stay one term
        self.lookfor_terms = next(csv.reader([self.lookfor], delimiter=' '))

        for term in self.lookfor_terms:
            if not (self._can_make_api_calls() and self._can_add_recommendation()):
                break
            if self._skip_from_finto_search(term):
                continue

            narrower = ((self.min_large_result_total is None
                         or result_total >= self.min_large_result_total)
                        and self._can_make_api_calls(2))
            finto_results = self.finto.extended_search(term, language, {}, narrower)
            self.api_call_total += 1

            if not finto_results or finto_results[RESULT_TYPE] == TYPE_OTHER:
                continue

            result_type = finto_results[RESULT_TYPE]
            if result_type == TYPE_HYPONYM:
                self.api_call_total += 1
                term_uri = finto_results[RESULTS]['results'][0]['uri']
                for concept in finto_results[NARROWER_RESULTS]:
                    self._add_ontology_result(term, concept, result_type, term_uri)
            else:
                for concept in finto_results[RESULTS]['results']:
                    self._add_ontology_result(term, concept, result_type)

        if self.recommendation_total > 0:
            self.session_state[ONTOLOGY_SHOWN_KEY] = times_shown + 1
        return self.recommendations

    def _can_make_api_calls(self, count: int = 1) -> bool:
        if self.max_api_calls is None:
            return True
        return self.api_call_total + count <= self.max_api_calls

    def _can_add_recommendation(self) -> bool:
        if self.max_recommendations is None:
            return True
        return self.recommendation_total < self.max_recommendations

    def _skip_from_finto_search(self, term: str) -> bool:
        return term.startswith(TOPIC_URI_PREFIX) or term in ('AND', 'OR', 'NOT')

    def _add_ontology_result(self, term: str, concept: Dict[str, Any], result_type: str,
                             term_uri: Optional[str] = None) -> None:
        uri = concept['uri']
        recommended_uri = TOPIC_URI_PREFIX + uri
        if uri in self.recommendation_uris or recommended_uri in self.lookfor_terms:
            return
        self.recommendation_uris.append(uri)

        label = concept.get('prefLabel', '')
        terms = [label if current == term else current for current in self.lookfor_terms]
        if term_uri and TOPIC_URI_PREFIX + term_uri in terms:
            terms.remove(TOPIC_URI_PREFIX + term_uri)
        terms.append(recommended_uri)
        lookfor = ' '.join(f'"{t}"' if re.search(r'\s', t) else t for t in terms)

        link_params = {key: value for key, value in self.request.items()
                       if key not in ('mod', 'searchId', 'resultTotal') and value is not None}
        link_params['lookfor'] = lookfor
        href = f"{self.search_url}?{urllib.parse.urlencode(link_params, doseq=True)}"

        by_term = self.recommendations.setdefault(result_type, {})
        if term not in by_term:
            by_term[term] = []
            self.recommendation_total += 1
        by_term[term].append({'label': label, 'href': href})
