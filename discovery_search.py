#!/usr/bin/env python3
# discovery_search.py
"""
Discovery Search - Command-line tool for searching a VuFind-style Solr index

This script runs a search against a Solr core using VuFind search
specifications, prints the results and the output of the configured
recommendation modules (facets, spelling suggestions, databases, author
information, ...), and can look up author biographies on Wikipedia.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from config_library import ConfigLoader
from libguides_library import LibGuidesClient
from recommend_library import (AuthorInfo, AuthorityRecommend, Databases, DPLATerms,
                               EuropeanaResults, Ontology, RecommendModule,
                               RecommendPluginManager, SideFacets, SpellingSuggestions,
                               TopFacets)
from search_library import HierarchicalFacetHelper, SearchParams, SearchResults
from solr_library import SOLR_ENDPOINTS, QueryBuilder, SolrClient, load_search_specs
from spelling_library import SpellingProcessor
from viaf_library import ViafClient
from wikipedia_library import WikipediaClient

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger("discovery_search")


def list_endpoints():
    """Display information about available endpoints."""
    print("\nAvailable Solr Endpoints:\n")
    print(f"{'ID':<12} {'Name':<30} {'URL':<40}")
    print("-" * 82)

    for endpoint_id, info in SOLR_ENDPOINTS.items():
        print(f"{endpoint_id:<12} {info['name']:<30} {info['url']:<40}")

    print("\nAvailable recommendation modules:")
    print(f"  {', '.join(sorted(RecommendPluginManager.modules))}")
    print("\nUse --info <endpoint_id> for more details about a specific endpoint.")


def show_endpoint_info(endpoint_id: str) -> bool:
    """Show detailed information about a specific endpoint."""
    info = SOLR_ENDPOINTS.get(endpoint_id)
    if info is None:
        logger.error(f"Unknown endpoint: {endpoint_id}")
        return False

    print(f"\n{info['name']} ({endpoint_id})")
    print("=" * 50)
    print(f"URL: {info['url']}")
    print(f"Description: {info.get('description', 'No description available')}")
    print("\nExample Queries:")
    for query_type, example in info.get('examples', {}).items():
        print(f"  {query_type}: {example}")
    return True


def get_solr_url(args) -> str:
    if args.solr_url:
        return args.solr_url
    return SOLR_ENDPOINTS[args.endpoint]['url']


def get_authority_url(solr_url: str) -> str:
    """URL of the authority core next to the given core."""
    return solr_url.rstrip('/').rsplit('/', 1)[0] + '/authority'


def load_specs(args) -> Dict[str, Any]:
    path = args.specs
    if not path and args.config_dir:
        candidate = os.path.join(args.config_dir, 'searchspecs.yaml')
        if os.path.isfile(candidate):
            path = candidate
    if not path:
        return {}
    logger.debug(f"Loading search specs from {path}")
    return load_search_specs(path)


def build_plugin_manager(args, config_loader: ConfigLoader, solr_url: str) -> RecommendPluginManager:
    """Create the plugin manager with the services the modules need."""
    timeout = args.timeout

    def libguides_getter():
        general = config_loader.get('LibGuidesAPI').get('General') or {}
        return LibGuidesClient.from_config(general, timeout=timeout)

    def authority_results_factory():
        authority_specs = {}
        if args.config_dir:
            path = os.path.join(args.config_dir, 'authsearchspecs.yaml')
            if os.path.isfile(path):
                authority_specs = load_search_specs(path)
        client = SolrClient(get_authority_url(solr_url), timeout=timeout)
        return SearchResults(SearchParams(), client, QueryBuilder(authority_specs))

    return RecommendPluginManager(
        config_loader,
        facet_helper=HierarchicalFacetHelper(),
        wikipedia_factory=lambda: WikipediaClient(timeout=timeout),
        viaf=ViafClient(timeout=timeout),
        language=args.lang,
        libguides_getter=libguides_getter,
        authority_results_factory=authority_results_factory,
    )


def summarize_module(module: RecommendModule) -> Any:
    """Plain data produced by a recommendation module."""
    if isinstance(module, SideFacets):
        return {
            'facets': module.get_facet_set(),
            'hierarchical': module.get_hierarchical_facet_trees(),
            'checkboxes': module.get_checkbox_facet_set(),
            'ranges': module.get_all_range_facets(),
            'collapsed': module.get_collapsed_facets(),
        }
    if isinstance(module, TopFacets):
        return {'facets': module.get_top_facet_set(), 'settings': module.get_base_settings()}
    if isinstance(module, SpellingSuggestions):
        return module.get_suggestions()
    if isinstance(module, AuthorInfo):
        return module.get_author_info()
    if isinstance(module, AuthorityRecommend):
        return [record.to_dict() for record in module.get_recommendations()]
    if isinstance(module, (Databases, DPLATerms, EuropeanaResults)):
        return module.get_results()
    if isinstance(module, Ontology):
        return module.get_recommendations()
    return None


def run_search(args) -> Tuple[bool, Optional[SearchResults], Dict[str, Any]]:
    """
    Run a search with the recommendation modules given on the command line.

    Returns:
        Tuple of (success, results, {module spec: module output})
    """
    config_loader = ConfigLoader([args.config_dir] if args.config_dir else None)
    solr_url = get_solr_url(args)

    try:
        specs = load_specs(args)
        spelling_config = config_loader.get('config').get('Spelling')
    except (OSError, ValueError) as e:
        logger.error(f"Error loading configuration: {e}")
        return False, None, {}

    request = {
        'lookfor': args.lookfor,
        'type': args.type,
        'filter': args.filter or [],
        'limit': args.limit,
        'page': args.page,
    }
    if args.sort:
        request['sort'] = args.sort

    params = SearchParams(HierarchicalFacetHelper())
    params.init_from_request(request)

    builder = QueryBuilder(specs)
    if args.show_query:
        builder.set_create_spelling_query(True)
        query_params = builder.build(params.get_query())
        query_params.merge_with(params.get_backend_parameters())
        print("Solr parameters:")
        for name, value in query_params.request():
            print(f"  {name} = {value}")

    results = SearchResults(
        params,
        SolrClient(solr_url, timeout=args.timeout),
        builder,
        SpellingProcessor(spelling_config)
    )

    manager = build_plugin_manager(args, config_loader, solr_url)
    modules: List[Tuple[str, RecommendModule]] = []
    try:
        for spec in args.recommend or []:
            module = manager.build(spec)
            module.init(params, request)
            modules.append((spec, module))
    except (KeyError, ValueError) as e:
        logger.error(f"Error setting up recommendation module: {e}")
        return False, None, {}

    results.perform_and_process_search()

    recommendations = {}
    for spec, module in modules:
        module.process(results)
        try:
            recommendations[spec] = summarize_module(module)
        except RuntimeError as e:
            logger.error(f"Recommendation module {spec} failed: {e}")
            recommendations[spec] = None

    return True, results, recommendations


def print_results(results: SearchResults, recommendations: Dict[str, Any]) -> None:
    """Print search results and recommendation output as text."""
    print(f"\nFound {results.get_result_total()} records\n")
    for i, record in enumerate(results.get_results(), 1):
        print(f"{i}. {record}")
        if record.subjects:
            print(f"   Subjects: {', '.join(record.subjects)}")
        if record.urls:
            print(f"   URL: {record.urls[0]}")

    for spec, output in recommendations.items():
        print(f"\n[{spec}]")
        print(json.dumps(output, indent=2, ensure_ascii=False, default=str))


def results_to_dict(results: SearchResults, recommendations: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'total': results.get_result_total(),
        'records': [record.to_dict() for record in results.get_results()],
        'recommendations': recommendations,
    }


def save_results_to_file(data: Any, filename: str, format_type: str = 'text') -> bool:
    """
    Save output to a file.

    Args:
        data: Dictionary to write
        filename: Output filename (an extension is added if missing)
        format_type: 'text' or 'json'

    Returns:
        True if successful, False otherwise
    """
    base, ext = os.path.splitext(filename)
    if not ext:
        filename = f"{filename}.json" if format_type == 'json' else f"{filename}.txt"

    try:
        with open(filename, 'w', encoding='utf-8') as f:
            if format_type == 'json':
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            else:
                for record in data.get('records', []):
                    authors = ', '.join(record['authors']) or 'Unknown'
                    f.write(f"{record['title']} by {authors} ({record['year'] or 'n.d.'})\n")
        logger.info(f"Results saved to {filename}")
        return True
    except OSError as e:
        logger.error(f"Error saving results to {filename}: {e}")
        return False


def show_author_info(args) -> bool:
    """Look up an author on Wikipedia and print the result."""
    client = WikipediaClient(timeout=args.timeout)
    client.set_language(args.lang)
    info = client.get(args.author_info)
    if not info:
        logger.error(f"No Wikipedia information found for {args.author_info}")
        return False

    if args.format == 'json':
        print(json.dumps(info, indent=2, ensure_ascii=False))
    else:
        print(f"\n{info['name']} ({info['wiki_lang']}.wikipedia.org)")
        print("=" * 50)
        print(info['description'])
        if info.get('image'):
            print(f"\nImage: {info['image']} ({info.get('altimage')})")
    return True


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Search a VuFind-style Solr index and run recommendation modules.',
        epilog='Example: discovery_search.py --lookfor "darwin" --recommend SideFacets --recommend SpellingSuggestions'
    )

    # Endpoint selection
    parser.add_argument('--endpoint', default='biblio', choices=list(SOLR_ENDPOINTS),
                        help='Solr endpoint to search (use --list to see available endpoints)')
    parser.add_argument('--solr-url', help='Solr core URL (overrides --endpoint)')
    parser.add_argument('--list', action='store_true',
                        help='List available endpoints and exit')
    parser.add_argument('--info', metavar='ENDPOINT_ID',
                        help='Show detailed information about a specific endpoint and exit')

    # Search parameters
    search_group = parser.add_argument_group('Search Parameters')
    search_group.add_argument('--lookfor', default='', help='Search terms')
    search_group.add_argument('--type', default='AllFields', help='Search handler (default: AllFields)')
    search_group.add_argument('--filter', action='append',
                              help='Filter as field:value (repeatable; ~field:value for OR filters)')
    search_group.add_argument('--sort', help='Sort order (relevance, year, title, author, ...)')
    search_group.add_argument('--limit', type=int, default=20, help='Records per page')
    search_group.add_argument('--page', type=int, default=1, help='Result page')

    # Configuration
    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument('--specs', help='Search specifications YAML file')
    config_group.add_argument('--config-dir', help='Directory with config.ini, facets.ini, ...')
    config_group.add_argument('--recommend', action='append', metavar='MODULE[:SETTINGS]',
                              help='Recommendation module to run (repeatable)')
    config_group.add_argument('--lang', default='en',
                              help='Language for Wikipedia and ontology lookups')

    # Other actions
    parser.add_argument('--show-query', action='store_true',
                        help='Print the Solr parameters built for the search')
    parser.add_argument('--author-info', metavar='AUTHOR',
                        help='Look up an author on Wikipedia and exit')

    # Output format
    output_group = parser.add_argument_group('Output Parameters')
    output_group.add_argument('--format', choices=['text', 'json'], default='text',
                              help='Output format')
    output_group.add_argument('--output', help='Output file for results')

    parser.add_argument('--timeout', type=int, default=30,
                        help='Request timeout in seconds')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output')

    return parser.parse_args(argv)


def main():
    """Main function."""
    args = parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list:
        list_endpoints()
        sys.exit(0)

    if args.info:
        sys.exit(0 if show_endpoint_info(args.info) else 1)

    if args.author_info:
        sys.exit(0 if show_author_info(args) else 1)

    success, results, recommendations = run_search(args)
    if not success:
        sys.exit(1)

    data = results_to_dict(results, recommendations)
    if args.output:
        sys.exit(0 if save_results_to_file(data, args.output, args.format) else 1)

    if args.format == 'json':
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    else:
        print_results(results, recommendations)
    sys.exit(0)


if __name__ == "__main__":
    main()
