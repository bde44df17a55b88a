"""
Tests for the recommendation modules and their plugin manager.
"""

import pytest

import recommend_library
from config_library import ConfigLoader
from conftest import make_response
from dpla_library import DPLAClient
from europeana_library import EuropeanaClient
from recommend_library import (AuthorInfo, AuthorityRecommend, Databases, DPLATerms,
                               EuropeanaResults, Ontology, RecommendModule,
                               RecommendPluginManager, SideFacets, SpellingSuggestions,
                               TopFacets)
from search_library import HierarchicalFacetHelper, SearchParams, SearchResults
from solr_library import BiblioRecord, SolrResponse
from wikipedia_library import WikipediaClient


FACETS_INI = """
[Results]
institution = Institution
building = Library
format = Format
publishDate = "Year of Publication"

[ResultsTop]
topic_facet = "Suggested Topics"

[CheckboxFacets]
illustrated:Illustrated = "Illustrated"

[CheckboxFlipped]
Illustrated = "illustrated:Illustrated"

[Results_Settings]
orFacets = building
collapsedFacets = "institution, building"
showMore[*] = 8
showMore[format] = 3
showMore[building] = abc
showMoreInLightbox[*] = more
showMoreInLightbox[format] = tabs
top_rows = 2
top_cols = 3

[SpecialFacets]
dateRange[] = publishDate
genericRange[] = callnumber
hierarchical[] = building
hierarchicalFacetSortOptions[building] = top
"""

EDS_INI = """
[Databases]
resultFacet[] = format
resultFacet[] = list
url[JSTOR] = https://www.jstor.org
url[Academic Search] = https://search.example.org
useQuery = true
"""

LIBGUIDES_EDS_INI = """
[Databases]
resultFacet[] = format
resultFacet[] = list
useLibGuides = true
linkToAllDatabases = https://lib.example.org/az
"""

LIBGUIDES_API_INI = """
[GetAZ]
cache_lifetime = 600
"""

CONFIG_INI = """
[DPLA]
apiKey = dpla-key

[Europeana]
apiKey = europeana-key
"""


@pytest.fixture(autouse=True)
def clear_libguides_cache():
    recommend_library._LIBGUIDES_CACHE.clear()
    yield
    recommend_library._LIBGUIDES_CACHE.clear()


@pytest.fixture
def config_dir(tmp_path):
    files = {
        'facets.ini': FACETS_INI,
        'EDS.ini': EDS_INI,
        'LibGuidesEDS.ini': LIBGUIDES_EDS_INI,
        'LibGuidesAPI.ini': LIBGUIDES_API_INI,
        'config.ini': CONFIG_INI,
        'Empty.ini': '[Other]\nx = 1\n',
    }
    for name, content in files.items():
        (tmp_path / name).write_text(content, encoding='utf-8')
    return tmp_path


@pytest.fixture
def loader(config_dir) -> ConfigLoader:
    return ConfigLoader([str(config_dir)])


@pytest.fixture
def manager(loader) -> RecommendPluginManager:
    return RecommendPluginManager(loader, facet_helper=HierarchicalFacetHelper())


def make_results(mocker, lookfor='', response=None, params=None):
    """SearchResults over a fake client returning the given response."""
    params = params or SearchParams()
    params.set_basic_search(lookfor)
    client = mocker.Mock()
    client.search.return_value = response or SolrResponse()
    return SearchResults(params, client)


class TestPluginManager:
    """Module registry and creation."""

    def test_registered_modules(self, manager):
        for name in ('SideFacets', 'TopFacets', 'Databases', 'AuthorInfo',
                     'SpellingSuggestions', 'AuthorityRecommend', 'DPLATerms',
                     'EuropeanaResults', 'Ontology'):
            assert manager.has(name)
        assert manager.has('sidefacets')
        assert not manager.has('Nope')

    def test_unknown_module(self, manager):
        with pytest.raises(KeyError):
            manager.get('Nope')

    def test_services_passed_on_request(self, manager):
        side = manager.get('SideFacets')
        assert isinstance(side.facet_helper, HierarchicalFacetHelper)
        assert isinstance(manager.get('SpellingSuggestions'), SpellingSuggestions)

    def test_build_applies_settings(self, manager):
        module = manager.build('TopFacets:ResultsTop')
        assert isinstance(module, TopFacets)
        assert module.facets == {'topic_facet': 'Suggested Topics'}

    def test_register_module(self, loader):
        @RecommendPluginManager.register_module('TestEcho')
        class Echo(RecommendModule):
            def set_config(self, settings):
                self.settings = settings

        module = RecommendPluginManager(loader).build('TestEcho:a:b')
        assert module.settings == 'a:b'
        RecommendPluginManager.modules.pop('testecho')


class TestSideFacets:
    """Side facet configuration and output."""

    @pytest.fixture
    def module(self, manager) -> SideFacets:
        return manager.build('SideFacets:Results:CheckboxFacets')

    def test_config(self, module):
        assert list(module.main_facets) == ['institution', 'building', 'format', 'publishDate']
        assert module.or_facets == ['building']
        assert module.checkbox_facets == {'illustrated:Illustrated': 'Illustrated'}
        assert module.get_hierarchical_facets() == ['building']
        assert module.get_hierarchical_facet_sort_options() == {'building': 'top'}

    def test_flipped_checkbox_section(self, manager):
        module = manager.build('SideFacets:Results:~CheckboxFlipped')
        assert module.checkbox_facets == {'illustrated:Illustrated': 'Illustrated'}

    def test_show_dynamic_setting(self, manager):
        assert manager.build('SideFacets:Results:CheckboxFacets').show_dynamic_checkbox_facets
        module = manager.build('SideFacets:Results:CheckboxFacets:facets:false')
        assert module.show_dynamic_checkbox_facets is False

    def test_init(self, module):
        params = SearchParams()
        module.init(params, {})
        assert params.get_facet_config() == {
            'institution': 'Institution', 'building': 'Library',
            'format': 'Format', 'publishDate': 'Year of Publication',
        }
        assert params.get_facet_operator('building') == 'OR'
        assert params.get_facet_operator('format') == 'AND'
        assert params.get_checkbox_facets()[0]['desc'] == 'Illustrated'
        assert params.hierarchical_facets == ['building']
        assert params.facet_helper is module.facet_helper

    def test_init_enabled_facets(self, module):
        params = SearchParams()
        module.init(params, {'enabledFacets': ['format']})
        assert params.get_facet_config() == {'format': 'Format'}

    def test_facet_set(self, mocker, module):
        params = SearchParams()
        module.init(params, {})
        response = SolrResponse(total=5, facet_fields={
            'building': [('0/Main/', 3), ('1/Main/Floor 2/', 1)],
            'format': [('Book', 2)],
        })
        module.process(make_results(mocker, 'cats', response, params))

        facet_set = module.get_facet_set()

        assert list(facet_set) == ['building', 'format']
        assert facet_set['building']['label'] == 'Library'
        assert facet_set['building']['list'][1]['displayText'] == 'Floor 2'
        assert facet_set['building']['list'][0]['operator'] == 'OR'

    def test_hierarchical_facet_trees(self, mocker, module):
        params = SearchParams()
        module.init(params, {})
        params.add_filter('building:1/Main/Floor 2/')
        response = SolrResponse(total=5, facet_fields={
            'building': [('0/Main/', 3), ('1/Main/Floor 2/', 1), ('0/Annex/', 2)],
            'format': [('Book', 2)],
        })
        module.process(make_results(mocker, 'cats', response, params))

        trees = module.get_hierarchical_facet_trees()

        assert list(trees) == ['building']
        annex, main = trees['building']
        assert annex['displayText'] == 'Annex'
        assert main['hasAppliedChildren'] is True
        assert [child['displayText'] for child in main['children']] == ['Floor 2']

    def test_hierarchical_facet_requires_helper(self, mocker, loader):
        module = RecommendPluginManager(loader).build('SideFacets')
        response = SolrResponse(total=1, facet_fields={'building': [('0/Main/', 3)]})
        module.process(make_results(mocker, 'cats', response))
        with pytest.raises(RuntimeError):
            module.get_facet_set()

    def test_checkbox_facet_set(self, mocker, module):
        params = SearchParams()
        module.init(params, {})
        params.add_filter('illustrated:Illustrated')
        module.process(make_results(mocker, 'cats', params=params))
        facets = module.get_checkbox_facet_set()
        assert facets == [{
            'desc': 'Illustrated', 'filter': 'illustrated:Illustrated', 'dynamic': False,
            'selected': True, 'alwaysVisible': False,
        }]

    def test_range_facets(self, mocker, module):
        params = SearchParams()
        params.add_filter('publishDate:[1900 TO *]')
        module.process(make_results(mocker, 'cats', params=params))

        assert module.get_date_facets() == {'publishDate': ['1900', '']}
        assert module.get_generic_range_facets() == {'callnumber': ['', '']}
        assert module.get_full_date_facets() == {}
        assert module.get_all_range_facets() == {
            'publishDate': {'type': 'date', 'values': ['1900', '']},
            'callnumber': {'type': 'generic', 'values': ['', '']},
        }

    def test_collapsed_facets(self, module):
        assert module.get_collapsed_facets() == ['institution', 'building']
        module.collapsed_facets = '*'
        assert module.get_collapsed_facets() == list(module.main_facets)
        module.collapsed_facets = False
        assert module.get_collapsed_facets() == []

    def test_show_more_setting(self, module):
        assert module.get_show_more_setting('format') == 3
        assert module.get_show_more_setting('institution') == 8
        assert module.get_show_more_setting('building') == 6
        module.show_more_settings = {}
        assert module.get_show_more_setting('format') == 6

    def test_show_in_lightbox_setting(self, module):
        assert module.get_show_in_lightbox_setting('format') == 'tabs'
        assert module.get_show_in_lightbox_setting('building') == 'more'
        module.show_in_lightbox_settings = {}
        assert module.get_show_in_lightbox_setting('format') == 'more'


class TestTopFacets:
    """Top facet configuration."""

    def test_config_and_init(self, mocker, manager):
        module = manager.build('TopFacets:ResultsTop')
        assert module.get_base_settings() == {'rows': '2', 'cols': '3'}
        assert module.or_facets == ['building']

        params = SearchParams()
        module.init(params, {})
        assert params.get_facet_config() == {'topic_facet': 'Suggested Topics'}

        response = SolrResponse(total=1, facet_fields={'topic_facet': [('History', 4)]})
        module.process(make_results(mocker, 'cats', response, params))
        facets = module.get_top_facet_set()
        assert facets['topic_facet']['list'][0]['count'] == 4


FORMAT_FACETS = SolrResponse(total=10, facet_fields={
    'format': [('Academic Search', 5), ('Unknown', 2), ('WoS', 1), ('Web of Science', 1)],
})


class TestDatabases:
    """Database recommendations."""

    def test_missing_section(self, manager):
        with pytest.raises(ValueError):
            manager.build('Databases:5:Empty')

    def test_query_and_facet_matches(self, mocker, manager):
        module = manager.build('Databases')
        assert module.limit == 5
        module.process(make_results(mocker, 'jstor', FORMAT_FACETS))

        results = module.get_results()

        assert [db['name'] for db in results] == ['JSTOR', 'Academic Search']
        assert results[0]['url'] == 'https://www.jstor.org'
        assert module.get_link_to_all_databases() is False

    def test_limit(self, mocker, manager):
        module = manager.build('Databases:1:EDS')
        module.process(make_results(mocker, 'jstor', FORMAT_FACETS))
        assert [db['name'] for db in module.get_results()] == ['JSTOR']

    def test_short_query_ignored(self, mocker, manager):
        module = manager.build('Databases')
        module.process(make_results(mocker, 'js', FORMAT_FACETS))
        assert [db['name'] for db in module.get_results()] == ['Academic Search']

    def test_missing_facet(self, mocker, manager):
        module = manager.build('Databases')
        module.process(make_results(mocker, 'jstor', SolrResponse(total=1)))
        assert module.get_results() == []

    def test_libguides(self, mocker, loader):
        libguides = mocker.Mock()
        libguides.get_az.return_value = [
            {'name': 'Web of Science', 'url': 'https://wos.example.org', 'alt_names': 'WoS'},
        ]
        manager = RecommendPluginManager(loader, libguides_getter=lambda: libguides)

        module = manager.build('Databases:5:LibGuidesEDS')
        module.process(make_results(mocker, 'x', FORMAT_FACETS))
        results = module.get_results()

        assert results == [
            {'name': 'Web of Science', 'url': 'https://wos.example.org', 'alt_names': 'WoS'}
        ]
        assert module.get_link_to_all_databases() == 'https://lib.example.org/az'

        # The A-Z list is cached between modules
        other = manager.build('Databases:5:LibGuidesEDS')
        other.process(make_results(mocker, 'x', FORMAT_FACETS))
        other.get_results()
        assert libguides.get_az.call_count == 1

    def test_libguides_without_alternate_names(self, mocker, loader):
        libguides = mocker.Mock()
        libguides.get_az.return_value = [
            {'name': 'Web of Science', 'url': 'https://wos.example.org', 'alt_names': 'WoS'},
        ]
        module = Databases(loader, libguides_getter=lambda: libguides)
        module.set_config('5:LibGuidesEDS')
        module.use_libguides_alternate_names = False
        module.process(make_results(mocker, 'x', SolrResponse(total=1, facet_fields={
            'format': [('WoS', 1)],
        })))
        assert module.get_results() == []


class TestAuthorInfo:
    """Author biographies."""

    @pytest.mark.parametrize('lookfor,expected', [
        ('Twain, Mark, 1835-1910', 'Mark Twain'),
        ('"Grass, Günter"', 'Günter Grass'),
        ('Tolkien, J. R. R.', 'J. R. R. Tolkien'),
        ('Mark Twain.', 'Mark Twain'),
        ('John Q.', 'John Q.'),
    ])
    def test_get_author(self, mocker, lookfor, expected):
        module = AuthorInfo()
        module.process(make_results(mocker, lookfor))
        assert module.get_author() == expected

    def test_get_author_info(self, mocker, loader):
        wikipedia = mocker.Mock()
        wikipedia.get.return_value = {'name': 'Mark Twain', 'description': 'Writer'}
        manager = RecommendPluginManager(loader, wikipedia=wikipedia, language='de')
        module = manager.build('AuthorInfo')
        module.process(make_results(mocker, 'Twain, Mark'))

        assert module.get_author_info() == {'name': 'Mark Twain', 'description': 'Writer'}
        wikipedia.set_language.assert_called_once_with('de')
        wikipedia.get.assert_called_once_with('Mark Twain')

    def test_shared_client_serves_every_module(self, mocker, loader, session):
        page = {'query': {'pages': {'12': {
            'title': 'Mark Twain',
            'revisions': [{'slots': {'main': {'*': "'''Mark Twain''' was a writer."}}}],
        }}}}
        session.get.return_value = make_response(mocker, page)
        manager = RecommendPluginManager(loader, wikipedia=WikipediaClient(session=session))

        infos = []
        for _ in range(2):
            module = manager.build('AuthorInfo')
            module.process(make_results(mocker, 'Twain, Mark'))
            infos.append(module.get_author_info())

        assert infos[0] == infos[1]
        assert infos[1]['name'] == 'Mark Twain'
        assert session.get.call_count == 2

    def test_factory_gives_each_module_its_own_client(self, loader):
        factory_calls = []

        def factory():
            client = WikipediaClient()
            factory_calls.append(client)
            return client

        manager = RecommendPluginManager(loader, wikipedia_factory=factory)
        first = manager.build('AuthorInfo')
        second = manager.build('AuthorInfo')

        assert len(factory_calls) == 2
        assert first.wikipedia is not second.wikipedia

    def test_viaf_name(self, mocker):
        wikipedia = mocker.Mock()
        viaf = mocker.Mock()
        viaf.get_wikipedia_name.return_value = 'Mark_Twain'
        module = AuthorInfo(wikipedia=wikipedia, viaf=viaf)
        module.set_config('Wikipedia:true')
        module.process(make_results(mocker, 'Twain, Mark'))

        module.get_author_info()

        viaf.get_wikipedia_name.assert_called_once_with('Mark Twain')
        wikipedia.get.assert_called_once_with('Mark_Twain')

    def test_viaf_miss_falls_back(self, mocker):
        wikipedia = mocker.Mock()
        viaf = mocker.Mock()
        viaf.get_wikipedia_name.return_value = None
        module = AuthorInfo(wikipedia=wikipedia, viaf=viaf)
        module.set_config('Wikipedia:true')
        module.process(make_results(mocker, 'Twain, Mark'))
        module.get_author_info()
        wikipedia.get.assert_called_once_with('Mark Twain')

    def test_other_sources(self, mocker):
        wikipedia = mocker.Mock()
        module = AuthorInfo(wikipedia=wikipedia)
        module.set_config('Other')
        module.process(make_results(mocker, 'Twain, Mark'))
        assert module.get_author_info() is None
        wikipedia.get.assert_not_called()

    def test_empty_query(self, mocker):
        wikipedia = mocker.Mock()
        module = AuthorInfo(wikipedia=wikipedia)
        module.process(make_results(mocker, ''))
        assert module.get_author_info() is None


class TestSpellingSuggestions:
    """Spelling suggestion module."""

    def test_suggestions(self, mocker):
        results = mocker.Mock()
        results.get_spelling_suggestions.return_value = {'grimble': {}}
        module = SpellingSuggestions()
        assert module.get_suggestions() == {}
        module.process(results)
        assert module.get_suggestions() == {'grimble': {}}


def authority_factory(mocker, records, calls):
    def factory():
        results = make_results(mocker, '', SolrResponse(total=len(records), records=records))
        calls.append(results)
        return results
    return factory


class TestAuthorityRecommend:
    """Authority record recommendations."""

    def test_set_config(self):
        module = AuthorityRecommend()
        module.set_config('__resultlimit__:100:__mode__:usefor:recordtype:person')
        assert module.result_limit == 100
        assert module.mode == 'usefor'
        assert module.filters == ['recordtype:person']
        assert module.is_mode_active('usefor')
        assert not module.is_mode_active('seealso')

    def test_use_for_search(self, mocker):
        calls = []
        records = [BiblioRecord(id='a1', title='Twain, Mark')]
        module = AuthorityRecommend(authority_results_factory=authority_factory(mocker, records, calls))
        module.set_config('__resultlimit__:100:__mode__:usefor:recordtype:person')
        module.init(SearchParams(), {'lookfor': 'clemens'})

        module.process(make_results(mocker, 'clemens', SolrResponse(total=5)))

        assert len(calls) == 1
        authority_params = calls[0].get_params()
        assert authority_params.get_query().get_string() == 'clemens'
        assert authority_params.get_search_handler() == 'MainHeading'
        assert authority_params.get_raw_filters() == {'recordtype': ['person']}
        assert [r.id for r in module.get_recommendations()] == ['a1']
        assert module.get_header() == 'See also'

    def test_result_limit_exceeded(self, mocker):
        calls = []
        module = AuthorityRecommend(authority_results_factory=authority_factory(mocker, [], calls))
        module.set_config('__resultlimit__:100')
        module.init(SearchParams(), {'lookfor': 'clemens'})
        module.process(make_results(mocker, 'clemens', SolrResponse(total=500)))
        assert calls == []
        assert module.get_recommendations() == []

    def test_both_modes_deduplicated(self, mocker):
        calls = []
        records = [BiblioRecord(id='a1', title='Twain, Mark')]
        module = AuthorityRecommend(authority_results_factory=authority_factory(mocker, records, calls))
        module.set_config('')
        module.init(SearchParams(), {'lookfor': 'clemens'})
        module.process(make_results(mocker, 'clemens', SolrResponse(total=5)))

        assert [c.get_params().get_search_handler() for c in calls] == ['MainHeading', 'SeeAlso']
        assert len(module.get_recommendations()) == 1

    def test_author_id_filters(self, mocker):
        calls = []
        records = [
            BiblioRecord(id='a1', title='One'),
            BiblioRecord(id='x', title='Other'),
            BiblioRecord(id='a2', title='Two'),
        ]
        module = AuthorityRecommend(authority_results_factory=authority_factory(mocker, records, calls))
        module.set_config('__mode__:usefor')
        params = SearchParams()
        params.add_filter('author2_id_str_mv:a2')
        params.add_filter('author2_id_str_mv:a1')

        module.init(params, {'lookfor': 'ignored'})
        module.process(make_results(mocker, 'ignored', SolrResponse(total=5)))

        assert module.lookfor == '(id:"a2") OR (id:"a1")'
        assert module.get_header() == 'Author'
        assert [r.id for r in module.get_recommendations()] == ['a2', 'a1', 'x']

    def test_get_roles(self, mocker):
        params = SearchParams()
        params.add_filter('author2_id_role_str_mv:a1###aut')
        response = SolrResponse(total=5, facet_fields={
            'author2_id_role_str_mv': [('a1###aut', 4), ('a1###edt', 1)],
        })
        results = make_results(mocker, 'twain', response, params)
        module = AuthorityRecommend()
        module.init(params, {'lookfor': 'twain'})
        module.process(results)

        roles = module.get_roles('a1')

        assert [(r['value'], r['role'], r['displayText'], r['enabled']) for r in roles] == [
            ('a1###aut', 'aut', 'aut', True),
            ('a1###edt', 'edt', 'edt', False),
        ]
        request = results.client.search.call_args[0][0]
        assert request.get('f.author2_id_role_str_mv.facet.prefix') == ['a1###']
        assert 'author2_id_role_str_mv' in request.get('facet.field')
        assert 'author2_id_role_str_mv' not in params.get_facet_config()

    def test_get_roles_without_facet(self, mocker):
        module = AuthorityRecommend()
        assert module.get_roles('a1') == []
        module.process(make_results(mocker, 'twain', SolrResponse(total=5)))
        assert module.get_roles('a1') == []

    def test_no_search_terms(self, mocker):
        calls = []
        module = AuthorityRecommend(authority_results_factory=authority_factory(mocker, [], calls))
        module.init(SearchParams(), {})
        module.process(make_results(mocker, '', SolrResponse(total=5)))
        assert calls == []

    def test_no_authority_index(self, mocker):
        module = AuthorityRecommend()
        module.init(SearchParams(), {'lookfor': 'clemens'})
        module.process(make_results(mocker, 'clemens', SolrResponse(total=5)))
        assert module.get_recommendations() == []


ONTOLOGY_INI = """
[OntologyModuleRecommendations]
maxApiCalls = 1
maxRecommendations = 5
maxTimesShownPerSession = 2
"""


def specifier(*uris):
    return {
        'result_type': 'specifier',
        'results': {'results': [{'uri': uri, 'prefLabel': f"label {uri}"} for uri in uris]},
    }


class TestOntology:
    """Ontology term recommendations."""

    @pytest.fixture
    def finto(self, mocker):
        client = mocker.Mock()
        client.is_supported_language.side_effect = lambda lang: lang in ('fi', 'sv', 'en')
        client.extended_search.return_value = {}
        return client

    @pytest.fixture
    def limited_loader(self, tmp_path) -> ConfigLoader:
        (tmp_path / 'searches.ini').write_text(ONTOLOGY_INI, encoding='utf-8')
        return ConfigLoader([str(tmp_path)])

    def make_module(self, loader, finto, request, settings='', **services):
        module = Ontology(loader, finto_client=finto, **services)
        module.set_config(settings)
        module.init(SearchParams(), request)
        return module

    def test_hyponyms(self, loader, finto):
        finto.extended_search.return_value = {
            'result_type': 'hyponym',
            'results': {'results': [{'uri': 'p1', 'prefLabel': 'arkkitehtuuri'}]},
            'narrower_results': [
                {'uri': 'p3', 'prefLabel': 'kirkot'},
                {'uri': 'p4', 'prefLabel': 'vanhat kirkot'},
            ],
        }
        state = {}
        request = {'lookfor': 'arkkitehtuuri', 'type': 'AllFields', 'filter': ['format:Book'],
                   'resultTotal': 50, 'searchId': '7'}
        module = self.make_module(loader, finto, request, language='fi', session_state=state)

        recommendations = module.get_recommendations()

        assert recommendations == {'hyponym': {'arkkitehtuuri': [
            {'label': 'kirkot',
             'href': '/Search/Results?lookfor=kirkot+topic_uri_str_mv%3Ap3'
                     '&type=AllFields&filter=format%3ABook'},
            {'label': 'vanhat kirkot',
             'href': '/Search/Results?lookfor=%22vanhat+kirkot%22+topic_uri_str_mv%3Ap4'
                     '&type=AllFields&filter=format%3ABook'},
        ]}}
        finto.extended_search.assert_called_once_with('arkkitehtuuri', 'fi', {}, True)
        assert state == {'ontologyRecommend': 1}
        assert module.get_recommendations() is recommendations

    def test_quoted_phrase_is_one_term(self, loader, finto):
        module = self.make_module(loader, finto, {'lookfor': '"vanhat talot" AND kirkot',
                                                  'resultTotal': 5})
        assert module.get_recommendations() == {}
        searched = [c[0][0] for c in finto.extended_search.call_args_list]
        assert searched == ['vanhat talot', 'kirkot']

    def test_api_call_limit(self, limited_loader, finto):
        finto.extended_search.return_value = specifier('p5')
        module = self.make_module(limited_loader, finto, {'lookfor': 'talot kirkot',
                                                          'resultTotal': 5})

        recommendations = module.get_recommendations()

        assert list(recommendations['specifier']) == ['talot']
        finto.extended_search.assert_called_once_with('talot', 'en', {}, False)

    def test_shown_often_enough(self, limited_loader, finto):
        module = self.make_module(limited_loader, finto, {'lookfor': 'talot'},
                                  session_state={'ontologyRecommend': 3})
        assert module.get_recommendations() is None
        finto.extended_search.assert_not_called()

    def test_uri_already_in_search(self, loader, finto):
        finto.extended_search.return_value = specifier('p1')
        state = {}
        module = self.make_module(loader, finto, {'lookfor': 'talot topic_uri_str_mv:p1',
                                                  'resultTotal': 5}, session_state=state)

        assert module.get_recommendations() == {}
        finto.extended_search.assert_called_once_with('talot', 'en', {}, True)
        assert state == {}

    @pytest.mark.parametrize('language,expected', [('en-gb', {}), ('de', None)])
    def test_language(self, loader, finto, language, expected):
        module = self.make_module(loader, finto, {'lookfor': 'houses', 'resultTotal': 5},
                                  language=language)
        assert module.get_recommendations() == expected

    def test_lookfor_from_query(self, loader, finto):
        module = Ontology(loader, finto_client=finto)
        params = SearchParams()
        params.set_basic_search('kissa')
        module.init(params, {})
        assert module.get_lookfor() == 'kissa'

    def test_empty_search(self, loader, finto):
        module = self.make_module(loader, finto, {'lookfor': '  '})
        assert module.get_recommendations() is None

    def test_large_result_threshold(self, loader, finto, tmp_path):
        (tmp_path / 'ontology.ini').write_text(
            "[Ontology]\nminLargeResultTotal = 100\n", encoding='utf-8'
        )
        module = self.make_module(ConfigLoader([str(tmp_path)]), finto,
                                  {'lookfor': 'talot', 'resultTotal': 5}, 'Ontology:ontology')
        module.get_recommendations()
        finto.extended_search.assert_called_once_with('talot', 'en', {}, False)


class TestDPLATerms:
    """DPLA recommendations."""

    def test_search(self, mocker):
        client = mocker.Mock()
        client.search.return_value = [{'title': 'Harbor view'}]
        module = DPLATerms(dpla_client=client)
        module.set_config('3:true')
        params = SearchParams()
        params.add_filter('format:Book')

        module.process(make_results(mocker, 'boston', params=params))

        assert module.get_results() == [{'title': 'Harbor view'}]
        assert module.is_collapsed() is True
        client.search.assert_called_once_with('boston', {'format': ['Book']}, 3)

    def test_client_from_config(self, manager):
        module = manager.build('DPLATerms:5:false')
        assert isinstance(module.client, DPLAClient)
        assert module.client.api_key == 'dpla-key'
        assert module.is_collapsed() is False

    def test_missing_key(self, tmp_path):
        loader = ConfigLoader([str(tmp_path)])
        with pytest.raises(ValueError):
            RecommendPluginManager(loader).build('DPLATerms')


class TestEuropeanaResults:
    """Europeana recommendations."""

    def test_search(self, mocker):
        client = mocker.Mock()
        client.search.return_value = {'worksArray': []}
        module = EuropeanaResults(europeana_client=client)
        module.set_config('3:Provider A, Provider B')
        module.init(SearchParams(), {'lookfor': 'mona lisa'})

        module.process(make_results(mocker, 'mona lisa'))

        assert module.get_results() == {'worksArray': []}
        client.search.assert_called_once_with('mona lisa', 3, ['Provider A', 'Provider B'])

    def test_no_lookfor(self, mocker):
        client = mocker.Mock()
        module = EuropeanaResults(europeana_client=client)
        module.set_config('')
        module.init(SearchParams(), {})
        module.process(make_results(mocker, ''))
        client.search.assert_not_called()
        assert module.get_results() == {}

    def test_client_from_config(self, manager):
        module = manager.build('EuropeanaResults')
        assert isinstance(module.client, EuropeanaClient)
        assert module.client.api_key == 'europeana-key'
        assert module.limit == 5

    def test_missing_key(self, tmp_path):
        loader = ConfigLoader([str(tmp_path)])
        with pytest.raises(ValueError):
            RecommendPluginManager(loader).build('EuropeanaResults')
