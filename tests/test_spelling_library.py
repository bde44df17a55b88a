"""
Tests for spellcheck data and spelling suggestion processing.
"""

import pytest

from solr_library import Query
from spelling_library import Spellcheck, SpellingProcessor


GRUMBLE = {
    'numFound': 3,
    'origFreq': 2,
    'suggestion': [
        {'word': 'grumbler', 'freq': 4},
        {'word': 'rumble', 'freq': 40},
        {'word': 'crumble', 'freq': 15},
    ],
}

GRIMBLE = {
    'numFound': 3,
    'origFreq': 7,
    'suggestion': [
        {'word': 'trimble', 'freq': 110},
        {'word': 'gribble', 'freq': 21},
        {'word': 'grimsley', 'freq': 24},
    ],
}


@pytest.fixture
def spellcheck() -> Spellcheck:
    return Spellcheck.from_solr([['grumble', GRUMBLE], ['grimble', GRIMBLE]], 'grumble grimble')


class TestSpellcheck:
    """Spellcheck container."""

    def test_from_solr_pairs(self, spellcheck):
        assert len(spellcheck) == 2
        assert [term for term, _ in spellcheck] == ['grumble', 'grimble']
        assert spellcheck.get_query() == 'grumble grimble'

    def test_from_solr_flat_layout(self):
        spellcheck = Spellcheck.from_solr(
            ['grumble', GRUMBLE, 'correctlySpelled', False], 'grumble'
        )
        assert [term for term, _ in spellcheck] == ['grumble']

    def test_from_solr_map_layout(self):
        spellcheck = Spellcheck.from_solr({'grumble': GRUMBLE, 'collation': 'x'}, 'grumble')
        assert len(spellcheck) == 1

    def test_from_solr_empty(self):
        assert len(Spellcheck.from_solr([], 'x')) == 0

    def test_merge(self):
        primary = Spellcheck([('grumble', {'suggestion': [{'word': 'a', 'freq': 1}]})], 'q')
        other = Spellcheck([
            ('grumble', GRUMBLE),
            ('grimble', GRIMBLE),
        ], 'q2')

        primary.merge(other)

        terms = dict(primary)
        assert terms['grumble'] is GRUMBLE
        assert 'grimble' in terms
        assert len(primary.get_secondary()) == 2
        assert primary.get_secondary().get_query() == 'q2'

    def test_merge_keeps_longer_list(self):
        primary = Spellcheck([('grumble', GRUMBLE)], 'q')
        primary.merge(Spellcheck([('grumble', {'suggestion': []})], 'q'))
        assert dict(primary)['grumble'] is GRUMBLE


class TestTokenize:
    """Query tokenization."""

    @pytest.fixture
    def processor(self) -> SpellingProcessor:
        return SpellingProcessor()

    def test_quoted_phrase(self, processor):
        assert processor.tokenize('"grumble grimble" foo') == ['"grumble grimble"', 'foo']

    def test_operators_and_parens_dropped(self, processor):
        assert processor.tokenize('a AND (b OR c)') == ['a', 'b', 'c']

    def test_unterminated_quote(self, processor):
        assert processor.tokenize('"grumble grimble') == ['"grumble grimble']

    def test_empty(self, processor):
        assert processor.tokenize('') == []


class TestGetSuggestions:
    """Selection of suggestions."""

    def test_defaults(self, spellcheck):
        processor = SpellingProcessor()
        assert processor.get_spelling_limit() == 3
        assert processor.should_skip_numeric_spelling() is True

        suggestions = processor.get_suggestions(spellcheck, Query('grumble grimble'))

        assert suggestions == {
            'grumble': {'freq': 2, 'suggestions': {'grumbler': 4, 'rumble': 40, 'crumble': 15}},
            'grimble': {'freq': 7, 'suggestions': {'trimble': 110, 'gribble': 21, 'grimsley': 24}},
        }

    def test_limit(self, spellcheck):
        processor = SpellingProcessor({'limit': 1})
        suggestions = processor.get_suggestions(spellcheck, Query('grumble grimble'))
        assert suggestions['grumble']['suggestions'] == {'grumbler': 4}
        assert suggestions['grimble']['suggestions'] == {'trimble': 110}

    def test_terms_missing_from_query_skipped(self, spellcheck):
        suggestions = SpellingProcessor().get_suggestions(spellcheck, Query('grumble'))
        assert list(suggestions) == ['grumble']

    def test_suggestions_already_in_query_skipped(self, spellcheck):
        suggestions = SpellingProcessor().get_suggestions(spellcheck, Query('grumble rumble'))
        assert suggestions['grumble']['suggestions'] == {'grumbler': 4, 'crumble': 15}

    def test_numeric_terms(self):
        spellcheck = Spellcheck([('1234', {'origFreq': 0,
                                           'suggestion': [{'word': '1235', 'freq': 3}]})], '1234')
        assert SpellingProcessor().get_suggestions(spellcheck, Query('1234')) == {}
        processor = SpellingProcessor({'skip_numeric': 'false'})
        assert processor.get_suggestions(spellcheck, Query('1234')) == {
            '1234': {'freq': 0, 'suggestions': {'1235': 3}}
        }

    def test_unexpected_format(self):
        spellcheck = Spellcheck([('grumble', {'suggestion': ['grumbler']})], 'grumble')
        with pytest.raises(ValueError):
            SpellingProcessor().get_suggestions(spellcheck, Query('grumble'))

    def test_secondary_fallback(self, spellcheck):
        primary = Spellcheck([], 'grumble grimble')
        primary.set_secondary(spellcheck)
        suggestions = SpellingProcessor().get_suggestions(primary, Query('grumble grimble'))
        assert set(suggestions) == {'grumble', 'grimble'}

    def test_normalizer(self, spellcheck):
        processor = SpellingProcessor(normalizer=str.lower)
        suggestions = processor.get_suggestions(spellcheck, Query('GRUMBLE'))
        assert list(suggestions) == ['grumble']


class TestProcessSuggestions:
    """Replacement data for display."""

    def test_expanded_term(self, spellcheck, mocker):
        processor = SpellingProcessor({'limit': 1})
        query = Query('grumble grimble')
        suggestions = processor.get_suggestions(spellcheck, query)

        result = processor.process_suggestions(suggestions, 'grumble grimble', mocker.Mock())

        assert result['grumble'] == {
            'freq': 2,
            'suggestions': {
                'grumbler': {
                    'freq': 4,
                    'new_term': 'grumbler',
                    'expand_term': '(grumble OR grumbler)',
                },
            },
        }
        assert result['grimble']['suggestions']['trimble']['expand_term'] == '(grimble OR trimble)'

    def test_no_expansion(self, spellcheck, mocker):
        processor = SpellingProcessor({'limit': 1, 'expand': False})
        suggestions = processor.get_suggestions(spellcheck, Query('grumble grimble'))
        result = processor.process_suggestions(suggestions, 'grumble grimble', mocker.Mock())
        assert result['grumble']['suggestions']['grumbler'] == {'freq': 4, 'new_term': 'grumbler'}

    def test_phrase_labels(self, spellcheck, mocker):
        params = mocker.Mock()
        params.get_display_query_with_replaced_term.side_effect = \
            lambda old, new: 'grumble grimble'.replace(old, new)
        processor = SpellingProcessor({'limit': 1, 'phrase': True})
        suggestions = processor.get_suggestions(spellcheck, Query('grumble grimble'))

        result = processor.process_suggestions(suggestions, 'grumble grimble', params)

        assert 'grumbler grimble' in result['grumble']['suggestions']
        params.get_display_query_with_replaced_term.assert_any_call('grumble', 'grumbler')

    def test_shingle(self):
        spellcheck = Spellcheck([('preamble gribble', {
            'origFreq': 0,
            'suggestion': [{'word': 'preamble article', 'freq': 5}],
        })], 'preamble gribble')
        processor = SpellingProcessor()
        suggestions = processor.get_suggestions(spellcheck, Query('preamble gribble'))

        result = processor.process_suggestions(suggestions, 'preamble gribble', None)

        suggestion = result['preamble gribble']['suggestions']['preamble article']
        assert suggestion['expand_term'] == '((preamble gribble) OR (preamble article))'

    def test_term_inside_token(self):
        spellcheck = Spellcheck([('grumble', GRUMBLE)], 'grumble')
        processor = SpellingProcessor({'limit': 1})
        suggestions = processor.get_suggestions(spellcheck, Query('title:grumble'))

        result = processor.process_suggestions(suggestions, 'title:grumble', None)

        suggestion = result['title:grumble']['suggestions']['title:grumbler']
        assert suggestion['new_term'] == 'title:grumbler'
        assert suggestion['expand_term'] == '(title:grumble OR title:grumbler)'
