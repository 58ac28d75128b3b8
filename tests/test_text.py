"""Tests for the rich-text normaliser."""

import pytest
from tl.ado_mcp.text import format_description, html_to_text, looks_like_html


class TestHtmlToText:
    @pytest.mark.parametrize('value', [None, ''])
    def test_missing_input_is_none(self, value):
        assert html_to_text(value) is None

    def test_blank_result_is_none(self):
        assert html_to_text('<p>   </p>') is None
        assert html_to_text('<br/><div></div>') is None

    def test_strips_simple_tags(self):
        assert html_to_text('<p>Hello World</p>') == 'Hello World'

    def test_nested_tags(self):
        assert html_to_text('<div><p><strong>Bold</strong> text</p></div>') == 'Bold text'

    def test_paragraphs(self):
        assert html_to_text('<p>First</p><p>Second</p>') == 'First\n\nSecond'

    def test_divs(self):
        assert html_to_text('<div>Line 1</div><div>Line 2</div>') == 'Line 1\nLine 2'

    def test_line_breaks(self):
        assert html_to_text('Line 1<br>Line 2') == 'Line 1\nLine 2'
        assert html_to_text('Line 1<br>Line 2<br/>Line 3<BR />Line 4') == (
            'Line 1\nLine 2\nLine 3\nLine 4'
        )

    def test_headings(self):
        assert html_to_text('<h1>Title</h1><p>Content</p>') == 'Title\n\nContent'
        assert html_to_text('<H3>Title</H3>Body') == 'Title\n\nBody'

    def test_horizontal_rule(self):
        assert html_to_text('Above<hr>Below') == 'Above\n---\nBelow'

    def test_table_rows(self):
        assert html_to_text('<table><tr><td>a</td></tr><tr><td>b</td></tr></table>') == 'a\nb'

    def test_list_items_get_bullets(self):
        result = html_to_text('<ul><li>Item 1</li><li>Item 2</li></ul>')
        assert '• Item 1' in result
        assert '• Item 2' in result

    def test_list_items_with_attributes(self):
        assert html_to_text('<ol><li class="x">First</li></ol>') == '• First'

    @pytest.mark.parametrize(
        'html, expected',
        [
            ('Hello&nbsp;World', 'Hello World'),
            ('A &amp; B', 'A & B'),
            ('&lt;tag&gt;', '<tag>'),
            ('Say &quot;Hello&quot;', 'Say "Hello"'),
            ('It&#39;s', "It's"),
            ('It&apos;s', "It's"),
            ('It&#x27;s', "It's"),
            ('a&#x2F;b', 'a/b'),
            ('&ndash;&mdash;&hellip;', '–—…'),
            ('&copy;&reg;&trade;', '©®™'),
            ('A &AMP; B', 'A & B'),
        ],
    )
    def test_named_entities(self, html, expected):
        assert html_to_text(html) == expected

    def test_decimal_entities(self):
        assert html_to_text('&#65;&#66;&#67;') == 'ABC'

    def test_hex_entities(self):
        assert html_to_text('&#x41;&#x42;&#x43;') == 'ABC'
        assert html_to_text('&#x1F600;') == '\U0001F600'

    def test_out_of_range_numeric_entity_is_kept(self):
        assert html_to_text('x&#99999999;y') == 'x&#99999999;y'

    def test_unknown_named_entity_is_kept(self):
        assert html_to_text('&euro;5') == '&euro;5'

    def test_entities_inside_attributes_are_not_decoded(self):
        assert html_to_text('<a title="&lt;b&gt;">link</a>') == 'link'

    def test_collapses_horizontal_whitespace(self):
        assert html_to_text('Hello    World') == 'Hello World'
        assert html_to_text('Hello\t\t World') == 'Hello World'

    def test_limits_consecutive_newlines(self):
        assert html_to_text('<p>A</p>\n\n\n\n<p>B</p>') == 'A\n\nB'

    def test_normalises_line_endings(self):
        assert html_to_text('<b>A</b>\r\nB\rC') == 'A\nB\nC'

    def test_trims(self):
        assert html_to_text('  <p>Hello</p>  ') == 'Hello'

    def test_azure_devops_description(self):
        html = (
            '<div><p><b>Summary</b></p><p>This is a test description with '
            '<strong>bold</strong> and <em>italic</em> text.</p>'
            '<ul><li>Point 1</li><li>Point 2</li></ul></div>'
        )
        result = html_to_text(html)
        assert result.startswith('Summary\n\nThis is a test description with bold and italic text.')
        assert '• Point 1' in result
        assert '• Point 2' in result

    @pytest.mark.parametrize(
        'html',
        [
            '<p>First</p><p>Second</p>',
            '<ul><li>Item 1</li><li>Item 2</li></ul>',
            'Above<hr>Below',
            '<p>A</p>\n\n\n\n<p>B</p>',
            '  spaced   out  ',
            '&#65;&#66;&#67;',
        ],
    )
    def test_idempotent_on_own_output(self, html):
        once = html_to_text(html)
        assert html_to_text(once) == once

    def test_decoded_markup_is_stripped_on_second_pass(self):
        # Escaped markup decodes to tag-like text, which a second pass removes
        once = html_to_text('&lt;b&gt;')
        assert once == '<b>'
        assert html_to_text(once) is None


class TestFormatDescription:
    @pytest.mark.parametrize('value', [None, ''])
    def test_missing_input_is_none(self, value):
        assert format_description(value) is None

    def test_blank_plain_text_is_none(self):
        assert format_description('   \n ') is None

    def test_processes_html(self):
        assert format_description('<p>Hello</p>') == 'Hello'

    def test_minimal_tags(self):
        assert format_description('Test <b>bold</b> text') == 'Test bold text'

    def test_plain_text_passthrough(self):
        assert format_description('Plain text without HTML') == 'Plain text without HTML'

    def test_plain_text_is_trimmed(self):
        assert format_description('  Plain text  ') == 'Plain text'

    def test_plain_text_keeps_entities_and_spacing(self):
        assert format_description('A &amp; B    C') == 'A &amp; B    C'

    def test_comparison_text_is_mistaken_for_html(self):
        # Known false positive: anything shaped like <...> is treated as markup
        assert looks_like_html('a < b > c')
        assert format_description('a < b > c') == 'a c'

    def test_lone_angle_bracket_is_plain_text(self):
        assert not looks_like_html('a < b')
        assert format_description(' a < b ') == 'a < b'
