"""Plain-text rendering of Azure DevOps rich-text fields.

Work item descriptions, comments and wiki snippets come back from the REST API
as HTML fragments. The helpers here turn them into readable text for tool
results using a fixed sequence of textual substitutions rather than a real
HTML parser.
"""

import re
from typing import Optional


TAG_PATTERN = re.compile(r'<[^>]+>')

# Structural tags, applied in order before any other tag is stripped
BLOCK_REPLACEMENTS = (
    (re.compile(r'</p>', re.IGNORECASE), '\n\n'),
    (re.compile(r'</div>', re.IGNORECASE), '\n'),
    (re.compile(r'</li>', re.IGNORECASE), '\n'),
    (re.compile(r'<br\s*/?>', re.IGNORECASE), '\n'),
    (re.compile(r'</h[1-6]>', re.IGNORECASE), '\n\n'),
    (re.compile(r'</tr>', re.IGNORECASE), '\n'),
    (re.compile(r'<li[^>]*>', re.IGNORECASE), '• '),
    (re.compile(r'<hr\s*/?>', re.IGNORECASE), '\n---\n'),
)

NAMED_ENTITIES = (
    ('&nbsp;', ' '),
    ('&amp;', '&'),
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&#39;', "'"),
    ('&apos;', "'"),
    ('&#x27;', "'"),
    ('&#x2F;', '/'),
    ('&ndash;', '–'),
    ('&mdash;', '—'),
    ('&hellip;', '…'),
    ('&copy;', '©'),
    ('&reg;', '®'),
    ('&trade;', '™'),
)
ENTITY_PATTERNS = tuple(
    (re.compile(re.escape(entity), re.IGNORECASE), char) for entity, char in NAMED_ENTITIES
)

DECIMAL_ENTITY = re.compile(r'&#(\d+);')
HEX_ENTITY = re.compile(r'&#x([0-9A-Fa-f]+);')

LINE_ENDINGS = re.compile(r'\r\n?')
HORIZONTAL_SPACE = re.compile(r'[ \t]+')
EXCESS_NEWLINES = re.compile(r'\n{3,}')


def _code_point(match: 're.Match[str]', base: int) -> str:
    value = int(match.group(1), base)
    if value > 0x10FFFF:
        return match.group(0)
    return chr(value)


def html_to_text(html: Optional[str]) -> Optional[str]:
    """Convert an HTML fragment to plain text.

    Args:
        html: HTML content, possibly None

    Returns:
        The plain-text rendering, or None when nothing readable remains
    """
    if not html:
        return None

    text = html
    for pattern, replacement in BLOCK_REPLACEMENTS:
        text = pattern.sub(replacement, text)

    text = TAG_PATTERN.sub('', text)

    # Entities are decoded only after tags are gone so attribute values never leak
    for pattern, char in ENTITY_PATTERNS:
        text = pattern.sub(char, text)
    text = DECIMAL_ENTITY.sub(lambda m: _code_point(m, 10), text)
    text = HEX_ENTITY.sub(lambda m: _code_point(m, 16), text)

    text = LINE_ENDINGS.sub('\n', text)
    text = HORIZONTAL_SPACE.sub(' ', text)
    text = EXCESS_NEWLINES.sub('\n\n', text)
    text = text.strip()

    return text or None


def looks_like_html(value: str) -> bool:
    """Return True when the value contains anything shaped like a tag."""
    return TAG_PATTERN.search(value) is not None


def format_description(value: Optional[str]) -> Optional[str]:
    """Normalise a rich-text field for display.

    Values containing tag-like text are run through :func:`html_to_text`;
    anything else is treated as plain text and only trimmed. Note that plain
    text such as ``a < b > c`` also matches the tag pattern and is stripped.

    Args:
        value: Field value from the API

    Returns:
        Readable text, or None for missing or blank input
    """
    if not value:
        return None
    if looks_like_html(value):
        return html_to_text(value)
    return value.strip() or None
