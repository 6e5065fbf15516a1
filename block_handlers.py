"""
Block Handlers

Classifies authored markup elements into the semantic kinds the block
extractor cares about (button, image, title, text) and escapes scalar values
before they are stored as properties.
"""

import html
from typing import Any, Dict, List, Optional

from bs4 import NavigableString, Tag


HEADING_TAGS = ['h1', 'h2', 'h3', 'h4', 'h5', 'h6']

# Elements rendered as plain rich content inside a block cell
TEXT_TAGS = ['p', 'ul', 'ol', 'pre', 'blockquote', 'table', 'code', 'hr']

# Emphasis wrappers around a button link and the type each one stands for
BUTTON_WRAPPERS = {
    'strong': 'primary',
    'em': 'secondary',
}


def encode_html_entities(value: Optional[str]) -> Optional[str]:
    """Escape a scalar attribute or text value; falsy values pass through."""
    if not value:
        return value
    return html.escape(value)


def _meaningful_contents(elem: Tag) -> List[Any]:
    """Child nodes of elem, skipping whitespace-only strings."""
    return [
        child for child in elem.contents
        if isinstance(child, Tag) or (isinstance(child, NavigableString) and child.strip())
    ]


def _button_link(elem: Optional[Tag]) -> Optional[Tag]:
    """Return the <a> of a button paragraph (<p><a>, <p><strong><a>, <p><em><a>)."""
    if not isinstance(elem, Tag) or elem.name != 'p':
        return None
    contents = _meaningful_contents(elem)
    if len(contents) != 1 or not isinstance(contents[0], Tag):
        return None
    child = contents[0]
    if child.name == 'a':
        return child
    if child.name in BUTTON_WRAPPERS:
        inner = _meaningful_contents(child)
        if len(inner) == 1 and isinstance(inner[0], Tag) and inner[0].name == 'a':
            return inner[0]
    return None


def is_button(elem: Optional[Tag]) -> bool:
    """Check if element is an authored button (a paragraph holding a single link)."""
    return _button_link(elem) is not None


def get_button_type(elem: Optional[Tag]) -> str:
    """Button flavour from its emphasis wrapper: primary, secondary or empty."""
    link = _button_link(elem)
    if link is None:
        return ''
    wrapper = link.parent
    if isinstance(wrapper, Tag) and wrapper is not elem:
        return BUTTON_WRAPPERS.get(wrapper.name, '')
    return ''


def is_image(elem: Optional[Tag]) -> bool:
    """Check if element is an image, either bare or wrapped in a paragraph."""
    if not isinstance(elem, Tag):
        return False
    if elem.name in ('picture', 'img'):
        return True
    if elem.name == 'p':
        contents = _meaningful_contents(elem)
        return (
            len(contents) == 1
            and isinstance(contents[0], Tag)
            and contents[0].name in ('picture', 'img')
        )
    return False


def is_title(elem: Optional[Tag]) -> bool:
    return isinstance(elem, Tag) and elem.name in HEADING_TAGS


def is_text(elem: Optional[Tag]) -> bool:
    return isinstance(elem, Tag) and elem.name in TEXT_TAGS


# Checked in order; the first predicate that accepts an element names it
HANDLERS = [
    ('button', is_button),
    ('image', is_image),
    ('title', is_title),
    ('text', is_text),
]


def classify(elem: Optional[Tag], parents: Optional[List[Tag]] = None,
             context: Optional[Any] = None) -> Optional[Dict[str, str]]:
    """Return the handler matching elem as {"name": ...}, or None if unrecognised.

    parents and context are accepted so callers can pass the block ancestry;
    the built-in handlers only look at the element itself.
    """
    for name, use in HANDLERS:
        if use(elem):
            return {"name": name}
    return None
