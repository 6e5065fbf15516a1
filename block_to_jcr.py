#!/usr/bin/env python3
"""
HTML Block to JCR Extractor

Maps authored block markup (a <div class="block-name"> holding rows of cells)
onto the typed property record described by a content schema, producing the
content nodes a JCR-backed page store consumes.
"""

import json
import logging
import re
import sys
import argparse
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple
from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from block_handlers import (
    HEADING_TAGS,
    classify,
    encode_html_entities,
    get_button_type,
    is_button,
    is_title,
)
from block_schema import (
    find_allowed_components,
    find_fields_by_id,
    find_template_by_class_name,
    find_template_by_id,
    load_schema,
)

logger = logging.getLogger(__name__)


BLOCK_RESOURCE_TYPE = 'core/franklin/components/block/v1/block'
BLOCK_ITEM_RESOURCE_TYPE = 'core/franklin/components/block/v1/block/item'

MODE_SIMPLE = 'simple'
MODE_KEY_VALUE = 'keyValue'
MODE_BLOCK_ITEM = 'blockItem'

# Order in which suffix fields are folded into their base field
COLLAPSE_SUFFIXES = ['Alt', 'Type', 'MimeType', 'Text', 'Title']

# Longest first, so 'MimeType' is tried before 'Type'
MAIN_FIELD_SUFFIXES = ['MimeType', 'Title', 'Type', 'Text', 'Alt']

MULTI_VALUE_COMPONENTS = {'multiselect', 'aem-tag'}

# Escaped renderings of a paragraph with no real content
EMPTY_PARAGRAPHS = {
    '&lt;p>&lt;/p>',
    '&lt;p>\xa0&lt;/p>',
    '&lt;p>&amp;nbsp;&lt;/p>',
    '&lt;p>&amp;#x26;nbsp;&lt;/p>',
}

NBSP_TEXTS = {'&nbsp;', '&#x26;nbsp;', '&#160;'}

CODE_SPAN_RE = re.compile(r'<code>(.*?)</code>', re.S)
BARE_AMPERSAND_RE = re.compile(r'&(?!amp;|lt;|gt;|quot;|apos;|#xa|#\d+;)')
LINE_BREAK_RE = re.compile(r'(\r\n|\n|\r)')
INTER_TAG_SPACE_RE = re.compile(r'>\s*&lt;')


class DiagnosticSink:
    """Collects structured diagnostics and forwards them to logging."""

    LEVELS = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARN': logging.WARNING,
        'ERROR': logging.ERROR,
    }

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger
        self.entries: List[Dict[str, Any]] = []

    def emit(self, level: str, event: str, **kwargs) -> Dict[str, Any]:
        entry = {"level": level, "event": event, **{k: v for k, v in kwargs.items() if v is not None}}
        self.entries.append(entry)
        self.log.log(self.LEVELS.get(level, logging.INFO), json.dumps(entry, default=str, ensure_ascii=False))
        return entry

    def events(self, level: Optional[str] = None) -> List[str]:
        return [e["event"] for e in self.entries if level is None or e["level"] == level]


@dataclass
class ExtractionContext:
    """Schema tables and side channels shared by one block extraction."""
    component_models: Optional[List[Dict[str, Any]]] = None
    component_definition: Optional[Dict[str, Any]] = None
    filters: Optional[List[Dict[str, Any]]] = None
    path: str = ''
    path_map: Dict[str, Tag] = field(default_factory=dict)  # item path -> row element
    rankings: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    diagnostics: DiagnosticSink = field(default_factory=DiagnosticSink)


# ---------------------------------------------------------------------------
# Text normalization
# ---------------------------------------------------------------------------

def encode_html(value: str) -> str:
    """Escape serialized markup so it can be stored as a single-line property.

    Newlines inside <code> spans become &#xa; before anything else, bare
    ampersands and '<' are escaped, remaining line breaks are dropped and
    whitespace between a closing '>' and an escaped tag is removed.
    """
    value = CODE_SPAN_RE.sub(lambda m: m.group(0).replace('\n', '&#xa;'), value)
    value = BARE_AMPERSAND_RE.sub('&amp;', value)
    value = value.replace('<', '&lt;')
    value = LINE_BREAK_RE.sub('', value)
    return INTER_TAG_SPACE_RE.sub('>&lt;', value)


def _clean_text(text: Optional[str]) -> str:
    text = (text or '').strip()
    return '' if text in NBSP_TEXTS else text


def _multi_value(value: str) -> str:
    return '[' + ','.join(v.strip() for v in value.split(',')) + ']'


# ---------------------------------------------------------------------------
# Field planning
# ---------------------------------------------------------------------------

def create_component_groups(fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Bundle fields named '<prefix>_<rest>' into one group per prefix.

    The group takes the position of the first field with its prefix; other
    fields keep their order.
    """
    components = []
    groups = {}
    for field_def in fields:
        name = field_def['name']
        if '_' in name:
            group_name = name.split('_')[0]
            group = groups.get(group_name)
            if group is None:
                group = {'component': 'group', 'name': group_name, 'fields': []}
                groups[group_name] = group
                components.append(group)
            group['fields'].append(field_def)
        else:
            components.append(field_def)
    return components


def _base_name(name: str) -> str:
    for suffix in MAIN_FIELD_SUFFIXES:
        if name.endswith(suffix):
            return name[:-len(suffix)]
    return name


def get_main_fields(fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fields matched by position: drops '<field><Suffix>' when <field> exists."""
    names = {f['name'] for f in fields}
    main_fields = []
    for field_def in fields:
        base = _base_name(field_def['name'])
        if base != field_def['name'] and base in names:
            continue
        main_fields.append(field_def)
    return main_fields


def _collapsed_value(suffix: str, node: Optional[Tag]) -> Optional[str]:
    if suffix == 'Type':
        if is_title(node):
            return node.name.lower()
        if is_button(node):
            return get_button_type(node)
        return None
    if is_button(node):
        link = node.select_one('a')
        if suffix == 'Text':
            first = link.contents[0] if link.contents else None
            if isinstance(first, NavigableString):
                return encode_html_entities(str(first))
            return None
        return encode_html_entities(link.get(suffix.lower()))
    if suffix == 'MimeType':
        # the source carries no mime type
        return 'image/unknown'
    if not isinstance(node, Tag):
        return None
    return encode_html_entities(node.get(suffix.lower()))


def collapse_field(field_id: str, fields: List[Dict[str, Any]], node: Optional[Tag],
                   properties: Dict[str, Any]) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Fold the suffix fields of field_id (imageAlt, linkText, ...) into properties.

    Values are read from node. Returns the properties and the field list
    without the consumed suffix fields.
    """
    names = {f['name'] for f in fields}
    consumed = set()
    for suffix in COLLAPSE_SUFFIXES:
        name = f"{field_id}{suffix}"
        if name not in names:
            continue
        value = _collapsed_value(suffix, node)
        if value:
            properties[name] = value
        else:
            properties.pop(name, None)
        consumed.add(name)
    remaining = [f for f in fields if f['name'] not in consumed]
    return properties, remaining


# ---------------------------------------------------------------------------
# Property extraction
# ---------------------------------------------------------------------------

def _element_children(node: Tag) -> List[Tag]:
    return [child for child in node.children if isinstance(child, Tag)]


def _is_empty_paragraph(value: str) -> bool:
    return value in EMPTY_PARAGRAPHS


def _richtext_value(cell: Tag, mode: str) -> str:
    selector = ':scope > *' if mode == MODE_BLOCK_ITEM else ':scope > div > *'
    selection = cell.select(selector)
    # minimal formatter: a literal > in text comes out as &gt;
    markup = ''.join(str(elem) for elem in selection)
    if not selection:
        # a lone paragraph is authored as bare text in the cell
        containers = [cell] if mode == MODE_BLOCK_ITEM else cell.select(':scope > div')
        if containers and containers[0].contents:
            first = containers[0].contents[0]
            if isinstance(first, NavigableString) and not isinstance(first, Comment):
                markup = f"<p>{containers[0].decode_contents()}</p>"
    value = encode_html(markup.strip())
    return '' if _is_empty_paragraph(value) else value


def _text_target(cell: Tag, mode: str) -> Optional[Tag]:
    if mode == MODE_KEY_VALUE:
        return cell.select_one('div > div:nth-last-child(1)')
    if cell.name == 'div':
        return cell
    return cell.select_one('div')


def _extract_simple_field(field_def: Dict[str, Any], cell: Tag, fields: List[Dict[str, Any]],
                          properties: Dict[str, Any], mode: str) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    name = field_def['name']
    image = cell.select_one('img')
    link = cell.select_one('a')
    heading = cell.select_one(', '.join(HEADING_TAGS))

    if image is not None:
        value = encode_html_entities(image.get('src'))
        if value:
            properties[name] = value
        return collapse_field(name, fields, image, properties)

    if link is not None:
        value = encode_html_entities(link.get('href'))
        if value:
            properties[name] = value
        return collapse_field(name, fields, cell.select_one('p'), properties)

    if heading is not None:
        value = encode_html_entities(heading.get_text().strip())
        if value:
            properties[name] = value
        return collapse_field(name, fields, heading, properties)

    target = _text_target(cell, mode)
    value = encode_html_entities(_clean_text(target.get_text() if target is not None else ''))
    if field_def.get('component') in MULTI_VALUE_COMPONENTS:
        # an empty selection is still stored, as []
        value = _multi_value(value)
    if value:
        properties[name] = value
    return properties, fields


def extract_group_properties(node: Tag, group: Dict[str, Any], elements: List[Tag],
                             properties: Dict[str, Any], context: ExtractionContext) -> None:
    """Fill the fields of a group from a run of cell elements.

    Elements and group fields advance independently: unrecognised elements
    are skipped, and a richtext field keeps absorbing elements until one
    yields nothing.
    """
    group_fields = list(group['fields'])
    pending = get_main_fields(group_fields)
    queue = list(elements)
    current = pending.pop(0) if pending else None

    while queue and current:
        element = queue.pop(0)
        handler = classify(element, [node], context)
        if not handler:
            continue

        name = current['name']
        is_richtext = current.get('component') == 'richtext'

        if handler['name'] == 'button':
            link = element.select_one('a')
            value = encode_html_entities(link.get('href')) if link is not None else None
        elif handler['name'] == 'image':
            image = element if element.name == 'img' else element.select_one('img')
            value = encode_html_entities(image.get('src')) if image is not None else None
        elif is_richtext:
            value = encode_html(str(element).strip())
            if _is_empty_paragraph(value):
                value = ''
        else:
            value = encode_html_entities(_clean_text(element.get_text()))
        value = value or ''

        if value:
            if current.get('component') in MULTI_VALUE_COMPONENTS:
                value = _multi_value(value)
            properties[name] = properties.get(name, '') + value
            _, group_fields = collapse_field(name, group_fields, element, properties)

        if not is_richtext or not value:
            current = pending.pop(0) if pending else None


def extract_properties(node: Tag, model_id: Optional[str], context: ExtractionContext,
                       mode: str = MODE_SIMPLE) -> Dict[str, Any]:
    """Match the cells of node against the fields of model_id, in order.

    Pairing stops at whichever runs out first, fields or cells. 'model' is
    always set when a model id is given.
    """
    children = _element_children(node)
    properties: Dict[str, Any] = {}
    fields = create_component_groups(find_fields_by_id(context.component_models, model_id))
    if model_id and not fields:
        context.diagnostics.emit('WARN', 'model_fields_missing', model=model_id, path=context.path or None)

    for field_def, cell in zip(get_main_fields(fields), children):
        name = field_def['name']
        component = field_def.get('component')

        if component == 'group':
            container = cell if mode == MODE_BLOCK_ITEM else cell.select_one('div > div')
            if container is None:
                context.diagnostics.emit('WARN', 'group_container_missing', field=name, path=context.path or None)
                continue
            extract_group_properties(node, field_def, _element_children(container), properties, context)
        elif name == 'classes' and mode != MODE_BLOCK_ITEM:
            # block options ride along as extra classes after the block name
            class_names = node.get('class') or []
            if len(class_names) > 1:
                value = ','.join(c.strip() for c in class_names[1:])
                if component in MULTI_VALUE_COMPONENTS:
                    value = f"[{value}]"
                properties[name] = value
        elif component == 'richtext':
            value = _richtext_value(cell, mode)
            if value:
                properties[name] = value
        else:
            properties, fields = _extract_simple_field(field_def, cell, fields, properties, mode)

    if model_id:
        properties['model'] = model_id
    return properties


# ---------------------------------------------------------------------------
# Block items and assembly
# ---------------------------------------------------------------------------

def _item_name(index: int) -> str:
    return 'item' if index == 0 else f"item_{index - 1}"


def get_block_items(node: Tag, allowed_components: List[str],
                    context: ExtractionContext) -> Optional[List[Dict[str, Any]]]:
    """Extract one item per block row, picking the best-fitting allowed component.

    Each row is extracted with every allowed component's model; the
    candidate with the most attributes wins, earlier components winning ties.
    Returns None when no child components are allowed.
    """
    if not allowed_components:
        return None

    rows = [child for child in _element_children(node) if child.name == 'div']
    items = []
    for i, row in enumerate(rows):
        item_path = f"{context.path}/item{i + 1}"
        context.path_map[item_path] = row

        candidates = []
        for component_id in allowed_components:
            template = find_template_by_id(context.component_definition, component_id)
            properties = extract_properties(row, template.model, context, MODE_BLOCK_ITEM)
            attributes = {
                'jcr:primaryType': 'nt:unstructured',
                'sling:resourceType': BLOCK_ITEM_RESOURCE_TYPE,
            }
            if template.name is not None:
                attributes['name'] = template.name
            attributes.update(properties)
            candidates.append((component_id, {
                'type': 'element',
                'name': _item_name(i),
                'attributes': attributes,
            }))

        ranked = sorted(candidates, key=lambda c: len(c[1]['attributes']), reverse=True)
        context.rankings[item_path] = [
            {"component": component_id, "attributes": len(item['attributes'])}
            for component_id, item in ranked
        ]
        context.diagnostics.emit('DEBUG', 'items_ranked', path=item_path, ranking=context.rankings[item_path])
        items.append(ranked[0][1])
    return items


def assemble_block(node: Tag, context: ExtractionContext) -> Dict[str, Any]:
    """Build the content node of one block element.

    Missing block names or schema tables yield a node carrying only the
    resource type, plus a diagnostic.
    """
    result = {"rt": BLOCK_RESOURCE_TYPE}
    class_names = node.get('class') or []
    name_class = class_names[0] if class_names else None
    if not name_class:
        context.diagnostics.emit('WARN', 'block_name_missing', path=context.path or None)
        return result

    if context.component_models is None or context.component_definition is None or context.filters is None:
        context.diagnostics.emit('WARN', 'schema_tables_missing', block=name_class, path=context.path or None)
        return result

    template = find_template_by_class_name(context.component_definition, name_class)
    if not template.found:
        context.diagnostics.emit('WARN', 'template_not_found', block=name_class, path=context.path or None)

    allowed_components = find_allowed_components(context.filters, template.filter_id)
    mode = MODE_KEY_VALUE if template.key_value else MODE_SIMPLE
    attributes = extract_properties(node, template.model, context, mode)
    children = get_block_items(node, allowed_components, context)

    result.update({
        "children": children,
        "name": template.name,
        "filter": template.filter_id,
        **attributes,
    })
    return {k: v for k, v in result.items() if v is not None}


class HTMLBlockToJCR:
    """Extracts the blocks of a rendered page into JCR content nodes."""

    # Classes that mark structural divs handled outside the block extractor
    EXCLUDED_BLOCK_CLASSES = ['columns', 'metadata', 'section-metadata']

    def __init__(self, html_content: str, component_models: Optional[List[Dict[str, Any]]] = None,
                 component_definition: Optional[Dict[str, Any]] = None,
                 filters: Optional[List[Dict[str, Any]]] = None,
                 config: Optional[Dict[str, Any]] = None):
        self.soup = BeautifulSoup(html_content, 'lxml')
        self.component_models = component_models
        self.component_definition = component_definition
        self.filters = filters
        self.diagnostics = DiagnosticSink()
        self.path_map: Dict[str, Tag] = {}

        # Default configuration
        default_config = {
            "excluded_block_classes": list(self.EXCLUDED_BLOCK_CLASSES),
            "base_path": "/jcr:content/root",
            "include_rankings": False,
        }

        # Merge user config with defaults
        if config:
            default_config.update(config)
        self.config = default_config

    def is_block(self, elem: Tag) -> bool:
        """Check if elem is an authored block: a classed div directly inside a section of <main>."""
        if not isinstance(elem, Tag) or elem.name != 'div':
            return False
        section = elem.parent
        main = section.parent if isinstance(section, Tag) else None
        if not isinstance(main, Tag) or main.name != 'main':
            return False
        class_names = elem.get('class') or []
        return bool(class_names) and class_names[0] not in self.config['excluded_block_classes']

    def _context(self, path: str) -> ExtractionContext:
        return ExtractionContext(
            component_models=self.component_models,
            component_definition=self.component_definition,
            filters=self.filters,
            path=path,
            path_map=self.path_map,
            diagnostics=self.diagnostics,
        )

    def extract(self) -> Dict[str, Any]:
        """Main extraction method."""
        main = self.soup.find('main')
        if main is None:
            self.diagnostics.emit('WARN', 'main_missing')
            return {"blocks": [], "diagnostics": list(self.diagnostics.entries)}

        blocks = []
        sections = [c for c in main.children if isinstance(c, Tag) and c.name == 'div']
        for section_index, section in enumerate(sections):
            block_index = 0
            for elem in section.children:
                if not self.is_block(elem):
                    continue
                path = f"{self.config['base_path']}/section_{section_index}/block_{block_index}"
                context = self._context(path)
                block = assemble_block(elem, context)
                if self.config.get('include_rankings') and context.rankings:
                    block['rankings'] = context.rankings
                blocks.append(block)
                block_index += 1

        return {"blocks": blocks, "diagnostics": list(self.diagnostics.entries)}


def read_json_body(request: Any) -> Tuple[Any, Optional[str]]:
    """Read the JSON body of an http.server request as (payload, error)."""
    content_length = int(request.headers.get("Content-Length", "0"))
    if content_length <= 0:
        return None, "Empty request body."
    raw_body = request.rfile.read(content_length)
    try:
        return json.loads(raw_body), None
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, "Invalid JSON payload."


def extract_from_payload(payload: Any) -> Dict[str, Any]:
    """Run a page extraction from a JSON request body.

    Expects {"html", "componentModels", "componentDefinition", "filters",
    "config"?}; raises ValueError when the body is unusable.
    """
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object.")
    html_content = payload.get('html')
    if not isinstance(html_content, str) or not html_content.strip():
        raise ValueError("html must be a non-empty string.")
    config = payload.get('config')
    if config is not None and not isinstance(config, dict):
        raise ValueError("config must be an object.")

    extractor = HTMLBlockToJCR(
        html_content,
        component_models=payload.get('componentModels'),
        component_definition=payload.get('componentDefinition'),
        filters=payload.get('filters'),
        config=config,
    )
    return extractor.extract()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Extract JCR block content from HTML')
    parser.add_argument('html_file', help='Input HTML file')
    parser.add_argument('output_file', nargs='?', help='Output JSON file (optional, defaults to stdout)')
    parser.add_argument('-m', '--models', required=True, help='component-models.json path or URL')
    parser.add_argument('-d', '--definition', required=True, help='component-definition.json path or URL')
    parser.add_argument('-f', '--filters', required=True, help='component-filters.json path or URL')
    parser.add_argument('-c', '--config', help='JSON config file path')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug diagnostics')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    # Load config if provided
    config = None
    if args.config:
        try:
            with open(args.config, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except Exception as e:
            print(f"Error reading config file: {e}", file=sys.stderr)
            sys.exit(1)

    try:
        schema = load_schema(args.models, args.definition, args.filters)
    except Exception as e:
        print(f"Error loading schema: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        with open(args.html_file, 'r', encoding='utf-8') as f:
            html_content = f.read()
    except Exception as e:
        print(f"Error reading file: {e}", file=sys.stderr)
        sys.exit(1)

    extractor = HTMLBlockToJCR(
        html_content,
        component_models=schema['componentModels'],
        component_definition=schema['componentDefinition'],
        filters=schema['filters'],
        config=config,
    )
    result = extractor.extract()

    json_output = json.dumps(result, indent=2, ensure_ascii=False)

    if args.output_file:
        try:
            with open(args.output_file, 'w', encoding='utf-8') as f:
                f.write(json_output)
            print(f"Output saved to: {args.output_file}", file=sys.stderr)
        except Exception as e:
            print(f"Error writing output file: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        print(json_output)


if __name__ == '__main__':
    main()
