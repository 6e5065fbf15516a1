"""
Block Schema

Lookups over the content schema tables (component models, component
definition, component filters) and loading of those tables from disk or URL.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests


@dataclass
class TemplateDescriptor:
    """Template resolved for a component; every field is None when nothing matched."""
    name: Optional[str] = None
    filter_id: Optional[str] = None
    model: Optional[str] = None
    key_value: Optional[bool] = None

    @property
    def found(self) -> bool:
        return self.name is not None


def name_to_class_name(name: str) -> str:
    """Slug a block or template name the way it appears as a CSS class."""
    slug = re.sub(r'[^0-9a-z]+', '-', name.lower().strip())
    return slug.strip('-')


def _template_of(component: Dict[str, Any]) -> Dict[str, Any]:
    template = (
        ((component or {}).get('plugins') or {})
        .get('xwalk', {})
        .get('page', {})
        .get('template')
    )
    return template if isinstance(template, dict) else {}


def _iter_components(component_definition: Dict[str, Any]):
    for group in (component_definition or {}).get('groups', []):
        for component in group.get('components', []):
            yield component


def _descriptor(template: Dict[str, Any]) -> TemplateDescriptor:
    return TemplateDescriptor(
        name=template.get('name'),
        filter_id=template.get('filter'),
        model=template.get('model'),
        key_value=template.get('key-value') or False,
    )


def find_template_by_class_name(component_definition: Dict[str, Any], class_name: str) -> TemplateDescriptor:
    """Resolve the template whose slugged name equals class_name.

    The whole table is scanned and a later match replaces an earlier one, so
    duplicated template names resolve to the last definition.
    """
    class_name = name_to_class_name(class_name)
    resolved = TemplateDescriptor()
    for component in _iter_components(component_definition):
        template = _template_of(component)
        template_name = template.get('name')
        if template_name and name_to_class_name(template_name) == class_name:
            resolved = _descriptor(template)
    return resolved


def find_template_by_id(component_definition: Dict[str, Any], component_id: str) -> TemplateDescriptor:
    """Resolve the template of the component with the given id (last match wins)."""
    resolved = TemplateDescriptor()
    for component in _iter_components(component_definition):
        if component.get('id') == component_id:
            resolved = _descriptor(_template_of(component))
    return resolved


def find_fields_by_id(component_models: List[Dict[str, Any]], model_id: Optional[str]) -> List[Dict[str, Any]]:
    """Ordered field definitions of a model, or [] when the model is unknown."""
    if not model_id:
        return []
    for model in component_models or []:
        if model.get('id') == model_id:
            return list(model.get('fields') or [])
    return []


def find_allowed_components(filters: List[Dict[str, Any]], filter_id: Optional[str]) -> List[str]:
    """Component ids a filter allows as block children ([] when absent)."""
    if not filter_id:
        return []
    for entry in filters or []:
        if entry.get('id') == filter_id:
            return list(entry.get('components') or [])
    return []


def load_schema_table(source: str, expected_type: type = list, timeout: int = 30) -> Any:
    """Load one schema table from a JSON file path or an http(s) URL."""
    if re.match(r'^https?://', source, re.I):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Schema file not found: {path}")
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

    if not isinstance(data, expected_type):
        raise ValueError(
            f"Schema {source} should contain a JSON {expected_type.__name__}, got {type(data).__name__}"
        )
    return data


def load_schema(models_source: str, definition_source: str, filters_source: str) -> Dict[str, Any]:
    """Load the three schema tables into the keys the extractor expects."""
    return {
        "componentModels": load_schema_table(models_source, list),
        "componentDefinition": load_schema_table(definition_source, dict),
        "filters": load_schema_table(filters_source, list),
    }
