import pytest
from bs4 import BeautifulSoup

from block_to_jcr import DiagnosticSink, ExtractionContext


def _component(component_id, template):
    return {
        "title": template.get("name", component_id),
        "id": component_id,
        "plugins": {"xwalk": {"page": {
            "resourceType": "core/franklin/components/block/v1/block",
            "template": template,
        }}},
    }


@pytest.fixture
def component_models():
    return [
        {"id": "hero", "fields": [
            {"component": "reference", "name": "image"},
            {"component": "text", "name": "imageAlt"},
            {"component": "text", "name": "title"},
            {"component": "richtext", "name": "text"},
        ]},
        {"id": "banner", "fields": [
            {"component": "text", "name": "title"},
            {"component": "multiselect", "name": "classes"},
        ]},
        {"id": "page-config", "fields": [
            {"component": "text", "name": "title"},
            {"component": "aem-tag", "name": "keywords"},
        ]},
        {"id": "promo", "fields": [
            {"component": "aem-content", "name": "cta_link"},
            {"component": "text", "name": "cta_linkText"},
            {"component": "richtext", "name": "cta_text"},
        ]},
        {"id": "teaser", "fields": [
            {"component": "text", "name": "title"},
        ]},
        {"id": "card", "fields": [
            {"component": "reference", "name": "image"},
            {"component": "text", "name": "imageAlt"},
            {"component": "richtext", "name": "text"},
        ]},
    ]


@pytest.fixture
def component_definition():
    return {"groups": [
        {"title": "Blocks", "id": "blocks", "components": [
            _component("hero", {"name": "Hero", "model": "hero"}),
            _component("banner", {"name": "Banner", "model": "banner"}),
            _component("page-config", {"name": "Page Config", "model": "page-config", "key-value": True}),
            _component("promo", {"name": "Promo", "model": "promo"}),
            _component("cards", {"name": "Cards", "filter": "cards"}),
            _component("card", {"name": "Card", "model": "card"}),
            _component("teaser", {"name": "Teaser", "model": "teaser"}),
            _component("teaser-copy", {"name": "Teaser Copy", "model": "teaser"}),
        ]},
    ]}


@pytest.fixture
def filters():
    return [
        {"id": "section", "components": ["hero", "cards"]},
        {"id": "cards", "components": ["teaser", "card"]},
    ]


@pytest.fixture
def context(component_models, component_definition, filters):
    return ExtractionContext(
        component_models=component_models,
        component_definition=component_definition,
        filters=filters,
        path="/content/block",
        diagnostics=DiagnosticSink(),
    )


@pytest.fixture
def block_node():
    """Parse a markup fragment and return its first element."""
    def parse(markup):
        soup = BeautifulSoup(markup, "lxml")
        return soup.body.find(True)
    return parse
