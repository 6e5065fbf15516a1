from block_to_jcr import collapse_field, create_component_groups, get_main_fields


def _fields(*names, component="text"):
    return [{"name": name, "component": component} for name in names]


class TestComponentGroups:

    def test_same_prefix_fields_form_one_group_at_first_position(self):
        planned = create_component_groups(_fields("hero_title", "other", "hero_cta"))
        assert len(planned) == 2
        assert planned[0]["component"] == "group"
        assert planned[0]["name"] == "hero"
        assert [f["name"] for f in planned[0]["fields"]] == ["hero_title", "hero_cta"]
        assert planned[1] == {"name": "other", "component": "text"}

    def test_plain_fields_keep_order(self):
        planned = create_component_groups(_fields("a", "b", "c"))
        assert [f["name"] for f in planned] == ["a", "b", "c"]

    def test_prefix_is_text_before_first_underscore(self):
        planned = create_component_groups(_fields("cta_link_text", "cta_link"))
        assert [f["name"] for f in planned] == ["cta"]
        assert len(planned[0]["fields"]) == 2


class TestMainFields:

    def test_suffix_fields_of_present_fields_are_dropped(self):
        fields = _fields("image", "imageAlt", "imageMimeType", "title", "titleType", "linkText")
        assert [f["name"] for f in get_main_fields(fields)] == ["image", "title", "linkText"]

    def test_longest_suffix_is_checked_first(self):
        # 'fooMimeType' strips to 'foo', not 'fooMime'
        fields = _fields("fooMime", "fooMimeType")
        assert [f["name"] for f in get_main_fields(fields)] == ["fooMime", "fooMimeType"]

    def test_suffix_matching_is_case_sensitive(self):
        fields = _fields("title", "text", "tiTitle")
        assert [f["name"] for f in get_main_fields(fields)] == ["title", "text", "tiTitle"]

    def test_no_main_field_has_its_base_in_the_list(self):
        fields = _fields("a", "aAlt", "aTitle", "b", "bText", "cType", "c", "dMimeType")
        names = {f["name"] for f in fields}
        for field in get_main_fields(fields):
            for suffix in ["MimeType", "Title", "Type", "Text", "Alt"]:
                if field["name"].endswith(suffix):
                    assert field["name"][:-len(suffix)] not in names
                    break


class TestCollapseField:

    def test_alt_is_folded_under_its_own_key(self, block_node):
        img = block_node('<img src="/cat.png" alt="A cat">')
        fields = _fields("image", "imageAlt")
        properties, remaining = collapse_field("image", fields, img, {"image": "/cat.png"})
        assert properties == {"image": "/cat.png", "imageAlt": "A cat"}
        assert [f["name"] for f in remaining] == ["image"]
        assert len(fields) == 2

    def test_missing_value_is_dropped_but_field_consumed(self, block_node):
        img = block_node('<img src="/cat.png">')
        properties, remaining = collapse_field("image", _fields("image", "imageAlt"), img, {"image": "/cat.png"})
        assert "imageAlt" not in properties
        assert [f["name"] for f in remaining] == ["image"]

    def test_mime_type_is_unknown(self, block_node):
        img = block_node('<img src="/cat.png">')
        properties, _ = collapse_field("image", _fields("image", "imageMimeType"), img, {})
        assert properties == {"imageMimeType": "image/unknown"}

    def test_heading_type(self, block_node):
        heading = block_node("<h2>Title</h2>")
        properties, remaining = collapse_field("title", _fields("title", "titleType"), heading, {})
        assert properties == {"titleType": "h2"}
        assert [f["name"] for f in remaining] == ["title"]

    def test_button_suffixes(self, block_node):
        paragraph = block_node('<p><strong><a href="/go" title="Go &amp; see">Label</a></strong></p>')
        fields = _fields("link", "linkText", "linkTitle", "linkType")
        properties, remaining = collapse_field("link", fields, paragraph, {"link": "/go"})
        assert properties == {
            "link": "/go",
            "linkText": "Label",
            "linkTitle": "Go &amp; see",
            "linkType": "primary",
        }
        assert remaining == [{"name": "link", "component": "text"}]

    def test_plain_link_has_no_type(self, block_node):
        paragraph = block_node('<p><a href="/go">Label</a></p>')
        properties, _ = collapse_field("link", _fields("link", "linkType"), paragraph, {})
        assert properties == {}

    def test_no_node(self):
        properties, remaining = collapse_field("link", _fields("link", "linkText"), None, {})
        assert properties == {}
        assert [f["name"] for f in remaining] == ["link"]
