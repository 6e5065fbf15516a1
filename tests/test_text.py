from block_to_jcr import encode_html
from block_handlers import encode_html_entities


class TestEncodeHtml:
    """Escaping of serialized rich text."""

    def test_single_pass_output(self):
        raw = "<code>line1\nline2</code> & <b>x</b> <i>"
        assert encode_html(raw) == "&lt;code>line1&#xa;line2&lt;/code> &amp; &lt;b>x&lt;/b>&lt;i>"

    def test_known_entities_are_kept(self):
        assert encode_html("a &amp; b &lt; c &#38; d") == "a &amp; b &lt; c &#38; d"

    def test_line_breaks_outside_code_are_dropped(self):
        assert encode_html("<p>one\r\ntwo\nthree</p>") == "&lt;p>onetwothree&lt;/p>"

    def test_whitespace_between_tags_is_removed(self):
        assert encode_html("<p>a</p>\n   <p>b</p>") == "&lt;p>a&lt;/p>&lt;p>b&lt;/p>"

    def test_gt_and_quotes_are_left_alone(self):
        assert encode_html('<a href="/x">1 > 0</a>') == '&lt;a href="/x">1 > 0&lt;/a>'


def test_encode_html_entities():
    assert encode_html_entities('Tom & "Jerry" <3') == "Tom &amp; &quot;Jerry&quot; &lt;3"
    assert encode_html_entities("") == ""
    assert encode_html_entities(None) is None
