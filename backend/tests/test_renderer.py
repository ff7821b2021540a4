"""
Unit tests for placeholder rendering of request body templates.
"""
import json
import unittest
from voicebench.providers.renderer import escape_json_string, render, render_url


class TestRender(unittest.TestCase):
    """Test cases for render()."""

    def test_string_values_are_json_escaped(self):
        """Test that quotes, backslashes and newlines survive a JSON round trip."""
        text = 'He said "hi"\\ then\nleft\t.'
        rendered = render('{"input": "{text}"}', {"text": text})
        self.assertEqual(json.loads(rendered)["input"], text, "Rendered body should parse back to the original text")

    def test_control_characters_escaped(self):
        """Test that other control characters are written as unicode escapes."""
        self.assertEqual(escape_json_string("a\x01b"), "a\\u0001b")

    def test_numbers_and_booleans_are_literals(self):
        """Test that numbers and booleans are substituted as JSON literals."""
        rendered = render('{"speed": {speed}, "stream": {stream}}', {"speed": 1.5, "stream": True})
        self.assertEqual(json.loads(rendered), {"speed": 1.5, "stream": True})

    def test_quoted_numeric_placeholder_stays_string(self):
        """Test that a quoted placeholder with a numeric value stays a JSON string."""
        rendered = render('{"speed": "{speed}"}', {"speed": 1.0})
        self.assertEqual(json.loads(rendered), {"speed": "1.0"})

    def test_unknown_and_none_left_intact(self):
        """Test that unknown placeholders and None values are not substituted."""
        rendered = render('{"a": "{missing}", "b": "{empty}"}', {"empty": None})
        self.assertEqual(rendered, '{"a": "{missing}", "b": "{empty}"}')

    def test_single_pass(self):
        """Test that substituted values are not rendered again."""
        rendered = render("{a}", {"a": "{b}", "b": "nope"})
        self.assertEqual(rendered, "{b}", "Values containing placeholders should be inserted verbatim")

    def test_deterministic(self):
        """Test that rendering the same input twice gives the same output."""
        template = '{"model": "{model}", "text": "{text}"}'
        variables = {"model": "tts-1", "text": "hello"}
        self.assertEqual(render(template, variables), render(template, variables))

    def test_json_braces_untouched(self):
        """Test that JSON object braces are not mistaken for placeholders."""
        template = '{"voice": {"mode": "id", "id": "{voice}"}}'
        rendered = render(template, {"voice": "v1"})
        self.assertEqual(json.loads(rendered), {"voice": {"mode": "id", "id": "v1"}})

    def test_render_url_percent_encodes(self):
        """Test that URL rendering percent-encodes values."""
        url = render_url("https://api.example.com/tts/{voice}?model={model}", {"voice": "a b/c", "model": "m1"})
        self.assertEqual(url, "https://api.example.com/tts/a%20b%2Fc?model=m1")


if __name__ == "__main__":
    unittest.main()
