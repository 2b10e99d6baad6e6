"""
Tests for tolerant JSON extraction from model replies.
"""

import unittest

from analysis.models import CharacterAnalysis
from analysis.response_parser import (
    coerce_entities,
    extract_json_object,
    normalize_takeaways,
    parse_json_response,
)


class TestExtractJson(unittest.TestCase):

    def test_code_fence(self):
        text = 'Here you go:\n```json\n{"characters": [{"name": "Mara"}]}\n```\nHope that helps.'
        self.assertEqual(extract_json_object(text), '{"characters": [{"name": "Mara"}]}')

    def test_braces_inside_strings(self):
        text = 'x {"description": "a } inside", "n": {"k": 1}} trailing }'
        self.assertEqual(extract_json_object(text), '{"description": "a } inside", "n": {"k": 1}}')

    def test_escaped_quotes(self):
        text = '{"quote": "she said \\"go}\\" softly"}'
        self.assertEqual(extract_json_object(text), text)

    def test_no_braces(self):
        self.assertIsNone(extract_json_object("no json here"))
        self.assertIsNone(extract_json_object(""))

    def test_unbalanced_falls_back_to_outer_span(self):
        text = 'start { "a": 1 } } end {'
        self.assertEqual(extract_json_object(text), '{ "a": 1 }')


class TestParseJsonResponse(unittest.TestCase):

    def test_object_decoded(self):
        data = parse_json_response('Sure! {"takeaways": ["a", "b"]}', {"takeaways": []})
        self.assertEqual(data, {"takeaways": ["a", "b"]})

    def test_garbage_returns_default(self):
        default = {"characters": []}
        self.assertIs(parse_json_response("I could not find any characters.", default), default)

    def test_invalid_json_returns_default(self):
        default = {"x": 1}
        self.assertIs(parse_json_response("{not: valid, json}", default), default)


class TestNormalizeTakeaways(unittest.TestCase):

    def test_strings_kept(self):
        self.assertEqual(normalize_takeaways(["Open late", "  ", "Cut the prologue"]), ["Open late", "Cut the prologue"])

    def test_repeats_dropped(self):
        self.assertEqual(normalize_takeaways(["Open late", " Open late ", {"text": "Open late"}, "End early"]),
                         ["Open late", "End early"])

    def test_title_and_content(self):
        items = [{"title": "Pacing", "content": "Alternate tension and release"}]
        self.assertEqual(normalize_takeaways(items), ["Pacing: Alternate tension and release"])

    def test_first_text_field(self):
        self.assertEqual(normalize_takeaways([{"description": "Show, don't tell"}]), ["Show, don't tell"])

    def test_values_joined(self):
        self.assertEqual(normalize_takeaways([{"a": "one", "b": 2}]), ["one 2"])

    def test_non_list(self):
        self.assertEqual(normalize_takeaways(None), [])
        self.assertEqual(normalize_takeaways({"a": 1}), [])
        self.assertEqual(normalize_takeaways("single"), ["single"])


class TestCoerceEntities(unittest.TestCase):

    def test_malformed_entries_dropped(self):
        items = [{"name": "Mara", "role": "protagonist"}, {"role": "antagonist"}, "junk", {"name": "Ilse"}]
        characters = coerce_entities(items, CharacterAnalysis.from_dict)
        self.assertEqual([c.name for c in characters], ["Mara", "Ilse"])

    def test_non_list(self):
        self.assertEqual(coerce_entities({"name": "x"}, CharacterAnalysis.from_dict), [])


if __name__ == '__main__':
    unittest.main()
