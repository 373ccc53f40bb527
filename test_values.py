from __future__ import annotations

import unittest

from multiformats import CID

from ipti.constants import EMPTY_DB_ROOT
from ipti.errors import DuplicateFieldError, FieldCountError, UnsupportedValueError
from ipti.records import build_record, record_from_row
from ipti.values import Decoded, Fallback, infer_value, typed_value, value_as_string


class InferValueTests(unittest.TestCase):
    def test_structured_cells_decode(self):
        self.assertEqual(infer_value("42"), Decoded(42))
        self.assertEqual(infer_value("-7"), Decoded(-7))
        self.assertEqual(infer_value("1.5"), Decoded(1.5))
        self.assertEqual(infer_value("true"), Decoded(True))
        self.assertEqual(infer_value("null"), Decoded(None))
        self.assertEqual(infer_value('"hi"'), Decoded("hi"))
        self.assertEqual(infer_value('{"a":1}'), Decoded({"a": 1}))
        self.assertEqual(infer_value("[1, 2]"), Decoded([1, 2]))

    def test_plain_text_falls_back(self):
        for text in ["hello", "3abc", "", "1 2", "{", "NaN", "Infinity", "'quoted'"]:
            with self.subTest(text=text):
                self.assertEqual(infer_value(text), Fallback(text))

    def test_unstorable_json_falls_back(self):
        cells = [
            "1e400",
            "-1e400",
            "[1e400]",
            '"\\ud800"',
            '["ok", "\\udfff"]',
            '{"\\ud800": 1}',
        ]
        for text in cells:
            with self.subTest(text=text):
                self.assertEqual(infer_value(text), Fallback(text))
        self.assertEqual(infer_value("1e300"), Decoded(1e300))
        self.assertEqual(infer_value('"\\ud83d\\ude00"'), Decoded("\U0001F600"))

    def test_repeated_map_key_is_text(self):
        for text in ['{"a":1,"a":2}', '{"o":{"k":1,"k":1}}']:
            with self.subTest(text=text):
                self.assertEqual(infer_value(text), Fallback(text))
        self.assertEqual(infer_value('{"a":1,"b":2}'), Decoded({"a": 1, "b": 2}))

    def test_integer_outside_64_bits_is_text(self):
        self.assertEqual(infer_value("9223372036854775807"), Decoded(9223372036854775807))
        self.assertEqual(infer_value("9223372036854775808"), Fallback("9223372036854775808"))

    def test_dag_json_links_and_bytes(self):
        link = typed_value('{"/": "%s"}' % EMPTY_DB_ROOT)
        self.assertIsInstance(link, CID)
        self.assertEqual(str(link), EMPTY_DB_ROOT)
        self.assertEqual(typed_value('{"/": {"bytes": "aGVsbG8"}}'), b"hello")
        # a malformed link is just text
        self.assertEqual(typed_value('{"/": "not-a-cid"}'), '{"/": "not-a-cid"}')

    def test_typed_value_unwraps(self):
        self.assertEqual(typed_value("42"), 42)
        self.assertEqual(typed_value("hello"), "hello")


class ValueAsStringTests(unittest.TestCase):
    def test_strings_and_ints(self):
        self.assertEqual(value_as_string("Ada"), "Ada")
        self.assertEqual(value_as_string(37), "37")
        self.assertEqual(value_as_string(-5), "-5")

    def test_other_kinds_rejected(self):
        for value in [True, 1.5, None, [1], {"a": 1}, b"x"]:
            with self.subTest(value=value):
                with self.assertRaises(UnsupportedValueError):
                    value_as_string(value)


class BuildRecordTests(unittest.TestCase):
    def test_index_first_then_headers(self):
        record = build_record(["name", "age"], ["Ada", 37], index=0)
        self.assertEqual(list(record), ["index", "name", "age"])
        self.assertEqual(record, {"index": 0, "name": "Ada", "age": 37})

    def test_without_index(self):
        record = build_record(["name", "age"], ["Ada", 37])
        self.assertEqual(list(record), ["name", "age"])

    def test_short_row_leaves_keys_out(self):
        record = build_record(["a", "b", "c"], ["x"])
        self.assertEqual(record, {"a": "x"})

    def test_long_row_rejected(self):
        with self.assertRaises(FieldCountError):
            build_record(["a"], ["x", "y"])

    def test_duplicate_header_rejected(self):
        with self.assertRaises(DuplicateFieldError):
            build_record(["a", "a"], ["x", "y"])
        with self.assertRaises(DuplicateFieldError):
            build_record(["index"], ["x"], index=0)

    def test_record_from_row_types_cells(self):
        record = record_from_row(["n", "s", "o"], ["42", "hello", '{"k":[1]}'], index=3)
        self.assertEqual(record, {"index": 3, "n": 42, "s": "hello", "o": {"k": [1]}})


if __name__ == "__main__":
    unittest.main()
