"""Tests for response normalization."""

import json

import pytest

from hookchat.services.normalizer import (
    normalize,
    decode_body,
    classify,
    render,
    EmptyPayload,
    TextPayload,
    ListPayload,
    ObjectPayload,
    ScalarPayload,
    NO_CONTENT,
    NO_DATA,
    UNRECOGNIZED,
    FORMAT_ERROR,
)


class TestNormalize:
    """SUT: normalize"""

    def test_none(self):
        assert normalize(None) == NO_CONTENT == "no content received"

    def test_string_returned_as_is(self):
        assert normalize("hi") == "hi"

    def test_empty_string_returned_as_is(self):
        assert normalize("") == ""

    def test_list_with_output(self):
        assert normalize([{"output": "x"}]) == "x"

    def test_empty_list(self):
        assert normalize([]) == NO_DATA == "no data returned"

    def test_object_without_candidate_is_pretty_json(self):
        assert normalize({"foo": "bar"}) == json.dumps({"foo": "bar"}, indent=2)

    def test_object_response_field(self):
        assert normalize({"response": "12,345 sessions"}) == "12,345 sessions"

    def test_candidate_order(self):
        """output wins over every other candidate field."""
        value = {"text": "from text", "message": "from message", "output": "from output"}
        assert normalize(value) == "from output"

    def test_later_candidates(self):
        assert normalize({"content": "c", "text": "t"}) == "c"
        assert normalize({"result": "r"}) == "r"

    def test_empty_and_null_candidates_skipped(self):
        assert normalize({"output": "", "response": None, "text": "t"}) == "t"

    def test_structured_candidate_is_pretty_json(self):
        value = {"output": {"rows": [1, 2]}}
        assert normalize(value) == json.dumps({"rows": [1, 2]}, indent=2)

    def test_numeric_candidate(self):
        assert normalize({"result": 42}) == "42"

    def test_list_first_element_candidate_only(self):
        """Only the first element is inspected for a candidate field."""
        assert normalize([{"output": "first"}, {"output": "second"}]) == "first"

    def test_list_without_candidates_is_joined(self):
        value = ["line one", {"a": 1}, [1, 2], 3, True, None]
        assert normalize(value) == 'line one\n{"a": 1}\n[1, 2]\n3\ntrue\nnull'

    def test_list_of_strings(self):
        assert normalize(["a", "b"]) == "a\nb"

    def test_scalar_is_unrecognized(self):
        assert normalize(42) == UNRECOGNIZED
        assert normalize(True) == UNRECOGNIZED

    def test_unserializable_value_degrades(self):
        assert normalize({"foo": object()}) == FORMAT_ERROR

    def test_non_ascii_kept(self):
        assert normalize({"data": "café"}) == '{\n  "data": "café"\n}'

    def test_deterministic(self):
        value = [{"a": 1}, "b"]
        assert normalize(value) == normalize(value)

    def test_accepts_classified_payload(self):
        assert normalize(TextPayload("hello")) == "hello"
        assert normalize(EmptyPayload()) == NO_CONTENT


class TestClassify:
    """SUT: classify"""

    @pytest.mark.parametrize("value, expected", [
        (None, EmptyPayload),
        ("x", TextPayload),
        ([1], ListPayload),
        ((1, 2), ListPayload),
        ({"a": 1}, ObjectPayload),
        (3.5, ScalarPayload),
    ])
    def test_variants(self, value, expected):
        assert isinstance(classify(value), expected)


class TestDecodeBody:
    """SUT: decode_body"""

    def test_empty_body(self):
        assert decode_body("") == EmptyPayload()
        assert decode_body("   ") == EmptyPayload()
        assert decode_body(None) == EmptyPayload()

    def test_json_object(self):
        assert decode_body('{"output": "x"}') == ObjectPayload({"output": "x"})

    def test_json_null(self):
        assert decode_body("null") == EmptyPayload()

    def test_json_string(self):
        assert decode_body('"quoted"') == TextPayload("quoted")

    def test_plain_text_kept(self):
        assert decode_body("Workflow finished.") == TextPayload("Workflow finished.")


class TestRender:
    """SUT: render"""

    def test_unknown_variant_raises(self):
        with pytest.raises(TypeError):
            render(object())
