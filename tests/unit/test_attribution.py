"""
Unit tests for ttclid extraction, the attribution cascade and utm capture.
"""

import json

import pytest

from schemas.payments import TtclidSource, UtmCaptureRequest
from services.attribution import (
    NO_MATCH,
    VIA_QUERY_STRING,
    VIA_STRUCTURED,
    extract_ttclid,
    percent_decode,
    resolve_ttclid,
)
from services.errors import MissingFieldsError

pytestmark = pytest.mark.unit


class TestExtractTtclid:
    """Tests for the shared structured-then-query-string helper"""

    def test_query_string_is_percent_decoded(self):
        result = extract_ttclid("ttclid=abc%20def&x=1")
        assert result.matched is True
        assert result.value == "abc def"
        assert result.via == VIA_QUERY_STRING

    def test_prefixed_parameter_name_does_not_match(self):
        assert extract_ttclid("notttclid=x") == NO_MATCH

    def test_parameter_after_other_params(self):
        result = extract_ttclid("utm_source=tiktok&ttclid=E.C.P.123&utm_medium=cpc")
        assert result.value == "E.C.P.123"

    def test_full_url_query(self):
        result = extract_ttclid("https://shop.example/pagamento/?ttclid=abc123")
        assert result.value == "abc123"

    @pytest.mark.parametrize("blob", ["https://x.example/p#ttclid=abc", "a=1;ttclid=abc"])
    def test_fragment_and_semicolon_separators(self, blob):
        assert extract_ttclid(blob).value == "abc"

    def test_json_text_is_structured(self):
        result = extract_ttclid(json.dumps({"ttclid": "from-json", "utm_source": "tiktok"}))
        assert result.matched is True
        assert result.value == "from-json"
        assert result.via == VIA_STRUCTURED

    def test_dict_is_structured(self):
        result = extract_ttclid({"ttclid": "from-dict"})
        assert result.value == "from-dict"
        assert result.via == VIA_STRUCTURED

    def test_json_without_ttclid_is_no_match(self):
        assert extract_ttclid(json.dumps({"utm_source": "tiktok"})) == NO_MATCH

    def test_structured_disabled_ignores_json(self):
        assert extract_ttclid(json.dumps({"ttclid": "abc"}), allow_structured=False) == NO_MATCH

    def test_structured_disabled_still_reads_query_string(self):
        result = extract_ttclid("ttclid=abc", allow_structured=False)
        assert result.value == "abc"

    @pytest.mark.parametrize("blob", ["ttclid=%E0%A4%A", "ttclid=%zz", "ttclid=%ff"])
    def test_malformed_percent_encoding_is_no_match(self, blob):
        assert extract_ttclid(blob) == NO_MATCH

    @pytest.mark.parametrize("blob", [None, "", {}, 42, ["ttclid=abc"]])
    def test_empty_or_unsupported_blobs(self, blob):
        assert extract_ttclid(blob) == NO_MATCH

    def test_percent_decode_plus_is_literal(self):
        assert percent_decode("a+b") == "a+b"


class TestResolveTtclid:
    """Tests for the six-step attribution cascade"""

    def test_direct_beats_metadata(self):
        payload = {"ttclid": "direct", "metadata": {"utmQuery": "ttclid=meta"}}
        result = resolve_ttclid("tx-1", payload)
        assert result.ttclid == "direct"
        assert result.source == TtclidSource.PAYLOAD_DIRECT

    def test_stored_query_beats_everything(self):
        payload = {"ttclid": "direct", "utmQuery": "ttclid=utm"}
        result = resolve_ttclid(
            "tx-1", payload, stored_query="ttclid=stored", existing_record={"ttclid": "old"}
        )
        assert result.ttclid == "stored"
        assert result.source == TtclidSource.STORED_QUERY

    def test_payload_utm_query(self):
        result = resolve_ttclid("tx-1", {"utmQuery": {"ttclid": "utm-obj"}})
        assert result.ttclid == "utm-obj"
        assert result.source == TtclidSource.PAYLOAD_UTM_QUERY

    def test_payload_metadata_utm_query(self):
        result = resolve_ttclid("tx-1", {"metadata": {"utmQuery": "a=1&ttclid=meta"}})
        assert result.ttclid == "meta"
        assert result.source == TtclidSource.PAYLOAD_METADATA_UTM

    def test_payload_utm_string(self):
        result = resolve_ttclid("tx-1", {"utm": "utm_source=tiktok&ttclid=railway"})
        assert result.ttclid == "railway"
        assert result.source == TtclidSource.PAYLOAD_UTM_STRING

    def test_payload_utm_object_is_ignored(self):
        result = resolve_ttclid("tx-1", {"utm": {"ttclid": "nope"}})
        assert result.ttclid is None
        assert result.source is None

    def test_existing_record_is_last_resort(self):
        result = resolve_ttclid("tx-1", {"status": "paid"}, existing_record={"ttclid": "kept"})
        assert result.ttclid == "kept"
        assert result.source == TtclidSource.EXISTING_RECORD

    def test_malformed_source_falls_through_to_next(self):
        payload = {"utmQuery": "ttclid=%zz", "metadata": {"utmQuery": "ttclid=good"}}
        result = resolve_ttclid("tx-1", payload)
        assert result.ttclid == "good"
        assert result.source == TtclidSource.PAYLOAD_METADATA_UTM

    def test_nothing_found(self):
        result = resolve_ttclid("tx-1", {"status": "pending"})
        assert result.ttclid is None
        assert result.source is None
        assert result.found is False

    def test_numeric_direct_ttclid_is_stringified(self):
        result = resolve_ttclid("tx-1", {"ttclid": 12345})
        assert result.ttclid == "12345"


class TestAttributionCapture:
    """Tests for storing utm queries before payment"""

    async def test_capture_stores_query_in_reference_timezone(self, attribution_capture, utm_store):
        request = UtmCaptureRequest(transactionId="tx-9", utmQuery="ttclid=abc")
        response = await attribution_capture.capture(request)

        assert response.success is True
        assert response.transactionId == "tx-9"
        stored = await utm_store.get("tx-9")
        assert stored == {"utm_query": "ttclid=abc", "saved_at": "2026-01-15T12:00:00-03:00"}

    async def test_capture_emits_initiate_checkout(self, attribution_capture, event_sink):
        request = UtmCaptureRequest(
            transactionId="tx-9", utmQuery={"ttclid": "abc"}, amount="19.90", pagePath="/upsell3/pagamento/"
        )
        await attribution_capture.capture(request)

        assert len(event_sink.events) == 1
        event = event_sink.events[0]
        assert event.event == "InitiateCheckout"
        assert event.value == pytest.approx(19.90)
        assert event.properties == {"ttclid": "abc"}
        assert event.contents[0].content_id == "tiktokpay_upsell3"

    @pytest.mark.parametrize(
        "body",
        [{"transactionId": "tx-1"}, {"utmQuery": "ttclid=abc"}, {"transactionId": "", "utmQuery": "x"}],
    )
    async def test_capture_requires_both_fields(self, attribution_capture, utm_store, body):
        with pytest.raises(MissingFieldsError):
            await attribution_capture.capture(UtmCaptureRequest.model_validate(body))
        assert await utm_store.get_all() == {}
