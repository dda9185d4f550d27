from __future__ import annotations

from fieldsight_agent.delivery.webhook.response import extract_reference_id, extract_result_message


def test_reference_prefers_direct_fields_in_order() -> None:
    body = {"id": "10001", "key": "FS-77", "ticketId": " T-1 "}
    assert extract_reference_id(body) == "T-1"
    assert extract_reference_id({"id": "10001", "key": "FS-77"}) == "10001"
    assert extract_reference_id({"key": "FS-77", "self": "https://x"}) == "FS-77"


def test_reference_falls_back_to_nested_paths() -> None:
    assert extract_reference_id({"result": {"sys_id": "abc", "number": "INC001"}}) == "INC001"
    assert extract_reference_id({"result": {"id": "r-1"}}) == "r-1"
    assert extract_reference_id({"data": {"id": "d-1"}}) == "d-1"


def test_reference_ignores_blank_and_non_string_values() -> None:
    assert extract_reference_id({"id": 42, "key": "  "}) is None
    assert extract_reference_id({"result": ["x"]}) is None
    assert extract_reference_id(None) is None


def test_result_message_order() -> None:
    assert extract_result_message({"message": "m", "resultMessage": "r"}) == "r"
    assert extract_result_message({"statusMessage": "s"}) == "s"
    assert extract_result_message({"result": {"status_message": "queued"}}) == "queued"
    assert extract_result_message({"error": {"message": "partial"}}) == "partial"
    assert extract_result_message({}) is None
