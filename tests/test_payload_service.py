import pytest
from pydantic import ValidationError

from chat_relay.services.payload_service import (
    ERROR_EMPTY_PAYLOAD,
    ERROR_MISSING_MESSAGE,
    ERROR_MISSING_TEXT,
    ERROR_MISSING_VISITOR,
    REASON_EMPTY,
    REASON_NOT_VISITOR,
    REASON_SYSTEM,
    PayloadNormalizer,
)


@pytest.fixture
def normalizer():
    return PayloadNormalizer()


def _payload(**message):
    return {
        "message": {"text": "¿Cuáles son los juegos más populares?", **message},
        "visitor": {"id": "v1", "name": "Ana"},
        "chatId": "c1",
    }


class TestValidate:
    def test_valid_payload(self, normalizer):
        assert normalizer.validate(_payload()).valid is True

    @pytest.mark.parametrize(
        "payload,error",
        [
            ({}, ERROR_EMPTY_PAYLOAD),
            (None, ERROR_EMPTY_PAYLOAD),
            ({"visitor": {"id": "v1"}}, ERROR_MISSING_MESSAGE),
            ({"message": {"id": "m1"}, "visitor": {"id": "v1"}}, ERROR_MISSING_TEXT),
            ({"message": {"text": "Hola"}}, ERROR_MISSING_VISITOR),
        ],
    )
    def test_each_missing_field_has_its_own_reason(self, normalizer, payload, error):
        result = normalizer.validate(payload)
        assert result.valid is False
        assert result.error == error

    def test_missing_visitor_reports_field(self, normalizer):
        result = normalizer.validate({"message": {"text": "Hola"}})
        assert result.field == "visitor"


class TestShouldProcess:
    def test_untagged_message_counts_as_visitor(self, normalizer):
        assert normalizer.should_process(_payload()).process is True

    def test_visitor_tag_processed(self, normalizer):
        assert normalizer.should_process(_payload(type="visitor")).process is True
        assert normalizer.should_process(_payload(sender="Visitor")).process is True

    @pytest.mark.parametrize(
        "tag",
        [{"sender": "agent"}, {"sender": "system"}, {"sender": {"type": "agent"}}, {"type": "msg", "sender": "agent"}],
    )
    def test_other_senders_are_not_processed(self, normalizer, tag):
        decision = normalizer.should_process(_payload(**tag))
        assert decision.process is False
        assert decision.reason == REASON_NOT_VISITOR

    def test_visitor_type_wins_over_other_sender(self, normalizer):
        assert normalizer.should_process(_payload(type="visitor", sender="agent")).process is True

    @pytest.mark.parametrize("tag", [{"type": "msg"}, {"type": "agent"}, {"sender": ""}, {"sender": {}}])
    def test_no_sender_counts_as_visitor_whatever_the_type(self, normalizer, tag):
        assert normalizer.should_process(_payload(**tag)).process is True

    def test_sender_object_with_visitor_type(self, normalizer):
        payload = _payload(type="msg", sender={"type": "visitor", "name": "Ana"})

        assert normalizer.validate(payload).valid is True
        assert normalizer.should_process(payload).process is True

    def test_whitespace_text_rejected(self, normalizer):
        decision = normalizer.should_process(_payload(text="   \n"))
        assert decision.reason == REASON_EMPTY

    def test_system_marker_rejected(self, normalizer):
        decision = normalizer.should_process(_payload(text="[Sistema] El agente se unió al chat"))
        assert decision.reason == REASON_SYSTEM

    def test_custom_marker(self):
        normalizer = PayloadNormalizer(system_marker="#sys")
        assert normalizer.should_process(_payload(text="#sys ping")).process is False
        assert normalizer.should_process(_payload(text="[Sistema] hola")).process is True


class TestExtract:
    def test_full_payload(self, normalizer):
        payload = _payload(id=42)
        payload["visitor"]["email"] = "ana@example.com"
        payload["time"] = "2024-05-01T10:00:00Z"
        payload["property"] = {"id": "prop-1"}

        message = normalizer.extract(payload)

        assert message.text == "¿Cuáles son los juegos más populares?"
        assert message.message_id == "42"
        assert message.visitor_id == "v1"
        assert message.visitor_name == "Ana"
        assert message.visitor_email == "ana@example.com"
        assert message.conversation_id == "c1"
        assert message.property_id == "prop-1"
        assert message.received_at == "2024-05-01T10:00:00Z"

    def test_optional_fields_default(self, normalizer):
        message = normalizer.extract({"message": {"text": "Hola"}, "visitor": {}})
        assert message.visitor_name == "Visitante"
        assert message.visitor_email is None
        assert message.message_id is None
        assert message.conversation_id is None
        assert message.received_at

    def test_record_is_immutable(self, normalizer):
        message = normalizer.extract(_payload())
        with pytest.raises(ValidationError):
            message.text = "otro"

    def test_wrong_types_on_optional_fields_count_as_missing(self, normalizer):
        payload = {
            "message": {"text": "Hola", "id": {"nested": True}, "sender": 7},
            "visitor": {"id": "v1", "name": 12345, "email": ["ana@example.com"]},
            "chatId": "c1",
            "property": "prop-1",
        }

        assert normalizer.validate(payload).valid is True
        message = normalizer.extract(payload)

        assert message.visitor_name == "Visitante"
        assert message.visitor_email is None
        assert message.message_id is None
        assert message.property_id is None
        assert message.conversation_id == "c1"
