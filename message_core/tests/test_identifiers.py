from message_core.resolution.identifiers import (
    ConversationUnderscoreId,
    TimestampDashId,
    conversation_created_at,
    extract_timestamp,
    generate_message_id,
    parse_message_id,
)


def test_parse_dash_and_underscore_ids():
    dash = parse_message_id("1700000000000-k3j4h5")
    assert isinstance(dash, TimestampDashId)
    assert dash.timestamp_ms == 1700000000000

    underscore = parse_message_id("1699999999999_1700000000123_abc")
    assert isinstance(underscore, ConversationUnderscoreId)
    assert underscore.timestamp_ms == 1700000000123


def test_dash_form_takes_precedence():
    assert extract_timestamp("42-x_7_y") == 42


def test_unrecognised_ids():
    assert parse_message_id("abc") is None
    assert parse_message_id("") is None
    assert extract_timestamp(None) is None
    assert extract_timestamp("0-zero") is None


def test_conversation_created_at():
    assert conversation_created_at("1700000000000") == 1700000000000
    assert conversation_created_at("1700000000000_chat") == 1700000000000
    assert conversation_created_at("chat-1") is None


def test_generate_message_id_shape():
    mid = generate_message_id(1234)
    ts, rand = mid.split("-", 1)
    assert ts == "1234"
    assert len(rand) == 13
    assert generate_message_id(1234) != mid
    assert extract_timestamp(generate_message_id()) is not None


def test_zero_dash_prefix_falls_back_to_underscore_form():
    parsed = parse_message_id("0-abc_1700000000123_x")
    assert isinstance(parsed, ConversationUnderscoreId)
    assert extract_timestamp("0-abc_1700000000123_x") == 1700000000123
    assert extract_timestamp("0-abc_0_x") is None
