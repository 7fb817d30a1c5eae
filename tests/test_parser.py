import pytest

from spawnkit.parser import format_tool_call, parse_int_param, parse_tool_calls, tokenize


def test_single_note_call():
    text = (
        "<sktool><generate_system_note><message>X</message>"
        "<expirationDays>3</expirationDays></generate_system_note></sktool>"
    )
    calls = parse_tool_calls(text)
    assert len(calls) == 1
    assert calls[0].tool_id == "generate_system_note"
    assert calls[0].params == {"message": "X", "expirationDays": 3}
    assert calls[0].raw_source == text


def test_empty_input():
    assert parse_tool_calls("") == []
    assert parse_tool_calls(None) == []
    assert parse_tool_calls("no tools here, just prose") == []


def test_envelopes_keep_source_order():
    text = (
        "First <sktool><generate_system_thought><message>one</message></generate_system_thought></sktool>"
        " then <sktool><generate_system_note><message>two</message></generate_system_note></sktool>"
        " and <sktool><generate_turn_prompt_enhancement><message>three</message>"
        "</generate_turn_prompt_enhancement></sktool>"
    )
    calls = parse_tool_calls(text)
    assert [c.tool_id for c in calls] == [
        "generate_system_thought",
        "generate_system_note",
        "generate_turn_prompt_enhancement",
    ]
    assert [c.params["message"] for c in calls] == ["one", "two", "three"]


@pytest.mark.parametrize(
    "text",
    [
        "<sktool>hello</sktool>",
        "<sktool></sktool>",
        "<sktool></generate_system_note></sktool>",
    ],
)
def test_envelope_without_tool_name_is_skipped(text, caplog):
    with caplog.at_level("WARNING"):
        assert parse_tool_calls(text) == []
    assert "without tool name" in caplog.text


def test_bad_envelope_does_not_hide_neighbours():
    text = (
        "<sktool>nothing</sktool>"
        "<sktool><generate_system_thought><message>kept</message></generate_system_thought></sktool>"
    )
    calls = parse_tool_calls(text)
    assert len(calls) == 1
    assert calls[0].params == {"message": "kept"}


def test_unterminated_envelope_is_dropped():
    text = (
        "<sktool><generate_system_thought><message>a</message></generate_system_thought></sktool>"
        "<sktool><generate_system_note><message>never closed</message>"
    )
    calls = parse_tool_calls(text)
    assert [c.tool_id for c in calls] == ["generate_system_thought"]


def test_envelope_is_not_greedy():
    text = "<sktool><a><message>1</message></a></sktool>text<sktool><b><message>2</message></b></sktool>"
    calls = parse_tool_calls(text)
    assert [(c.tool_id, c.params["message"]) for c in calls] == [("a", "1"), ("b", "2")]


def test_nested_envelope_is_text():
    text = "<sktool><a><sktool><message>x</message></a></sktool>"
    calls = parse_tool_calls(text)
    assert len(calls) == 1
    assert calls[0].tool_id == "a"
    assert calls[0].params == {"message": "x"}


def test_duplicate_parameter_last_wins_first_position():
    text = (
        "<sktool><generate_system_note><message>a</message><expirationDays>2</expirationDays>"
        "<message>b</message></generate_system_note></sktool>"
    )
    params = parse_tool_calls(text)[0].params
    assert params == {"message": "b", "expirationDays": 2}
    assert list(params) == ["message", "expirationDays"]


def test_unknown_parameters_ignored_and_values_trimmed():
    text = (
        "<sktool><web_search><query>  ai market  </query><color>red</color>"
        "<url>https://example.com</url></web_search></sktool>"
    )
    params = parse_tool_calls(text)[0].params
    assert params == {"query": "ai market", "url": "https://example.com"}


def test_unclosed_parameter_ignored():
    text = "<sktool><generate_system_thought><message>oops</generate_system_thought></sktool>"
    calls = parse_tool_calls(text)
    assert calls[0].tool_id == "generate_system_thought"
    assert calls[0].params == {}


def test_multiline_message():
    text = "<sktool><generate_system_thought><message>line one\nline two\n</message></generate_system_thought></sktool>"
    assert parse_tool_calls(text)[0].params["message"] == "line one\nline two"


@pytest.mark.parametrize(
    "raw,expected",
    [("3", 3), ("30", 14), ("0", 1), ("-3", 1), ("abc", 7), ("", 7), ("5 days", 5), (" 9", 9)],
)
def test_expiration_days_scan_and_clamp(raw, expected):
    assert parse_int_param("expirationDays", raw) == expected
    text = (
        f"<sktool><generate_system_note><message>m</message><expirationDays>{raw}</expirationDays>"
        "</generate_system_note></sktool>"
    )
    assert parse_tool_calls(text)[0].params["expirationDays"] == expected


def test_raw_source_round_trip():
    envelope = (
        "<sktool><generate_system_note>\n  <message> spaced </message>\n"
        "</generate_system_note></sktool>"
    )
    text = f"Some prose before.\n{envelope}\nAnd after."
    call = parse_tool_calls(text)[0]
    assert call.to_markup() == envelope
    again = parse_tool_calls(call.to_markup())
    assert again[0].tool_id == call.tool_id
    assert again[0].params == call.params
    assert again[0].raw_source == call.raw_source


def test_format_tool_call_parses_back():
    markup = format_tool_call("generate_system_note", {"message": "hi", "expirationDays": 4})
    call = parse_tool_calls(markup)[0]
    assert call.tool_id == "generate_system_note"
    assert call.params == {"message": "hi", "expirationDays": 4}
    assert call.raw_source == markup


@pytest.mark.parametrize(
    "text",
    [
        "<<<>>>",
        "</sktool><sktool>",
        "<sktool><",
        "<sktool><a></a></sktool></sktool></sktool>",
        "<sktool><a><message></message></a></sktool>",
        "\x00<sktool>\x00<a>\x00</sktool>",
        "<" * 1000,
    ],
)
def test_parser_never_raises(text):
    assert isinstance(parse_tool_calls(text), list)


def test_tokenize_reports_positions():
    tokens = list(tokenize("x<a>y</a>"))
    assert [(t.kind.value, t.name, t.start, t.end) for t in tokens] == [
        ("open", "a", 1, 4),
        ("close", "a", 5, 9),
    ]
