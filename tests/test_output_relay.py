import io

import pytest

from devlaunch.supervisor.process_utils import MAX_PARTIAL_LINE, OutputRelay


def _lines(sink: io.StringIO) -> list[str]:
    return sink.getvalue().splitlines()


@pytest.mark.parametrize(
    "text, expected",
    [
        ("one\ntwo\nthree\n", ["one", "two", "three"]),
        ("one\r\ntwo\r\n", ["one", "two"]),
        ("\n\none\n\n\ntwo\n\n", ["one", "two"]),
        ("", []),
        ("\r\n\n", []),
    ],
)
def test_every_non_empty_line_is_prefixed(text, expected):
    sink = io.StringIO()
    relay = OutputRelay("server", sink)

    relay.feed(text)
    relay.flush()

    assert _lines(sink) == [f"[server] {line}" for line in expected]


def test_line_split_across_chunks_is_written_once():
    sink = io.StringIO()
    relay = OutputRelay("web", sink)

    relay.feed(b"compiled succ")
    assert sink.getvalue() == ""
    relay.feed(b"essfully\nwatching")
    relay.feed(b" for changes\n")

    assert _lines(sink) == ["[web] compiled successfully", "[web] watching for changes"]


def test_crlf_split_between_chunks():
    sink = io.StringIO()
    relay = OutputRelay("web", sink)

    relay.feed("ready\r")
    relay.feed("\nnext\r\n")

    assert _lines(sink) == ["[web] ready", "[web] next"]


def test_flush_emits_trailing_partial_line():
    sink = io.StringIO()
    relay = OutputRelay("installer", sink)

    relay.feed("done in 1.2s")
    relay.flush()
    relay.flush()

    assert _lines(sink) == ["[installer] done in 1.2s"]


def test_multibyte_character_split_across_chunks():
    sink = io.StringIO()
    relay = OutputRelay("server", sink)
    encoded = "listening ✓\n".encode("utf-8")

    relay.feed(encoded[:-3])
    relay.feed(encoded[-3:])

    assert _lines(sink) == ["[server] listening ✓"]


def test_invalid_bytes_are_replaced():
    sink = io.StringIO()
    relay = OutputRelay("server", sink)

    relay.feed(b"bad \xff byte\n")

    assert _lines(sink) == ["[server] bad � byte"]


def test_closed_sink_does_not_raise():
    sink = io.StringIO()
    sink.close()
    relay = OutputRelay("server", sink)

    relay.feed("lost line\n")
    relay.flush()


def test_progress_output_without_newlines_is_not_held_back():
    sink = io.StringIO()
    relay = OutputRelay("web", sink)
    fed = 0

    for i in range(10_000):
        chunk = f"\rbuilding {i % 100}% " * 10
        fed += len(chunk)
        relay.feed(chunk.encode())

    written = sink.getvalue().split("\n")[:-1]
    assert written
    assert all(line.startswith("[web] \rbuilding") for line in written)
    assert all(len(line) <= len("[web] ") + MAX_PARTIAL_LINE + len(chunk) for line in written)
    held_back = fed - sum(len(line) - len("[web] ") for line in written)
    assert held_back <= MAX_PARTIAL_LINE
