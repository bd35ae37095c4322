"""Tests for SSE frame assembly across arbitrary chunk boundaries."""

from __future__ import annotations

from cfo_agent.mcp.framing import SSEFrame, SSEFrameAssembler


class TestFrameAssembler:
    def test_single_frame(self):
        frames = SSEFrameAssembler().feed("event: endpoint\ndata: /messages?session_id=1\n\n")
        assert frames == [SSEFrame("endpoint", "/messages?session_id=1")]

    def test_frame_split_across_chunks(self):
        asm = SSEFrameAssembler()
        assert asm.feed("event: mess") == []
        assert asm.feed('age\ndata: {"id"') == []
        assert asm.pending.endswith('{"id"')
        assert asm.feed(": 1}\n\n") == [SSEFrame("message", '{"id": 1}')]
        assert asm.pending == ""

    def test_crlf_split_between_chunks(self):
        asm = SSEFrameAssembler()
        assert asm.feed("data: a\r") == []
        assert asm.feed("\n\r\n") == [SSEFrame("message", "a")]

    def test_multiline_data_joined(self):
        frames = SSEFrameAssembler().feed("data: line1\ndata: line2\n\n")
        assert frames[0].data == "line1\nline2"

    def test_comments_and_empty_frames_dropped(self):
        asm = SSEFrameAssembler()
        assert asm.feed(": keep-alive\n\n") == []
        assert asm.feed("event: ping\n\n") == []

    def test_several_frames_in_one_chunk(self):
        chunk = "data: one\n\nevent: message\ndata: two\n\ndata: thr"
        asm = SSEFrameAssembler()
        assert [f.data for f in asm.feed(chunk)] == ["one", "two"]
        assert [f.data for f in asm.feed("ee\n\n")] == ["three"]

    def test_value_without_leading_space(self):
        frames = SSEFrameAssembler().feed("event:endpoint\ndata:/rpc\n\n")
        assert frames == [SSEFrame("endpoint", "/rpc")]
