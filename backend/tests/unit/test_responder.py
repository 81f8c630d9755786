"""
响应器单元测试
"""

import asyncio

from leonardo.chat import MemoryChannel, Responder
from leonardo.chat.responder import (
    FAILURE_TEXTS,
    FALLBACK_FAILURE_TEXT,
    HELP_TEXT,
    HINT_TEXT,
)
from leonardo.interfaces import (
    FetchError,
    FetchErrorKind,
    StoreError,
    StoreErrorKind,
    TraceError,
    TraceErrorKind,
)
from leonardo.models import StoreReference, Submission, SubmissionStage, TracedArtifact

from conftest import image_event

COMMIT = "0123456789abcdef0123456789abcdef01234567"


def _stored_submission() -> Submission:
    submission = Submission.from_event(image_event(chat_id=100, message_id=7))
    for stage in (SubmissionStage.FETCHING, SubmissionStage.TRACING, SubmissionStage.STORING):
        submission.advance(stage)
    submission.mark_stored(StoreReference(commit_id=COMMIT, path="artifacts/100-7.svg"))
    submission.advance(SubmissionStage.RESPONDING)
    return submission


def _failed_submission(error) -> Submission:
    submission = Submission.from_event(image_event(chat_id=100, message_id=7))
    submission.advance(SubmissionStage.FETCHING)
    submission.mark_failed(error)
    return submission


class TestBuildReply:
    """回复构造测试"""

    def test_success_reply(self):
        responder = Responder(MemoryChannel())
        artifact = TracedArtifact.from_svg("100-7", "<svg/>")

        reply = responder.build_reply(_stored_submission(), artifact)

        assert reply.chat_id == 100
        assert reply.reply_to_message_id == 7
        assert reply.text == "Done with conversion. Your SVG is saved as artifacts/100-7.svg @ 0123456."
        assert reply.artifact_link == "artifacts/100-7.svg @ 0123456"
        assert reply.document.file_name == "100-7.svg"
        assert reply.document.content == b"<svg/>"

    def test_success_with_link_template(self):
        responder = Responder(
            MemoryChannel(),
            link_template="https://git.test/gallery/blob/{short}/{path}",
            attach_artifact=False,
        )

        reply = responder.build_reply(_stored_submission(), TracedArtifact.from_svg("100-7", "<svg/>"))

        assert reply.artifact_link == "https://git.test/gallery/blob/0123456/artifacts/100-7.svg"
        assert reply.document is None

    def test_failure_reply_hides_detail(self):
        responder = Responder(MemoryChannel())
        submission = _failed_submission(
            StoreError(StoreErrorKind.COMMIT_ERROR, "fatal: /srv/repo/.git/index.lock exists")
        )

        reply = responder.build_reply(submission)

        assert reply.text == FAILURE_TEXTS["store.commit_error"]
        assert "index.lock" not in reply.text
        assert reply.artifact_link is None
        assert reply.document is None

    def test_too_large_mentions_limit(self):
        responder = Responder(MemoryChannel(), max_image_bytes=5 * 1024 * 1024)
        submission = _failed_submission(FetchError(FetchErrorKind.TOO_LARGE, "6000000 > 5242880"))

        assert "5.0 MB" in responder.failure_text(submission)

    def test_every_kind_has_text(self):
        for kind in TraceErrorKind:
            submission = _failed_submission(TraceError(kind))
            assert Responder(MemoryChannel()).failure_text(submission) != FALLBACK_FAILURE_TEXT


class TestSend:
    """发送测试"""

    def test_respond_sends_once(self):
        channel = MemoryChannel()
        sent = asyncio.run(Responder(channel).respond(_stored_submission()))

        assert sent
        assert len(channel.sent) == 1

    def test_send_failure_logged(self, caplog):
        channel = MemoryChannel()
        channel.fail_sends = True

        sent = asyncio.run(Responder(channel).respond(_stored_submission()))

        assert not sent
        assert "100-7" in caplog.text

    def test_send_timeout(self):
        class SlowChannel(MemoryChannel):
            async def send(self, reply):
                await asyncio.sleep(1)

        sent = asyncio.run(Responder(SlowChannel(), send_timeout=0.05).send_help(1))
        assert not sent

    def test_help_and_hint(self):
        channel = MemoryChannel()
        responder = Responder(channel)

        async def run():
            await responder.send_help(1, reply_to=5)
            await responder.send_hint(2)

        asyncio.run(run())

        assert [r.text for r in channel.sent] == [HELP_TEXT, HINT_TEXT]
        assert channel.sent[0].reply_to_message_id == 5
