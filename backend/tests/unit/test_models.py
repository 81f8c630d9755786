"""
数据模型单元测试

每个模块完成后必须运行：pytest tests/unit/test_models.py -v
"""

import hashlib

import pytest
from pydantic import ValidationError

from leonardo.interfaces import (
    ErrorCategory,
    FetchError,
    FetchErrorKind,
    InvalidTransition,
    PipelineTimeout,
)
from leonardo.models import (
    EventKind,
    ImageReference,
    InboundEvent,
    StoreReference,
    Submission,
    SubmissionStage,
    TracedArtifact,
)

from conftest import image_event


@pytest.fixture
def submission() -> Submission:
    return Submission.from_event(image_event(chat_id=100, message_id=7))


class TestImageReference:
    """图像引用测试"""

    def test_exactly_one_source(self):
        assert ImageReference(url="https://x.test/a.png").url
        with pytest.raises(ValidationError):
            ImageReference()
        with pytest.raises(ValidationError):
            ImageReference(url="https://x.test/a.png", file_id="abc")

    def test_describe_hides_url(self):
        ref = ImageReference(url="https://api.test/file/bot123:secret/a.png")
        assert "secret" not in ref.describe()


class TestArtifact:
    """产物与存储引用测试"""

    def test_from_svg(self):
        artifact = TracedArtifact.from_svg("100-7", "<svg/>")
        assert artifact.content == b"<svg/>"
        assert artifact.byte_size == 6
        assert artifact.sha256 == hashlib.sha256(b"<svg/>").hexdigest()
        assert artifact.file_name == "100-7.svg"

    def test_reference_frozen(self):
        ref = StoreReference(commit_id="a" * 40, path="artifacts/100-7.svg")
        with pytest.raises(ValidationError):
            ref.path = "other"

    def test_reference_render(self):
        ref = StoreReference(commit_id="abcdef0123456789", path="artifacts/100-7.svg")
        assert ref.render() == "artifacts/100-7.svg @ abcdef0"
        assert (
            ref.render("https://git.test/blob/{commit}/{path}")
            == "https://git.test/blob/abcdef0123456789/artifacts/100-7.svg"
        )


class TestInboundEvent:
    """入站事件测试"""

    @pytest.mark.parametrize(
        "text,expected",
        [("/help", "help"), ("/Start@LeonardoBot now", "start"), ("hello", None)],
    )
    def test_command(self, text, expected):
        kind = EventKind.COMMAND if text.startswith("/") else EventKind.TEXT
        event = InboundEvent(chat_id=1, message_id=1, kind=kind, text=text)
        assert event.command == expected


class TestSubmission:
    """提交状态机测试"""

    def test_from_event(self, submission: Submission):
        assert submission.submission_id == "100-7"
        assert submission.stage == SubmissionStage.RECEIVED
        assert submission.history == [SubmissionStage.RECEIVED]

    def test_from_event_requires_image(self):
        event = InboundEvent(chat_id=1, message_id=2, kind=EventKind.TEXT, text="hi")
        with pytest.raises(ValueError):
            Submission.from_event(event)

    def test_happy_path(self, submission: Submission):
        for stage in (
            SubmissionStage.FETCHING,
            SubmissionStage.TRACING,
            SubmissionStage.STORING,
        ):
            submission.advance(stage)
        submission.mark_stored(StoreReference(commit_id="c" * 40, path="artifacts/100-7.svg"))
        submission.advance(SubmissionStage.RESPONDING)
        submission.mark_done()

        assert submission.succeeded
        assert submission.is_terminal
        assert submission.finished_at is not None
        assert submission.history[-1] == SubmissionStage.DONE

    def test_done_only_from_responding(self, submission: Submission):
        submission.advance(SubmissionStage.FETCHING)
        with pytest.raises(InvalidTransition):
            submission.mark_done()
        assert submission.stage == SubmissionStage.FETCHING
        assert submission.finished_at is None

    def test_failed_requires_mark_failed(self, submission: Submission):
        with pytest.raises(InvalidTransition):
            submission.advance(SubmissionStage.FAILED)
        assert submission.failure is None

    def test_skip_stage_rejected(self, submission: Submission):
        with pytest.raises(InvalidTransition):
            submission.advance(SubmissionStage.TRACING)

    def test_backward_rejected(self, submission: Submission):
        submission.advance(SubmissionStage.FETCHING)
        submission.advance(SubmissionStage.TRACING)
        with pytest.raises(InvalidTransition):
            submission.advance(SubmissionStage.FETCHING)

    def test_fetch_retry(self, submission: Submission):
        submission.advance(SubmissionStage.FETCHING)
        submission.advance(SubmissionStage.FETCHING, retry=True)
        assert submission.attempts["fetching"] == 2
        assert submission.history.count(SubmissionStage.FETCHING) == 2

    def test_retry_only_fetching(self, submission: Submission):
        submission.advance(SubmissionStage.FETCHING)
        submission.advance(SubmissionStage.TRACING)
        with pytest.raises(InvalidTransition):
            submission.advance(SubmissionStage.TRACING, retry=True)

    def test_repeat_without_retry_rejected(self, submission: Submission):
        submission.advance(SubmissionStage.FETCHING)
        with pytest.raises(InvalidTransition):
            submission.advance(SubmissionStage.FETCHING)

    def test_failed_is_absorbing(self, submission: Submission):
        submission.advance(SubmissionStage.FETCHING)
        submission.mark_failed(FetchError(FetchErrorKind.UNREACHABLE, "HTTP 404"))

        assert submission.stage == SubmissionStage.FAILED
        assert submission.failure.category == ErrorCategory.FETCH
        assert submission.failure.stage == SubmissionStage.FETCHING
        assert submission.failure.code == "fetch.unreachable"
        with pytest.raises(InvalidTransition):
            submission.advance(SubmissionStage.TRACING)
        with pytest.raises(InvalidTransition):
            submission.mark_failed(PipelineTimeout())

    def test_failed_from_received(self, submission: Submission):
        submission.mark_failed(PipelineTimeout("too slow"))
        assert submission.failure.code == "pipeline.timeout"
        assert submission.failure.stage == SubmissionStage.RECEIVED

    def test_mark_stored_requires_storing(self, submission: Submission):
        with pytest.raises(InvalidTransition):
            submission.mark_stored(StoreReference(commit_id="c" * 40, path="x.svg"))
