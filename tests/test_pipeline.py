"""
Tests for dockbot pipeline execution.

Tests Pipeline, PipelineBuilder, PipelineContext rollback and the
deploy pipeline factory.
"""
import pytest

from dockbot.deploy import BuildError
from dockbot.pipeline import Pipeline, PipelineBuilder, PipelineContext, PipelineResult
from dockbot.pipeline.builder import create_deploy_pipeline
from dockbot.pipeline.frames import ErrorFrame, Frame, TextInputFrame
from dockbot.pipeline.processor import Processor


class MockPassthroughProcessor(Processor):
    """Test processor that passes frames through unchanged."""

    @property
    def name(self) -> str:
        return "mock_passthrough"

    async def process(self, frame: Frame, ctx: PipelineContext):
        return frame


class MockUppercaseProcessor(Processor):
    """Test processor that transforms text frames."""

    @property
    def name(self) -> str:
        return "mock_uppercase"

    async def process(self, frame: Frame, ctx: PipelineContext):
        if isinstance(frame, TextInputFrame):
            return frame.derive(text=frame.text.upper())
        return frame


class MockFanOutProcessor(Processor):
    """Test processor that produces multiple output frames."""

    @property
    def name(self) -> str:
        return "mock_fanout"

    async def process(self, frame: Frame, ctx: PipelineContext):
        return [frame, frame.derive(metadata={"copy": True})]


class MockDropProcessor(Processor):
    @property
    def name(self) -> str:
        return "mock_drop"

    async def process(self, frame: Frame, ctx: PipelineContext):
        return None


class MockResourceProcessor(Processor):
    """Creates a 'resource' and registers its undo step."""

    def __init__(self, label: str, undo_log: list[str], fail_undo: bool = False):
        self._label = label
        self._undo_log = undo_log
        self._fail_undo = fail_undo

    @property
    def name(self) -> str:
        return f"resource_{self._label}"

    async def process(self, frame: Frame, ctx: PipelineContext):
        async def undo():
            if self._fail_undo:
                raise RuntimeError(f"cannot undo {self._label}")
            self._undo_log.append(self._label)

        ctx.add_rollback(f"undo {self._label}", undo)
        return frame


class MockErrorProcessor(Processor):
    """Test processor that raises a domain error."""

    @property
    def name(self) -> str:
        return "mock_error"

    async def process(self, frame: Frame, ctx: PipelineContext):
        raise BuildError("Test build error", credential="1:secret", stage="image_build")


class MockCrashProcessor(Processor):
    @property
    def name(self) -> str:
        return "mock_crash"

    async def process(self, frame: Frame, ctx: PipelineContext):
        raise ValueError("Test error")


class TestPipeline:
    """Tests for Pipeline execution."""

    def test_empty_pipeline_rejected(self):
        with pytest.raises(ValueError):
            Pipeline([])

    @pytest.mark.asyncio
    async def test_pipeline_executes_processors_in_order(self):
        """Pipeline should execute processors sequentially."""
        execution_order = []

        class OrderTrackingProcessor(Processor):
            def __init__(self, name: str):
                self._name = name

            @property
            def name(self) -> str:
                return self._name

            async def process(self, frame: Frame, ctx: PipelineContext):
                execution_order.append(self._name)
                return frame

        pipeline = Pipeline([
            OrderTrackingProcessor("first"),
            OrderTrackingProcessor("second"),
            OrderTrackingProcessor("third"),
        ])

        await pipeline.execute(TextInputFrame(text="hi"))

        assert execution_order == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_transform_and_timings(self):
        pipeline = Pipeline([MockPassthroughProcessor(), MockUppercaseProcessor()])

        result = await pipeline.execute(TextInputFrame(text="hello"))

        assert result.success is True
        assert isinstance(result, PipelineResult)
        assert result.get_frame(TextInputFrame).text == "HELLO"
        assert set(result.context.processor_timings) == {"mock_passthrough", "mock_uppercase"}
        assert len(result.context.frame_log) == 2

    @pytest.mark.asyncio
    async def test_fan_out(self):
        pipeline = Pipeline([MockFanOutProcessor(), MockPassthroughProcessor()])

        result = await pipeline.execute(TextInputFrame(text="x"))

        assert len(result.get_frames(TextInputFrame)) == 2

    @pytest.mark.asyncio
    async def test_dropped_frame_stops_pipeline(self):
        pipeline = Pipeline([MockDropProcessor(), MockUppercaseProcessor()])

        result = await pipeline.execute(TextInputFrame(text="x"))

        assert result.output_frames == []
        assert "mock_uppercase" not in result.context.processor_timings

    @pytest.mark.asyncio
    async def test_domain_error_becomes_error_frame(self):
        pipeline = Pipeline([MockErrorProcessor(), MockPassthroughProcessor()])

        result = await pipeline.execute(TextInputFrame(text="x", conversation_id="42"))

        assert result.success is False
        assert result.error == "Test build error"
        error = result.error_frame
        assert isinstance(error, ErrorFrame)
        assert error.error_type == "build"
        assert error.stage == "image_build"
        assert error.processor_name == "mock_error"
        assert error.exception_class == "BuildError"
        assert error.conversation_id == "42"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal(self):
        pipeline = Pipeline([MockCrashProcessor()])

        result = await pipeline.execute(TextInputFrame(text="x"))

        assert result.success is False
        assert result.error_frame.error_type == "internal"
        assert result.error_frame.stage == "mock_crash"


class TestRollback:
    """Tests for rollback of partially created resources."""

    @pytest.mark.asyncio
    async def test_rollback_runs_newest_first_on_failure(self):
        undo_log: list[str] = []
        pipeline = Pipeline([
            MockResourceProcessor("a", undo_log),
            MockResourceProcessor("b", undo_log),
            MockErrorProcessor(),
        ])

        result = await pipeline.execute(TextInputFrame(text="x"))

        assert result.success is False
        assert undo_log == ["b", "a"]
        assert result.rollback_failures == []
        assert result.context.rollback_actions == []

    @pytest.mark.asyncio
    async def test_no_rollback_on_success(self):
        undo_log: list[str] = []
        pipeline = Pipeline([MockResourceProcessor("a", undo_log)])

        result = await pipeline.execute(TextInputFrame(text="x"))

        assert result.success is True
        assert undo_log == []

    @pytest.mark.asyncio
    async def test_failing_rollback_step_does_not_mask_error(self):
        undo_log: list[str] = []
        pipeline = Pipeline([
            MockResourceProcessor("a", undo_log),
            MockResourceProcessor("b", undo_log, fail_undo=True),
            MockErrorProcessor(),
        ])

        result = await pipeline.execute(TextInputFrame(text="x"))

        assert result.error == "Test build error"
        assert result.rollback_failures == ["undo b"]
        assert undo_log == ["a"]


class TestPipelineContext:
    def test_audit_dict_masks_credential(self):
        ctx = PipelineContext(
            conversation_id="7",
            channel_id="telegram",
            credential="123456:ABCDEFGHIJKLMNOPQRSTUVWXYZ",
        )

        audit = ctx.to_audit_dict()

        assert audit["credential"] == "123456:***WXYZ"
        assert "ABCDEFGH" not in str(audit)


class TestPipelineBuilder:
    """Tests for PipelineBuilder."""

    def test_builder_chaining(self):
        pipeline = (
            PipelineBuilder()
            .add(MockPassthroughProcessor())
            .add_if(False, MockCrashProcessor())
            .add_if(True, MockUppercaseProcessor())
            .build()
        )

        assert pipeline.processor_names == ["mock_passthrough", "mock_uppercase"]

    def test_deploy_pipeline_order(self, settings, fake_runtime, registry, ports):
        pipeline = create_deploy_pipeline(settings, fake_runtime, registry, ports)

        assert pipeline.processor_names == [
            "artifact_download",
            "image_build",
            "container_start",
        ]
