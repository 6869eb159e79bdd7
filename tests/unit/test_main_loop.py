"""
步骤入口主循环单元测试
"""
from unittest.mock import MagicMock

from sigfox_pipeline.core.context import InvocationContext
from sigfox_pipeline.core.dedup import MemoryDedupStore
from sigfox_pipeline.core.exceptions import DecodeError
from sigfox_pipeline.core.main_loop import Pipeline, handle_event
from sigfox_pipeline.core.models import Envelope


def noop_task(context, device, body, envelope):
    return envelope


def failing_task(context, device, body, envelope):
    raise ValueError("boom")


class TestHandleEvent:
    """测试 handle_event"""

    def test_decodes_runs_and_dispatches(self, context, envelope, mock_publisher, queue_event):
        """解码触发事件，执行任务并分发"""
        outcome = handle_event(context, queue_event(envelope), noop_task)

        assert outcome.is_ok
        assert outcome.inner.is_ok
        assert outcome.envelope.is_dispatched is True
        assert mock_publisher.publish.call_args[0][0] == "sigfox.types.decodeStructuredMessage"

    def test_source_from_event_topic(self, mock_publisher, clock, envelope, queue_event):
        """上下文没有来源时使用事件中的主题"""
        context = InvocationContext(function_name="routeMessage", publisher=mock_publisher, clock=clock)

        outcome = handle_event(context, queue_event(envelope, topic="sigfox.devices.all"), noop_task)

        assert context.source == "sigfox.devices.all"
        assert outcome.envelope.history[-1].source == "sigfox.devices.all"

    def test_binds_trace_fields(self, context, envelope, queue_event):
        """解码后绑定设备、类型和追踪ID"""
        handle_event(context, queue_event(envelope), noop_task)

        assert context.device == "1C8A7E"
        assert context.type == "routeMessage"
        assert context.root_trace_id == "trace-123"

    def test_decode_error_ends_without_dispatch(self, context, mock_publisher):
        """无法解码的事件：记录日志，信封为 None，不分发"""
        outcome = handle_event(context, {"data": "not base64!!"}, noop_task)

        assert outcome.is_ok
        assert outcome.envelope is None
        assert isinstance(outcome.inner.error, DecodeError)
        mock_publisher.publish.assert_not_called()

    def test_missing_data_field(self, context, mock_publisher):
        outcome = handle_event(context, {"topic": "sigfox.devices.all"}, noop_task)

        assert outcome.envelope is None
        mock_publisher.publish.assert_not_called()

    def test_duplicate_is_skipped(self, context, envelope, mock_publisher, queue_event):
        """已处理过的消息不再执行任务和分发"""
        context.dedup_store = MemoryDedupStore()
        task = MagicMock(side_effect=noop_task)

        handle_event(context, queue_event(envelope), task)
        outcome = handle_event(context, queue_event(envelope), task)

        assert task.call_count == 1
        assert mock_publisher.publish.call_count == 1
        assert outcome.is_ok
        assert outcome.envelope.is_dispatched is False

    def test_task_failure_still_returns_ok(self, context, envelope, mock_publisher, queue_event):
        """任务失败时入口仍然返回 Ok，内部结果为 Failed"""
        outcome = handle_event(context, queue_event(envelope), failing_task)

        assert outcome.is_ok
        assert outcome.inner.is_failed
        mock_publisher.publish.assert_called_once()

    def test_unexpected_error_never_raises(self, context, envelope, queue_event):
        """去重存储等协作者的意外异常也不会传出入口"""
        context.dedup_store = MagicMock()
        context.dedup_store.seen.return_value = False
        context.dedup_store.mark_seen.side_effect = RuntimeError("store down")
        context.publisher = MagicMock()
        context.publisher.publish.side_effect = RuntimeError("publisher down")

        outcome = handle_event(context, queue_event(envelope), noop_task)

        assert outcome.is_ok


class TestPipeline:
    """测试 Pipeline 入口包装器"""

    def test_main_closes_context(self, mock_publisher, envelope, queue_event, clock):
        """每次调用结束后上下文被关闭"""
        contexts = []

        def capture(context, device, body, env):
            contexts.append(context)
            return env

        pipeline = Pipeline("decodeStructuredMessage", mock_publisher, clock=clock, flush_timeout=0.1)
        outcome = pipeline.main(queue_event(envelope), capture, source="sigfox.types.decodeStructuredMessage")

        assert outcome.is_ok
        assert contexts[0].closed is True
        assert contexts[0].source == "sigfox.types.decodeStructuredMessage"

    def test_each_invocation_has_its_own_context(self, mock_publisher, envelope, queue_event):
        contexts = []

        def capture(context, device, body, env):
            contexts.append(context)

        pipeline = Pipeline("decodeStructuredMessage", mock_publisher, flush_timeout=0.1)
        pipeline.main(queue_event(envelope), capture)
        pipeline.main(queue_event(envelope), capture)

        assert contexts[0] is not contexts[1]

    def test_options_passed_to_context(self, mock_publisher, envelope, queue_event):
        seen = {}

        def capture(context, device, body, env):
            seen.update(context.options)

        pipeline = Pipeline("logToWebhook", mock_publisher, options={"url": "http://hook"}, flush_timeout=0.1)
        pipeline.main(queue_event(envelope), capture)

        assert seen == {"url": "http://hook"}

    def test_main_http(self, mock_publisher, envelope):
        """HTTP 触发：请求体直接是 JSON，来源为请求路径"""
        pipeline = Pipeline("routeMessage", mock_publisher, flush_timeout=0.1)

        outcome = pipeline.main_http(envelope.to_message(), noop_task, path="/routeMessage")

        assert outcome.is_ok
        assert outcome.envelope.history[-1].source == "/routeMessage"
        mock_publisher.publish.assert_called_once()

    def test_main_http_invalid_body(self, mock_publisher):
        pipeline = Pipeline("routeMessage", mock_publisher, flush_timeout=0.1)

        outcome = pipeline.main_http("[1, 2, 3]", noop_task)

        assert outcome.is_ok
        assert outcome.envelope is None
        mock_publisher.publish.assert_not_called()

    def test_end_to_end_fixture(self, mock_publisher, queue_event):
        """device 1C8A7E，路由 decode -> log，无操作任务"""
        pipeline = Pipeline("routeMessage", mock_publisher, flush_timeout=0.1)
        message = Envelope(device="1C8A7E", route=["decode", "log"])

        pipeline.main(queue_event(message, topic="sigfox.devices.all"), noop_task)

        topic, published = mock_publisher.publish.call_args[0]
        assert topic == "sigfox.types.decode"
        assert published["route"] == ["log"]
        assert published["type"] == "decode"
        assert len(published["history"]) == 1
