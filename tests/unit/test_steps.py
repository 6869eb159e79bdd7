"""
流水线步骤单元测试
"""
from unittest.mock import MagicMock, patch

import httpx
import pytest

from sigfox_pipeline.core.exceptions import RouteLookupError
from sigfox_pipeline.core.main_loop import Pipeline
from sigfox_pipeline.core.models import Envelope
from sigfox_pipeline.core.routing import RouteTable
from sigfox_pipeline.steps import STEP_TASKS, get_step_task, source_topic
from sigfox_pipeline.steps import decode_structured_message, log_to_webhook, route_message


class TestStepRegistry:

    def test_registered_steps(self):
        assert set(STEP_TASKS) == {"routeMessage", "decodeStructuredMessage", "logToWebhook"}
        assert get_step_task("routeMessage") is route_message.task

    def test_unknown_step(self):
        with pytest.raises(ValueError):
            get_step_task("sendToUbidots")

    def test_source_topics(self):
        """routeMessage 监听所有设备的队列，其余步骤监听自己的类型队列"""
        assert source_topic("routeMessage") == "sigfox.devices.all"
        assert source_topic("logToWebhook") == "sigfox.types.logToWebhook"


class TestRouteMessage:
    """测试 routeMessage 步骤"""

    def test_sets_route(self, context):
        context.route_lookup = RouteTable.from_config({
            "table": [{"devices": ["1C8A7E"], "route": ["decodeStructuredMessage", "logToWebhook"]}]
        })
        envelope = Envelope(device="1C8A7E")

        result = route_message.task(context, envelope.device, envelope.body, envelope)

        assert result.route == ["decodeStructuredMessage", "logToWebhook"]

    def test_requires_route_lookup(self, context):
        with pytest.raises(RouteLookupError):
            route_message.task(context, "1C8A7E", {}, Envelope(device="1C8A7E"))

    def test_routes_through_pipeline(self, mock_publisher, queue_event):
        """routeMessage 设置路由后分发到第一个步骤"""
        table = RouteTable.from_config({"default_route": "decodeStructuredMessage, logToWebhook"})
        pipeline = Pipeline("routeMessage", mock_publisher, route_lookup=table, flush_timeout=0.1)
        message = Envelope(device="1C8A7E", body={"uuid": "u-1", "data": "920e0627"})

        pipeline.main(queue_event(message, topic="sigfox.devices.all"), route_message.task)

        topic, published = mock_publisher.publish.call_args[0]
        assert topic == "sigfox.types.decodeStructuredMessage"
        assert published["route"] == ["logToWebhook"]
        assert published["history"][-1]["function"] == "routeMessage"
        assert published["history"][-1]["source"] == "sigfox.devices.all"


class TestDecodeStructuredMessage:
    """测试 decodeStructuredMessage 步骤"""

    def test_adds_decoded_fields(self, context, envelope):
        result = decode_structured_message.task(context, envelope.device, envelope.body, envelope)

        assert result.body["ctr"] == 999
        assert result.body["lig"] == 754
        assert result.body["tmp"] == 23
        assert result.body["seqNumber"] == 1492

    def test_text_fields_from_options(self, context):
        context.options = {"text_fields": ["d1", "d2", "d3"]}
        body = {"data": "8013e569a0138c15c013f929"}

        updated = decode_structured_message.decode_body(context, body)

        assert updated["d1"] == "zoe"

    def test_invalid_data_keeps_body(self, context):
        """解码失败时 body 保持不变"""
        body = {"data": "not-hex"}
        assert decode_structured_message.decode_body(context, body) == body

    def test_missing_data(self, context):
        assert decode_structured_message.decode_body(context, {"seqNumber": 1}) == {"seqNumber": 1}


class TestLogToWebhook:
    """测试 logToWebhook 步骤"""

    def test_posts_flat_record(self, context, envelope):
        context.options = {"url": "http://hook.test/sigfox", "timeout": 3}
        response = httpx.Response(200, request=httpx.Request("POST", "http://hook.test/sigfox"))

        with patch("sigfox_pipeline.steps.log_to_webhook.httpx.post", return_value=response) as post:
            result = log_to_webhook.task(context, envelope.device, envelope.body, envelope)

        assert result is envelope
        args, kwargs = post.call_args
        assert args[0] == "http://hook.test/sigfox"
        assert kwargs["json"]["device"] == "1C8A7E"
        assert kwargs["json"]["seqNumber"] == 1492
        assert kwargs["timeout"] == 3

    def test_http_error_propagates(self, context, envelope):
        """请求失败时异常交给任务执行器"""
        context.options = {"url": "http://hook.test/sigfox"}
        response = httpx.Response(500, request=httpx.Request("POST", "http://hook.test/sigfox"))

        with patch("sigfox_pipeline.steps.log_to_webhook.httpx.post", return_value=response):
            with pytest.raises(httpx.HTTPStatusError):
                log_to_webhook.task(context, envelope.device, envelope.body, envelope)

    def test_missing_url(self, context, envelope, tmp_path, monkeypatch):
        monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "missing.yml"))
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ValueError):
            log_to_webhook.task(context, envelope.device, envelope.body, envelope)

    def test_failure_still_dispatches(self, mock_publisher, queue_event):
        """Webhook 不可用时消息仍然分发到下一个步骤"""
        pipeline = Pipeline("logToWebhook", mock_publisher, options={"url": "http://hook.test"}, flush_timeout=0.1)
        message = Envelope(device="1C8A7E", type="logToWebhook", route=["archive"])

        with patch("sigfox_pipeline.steps.log_to_webhook.httpx.post", side_effect=httpx.ConnectError("refused")):
            outcome = pipeline.main(queue_event(message, topic="sigfox.types.logToWebhook"), log_to_webhook.task)

        assert outcome.is_ok
        assert outcome.inner.is_failed
        assert mock_publisher.publish.call_args[0][0] == "sigfox.types.archive"
