"""
跳转历史记录单元测试
"""
from sigfox_pipeline.core.history import record_hop, to_tenths
from sigfox_pipeline.core.models import Envelope, HistoryRecord


class TestToTenths:

    def test_truncates_to_tenths(self):
        """毫秒截断到 0.1 秒"""
        assert to_tenths(350) == 0.3
        assert to_tenths(1200) == 1.2
        assert to_tenths(99) == 0.0
        assert to_tenths(0) == 0.0

    def test_negative_truncates_toward_zero(self):
        """时钟偏差造成的负值同样向零截断"""
        assert to_tenths(-50) == 0.0
        assert to_tenths(-350) == -0.3


class TestRecordHop:
    """测试 record_hop"""

    def test_first_hop_has_no_latency(self, clock):
        """第一跳没有延迟"""
        start = clock.now
        clock.advance(350)
        stamped = record_hop(Envelope(type="routeMessage"), start, "sigfox.devices.all", clock=clock)

        record = stamped.history[-1]
        assert record.timestamp == start
        assert record.end == start + 350
        assert record.duration == 0.3
        assert record.latency is None
        assert record.source == "sigfox.devices.all"
        assert record.function == "routeMessage"

    def test_latency_from_previous_hop(self, clock):
        """延迟为本次开始时间减去上一跳结束时间"""
        start = clock.now
        previous = HistoryRecord(timestamp=start - 2000, end=start - 1200, duration=0.8)
        stamped = record_hop(Envelope(history=[previous]), start, None, function_name="logToWebhook", clock=clock)

        assert len(stamped.history) == 2
        assert stamped.history[-1].latency == 1.2
        assert stamped.history[-1].function == "logToWebhook"

    def test_input_is_not_modified(self, clock):
        """输入信封保持不变"""
        envelope = Envelope(device="1C8A7E")
        stamped = record_hop(envelope, clock.now, None, clock=clock)
        assert envelope.history == []
        assert len(stamped.history) == 1
