"""
Tests for events and the event recorder
"""

import json
import logging
from unittest.mock import Mock

import pytest

from replica_autoscaler.events import Event, EventRecorder, EventSeverity, EventSink, EventType


class TestEvent:
    """Event serialization"""

    def test_severity(self):
        assert Event(EventType.SUCCESSFUL_RESCALE, "w", "ok").severity == EventSeverity.NORMAL
        assert Event(EventType.FAILED_RESCALE, "w", "bad").severity == EventSeverity.WARNING

    def test_json_round_trip(self):
        event = Event(EventType.SCALE_SUPPRESSED, "web-app", "cooling down", data={"desired": 9})

        restored = Event.from_json(event.to_json())

        assert restored == event

    def test_to_dict(self):
        data = Event(EventType.MISSED_CYCLE, "web-app", "late").to_dict()

        assert data["event_type"] == "MissedCycle"
        assert data["severity"] == "Warning"
        assert data["source"] == "replica-autoscaler"


class TestEventRecorder:
    """History, logging and sinks"""

    def test_history_is_bounded_per_workload(self):
        recorder = EventRecorder(history_size=3)
        for i in range(5):
            recorder.record(EventType.DESIRED_REPLICAS_COMPUTED, "web-app", f"decision {i}")
        recorder.record(EventType.DESIRED_REPLICAS_COMPUTED, "api", "decision")

        history = recorder.history("web-app")

        assert [e.message for e in history] == ["decision 2", "decision 3", "decision 4"]
        assert len(recorder.history("api")) == 1
        assert [e.message for e in recorder.history("web-app", limit=1)] == ["decision 4"]
        assert recorder.history("unknown") == []

    def test_structured_log_line(self, caplog):
        recorder = EventRecorder()

        with caplog.at_level(logging.INFO, logger="replica_autoscaler.events.recorder"):
            recorder.record(EventType.SUCCESSFUL_RESCALE, "web-app", "new size: 3", replicas=3)

        line = json.loads(caplog.records[-1].getMessage())
        assert line == {"event": "SuccessfulRescale", "workload": "web-app",
                        "message": "new size: 3", "replicas": 3}

    def test_warning_events_logged_as_warnings(self, caplog):
        recorder = EventRecorder()

        with caplog.at_level(logging.INFO, logger="replica_autoscaler.events.recorder"):
            recorder.record(EventType.FAILED_RESCALE, "web-app", "conflict")

        assert caplog.records[-1].levelno == logging.WARNING

    def test_sinks_receive_events_and_failures_are_contained(self):
        good = Mock(spec=EventSink)
        bad = Mock(spec=EventSink)
        bad.publish.side_effect = RuntimeError("down")
        recorder = EventRecorder(sinks=[bad, good])

        event = recorder.record(EventType.WORKLOAD_REGISTERED, "web-app", "registered")

        good.publish.assert_called_once_with(event)
        assert recorder.history("web-app") == [event]

    def test_forget(self):
        recorder = EventRecorder()
        recorder.record(EventType.WORKLOAD_REGISTERED, "web-app", "registered")

        recorder.forget("web-app")

        assert recorder.history("web-app") == []
