"""
Tests for Kubernetes quantity parsing
"""

import pytest

from replica_autoscaler.core.quantity import parse_cpu, parse_memory, parse_quantity


class TestParseCpu:
    """CPU quantities are normalized to millicores"""

    @pytest.mark.parametrize("value,expected", [
        ("250m", 250.0),
        ("1", 1000.0),
        ("0.5", 500.0),
        ("123456789n", 123.456789),
        ("1500u", 1.5),
        (2, 2000.0),
    ])
    def test_units(self, value, expected):
        assert parse_cpu(value) == pytest.approx(expected)

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            parse_cpu("")
        with pytest.raises(ValueError):
            parse_cpu(None)


class TestParseMemory:
    """Memory quantities are normalized to bytes"""

    @pytest.mark.parametrize("value,expected", [
        ("128Mi", 128 * 1024 ** 2),
        ("1Gi", 1024 ** 3),
        ("1G", 1e9),
        ("500k", 500000.0),
        ("1024", 1024.0),
        (2048, 2048.0),
    ])
    def test_units(self, value, expected):
        assert parse_memory(value) == pytest.approx(expected)

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_memory("lots")


def test_parse_quantity_dispatches_on_resource():
    assert parse_quantity("cpu", "100m") == 100.0
    assert parse_quantity("memory", "1Ki") == 1024.0
    assert parse_quantity("requests_per_second", "42") == 42.0
