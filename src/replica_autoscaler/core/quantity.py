#!/usr/bin/env python3
"""
Parsing of Kubernetes resource quantities

CPU values are normalized to millicores and memory values to bytes, the
units used throughout the sampler and aggregator.
"""

from typing import Union

_BINARY_SUFFIXES = {
    'Ki': 1024,
    'Mi': 1024 ** 2,
    'Gi': 1024 ** 3,
    'Ti': 1024 ** 4,
    'Pi': 1024 ** 5,
}

_DECIMAL_SUFFIXES = {
    'k': 1000,
    'K': 1000,
    'M': 1000 ** 2,
    'G': 1000 ** 3,
    'T': 1000 ** 4,
    'P': 1000 ** 5,
}

# CPU suffixes expressed in millicores
_CPU_SUFFIXES = {
    'n': 1e-6,
    'u': 1e-3,
    'm': 1.0,
}


def parse_cpu(value: Union[str, int, float, None]) -> float:
    """
    Parse a CPU quantity to millicores

    "250m" -> 250.0, "1" -> 1000.0, "0.5" -> 500.0, "123456789n" -> 123.456789
    Numbers passed directly are taken as cores.
    """
    if value is None:
        raise ValueError("CPU quantity is empty")
    if isinstance(value, (int, float)):
        return float(value) * 1000.0

    value = value.strip()
    if not value:
        raise ValueError("CPU quantity is empty")

    suffix = value[-1]
    if suffix in _CPU_SUFFIXES:
        return float(value[:-1]) * _CPU_SUFFIXES[suffix]
    return float(value) * 1000.0


def parse_memory(value: Union[str, int, float, None]) -> float:
    """
    Parse a memory quantity to bytes

    "128Mi" -> 134217728.0, "1G" -> 1e9, "1024" -> 1024.0
    """
    if value is None:
        raise ValueError("Memory quantity is empty")
    if isinstance(value, (int, float)):
        return float(value)

    value = value.strip()
    if not value:
        raise ValueError("Memory quantity is empty")

    if value[-2:] in _BINARY_SUFFIXES:
        return float(value[:-2]) * _BINARY_SUFFIXES[value[-2:]]
    if value[-1] in _DECIMAL_SUFFIXES:
        return float(value[:-1]) * _DECIMAL_SUFFIXES[value[-1]]
    if value.endswith('m'):
        # Milli-bytes show up occasionally in metrics-server output
        return float(value[:-1]) / 1000.0
    return float(value)


def parse_quantity(kind: str, value: Union[str, int, float, None]) -> float:
    """Parse a quantity for the given resource name ("cpu" or "memory")"""
    if kind == "cpu":
        return parse_cpu(value)
    if kind == "memory":
        return parse_memory(value)
    if value is None:
        raise ValueError(f"{kind} quantity is empty")
    return float(value)
