from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric


class MetricKind(Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class MetricDescriptor:
    """Identity of one exported metric. Shared read-only across scrapes."""
    name: str
    documentation: str
    kind: MetricKind = MetricKind.GAUGE
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class DecodedFact:
    descriptor: MetricDescriptor
    value: float
    label_values: tuple[str, ...] = ()


def build_fqname(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts of a metric name with underscores."""
    return "_".join(part for part in (namespace, subsystem, name) if part)


def empty_family(descriptor: MetricDescriptor) -> Metric:
    if descriptor.kind is MetricKind.COUNTER:
        return CounterMetricFamily(
            descriptor.name, descriptor.documentation, labels=descriptor.labels
        )
    return GaugeMetricFamily(
        descriptor.name, descriptor.documentation, labels=descriptor.labels
    )


class MetricEmitter:
    """Per-scrape output collection.

    Every :meth:`emit` call writes exactly one sample. Samples sharing a
    descriptor land in the same family so the exposition carries one
    HELP/TYPE pair per metric name.
    """

    def __init__(self) -> None:
        self._families: dict[MetricDescriptor, Metric] = {}

    def emit(self, fact: DecodedFact) -> None:
        descriptor = fact.descriptor
        if len(fact.label_values) != len(descriptor.labels):
            raise ValueError(
                f"{descriptor.name} expects labels {descriptor.labels}, "
                f"got values {fact.label_values}"
            )
        family = self._families.get(descriptor)
        if family is None:
            family = self._families[descriptor] = empty_family(descriptor)
        family.add_metric(list(fact.label_values), fact.value)

    def families(self) -> list[Metric]:
        return list(self._families.values())
