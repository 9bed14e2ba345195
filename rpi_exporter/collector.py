from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
import logging

from prometheus_client.core import Metric
from prometheus_client.registry import Collector

from rpi_exporter.decoders import (
    MAXCONNS_FALLBACK_SPEC,
    MEMCACHED_NAMESPACE,
    RPI_NAMESPACE,
    SETTINGS_SPECS,
    STATS_SPECS,
    THROTTLE_BITS,
    TIME_SPEC,
    StatSpec,
    decode_stats,
    decode_throttled,
)
from rpi_exporter.errors import ExporterError, FetchError, PartialDecodeError
from rpi_exporter.metrics import (
    DecodedFact,
    MetricDescriptor,
    MetricEmitter,
    build_fqname,
    empty_family,
)
from rpi_exporter.sources import (
    CACHE_SOURCE,
    HARDWARE_SOURCE,
    CacheStatusSource,
    HardwareStatusSource,
)

logger = logging.getLogger(__name__)

RPI_UP = MetricDescriptor(
    build_fqname(RPI_NAMESPACE, "", "up"),
    "Could the throttled status be read from vcgencmd.",
)
MEMCACHED_UP = MetricDescriptor(
    build_fqname(MEMCACHED_NAMESPACE, "", "up"),
    "Could the memcached server be reached.",
)


@dataclass
class ScrapeHealth:
    """Liveness flags for one scrape, one per independent source.

    A flag starts at 1 and only ever drops to 0: any failed stage for a
    source marks it down even if partial facts were still emitted.
    """
    up: dict[str, bool] = field(
        default_factory=lambda: {HARDWARE_SOURCE: True, CACHE_SOURCE: True}
    )

    def fail(self, stage: str, exc: ExporterError) -> None:
        logger.error("%s %s failed: %s", exc.source, stage, exc)
        self.up[exc.source] = False

    def value(self, source: str) -> float:
        return 1.0 if self.up[source] else 0.0


class ExporterCollector(Collector):
    """Custom collector producing the full metric set on every scrape.

    Stages run in a fixed order: fetch hardware, decode hardware, fetch
    cache, decode cache, emit. A failing stage lowers that source's
    liveness and the scrape carries on.
    """

    def __init__(
        self,
        hardware: HardwareStatusSource,
        cache: CacheStatusSource,
        export_time: bool = True,
    ) -> None:
        self.hardware = hardware
        self.cache = cache
        self.stats_specs: tuple[StatSpec, ...] = (
            ((TIME_SPEC,) if export_time else ()) + STATS_SPECS
        )
        self.logger = logging.getLogger(self.__class__.__name__)

    def descriptors(self) -> list[MetricDescriptor]:
        declared = [descriptor for _, descriptor in THROTTLE_BITS]
        for spec in self.stats_specs + SETTINGS_SPECS:
            if spec.descriptor not in declared:
                declared.append(spec.descriptor)
        declared.extend([RPI_UP, MEMCACHED_UP])
        return declared

    def describe(self) -> Iterator[Metric]:
        for descriptor in self.descriptors():
            yield empty_family(descriptor)

    def collect(self) -> Iterator[Metric]:
        self.logger.debug("Collecting scrape.")
        health = ScrapeHealth()
        emitter = MetricEmitter()

        for fact in self._collect_hardware(health):
            emitter.emit(fact)
        for fact in self._collect_cache(health):
            emitter.emit(fact)

        emitter.emit(DecodedFact(RPI_UP, health.value(HARDWARE_SOURCE)))
        emitter.emit(DecodedFact(MEMCACHED_UP, health.value(CACHE_SOURCE)))
        self.logger.debug("Completed scrape.")
        yield from emitter.families()

    def _collect_hardware(self, health: ScrapeHealth) -> list[DecodedFact]:
        try:
            raw = self.hardware.fetch()
        except FetchError as exc:
            health.fail("fetch", exc)
            if not exc.output:
                return []
            raw = exc.output

        try:
            return decode_throttled(raw)
        except ExporterError as exc:
            health.fail("decode", exc)
            return []

    def _collect_cache(self, health: ScrapeHealth) -> list[DecodedFact]:
        stats: dict[str, str] | None = None
        settings: dict[str, str] | None = None
        try:
            stats = self.cache.fetch_stats()
        except FetchError as exc:
            health.fail("stats fetch", exc)
        try:
            settings = self.cache.fetch_stats_settings()
        except FetchError as exc:
            health.fail("settings fetch", exc)

        facts: list[DecodedFact] = []
        if stats is not None:
            facts.extend(self._decode(health, "stats decode", stats, self.stats_specs))
        if settings is not None:
            settings_specs = SETTINGS_SPECS
            if stats is None or "max_connections" not in stats:
                settings_specs += (MAXCONNS_FALLBACK_SPEC,)
            facts.extend(self._decode(health, "settings decode", settings, settings_specs))
        return facts

    def _decode(
        self,
        health: ScrapeHealth,
        stage: str,
        values: dict[str, str],
        specs: tuple[StatSpec, ...],
    ) -> list[DecodedFact]:
        try:
            return decode_stats(values, specs)
        except PartialDecodeError as exc:
            health.fail(stage, exc)
            return exc.facts
