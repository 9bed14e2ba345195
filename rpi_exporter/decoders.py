from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
import logging
import re

from rpi_exporter.errors import ParseError, PartialDecodeError
from rpi_exporter.metrics import DecodedFact, MetricDescriptor, MetricKind, build_fqname
from rpi_exporter.sources import CACHE_SOURCE, HARDWARE_SOURCE

RPI_NAMESPACE = "rpi"
MEMCACHED_NAMESPACE = "memcached"

logger = logging.getLogger(__name__)


def _rpi(name: str, documentation: str) -> MetricDescriptor:
    return MetricDescriptor(build_fqname(RPI_NAMESPACE, "", name), documentation)


# Bit positions of the vcgencmd get_throttled word
THROTTLE_BITS: tuple[tuple[int, MetricDescriptor], ...] = (
    (0, _rpi("undervoltage_detected", "Power supply voltage is currently under threshold.")),
    (1, _rpi("arm_frequency_capped", "ARM chip clock speed is currently capped.")),
    (2, _rpi("throttled", "ARM chip is currently throttled.")),
    (3, _rpi("soft_temp_limit_active", "Soft temperature limit is currently active.")),
    (16, _rpi("undervoltage_occurred", "Under-voltage has occurred since boot.")),
    (17, _rpi("arm_frequency_capped_occurred", "ARM frequency capping has occurred since boot.")),
    (18, _rpi("throttling_occurred", "Throttling has occurred since boot.")),
    (19, _rpi("soft_temp_limit_occurred", "Soft temperature limit has occurred since boot.")),
)


_HEX_WORD = re.compile(r"(0[xX])?[0-9a-fA-F]+")


def has_bit(value: int, position: int) -> bool:
    return (value & (1 << position)) != 0


def decode_throttled(text: str) -> list[DecodedFact]:
    """Decode ``throttled=0x50005`` (or a bare hex word) into one fact per bit."""
    hex_str = text.strip().rpartition("=")[2]
    if not _HEX_WORD.fullmatch(hex_str):
        raise ParseError(
            HARDWARE_SOURCE, f"Not a hexadecimal throttled word: {text!r}", raw=text
        )
    flags = int(hex_str, 16)
    return [
        DecodedFact(descriptor, 1.0 if has_bit(flags, position) else 0.0)
        for position, descriptor in THROTTLE_BITS
    ]


_TRUE_VALUES = {"yes", "on", "true", "1"}
_FALSE_VALUES = {"no", "off", "false", "0"}


def parse_bool(value: str) -> float:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return 1.0
    if lowered in _FALSE_VALUES:
        return 0.0
    raise ValueError(f"Not a boolean: {value!r}")


def parse_int(value: str) -> float:
    return float(int(value.strip()))


def parse_float(value: str) -> float:
    # Old memcached releases report rusage as seconds:microseconds
    return float(value.strip().replace(":", "."))


@dataclass(frozen=True)
class StatSpec:
    """One memcached statistic of interest.

    With ``label_value`` set, the raw string becomes the value of the
    descriptor's only label and the sample is ``1``.
    """
    key: str
    descriptor: MetricDescriptor
    converter: Callable[[str], float] = parse_int
    label_value: bool = False
    label_values: tuple[str, ...] = ()


def decode_stats(
    values: Mapping[str, str],
    specs: Sequence[StatSpec],
    source: str = CACHE_SOURCE,
) -> list[DecodedFact]:
    """Decode every present key in ``specs``.

    Missing keys are skipped. Present keys with unparsable values are logged
    and skipped; if there were any, :class:`PartialDecodeError` is raised at
    the end carrying the facts that did decode.
    """
    facts: list[DecodedFact] = []
    invalid: dict[str, str] = {}
    for spec in specs:
        raw = values.get(spec.key)
        if raw is None:
            continue
        if spec.label_value:
            if not raw.strip():
                logger.warning("Empty value for %s stat %s", source, spec.key)
                invalid[spec.key] = raw
                continue
            facts.append(DecodedFact(spec.descriptor, 1.0, (raw.strip(),)))
            continue
        try:
            value = spec.converter(raw)
        except ValueError:
            logger.warning(
                "Failed to parse %s stat %s=%r", source, spec.key, raw
            )
            invalid[spec.key] = raw
            continue
        facts.append(DecodedFact(spec.descriptor, value, spec.label_values))

    if invalid:
        raise PartialDecodeError(source, facts, invalid)
    return facts


def _memcached(
    name: str,
    documentation: str,
    kind: MetricKind = MetricKind.GAUGE,
    labels: tuple[str, ...] = (),
) -> MetricDescriptor:
    return MetricDescriptor(
        build_fqname(MEMCACHED_NAMESPACE, "", name), documentation, kind, labels
    )


TIME_DESCRIPTOR = _memcached("time_seconds", "Current UNIX time according to the server.")
MAX_CONNECTIONS_DESCRIPTOR = _memcached(
    "max_connections", "Maximum number of clients allowed."
)
_COMMANDS = _memcached(
    "commands", "Total number of all requests broken down by command.",
    MetricKind.COUNTER, ("command",),
)
_GETS = _memcached(
    "gets", "Total number of get requests broken down by hit or miss.",
    MetricKind.COUNTER, ("status",),
)

TIME_SPEC = StatSpec("time", TIME_DESCRIPTOR, parse_float)

STATS_SPECS: tuple[StatSpec, ...] = (
    StatSpec(
        "uptime",
        _memcached("uptime_seconds", "Number of seconds since the server started."),
        parse_float,
    ),
    StatSpec(
        "version",
        _memcached("version", "The version of this memcached server.", labels=("version",)),
        label_value=True,
    ),
    StatSpec(
        "rusage_user",
        _memcached(
            "process_user_cpu_seconds_total",
            "Accumulated user time for this process.",
            MetricKind.COUNTER,
        ),
        parse_float,
    ),
    StatSpec(
        "rusage_system",
        _memcached(
            "process_system_cpu_seconds_total",
            "Accumulated system time for this process.",
            MetricKind.COUNTER,
        ),
        parse_float,
    ),
    StatSpec(
        "curr_connections",
        _memcached("current_connections", "Current number of open connections."),
    ),
    StatSpec(
        "total_connections",
        _memcached(
            "connections_total",
            "Total number of connections opened since the server started running.",
            MetricKind.COUNTER,
        ),
    ),
    StatSpec(
        "rejected_connections",
        _memcached(
            "connections_rejected_total",
            "Total number of connections rejected due to hitting the max_connections limit.",
            MetricKind.COUNTER,
        ),
    ),
    StatSpec("max_connections", MAX_CONNECTIONS_DESCRIPTOR),
    StatSpec(
        "accepting_conns",
        _memcached(
            "accepting_connections",
            "The server is currently accepting new connections.",
        ),
        parse_bool,
    ),
    StatSpec(
        "threads",
        _memcached("threads", "Number of worker threads requested."),
    ),
    StatSpec(
        "curr_items",
        _memcached("current_items", "Current number of items stored by this instance."),
    ),
    StatSpec(
        "total_items",
        _memcached(
            "items_total",
            "Total number of items stored during the life of this instance.",
            MetricKind.COUNTER,
        ),
    ),
    StatSpec(
        "evictions",
        _memcached(
            "items_evicted_total",
            "Total number of valid items removed from cache to free memory for new items.",
            MetricKind.COUNTER,
        ),
    ),
    StatSpec(
        "reclaimed",
        _memcached(
            "items_reclaimed_total",
            "Total number of times an entry was stored using memory from an expired entry.",
            MetricKind.COUNTER,
        ),
    ),
    StatSpec(
        "bytes",
        _memcached("current_bytes", "Current number of bytes used to store items."),
    ),
    StatSpec(
        "limit_maxbytes",
        _memcached("limit_bytes", "Number of bytes this server is allowed to use for storage."),
    ),
    StatSpec(
        "bytes_read",
        _memcached(
            "read_bytes_total",
            "Total number of bytes read by this server from network.",
            MetricKind.COUNTER,
        ),
    ),
    StatSpec(
        "bytes_written",
        _memcached(
            "written_bytes_total",
            "Total number of bytes sent by this server to network.",
            MetricKind.COUNTER,
        ),
    ),
    StatSpec("cmd_get", _COMMANDS, label_values=("get",)),
    StatSpec("cmd_set", _COMMANDS, label_values=("set",)),
    StatSpec("cmd_flush", _COMMANDS, label_values=("flush",)),
    StatSpec("cmd_touch", _COMMANDS, label_values=("touch",)),
    StatSpec("get_hits", _GETS, label_values=("hit",)),
    StatSpec("get_misses", _GETS, label_values=("miss",)),
)

# The settings maxconns doubles as max_connections on servers too old to
# report it in plain stats.
MAXCONNS_FALLBACK_SPEC = StatSpec("maxconns", MAX_CONNECTIONS_DESCRIPTOR)

SETTINGS_SPECS: tuple[StatSpec, ...] = (
    StatSpec(
        "maxconns",
        _memcached("config_max_connections", "Maximum number of clients allowed."),
    ),
    StatSpec(
        "item_size_max",
        _memcached("config_item_size_max_bytes", "Maximum size of an item."),
    ),
    StatSpec(
        "num_threads",
        _memcached("config_threads", "Number of worker threads configured."),
    ),
    StatSpec(
        "lru_crawler",
        _memcached("config_lru_crawler_enabled", "Whether the LRU crawler is enabled."),
        parse_bool,
    ),
    StatSpec(
        "evictions",
        _memcached(
            "config_evictions_enabled",
            "Whether items are evicted when memory runs out.",
        ),
        parse_bool,
    ),
)
