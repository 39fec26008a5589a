"""
Event extractors — typed tables from Spikes simulator logs.

Each extractor scans the ordered lines of one run, keeps the lines whose
shape matches its event kind, and materialises one ``EventTable`` of frozen
row dataclasses in log order.  Unrelated lines (framework noise, other event
kinds) are skipped silently; a matching line whose fields cannot be read is
a hard error naming the line and the field.

Event kinds and the log lines they come from:

    TopologyRow             ... - topology; neuron_id: output-1; location: (x=-300 µm, y=0 µm, z=0 µm)
    ConnectionRow           ... - networkConnected; pre_synaptic: input-1; post_synaptic: output-1; initial_weight: 0.5; ...
    SignalRow               ... - receive; id: output-2; source: input-2; timestamp: 121.0 ms; ...
    LearningRow             ... - learn; id: output-2; source: input-2; previous_weight: 0.5; ...
    MembranePotentialRow    ... - update; id: output-2; signal_timestamp: 38.0 ms; ...
    SpikeRow                ... - fire; id: inhib-2; timestamp: 74.0 ms; signal_intensity: -0.5 mV; last_fire: 0.0 ms
    IntrinsicPlasticityRow  ... - intrinsicPlasticity; id: inhib-2; timestamp: 173.0 ms; intrinsicPlasticity: 0.0 mV

``network_info`` folds the header lines (``summary``, ``topology``,
``learning``) into a ``NetworkMetadata`` map instead of a table.

Usage::

    spikes = spike_events(lines)
    spikes.column("signal_time")          # numpy array of spike times
    for neuron_id, group in spikes.group_by("neuron_id").items():
        ...
"""

from __future__ import annotations

import logging
import math
import re
from collections import OrderedDict
from dataclasses import asdict, dataclass, field, fields
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Pattern,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_type_hints,
)

import numpy as np

from coordinates import Coordinate, parse_coordinate
from log_lexer import (
    FRAGMENT_SEPARATOR,
    KEY_VALUE_SEPARATOR,
    PREAMBLE_SEPARATOR,
    ParsedLine,
    parse_line,
)
from spikes_config import (
    EVENT_SCHEMAS,
    EventKind,
    EventSchema,
    MetadataSection,
    ParsingConfig,
)
from spikes_errors import MalformedCoordinate, MissingField, NumericParseFailure

logger = logging.getLogger("spikes.extractors")


# ---------------------------------------------------------------------------
# Row types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TopologyRow:
    """Location of one neuron."""
    neuron_id: str
    x1: float
    x2: float
    x3: float


@dataclass(frozen=True)
class Connection:
    """A directed connection between a pre- and a post-synaptic neuron.

    Attributes:
        pre_synaptic_id: ID of the source neuron.
        pre_synaptic_coordinate: Location of the source neuron.
        post_synaptic_id: ID of the destination neuron.
        post_synaptic_coordinate: Location of the destination neuron.
        initial_weight: Connection weight at construction.
    """
    pre_synaptic_id: str
    pre_synaptic_coordinate: Coordinate
    post_synaptic_id: str
    post_synaptic_coordinate: Coordinate
    initial_weight: float

    @property
    def length(self) -> float:
        return self.pre_synaptic_coordinate.distance_to(self.post_synaptic_coordinate)


@dataclass(frozen=True)
class ConnectionRow:
    """Flattened ``Connection`` with one column per coordinate component."""
    pre_synaptic_id: str
    post_synaptic_id: str
    initial_weight: float
    pre_x1: float
    pre_x2: float
    pre_x3: float
    post_x1: float
    post_x2: float
    post_x3: float

    @classmethod
    def from_connection(cls, connection: Connection) -> "ConnectionRow":
        pre = connection.pre_synaptic_coordinate
        post = connection.post_synaptic_coordinate
        return cls(
            pre_synaptic_id=connection.pre_synaptic_id,
            post_synaptic_id=connection.post_synaptic_id,
            initial_weight=connection.initial_weight,
            pre_x1=pre.x1, pre_x2=pre.x2, pre_x3=pre.x3,
            post_x1=post.x1, post_x2=post.x2, post_x3=post.x3,
        )

    def connection(self) -> Connection:
        return Connection(
            pre_synaptic_id=self.pre_synaptic_id,
            pre_synaptic_coordinate=Coordinate(self.pre_x1, self.pre_x2, self.pre_x3),
            post_synaptic_id=self.post_synaptic_id,
            post_synaptic_coordinate=Coordinate(self.post_x1, self.post_x2, self.post_x3),
            initial_weight=self.initial_weight,
        )


@dataclass(frozen=True)
class SignalRow:
    """A signal arriving at a post-synaptic neuron (times in ms, intensity in mV)."""
    pre_synaptic_id: str
    post_synaptic_id: str
    signal_time: float
    last_event_time: float
    last_fire_time: float
    signal_intensity: float


@dataclass(frozen=True)
class LearningRow:
    """A weight update of one connection.

    Attributes:
        pre_synaptic_id: Source neuron of the connection.
        post_synaptic_id: Destination neuron of the connection.
        signal_time: Time (ms) the signal arrived at the post-synaptic neuron.
        previous_weight: Weight before the update.
        new_weight: Weight after the update.
        adjustment: Amount of the update.
        time_window: Time (ms) between the latest and the previous spike.
        stdp_time: Time (ms) of the event within the time window.
    """
    pre_synaptic_id: str
    post_synaptic_id: str
    signal_time: float
    previous_weight: float
    new_weight: float
    adjustment: float
    time_window: float
    stdp_time: float


@dataclass(frozen=True)
class MembranePotentialRow:
    neuron_id: str
    signal_time: float
    last_event_time: float
    last_fire_time: float
    potential: float


@dataclass(frozen=True)
class SpikeRow:
    neuron_id: str
    signal_time: float
    signal_intensity: float
    last_fire_time: float


@dataclass(frozen=True)
class IntrinsicPlasticityRow:
    """Update of a neuron's bias (intrinsic plasticity), in mV."""
    neuron_id: str
    timestamp: float
    intrinsic_plasticity: float


R = TypeVar("R")


# ---------------------------------------------------------------------------
# Event table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EventTable(Generic[R]):
    """Ordered, immutable table of rows of one kind.

    Row order is log order.  An empty table means no line of the log
    matched; whether to treat that specially is up to the caller.
    """
    row_type: Type[R]
    rows: Tuple[R, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[R]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> R:
        return self.rows[index]

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(self.row_type))

    def column(self, name: str) -> np.ndarray:
        """Values of one column, float64 for numeric columns else object."""
        hints = _row_hints(self.row_type)
        if name not in hints:
            raise KeyError(f"{self.row_type.__name__} has no column {name!r}")
        values = [getattr(row, name) for row in self.rows]
        if hints[name] is float:
            return np.asarray(values, dtype=np.float64)
        return np.asarray(values, dtype=object)

    def to_records(self) -> List[Dict[str, Any]]:
        return [asdict(row) for row in self.rows]

    def group_by(self, *names: str) -> "OrderedDict[Any, EventTable[R]]":
        """Group rows by one or more columns.

        Groups are ordered by their first appearance in the log and keep the
        log order of their rows, so ``group[0]`` is always the group's first
        event.  With several column names the keys are tuples.
        """
        if not names:
            raise ValueError("group_by needs at least one column name")
        for name in names:
            if name not in self.columns:
                raise KeyError(f"{self.row_type.__name__} has no column {name!r}")

        grouped: "OrderedDict[Any, List[R]]" = OrderedDict()
        for row in self.rows:
            values = tuple(getattr(row, name) for name in names)
            key = values[0] if len(names) == 1 else values
            grouped.setdefault(key, []).append(row)
        return OrderedDict(
            (key, EventTable(self.row_type, tuple(rows)))
            for key, rows in grouped.items()
        )


_HINT_CACHE: Dict[type, Dict[str, Any]] = {}


def _row_hints(row_type: type) -> Dict[str, Any]:
    hints = _HINT_CACHE.get(row_type)
    if hints is None:
        hints = get_type_hints(row_type)
        _HINT_CACHE[row_type] = hints
    return hints


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def strip_units(value: str, units: Sequence[str]) -> str:
    """Remove one trailing unit symbol (``ms``, ``mV``, ``µm``...) from a value."""
    text = value.strip()
    for unit in sorted(units, key=len, reverse=True):
        if text.endswith(unit):
            return text[: -len(unit)].rstrip()
    return text


def parse_quantity(
    value: str,
    units: Sequence[str] = ParsingConfig().unit_suffixes,
    field: Optional[str] = None,
    line: Optional[str] = None,
) -> float:
    """Parse a logged quantity such as ``"74.0 ms"`` into a finite float.

    Raises:
        NumericParseFailure: If the value without its unit is not a finite
            real number.
    """
    text = strip_units(value, units)
    try:
        number = float(text)
    except ValueError:
        raise NumericParseFailure(
            f"not a number: {value!r}", line=line, field=field
        ) from None
    if not math.isfinite(number):
        raise NumericParseFailure(
            f"not a finite number: {value!r}", line=line, field=field
        )
    return number


def _shape_pattern(schema: EventSchema, identifier: str) -> Pattern[str]:
    keys = FRAGMENT_SEPARATOR.join(
        f"{re.escape(key)}{KEY_VALUE_SEPARATOR}{identifier}"
        for key in schema.shape_keys
    )
    return re.compile(
        re.escape(PREAMBLE_SEPARATOR + schema.command.value + FRAGMENT_SEPARATOR)
        + keys
        + r"(?:;|\s*$)"
    )


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

class EventExtractor(Generic[R]):
    """Base class for the per-kind extractors.

    Subclasses set ``kind`` and ``row_type``.  The default row builder reads
    every field listed in the kind's schema, as a string for ``str`` row
    fields and as a unit-stripped float for ``float`` row fields.
    Extractor instances are stateless and callable, so one instance can be
    shared across runs and threads.
    """

    kind: EventKind
    row_type: Type[R]

    def __init__(self, config: Optional[ParsingConfig] = None) -> None:
        self.config = config or ParsingConfig()
        self.schema = EVENT_SCHEMAS[self.kind]
        self._shape = _shape_pattern(self.schema, self.config.identifier_pattern)

    def __call__(self, lines: Iterable[str]) -> EventTable[R]:
        return self.extract(lines)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def matches(self, line: str) -> bool:
        """True if the line has this extractor's event shape."""
        return self._shape.search(line) is not None

    def extract(self, lines: Iterable[str]) -> EventTable[R]:
        """Build the table for one run's lines, in log order."""
        rows: List[R] = []
        for line in lines:
            match = self._shape.search(line)
            if match is None:
                continue
            # Lex from the matched separator so a preamble containing
            # " - " cannot shift the command.
            parsed = parse_line(line[match.start():])
            if parsed is None:
                continue
            self._check_required(parsed, line)
            rows.append(self._build_row(parsed, line))
        logger.debug("%s extracted %d rows", type(self).__name__, len(rows))
        return EventTable(self.row_type, tuple(rows))

    def _build_row(self, parsed: ParsedLine, line: str) -> R:
        hints = _row_hints(self.row_type)
        values: Dict[str, Any] = {}
        for name, key in self.schema.fields:
            if hints[name] is str:
                values[name] = self._identifier(parsed, key, line)
            else:
                values[name] = self._number(parsed, key, line)
        return self.row_type(**values)

    # ── Field readers ─────────────────────────────────────────────────

    def _check_required(self, parsed: ParsedLine, line: str) -> None:
        missing = [
            key for key in self.schema.required_keys if key not in parsed.attributes
        ]
        if missing:
            raise MissingField(
                f"missing keys {', '.join(missing)}", line=line, field=missing[0]
            )

    def _require(self, parsed: ParsedLine, key: str, line: str) -> str:
        value = parsed.get(key)
        if value is None:
            raise MissingField(f"missing key {key!r}", line=line, field=key)
        return value

    def _identifier(self, parsed: ParsedLine, key: str, line: str) -> str:
        value = self._require(parsed, key, line).strip()
        if not value:
            raise MissingField(f"empty identifier {key!r}", line=line, field=key)
        return value

    def _number(self, parsed: ParsedLine, key: str, line: str) -> float:
        return parse_quantity(
            self._require(parsed, key, line),
            self.config.unit_suffixes,
            field=key,
            line=line,
        )

    def _coordinate(self, parsed: ParsedLine, key: str, line: str) -> Coordinate:
        literal = self._require(parsed, key, line)
        try:
            return parse_coordinate(literal)
        except MalformedCoordinate as exc:
            exc.line = line
            exc.field = key
            raise


class TopologyExtractor(EventExtractor[TopologyRow]):
    """Neuron locations from ``topology; neuron_id: ...; location: ...`` lines."""

    kind = EventKind.TOPOLOGY
    row_type = TopologyRow

    def _build_row(self, parsed: ParsedLine, line: str) -> TopologyRow:
        neuron_id = self._identifier(parsed, self.schema.key_for("neuron_id"), line)
        location = self._coordinate(parsed, self.schema.key_for("location"), line)
        return TopologyRow(neuron_id, location.x1, location.x2, location.x3)


class ConnectionExtractor(EventExtractor[ConnectionRow]):
    """Network connections from ``networkConnected`` lines."""

    kind = EventKind.CONNECTION
    row_type = ConnectionRow

    def connection(self, parsed: ParsedLine, line: str) -> Connection:
        key = self.schema.key_for
        return Connection(
            pre_synaptic_id=self._identifier(parsed, key("pre_synaptic_id"), line),
            pre_synaptic_coordinate=self._coordinate(
                parsed, key("pre_synaptic_location"), line
            ),
            post_synaptic_id=self._identifier(parsed, key("post_synaptic_id"), line),
            post_synaptic_coordinate=self._coordinate(
                parsed, key("post_synaptic_location"), line
            ),
            initial_weight=self._number(parsed, key("initial_weight"), line),
        )

    def _build_row(self, parsed: ParsedLine, line: str) -> ConnectionRow:
        return ConnectionRow.from_connection(self.connection(parsed, line))


class SignalExtractor(EventExtractor[SignalRow]):
    kind = EventKind.SIGNAL
    row_type = SignalRow


class LearningExtractor(EventExtractor[LearningRow]):
    kind = EventKind.LEARNING
    row_type = LearningRow


class MembranePotentialExtractor(EventExtractor[MembranePotentialRow]):
    kind = EventKind.MEMBRANE_POTENTIAL
    row_type = MembranePotentialRow


class SpikeExtractor(EventExtractor[SpikeRow]):
    kind = EventKind.SPIKE
    row_type = SpikeRow


class IntrinsicPlasticityExtractor(EventExtractor[IntrinsicPlasticityRow]):
    kind = EventKind.INTRINSIC_PLASTICITY
    row_type = IntrinsicPlasticityRow


_EXTRACTORS: Dict[EventKind, Type[EventExtractor]] = {
    EventKind.TOPOLOGY: TopologyExtractor,
    EventKind.CONNECTION: ConnectionExtractor,
    EventKind.SIGNAL: SignalExtractor,
    EventKind.LEARNING: LearningExtractor,
    EventKind.MEMBRANE_POTENTIAL: MembranePotentialExtractor,
    EventKind.SPIKE: SpikeExtractor,
    EventKind.INTRINSIC_PLASTICITY: IntrinsicPlasticityExtractor,
}


def get_extractor(
    kind: EventKind, config: Optional[ParsingConfig] = None
) -> EventExtractor:
    """Return the extractor for an event kind."""
    return _EXTRACTORS[kind](config)


def network_topology(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> EventTable[TopologyRow]:
    return TopologyExtractor(config).extract(lines)


def connection_topology(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> EventTable[ConnectionRow]:
    return ConnectionExtractor(config).extract(lines)


def connections(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> List[Connection]:
    """The run's connections as ``Connection`` values, in log order."""
    return [row.connection() for row in connection_topology(lines, config)]


def signal_events(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> EventTable[SignalRow]:
    return SignalExtractor(config).extract(lines)


def learning_events(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> EventTable[LearningRow]:
    return LearningExtractor(config).extract(lines)


def membrane_potential_events(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> EventTable[MembranePotentialRow]:
    return MembranePotentialExtractor(config).extract(lines)


def spike_events(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> EventTable[SpikeRow]:
    return SpikeExtractor(config).extract(lines)


def intrinsic_plasticity_events(
    lines: Iterable[str], config: Optional[ParsingConfig] = None
) -> EventTable[IntrinsicPlasticityRow]:
    return IntrinsicPlasticityExtractor(config).extract(lines)


# ---------------------------------------------------------------------------
# Network metadata
# ---------------------------------------------------------------------------

_HEADER_PATTERN = re.compile(
    re.escape(PREAMBLE_SEPARATOR)
    + "(?:" + "|".join(re.escape(s.value) for s in MetadataSection) + ")"
    + re.escape(FRAGMENT_SEPARATOR)
)


@dataclass(eq=True, frozen=True)
class NetworkMetadata:
    """Header information of one run, keyed by section name.

    Sections are read-only views; equal metadata hashes equal.

    Typical header lines::

        summary; input_neurons: 2; hidden_neurons: 2; output_neurons: 2
        topology; neuron_id: inhib-2; location: (x=290 µm, y=0 µm, z=0 µm)
        learning; learning_type: stdp_soft; inhibitory_amplitude: 0.06; ...
    """
    sections: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {
            name: MappingProxyType(dict(attributes))
            for name, attributes in self.sections.items()
        }
        object.__setattr__(self, "sections", MappingProxyType(frozen))

    def __hash__(self) -> int:
        return hash(frozenset(
            (name, frozenset(attributes.items()))
            for name, attributes in self.sections.items()
        ))

    def __contains__(self, name: object) -> bool:
        return _section_name(name) in self.sections

    def __len__(self) -> int:
        return len(self.sections)

    def get(
        self,
        name: Union[MetadataSection, str],
        default: Optional[Mapping[str, str]] = None,
    ) -> Optional[Mapping[str, str]]:
        return self.sections.get(_section_name(name), default)

    def section(self, name: Union[MetadataSection, str]) -> Mapping[str, str]:
        """Attributes of one header section, as a read-only mapping.

        Raises:
            MissingField: If the log carried no such header line.
        """
        key = _section_name(name)
        if key not in self.sections:
            raise MissingField(f"no {key!r} header in network metadata", field=key)
        return self.sections[key]

    def summary_counts(self) -> Dict[str, int]:
        """Integer-valued entries of the ``summary`` header (e.g. ``input_neurons``).

        The summary carries free-form keys; entries that are not integers,
        such as a network name, are left out.
        """
        counts: Dict[str, int] = {}
        for key, value in self.section(MetadataSection.SUMMARY).items():
            try:
                counts[key] = int(value.strip())
            except ValueError:
                logger.debug("Summary entry %r is not a count: %r", key, value)
        return counts


def _section_name(name: object) -> object:
    return name.value if isinstance(name, MetadataSection) else name


def network_info(lines: Iterable[str]) -> NetworkMetadata:
    """Fold a run's header lines into one ``NetworkMetadata``.

    Lines whose command is ``summary``, ``topology`` or ``learning`` are
    stored under that command; a later line with the same command replaces
    an earlier one.  Like the extractors, the header is lexed from the
    matched command, so a preamble containing `` - `` is tolerated.
    """
    sections: Dict[str, Dict[str, str]] = {}
    for line in lines:
        match = _HEADER_PATTERN.search(line)
        if match is None:
            continue
        parsed = parse_line(line[match.start():])
        if parsed is None:
            continue
        sections[parsed.command] = dict(parsed.attributes)
    logger.debug("Network metadata sections: %s", sorted(sections))
    return NetworkMetadata(sections)
