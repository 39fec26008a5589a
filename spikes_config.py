"""
Spikes Configuration — Schema table and tunables for the log-analysis core.

Holds the closed enumerations for log commands, event kinds and metadata
sections, the single ``EVENT_SCHEMAS`` table that every extractor consults
for command names and field keys, and a ``SpikesConfig`` dataclass with the
parsing, series and logging sections.  Configuration can be loaded from a
dict of overrides, a JSON file, or left at sensible defaults.

Usage::

    from spikes_config import load_spikes_config, configure_logging

    # Defaults
    cfg = load_spikes_config()

    # With overrides
    cfg = load_spikes_config({"series": {"max_workers": 4}})

    # From JSON file
    cfg = load_spikes_config(config_path="~/.spikes/config.json")
    configure_logging(cfg)
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger("spikes.config")

_SECTIONS = ("parsing", "series", "logging")


# ── Enumerations ───────────────────────────────────────────────────────


class Command(Enum):
    """Command names that appear after the `` - `` separator of a log line."""
    SUMMARY = "summary"
    TOPOLOGY = "topology"
    LEARNING = "learning"
    NETWORK_CONNECTED = "networkConnected"
    RECEIVE = "receive"
    LEARN = "learn"
    UPDATE = "update"
    FIRE = "fire"
    INTRINSIC_PLASTICITY = "intrinsicPlasticity"


class EventKind(Enum):
    """Kinds of event table the extractors produce."""
    TOPOLOGY = auto()
    CONNECTION = auto()
    SIGNAL = auto()
    LEARNING = auto()
    MEMBRANE_POTENTIAL = auto()
    SPIKE = auto()
    INTRINSIC_PLASTICITY = auto()


class MetadataSection(Enum):
    """Header sections folded into the network metadata."""
    SUMMARY = "summary"
    TOPOLOGY = "topology"
    LEARNING = "learning"


# ── Schema table ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class EventSchema:
    """Shape and field keys of one event kind.

    Attributes:
        command: Command the line must carry.
        shape_keys: Keys that must directly follow the command, in order,
            for a line to count as this kind of event.
        fields: Pairs of (row field, log key) read from a matching line.
    """
    command: Command
    shape_keys: Tuple[str, ...]
    fields: Tuple[Tuple[str, str], ...]

    @property
    def required_keys(self) -> Tuple[str, ...]:
        return tuple(key for _, key in self.fields)

    def key_for(self, row_field: str) -> str:
        for name, key in self.fields:
            if name == row_field:
                return key
        raise KeyError(row_field)


EVENT_SCHEMAS: Dict[EventKind, EventSchema] = {
    EventKind.TOPOLOGY: EventSchema(
        command=Command.TOPOLOGY,
        shape_keys=("neuron_id",),
        fields=(
            ("neuron_id", "neuron_id"),
            ("location", "location"),
        ),
    ),
    EventKind.CONNECTION: EventSchema(
        command=Command.NETWORK_CONNECTED,
        shape_keys=("pre_synaptic", "post_synaptic"),
        fields=(
            ("pre_synaptic_id", "pre_synaptic"),
            ("post_synaptic_id", "post_synaptic"),
            ("initial_weight", "initial_weight"),
            ("pre_synaptic_location", "pre_synaptic_location"),
            ("post_synaptic_location", "post_synaptic_location"),
        ),
    ),
    EventKind.SIGNAL: EventSchema(
        command=Command.RECEIVE,
        shape_keys=("id", "source"),
        fields=(
            ("pre_synaptic_id", "source"),
            ("post_synaptic_id", "id"),
            ("signal_time", "timestamp"),
            ("last_event_time", "last_event"),
            ("last_fire_time", "last_fire"),
            ("signal_intensity", "signal_intensity"),
        ),
    ),
    EventKind.LEARNING: EventSchema(
        command=Command.LEARN,
        shape_keys=("id", "source"),
        fields=(
            ("pre_synaptic_id", "source"),
            ("post_synaptic_id", "id"),
            ("signal_time", "signal_time"),
            ("previous_weight", "previous_weight"),
            ("new_weight", "new_weight"),
            ("adjustment", "adjustment"),
            ("time_window", "time_window"),
            ("stdp_time", "stdp_time"),
        ),
    ),
    EventKind.MEMBRANE_POTENTIAL: EventSchema(
        command=Command.UPDATE,
        shape_keys=("id",),
        fields=(
            ("neuron_id", "id"),
            ("signal_time", "signal_timestamp"),
            ("last_event_time", "last_event"),
            ("last_fire_time", "last_fire"),
            ("potential", "potential"),
        ),
    ),
    EventKind.SPIKE: EventSchema(
        command=Command.FIRE,
        shape_keys=("id",),
        fields=(
            ("neuron_id", "id"),
            ("signal_time", "timestamp"),
            ("signal_intensity", "signal_intensity"),
            ("last_fire_time", "last_fire"),
        ),
    ),
    EventKind.INTRINSIC_PLASTICITY: EventSchema(
        command=Command.INTRINSIC_PLASTICITY,
        shape_keys=("id",),
        fields=(
            ("neuron_id", "id"),
            ("timestamp", "timestamp"),
            ("intrinsic_plasticity", "intrinsicPlasticity"),
        ),
    ),
}

# Keys of the ``learning`` header section, by learning type.
LEARNING_TYPE_KEY = "learning_type"
HARD_SOFT_KEYS = (
    "inhibitory_amplitude",
    "inhibitory_period",
    "excitation_amplitude",
    "excitation_period",
)
ALPHA_KEYS = ("baseline", "time_constant", "learning_rate")


# ── Section dataclasses ────────────────────────────────────────────────


@dataclass
class ParsingConfig:
    """Configuration for the line lexer and the event extractors."""

    unit_suffixes: Tuple[str, ...] = ("µm", "μm", "um", "ms", "mV")
    identifier_pattern: str = r"[^;\s]+"


@dataclass
class SeriesConfig:
    """Configuration for the series aggregator."""

    max_workers: int = 1


@dataclass
class LoggingConfig:
    """Configuration for the ``spikes`` logger hierarchy."""

    level: str = "WARNING"
    log_dir: Optional[str] = None
    max_log_size_mb: int = 10
    backup_count: int = 5


# ── Top-level config ───────────────────────────────────────────────────


@dataclass
class SpikesConfig:
    """Top-level configuration for the log-analysis core.

    Use ``load_spikes_config()`` to create an instance with user overrides
    applied.
    """

    parsing: ParsingConfig = field(default_factory=ParsingConfig)
    series: SeriesConfig = field(default_factory=SeriesConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# ── Factory ────────────────────────────────────────────────────────────


def _apply_overrides(obj: Any, overrides: Dict[str, Any]) -> None:
    """Apply a dict of overrides to a dataclass instance (in-place)."""
    for key, value in overrides.items():
        if not hasattr(obj, key):
            logger.debug("Ignoring unknown config key %r", key)
            continue
        if isinstance(getattr(obj, key), tuple) and isinstance(value, list):
            value = tuple(value)
        setattr(obj, key, value)


def load_spikes_config(
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[str] = None,
) -> SpikesConfig:
    """Create a ``SpikesConfig`` with defaults, optionally overridden.

    Override precedence (highest wins):
        1. ``overrides`` dict argument
        2. ``config_path`` JSON file
        3. Built-in defaults

    Args:
        overrides: Dict keyed by section name (``parsing``, ``series``,
            ``logging``) whose values are dicts of field→value pairs.
        config_path: Path to a JSON file with the same structure as
            ``overrides``.

    Returns:
        Fully populated ``SpikesConfig``.
    """
    cfg = SpikesConfig()

    # Layer 1: JSON file
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            try:
                with open(p, encoding="utf-8") as f:
                    file_data = json.load(f)
                for section in _SECTIONS:
                    if section in file_data:
                        _apply_overrides(getattr(cfg, section), file_data[section])
            except (OSError, ValueError) as exc:
                logger.warning("Failed to load spikes config from %s: %s", p, exc)

    # Layer 2: dict overrides (win over file)
    if overrides is not None:
        for section in _SECTIONS:
            if section in overrides:
                _apply_overrides(getattr(cfg, section), overrides[section])

    return cfg


def configure_logging(config: Optional[SpikesConfig] = None) -> logging.Logger:
    """Set up the ``spikes`` logger from the logging section.

    Attaches a rotating file handler under ``log_dir`` when one is
    configured.  Calling this twice does not add a second file handler.

    Returns:
        The configured ``spikes`` logger.
    """
    cfg = (config or SpikesConfig()).logging
    root = logging.getLogger("spikes")
    root.setLevel(getattr(logging, cfg.level.upper(), logging.WARNING))

    if cfg.log_dir:
        log_dir = Path(cfg.log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / "spikes.log"
        for handler in root.handlers:
            if getattr(handler, "baseFilename", None) == os.path.abspath(log_path):
                return root
        handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=cfg.max_log_size_mb * 1024 * 1024,
            backupCount=cfg.backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        )
        root.addHandler(handler)

    return root
