"""Tests for the configuration, schema table and logging setup."""

import json
import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from spikes_config import (
    EVENT_SCHEMAS,
    Command,
    EventKind,
    LoggingConfig,
    ParsingConfig,
    SeriesConfig,
    SpikesConfig,
    configure_logging,
    load_spikes_config,
)


class TestSpikesConfig:

    def test_defaults(self):
        cfg = load_spikes_config()
        assert isinstance(cfg.parsing, ParsingConfig)
        assert isinstance(cfg.series, SeriesConfig)
        assert isinstance(cfg.logging, LoggingConfig)
        assert "ms" in cfg.parsing.unit_suffixes
        assert cfg.series.max_workers == 1

    def test_dict_overrides(self):
        cfg = load_spikes_config({"series": {"max_workers": 4}, "logging": {"level": "DEBUG"}})
        assert cfg.series.max_workers == 4
        assert cfg.logging.level == "DEBUG"

    def test_unknown_keys_ignored(self):
        cfg = load_spikes_config({"series": {"nonexistent": 1}, "plots": {"dpi": 300}})
        assert not hasattr(cfg.series, "nonexistent")

    def test_json_file(self, tmp_path):
        path = tmp_path / "spikes.json"
        path.write_text(json.dumps({"parsing": {"unit_suffixes": ["ms", "s"]}}))
        cfg = load_spikes_config(config_path=str(path))
        assert cfg.parsing.unit_suffixes == ("ms", "s")

    def test_overrides_win_over_file(self, tmp_path):
        path = tmp_path / "spikes.json"
        path.write_text(json.dumps({"series": {"max_workers": 2}}))
        cfg = load_spikes_config({"series": {"max_workers": 6}}, config_path=str(path))
        assert cfg.series.max_workers == 6

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = load_spikes_config(config_path=str(tmp_path / "absent.json"))
        assert cfg == SpikesConfig()

    def test_corrupt_file_logged_and_ignored(self, tmp_path, caplog):
        path = tmp_path / "spikes.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="spikes.config"):
            cfg = load_spikes_config(config_path=str(path))
        assert cfg == SpikesConfig()
        assert "Failed to load spikes config" in caplog.text


class TestEventSchemas:

    def test_every_kind_has_a_schema(self):
        assert set(EVENT_SCHEMAS) == set(EventKind)

    def test_shape_keys_are_required_keys(self):
        for schema in EVENT_SCHEMAS.values():
            assert set(schema.shape_keys) <= set(schema.required_keys)

    def test_key_for(self):
        schema = EVENT_SCHEMAS[EventKind.SIGNAL]
        assert schema.command is Command.RECEIVE
        assert schema.key_for("pre_synaptic_id") == "source"
        with pytest.raises(KeyError):
            schema.key_for("potential")


class TestConfigureLogging:

    def test_sets_level(self):
        logger = configure_logging(load_spikes_config({"logging": {"level": "debug"}}))
        try:
            assert logger.name == "spikes"
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(logging.NOTSET)

    def test_rotating_file_handler(self, tmp_path):
        cfg = load_spikes_config({"logging": {"level": "INFO", "log_dir": str(tmp_path)}})
        logger = configure_logging(cfg)
        try:
            configure_logging(cfg)
            handlers = [h for h in logger.handlers if getattr(h, "baseFilename", None)]
            assert len(handlers) == 1
            logging.getLogger("spikes.series").info("hello")
            handlers[0].flush()
            assert "hello" in (tmp_path / "spikes.log").read_text(encoding="utf-8")
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.setLevel(logging.NOTSET)
