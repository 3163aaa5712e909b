"""
Property-based tests for configuration module.

Uses Hypothesis for property-based testing to verify switch definition
parsing, file round trips and environment overrides.
"""

import json
import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from adguard_switchboard.config import (
    LoggingConfig,
    PersistenceConfig,
    ServerConfig,
    SwitchGroupConfig,
    SystemConfig,
    apply_env_overrides,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)
from adguard_switchboard.exceptions import ConfigInvalid


# Strategies for generating valid configuration objects

token_strategy = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789@*?_-"),
    min_size=1,
    max_size=12,
)


@st.composite
def raw_switch_strategy(draw) -> dict:
    """Generate raw switch definitions as they appear in config files."""
    raw = {"name": draw(st.text(
        alphabet=st.sampled_from("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz "),
        min_size=1,
        max_size=20,
    ).filter(lambda s: s.strip()))}
    if draw(st.booleans()):
        raw["clients"] = ",".join(draw(st.lists(token_strategy, max_size=4)))
    if draw(st.booleans()):
        raw["services"] = draw(st.lists(token_strategy, max_size=4))
    if draw(st.booleans()):
        raw["autoResetTimes"] = ",".join(
            str(t) for t in draw(st.lists(st.integers(min_value=0, max_value=1440), min_size=1, max_size=4))
        )
    if draw(st.booleans()):
        raw["defaultState"] = draw(st.booleans())
    if draw(st.booleans()):
        raw["forceState"] = draw(st.booleans())
    if draw(st.booleans()):
        raw["bridged"] = draw(st.booleans())
    return raw


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    server = ServerConfig(
        host=draw(st.sampled_from(["localhost", "adguard.lan", "10.0.0.2"])),
        port=draw(st.integers(min_value=1, max_value=65535)),
        https=draw(st.booleans()),
        username=draw(st.text(alphabet="abcdefgh", max_size=8)),
        password=draw(st.text(alphabet="abcdefgh0123", max_size=12)),
        timeout_ms=draw(st.integers(min_value=1, max_value=60000)),
        verify_ssl=draw(st.booleans()),
    )
    return SystemConfig(
        server=server,
        switches=draw(st.lists(raw_switch_strategy(), max_size=4)),
        interval_ms=draw(st.integers(min_value=1, max_value=600000)),
        persistence=PersistenceConfig(
            storage_dir=Path("/var/lib") / draw(st.text(alphabet="abcdefgh", min_size=1, max_size=8)),
            hmac_secret=draw(st.text(alphabet="abcdef0123456789", min_size=8, max_size=32)),
        ),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
            audit_mode=draw(st.booleans()),
            audit_signing_key=draw(st.one_of(st.none(), st.text(alphabet="xyz", min_size=1, max_size=8))),
        ),
    )


class TestSwitchDefinitionProperty:
    """Property-based tests for parsing raw switch definitions."""

    @given(raw=raw_switch_strategy())
    @settings(max_examples=100)
    def test_parsed_definition_is_normalized(self, raw: dict) -> None:
        """
        *For any* valid raw definition, parsing SHALL yield a trimmed name,
        duplicate-free selector and service lists and at least one
        non-negative timeout.
        """
        config = SwitchGroupConfig.from_dict(raw)

        assert config.name == raw["name"].strip()
        assert len(config.clients) == len(set(config.clients))
        assert len(config.services) == len(set(config.services))
        assert len(config.timeouts) >= 1
        assert len(config.timeouts) == len(set(config.timeouts))
        assert all(t >= 0 for t in config.timeouts)
        assert config.default_state is (raw.get("defaultState") is not False)
        assert config.force_state is (raw.get("forceState") is True)
        assert config.bridged is (raw.get("bridged") is not False)
        assert config.is_global is (len(config.clients) == 0)

    def test_comma_separated_lists_are_trimmed(self) -> None:
        config = SwitchGroupConfig.from_dict({
            "name": "  Kids ",
            "clients": " kid , @family,,kid",
            "services": "tiktok, youtube",
            "autoResetTimes": "0, 15 ,60,15",
        })
        assert config.name == "Kids"
        assert config.clients == ("kid", "@family")
        assert config.services == ("tiktok", "youtube")
        assert config.timeouts == (0, 15, 60)

    def test_snake_case_keys(self) -> None:
        config = SwitchGroupConfig.from_dict({
            "name": "Kids",
            "default_state": False,
            "force_state": True,
            "auto_reset_times": [5, "10"],
        })
        assert config.default_state is False
        assert config.force_state is True
        assert config.timeouts == (5, 10)

    def test_single_integer_timeout(self) -> None:
        assert SwitchGroupConfig.from_dict({"name": "A", "autoResetTimes": 30}).timeouts == (30,)

    def test_defaults(self) -> None:
        config = SwitchGroupConfig.from_dict({"name": "Global"})
        assert config.clients == ()
        assert config.services == ()
        assert config.timeouts == (0,)
        assert config.default_state is True
        assert config.force_state is False
        assert config.bridged is True
        assert config.is_global and not config.is_select_services

    @given(bad=st.one_of(
        st.sampled_from(["soon", "1.5", "", "ten", "0x10"]),
        st.integers(max_value=-1).map(str),
        st.just(True),
    ))
    @settings(max_examples=50)
    def test_invalid_timeout_is_rejected(self, bad) -> None:
        """
        *For any* timeout that is not a non-negative integer, parsing SHALL
        fail with ConfigInvalid naming the switch.
        """
        try:
            SwitchGroupConfig.from_dict({"name": "Kids", "autoResetTimes": [0, bad]})
            assert False, "Expected ConfigInvalid"
        except ConfigInvalid as e:
            assert e.code == "invalid_timeout"
            assert e.details["switch"] == "Kids"

    @given(raw=st.one_of(
        st.just({}),
        st.just({"name": "   "}),
        st.just({"name": None}),
        st.just(["not", "a", "dict"]),
    ))
    @settings(max_examples=10)
    def test_missing_name_is_rejected(self, raw) -> None:
        """
        *For any* definition without a usable name, parsing SHALL fail.
        """
        try:
            SwitchGroupConfig.from_dict(raw)
            assert False, "Expected ConfigInvalid"
        except ConfigInvalid:
            pass

    def test_with_timeouts_keeps_everything_else(self) -> None:
        config = SwitchGroupConfig.from_dict({
            "name": "Kids", "clients": "kid", "defaultState": False, "autoResetTimes": "0,5",
        })
        variant = config.with_timeouts("Kids: 5 minutes", (5,))
        assert variant.name == "Kids: 5 minutes"
        assert variant.timeouts == (5,)
        assert variant.clients == config.clients
        assert variant.default_state is False


class TestConfigurationRoundTripProperty:
    """Property-based tests for configuration file round trips."""

    @given(config=system_config_strategy())
    @settings(max_examples=100)
    def test_config_round_trip_preserves_data(self, config: SystemConfig) -> None:
        """
        *For any* valid SystemConfig, saving to a file and loading it back
        SHALL produce an equivalent SystemConfig.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.json"
            assert save_config_to_file(config, path)
            loaded = load_config_from_file(path)

        assert loaded is not None
        assert loaded.server == config.server
        assert loaded.switches == config.switches
        assert loaded.interval_ms == config.interval_ms
        assert loaded.persistence == config.persistence
        assert loaded.logging == config.logging

    @given(config=system_config_strategy())
    @settings(max_examples=50)
    def test_saved_file_is_valid_json(self, config: SystemConfig) -> None:
        """
        *For any* valid SystemConfig, the saved file SHALL be a JSON object
        with every top-level section.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            save_config_to_file(config, path)
            with open(path, "r", encoding="utf-8") as f:
                parsed = json.load(f)

        assert set(parsed) == {"server", "interval_ms", "persistence", "logging", "switches"}

    def test_missing_file_is_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            assert load_config_from_file(Path(tmpdir) / "absent.json") is None

    def test_malformed_file_is_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text('{"switches": {"name": "not a list"}}', encoding="utf-8")
            assert load_config_from_file(path) is None
            path.write_text("{broken", encoding="utf-8")
            assert load_config_from_file(path) is None

    def test_default_config_has_one_global_switch(self) -> None:
        config = create_default_config(Path("/tmp/switchboard"))
        assert len(config.switches) == 1
        assert SwitchGroupConfig.from_dict(config.switches[0]).is_global
        assert config.persistence.storage_dir == Path("/tmp/switchboard")
        assert config.interval_ms == 10000


class TestEnvironmentOverrideProperty:
    """Tests for server settings taken from the environment."""

    def test_env_overrides_server(self, monkeypatch, tmp_path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ADGUARD_HOST", " adguard.lan ")
        monkeypatch.setenv("ADGUARD_PORT", "3000")
        monkeypatch.setenv("ADGUARD_USERNAME", "admin")
        monkeypatch.setenv("ADGUARD_PASSWORD", "hunter2")

        config = apply_env_overrides(create_default_config())

        assert config.server.host == "adguard.lan"
        assert config.server.port == 3000
        assert config.server.username == "admin"
        assert config.server.password == "hunter2"

    def test_invalid_port_is_ignored(self, monkeypatch, tmp_path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("ADGUARD_PORT", "eighty")
        monkeypatch.delenv("ADGUARD_HOST", raising=False)

        config = apply_env_overrides(create_default_config())

        assert config.server.port == 80
        assert config.server.host == "localhost"

    def test_dotenv_file_is_read(self, monkeypatch, tmp_path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("ADGUARD_HOST", raising=False)
        (tmp_path / ".env").write_text("ADGUARD_HOST=from-dotenv\n", encoding="utf-8")

        config = apply_env_overrides(create_default_config())

        assert config.server.host == "from-dotenv"
