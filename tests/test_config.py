import pytest

from clive.config import ClientConfig, build_config, load_profile
from clive.errors import ConfigError
from clive.main import parse_args
from clive.signaling.messages import Role


def test_defaults() -> None:
    config = build_config()

    assert config.room == "default-room"
    assert config.server == "localhost:8080"
    assert config.role is Role.CALLEE
    assert config.negotiation_timeout == 30.0
    assert config.endpoint.url == "ws://localhost:8080/ws?room=default-room"


def test_room_is_escaped_in_url() -> None:
    config = ClientConfig(room="team a/b")

    assert config.endpoint.url == "ws://localhost:8080/ws?room=team%20a%2Fb"


def test_profile_then_cli_precedence(tmp_path) -> None:
    path = tmp_path / "clive.yaml"
    path.write_text(
        "profiles:\n"
        "  default:\n"
        "    room: lobby\n"
        "  lab:\n"
        "    room: lab-room\n"
        "    server: 10.0.0.2:9000\n"
        "    negotiation_timeout: 60\n"
        "    stun_server: null\n",
        encoding="utf-8",
    )

    assert build_config(config_path=path).room == "lobby"

    config = build_config({"room": "cli-room", "caller": None}, config_path=path, profile="lab")

    assert config.room == "cli-room"
    assert config.server == "10.0.0.2:9000"
    assert config.negotiation_timeout == 60.0
    assert config.stun_server is None
    assert config.caller is False


def test_flat_file_without_profiles(tmp_path) -> None:
    path = tmp_path / "flat.yaml"
    path.write_text("caller: true\nlog_level: debug\n", encoding="utf-8")

    config = build_config(config_path=path)

    assert config.role is Role.CALLER
    assert config.log_level == "DEBUG"


def test_missing_profile_is_an_error(tmp_path) -> None:
    path = tmp_path / "clive.yaml"
    path.write_text("profiles:\n  default: {}\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_profile(path, "missing")


def test_missing_file_is_an_error(tmp_path) -> None:
    with pytest.raises(ConfigError):
        build_config(config_path=tmp_path / "nope.yaml")


def test_unknown_setting_is_rejected(tmp_path) -> None:
    path = tmp_path / "clive.yaml"
    path.write_text("colour: blue\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        build_config(config_path=path)


@pytest.mark.parametrize(
    "overrides",
    [
        {"room": "  "},
        {"server": "ws://localhost:8080"},
        {"negotiation_timeout": -1},
        {"send_queue_size": 0},
        {"log_level": "chatty"},
        {"caller": "false"},
        {"self_view": 1},
    ],
)
def test_invalid_values_are_rejected(overrides) -> None:
    with pytest.raises(ConfigError):
        build_config(overrides)


def test_cli_flags_map_to_overrides() -> None:
    args = parse_args(["-r", "lobby", "-s", "relay:8080", "-c", "--timeout", "0", "--no-self-view"])

    assert args.room == "lobby"
    assert args.server == "relay:8080"
    assert args.caller is True
    assert args.negotiation_timeout == 0.0
    assert args.self_view is False


def test_cli_defaults_leave_config_untouched() -> None:
    args = parse_args([])

    assert args.room is None
    assert args.caller is None
    assert args.self_view is None
    assert args.config is None


def test_quoted_boolean_in_yaml_is_rejected(tmp_path) -> None:
    path = tmp_path / "clive.yaml"
    path.write_text('caller: "false"\n', encoding="utf-8")

    with pytest.raises(ConfigError):
        build_config(config_path=path)
