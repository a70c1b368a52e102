import pytest

from consolidator.cli import build_parser, load_config


@pytest.fixture
def config_module(tmp_path, monkeypatch):
    module = tmp_path / "consolidator_test_settings.py"
    module.write_text(
        'SOLANA_RPC_ENDPOINTS = "https://rpc-a.example, https://rpc-b.example"\n'
        'CONFIRM_TIMEOUT_SECONDS = "abc"\n'
        'MAX_SEND_RETRIES = "5"\n'
        'SIMULATE_BEFORE_SUBMIT = "true"\n'
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    return "consolidator_test_settings"


def test_load_config_applies_types_and_defaults(config_module):
    config = load_config(config_module)

    assert config["SOLANA_RPC_ENDPOINTS"] == ["https://rpc-a.example", "https://rpc-b.example"]
    assert config["CONFIRM_TIMEOUT_SECONDS"] == 30.0
    assert config["MAX_SEND_RETRIES"] == 5
    assert config["SIMULATE_BEFORE_SUBMIT"] is True
    assert config["EXPLORER_TX_URL"] == "https://solscan.io/tx/{signature}"


def test_load_config_missing_module():
    with pytest.raises(ModuleNotFoundError):
        load_config("no_such_consolidator_settings")


def test_parser_action_flags():
    args = build_parser().parse_args(["close-empty", "--all", "--yes"])
    assert args.command == "close-empty"
    assert args.all and args.yes and not args.simulate

    args = build_parser().parse_args(["transfer", "--account", "A", "--account", "B", "--simulate"])
    assert args.account == ["A", "B"]
    assert args.simulate


def test_parser_destination_commands():
    args = build_parser().parse_args(["destination", "set", "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"])
    assert args.destination_command == "set"
    assert args.address.startswith("JUP")

    with pytest.raises(SystemExit):
        build_parser().parse_args([])
