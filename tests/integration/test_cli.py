"""
Command-line runner tests.
"""

import yaml

from amm_arbitrage.__main__ import DEMO_POOLS, main


def test_demo_run(capsys):
    assert main(["--ticks", "1", "--log-level", "WARNING"]) == 0

    out = capsys.readouterr().out
    assert "Tick 1" in out
    assert "Capital summary" in out


def test_pool_and_config_files(tmp_path, capsys):
    pools_path = tmp_path / "pools.yaml"
    pools_path.write_text(yaml.safe_dump({"pools": DEMO_POOLS[:2]}))
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({"enable_statistics": False}))

    exit_code = main([
        "--config", str(config_path),
        "--pools", str(pools_path),
        "--order-size", "5",
        "--ticks", "2",
        "--log-level", "ERROR",
    ])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "Tick 2" in out
    assert "WETH" in out


def test_invalid_order_size():
    assert main(["--order-size", "abc", "--log-level", "ERROR"]) == 2


def test_missing_config(tmp_path):
    assert main(["--config", str(tmp_path / "nope.yaml"), "--log-level", "ERROR"]) == 2


def test_invalid_config(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({"max_concurrency": 0}))
    assert main(["--config", str(config_path), "--log-level", "ERROR"]) == 2
