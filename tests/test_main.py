import json
from decimal import Decimal

import pytest

from target_engine import main as cli
from target_engine.settings import settings


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "state_backend", "json")
    monkeypatch.setattr(settings, "trade_state_path", tmp_path / "trade_state.json")
    monkeypatch.setattr(settings, "report_path", tmp_path / "report.json")
    monkeypatch.setattr(settings, "ai_enabled", False)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    return tmp_path


def _write_snapshot(path, **overrides):
    payload = {
        "symbol": "BTCUSDT",
        "current_price": "100",
        "high_24h": "103",
        "low_24h": "97",
        "price_change_24h_percent": "0",
        "account_balance": "1000",
    }
    payload.update(overrides)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_analyze_prints_fallback_targets(tmp_path, capsys):
    snapshot = _write_snapshot(tmp_path / "snap.json")

    code = cli.main(["--policy", str(tmp_path / "none.yaml"), "analyze", "--snapshot", str(snapshot), "--no-ai"])

    assert code == 0
    targets = json.loads(capsys.readouterr().out)
    assert targets["source"] == "fallback"
    assert Decimal(targets["stop_loss_price"]) == Decimal("97")


def test_analyze_with_missing_snapshot_fails(tmp_path):
    code = cli.main(["analyze", "--snapshot", str(tmp_path / "missing.json"), "--no-ai"])
    assert code == 2


def test_record_until_daily_limit(tmp_path, capsys):
    policy = ["--policy", str(tmp_path / "none.yaml")]

    assert cli.main(policy + ["record", "BTCUSDT", "buy", "64000", "0.01"]) == 0
    first = json.loads(capsys.readouterr().out)
    assert first["side"] == "BUY"
    assert first["is_first_trade"] is True

    assert cli.main(policy + ["record", "BTCUSDT", "SELL", "65000", "0.01"]) == 0
    capsys.readouterr()

    assert cli.main(policy + ["record", "BTCUSDT", "BUY", "64000", "0.01"]) == 1
    assert "Daily limit reached (2 trades)" in capsys.readouterr().out

    assert cli.main(policy + ["record", "BTCUSDT", "BUY", "64000", "0.01", "--force"]) == 0


def test_status_and_pnl(tmp_path, capsys):
    policy = ["--policy", str(tmp_path / "none.yaml")]

    assert cli.main(policy + ["pnl", "12.5"]) == 0
    assert "P&L: $12.50" in capsys.readouterr().out

    assert cli.main(policy + ["status", "--json"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["trades_executed"] == 0
    assert status["daily_pnl"] == "12.5"
    assert status["can_trade"] is True


def test_invalid_pnl_amount(tmp_path):
    assert cli.main(["--policy", str(tmp_path / "none.yaml"), "pnl", "lots"]) == 2


def test_watch_once_writes_report(tmp_path):
    snapshot = _write_snapshot(tmp_path / "snap.json")

    code = cli.main(["--policy", str(tmp_path / "none.yaml"), "watch", "--snapshot", str(snapshot), "--once"])

    assert code == 0
    report = json.loads((tmp_path / "report.json").read_text(encoding="utf-8"))
    assert report["cycle"] == 1


def test_analyze_rejects_nan_price(tmp_path):
    snapshot = _write_snapshot(tmp_path / "snap.json", current_price="NaN")

    code = cli.main(["--policy", str(tmp_path / "none.yaml"), "analyze", "--snapshot", str(snapshot), "--no-ai"])

    assert code == 2


def test_non_finite_amounts_are_not_persisted(tmp_path):
    policy = ["--policy", str(tmp_path / "none.yaml")]

    assert cli.main(policy + ["pnl", "Infinity"]) == 2
    assert cli.main(policy + ["record", "BTCUSDT", "BUY", "NaN", "0.01"]) == 2
    assert "NaN" not in (tmp_path / "trade_state.json").read_text(encoding="utf-8")


def test_invalid_policy_file_exits_2(tmp_path):
    policy_path = tmp_path / "trade_policy.yaml"
    policy_path.write_text("limits:\n  max_trades_per_day: 0\n", encoding="utf-8")

    assert cli.main(["--policy", str(policy_path), "status"]) == 2


def test_analyze_builds_snapshot_from_candles(tmp_path, capsys):
    feed = {
        "symbol": "ETHUSDT",
        "current_price": "124",
        "price_change_24h_percent": "3.1",
        "account_balance": "1000",
        "candles": [
            {
                "timestamp": f"2026-03-13T{hour:02d}:00:00Z",
                "open": str(100 + hour),
                "high": str(101 + hour),
                "low": str(99 + hour),
                "close": str(100 + hour),
            }
            for hour in range(24)
        ],
    }
    path = tmp_path / "feed.json"
    path.write_text(json.dumps(feed), encoding="utf-8")

    code = cli.main(["--policy", str(tmp_path / "none.yaml"), "analyze", "--snapshot", str(path), "--no-ai"])

    assert code == 0
    targets = json.loads(capsys.readouterr().out)
    # 24h window: high 124, low 99, close 124 -> pivot (124 + 99 + 124) / 3
    assert Decimal(targets["resistance"]) == 2 * ((Decimal("124") + Decimal("99") + Decimal("124")) / 3) - Decimal("99")
    assert "SMA shows bullish trend" in targets["reasoning"]


def test_status_lists_todays_trades(tmp_path, capsys):
    policy = ["--policy", str(tmp_path / "none.yaml")]
    cli.main(policy + ["record", "BTCUSDT", "BUY", "64000", "0.01"])
    capsys.readouterr()

    assert cli.main(policy + ["status"]) == 0
    out = capsys.readouterr().out
    assert "Trades: 1/2" in out
    assert "BUY 0.01 BTCUSDT @ $64000" in out

    assert cli.main(policy + ["status", "--json"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert [trade["side"] for trade in status["trades"]] == ["BUY"]
