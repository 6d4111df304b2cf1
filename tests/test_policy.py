import pytest

from target_engine.policy import load_trade_policy
from target_engine.settings import Settings


def test_missing_file_uses_settings_defaults(tmp_path):
    policy = load_trade_policy(tmp_path / "absent.yaml")

    assert policy.max_trades_per_day == 2
    assert policy.position_size_fraction == pytest.approx(0.10)
    assert policy.ai_recalc_interval_seconds == 300


def test_yaml_overrides(tmp_path):
    path = tmp_path / "trade_policy.yaml"
    path.write_text(
        "limits:\n  max_trades_per_day: 3\n  position_size_fraction: 0.25\n"
        "targets:\n  ai_enabled: false\n  ai_recalc_interval_seconds: 600\n",
        encoding="utf-8",
    )

    policy = load_trade_policy(path)

    assert policy.max_trades_per_day == 3
    assert policy.position_size_fraction == pytest.approx(0.25)
    assert policy.ai_enabled is False
    assert policy.ai_recalc_interval_seconds == 600


def test_partial_yaml_keeps_defaults(tmp_path):
    path = tmp_path / "trade_policy.yaml"
    path.write_text("limits:\n  max_trades_per_day: 1\n", encoding="utf-8")

    policy = load_trade_policy(path)

    assert policy.max_trades_per_day == 1
    assert policy.ai_recalc_interval_seconds == 300


@pytest.mark.parametrize(
    "content",
    [
        "limits:\n  max_trades_per_day: 0\n",
        "limits:\n  position_size_fraction: 1.5\n",
        "limits:\n  position_size_fraction: 0\n",
    ],
)
def test_invalid_limits_rejected(tmp_path, content):
    path = tmp_path / "trade_policy.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError):
        load_trade_policy(path)


def test_recalc_cadence_must_cover_poll_cadence():
    with pytest.raises(ValueError):
        Settings(price_check_interval_seconds=600, ai_recalc_interval_seconds=300)


def test_recalc_interval_shorter_than_poll_rejected(tmp_path):
    path = tmp_path / "trade_policy.yaml"
    path.write_text("targets:\n  ai_recalc_interval_seconds: 10\n", encoding="utf-8")

    with pytest.raises(ValueError, match="price check interval"):
        load_trade_policy(path)
