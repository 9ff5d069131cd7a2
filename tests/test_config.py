from datetime import timedelta

import pytest
from sqlalchemy import select

from food_service import config, db, sweep
from food_service.config import Settings, get_settings
from food_service.models import Order, OrderStatus, utcnow


@pytest.fixture
def clean_env(monkeypatch):
    for name, _ in config.ENV_VARS.values():
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_unset_env_gives_dataclass_defaults(clean_env):
    assert get_settings() == Settings()


def test_env_overrides_and_casts(clean_env):
    clean_env.setenv("ORDER_PREPARING_MINUTES", "5")
    clean_env.setenv("ORDER_SWEEP_INTERVAL_SECONDS", "2.5")
    clean_env.setenv("ORDER_SWEEP_ENABLED", "no")

    settings = get_settings()

    assert settings.preparing_minutes == 5
    assert settings.sweep_interval_seconds == 2.5
    assert settings.sweep_enabled is False
    assert settings.delivery_minutes == Settings().delivery_minutes


def test_every_setting_has_an_env_var():
    assert set(config.ENV_VARS) == set(Settings.__dataclass_fields__)


def test_sweep_script(clean_env, tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'orders.db'}"
    clean_env.setenv("DATABASE_URL", url)
    engine = db.make_engine(url)
    db.init_db(engine)
    with db.make_session_factory(engine)() as s:
        s.add(Order(user_id=1, location_id=1, total_amount=10, order_date=utcnow() - timedelta(minutes=20)))
        s.commit()

    assert sweep.main() == 0

    with db.make_session_factory(engine)() as s:
        assert s.execute(select(Order.status)).scalar_one() == OrderStatus.ON_THE_WAY
    engine.dispose()
    assert "Total updated: 1" in capsys.readouterr().out
