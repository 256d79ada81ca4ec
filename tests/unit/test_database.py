from src.core.database import create_worker_session_maker, engine


def test_main_engine_pings_pooled_connections():
    assert engine.sync_engine.pool._pre_ping is True


def test_worker_engine_does_not_pool(tmp_path):
    from sqlalchemy.pool import NullPool

    worker_engine, _ = create_worker_session_maker(f"sqlite+aiosqlite:///{tmp_path / 'w.db'}")

    assert isinstance(worker_engine.sync_engine.pool, NullPool)
