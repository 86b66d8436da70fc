import pytest
from conftest import FakeRemote, make_resource

from hidesync.docsync import DocSyncConfig, DocSyncManager, DocumentationApiClient, NetworkError


@pytest.fixture
def config(tmp_path):
    return DocSyncConfig.from_options(
        {"base_url": "https://hidesync.local", "store_path": str(tmp_path / "docsync.db")}
    )


@pytest.mark.asyncio
async def test_reconnect_replays_offline_changes(config):
    remote = FakeRemote()
    remote.seed(make_resource("r1"))
    manager = DocSyncManager(config, remote=remote)
    await manager.async_start()
    await manager.repository.list()

    await manager.signal.set_online(False)
    await manager.repository.create({"title": "Field notes"})
    await manager.repository.update("r1", {"title": "Edited offline"})
    status = manager.status()
    assert status["online"] is False
    assert status["pending_operations"] == 2
    assert status["probe"] is None

    await manager.signal.set_online(True)

    status = manager.status()
    assert status["pending_operations"] == 0
    assert status["last_sync"]["applied"]
    assert status["last_sync_at"] is not None
    assert remote.resources["r1"]["title"] == "Edited offline"
    await manager.async_stop()


@pytest.mark.asyncio
async def test_manual_sync_records_outcome(config):
    remote = FakeRemote()
    manager = DocSyncManager(config, remote=remote)

    assert await manager.async_sync_now() is None
    assert manager.status()["manual_sync"]["last_run_at"] is not None
    assert manager.status()["manual_sync"]["error"] is None

    await manager.signal.set_online(False)
    await manager.repository.create({"title": "Queued"})
    remote.fail_next("create", NetworkError("still down"))
    remote.fail_next("create", NetworkError("still down"))
    await manager.signal.set_online(True)

    report = await manager.async_sync_now()

    assert not report.ok
    assert manager.status()["pending_operations"] == 1
    await manager.async_stop()


def test_builds_http_client_and_probe_from_config(config):
    manager = DocSyncManager(config)

    assert isinstance(manager.remote, DocumentationApiClient)
    assert manager.probe is not None
    assert manager.probe.interval_seconds == config.probe_interval
    assert manager.running is False
    assert manager.status()["store_path"] == config.store_path
    manager.store.close()


def test_probe_disabled_by_zero_interval(tmp_path):
    config = DocSyncConfig.from_options(
        {"base_url": "https://hidesync.local", "store_path": str(tmp_path / "db.sqlite"), "probe_interval": 0}
    )

    assert DocSyncManager(config).probe is None
