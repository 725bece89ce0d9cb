import time

from sigmavie.client import Storefront
from sigmavie.client.gateway import RemoteGateway
from sigmavie.client.store import MemoryStore
from sigmavie.client.sync import Poller, SyncState, ThreadRunner
from sigmavie.config import ClientConfig

from conftest import API_URL


def test_thread_runner_syncs_in_the_background(opener, dress, tmp_path):
    runner = ThreadRunner()
    front = Storefront(config=ClientConfig(api_url=API_URL, cache_dir=str(tmp_path)),
                       gateway=RemoteGateway(API_URL, opener=opener), runner=runner)
    try:
        assert front.products.get_products() == []
        runner.wait(timeout=10)
        assert front.products.state is SyncState.SYNCED
        assert [p['id'] for p in front.products.get_products()] == [101]
    finally:
        front.close()


def test_runner_survives_a_failing_job():
    runner = ThreadRunner()

    def boom():
        raise RuntimeError('boom')

    future = runner.submit(boom)
    runner.wait(timeout=10)
    assert future.result() is None
    runner.shutdown()


def test_poller_ticks_until_stopped():
    ticks = []
    poller = Poller(0.01, lambda: ticks.append(1)).start()
    deadline = time.monotonic() + 5
    while len(ticks) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    poller.stop(timeout=5)
    assert len(ticks) >= 3
    assert not poller.running


def test_polling_lifecycle(shop):
    shop.start_polling()
    assert shop._outbox_poller.running
    assert shop.customers._poller.running
    shop.stop_polling()
    assert not shop._outbox_poller.running


def test_sync_status(shop):
    status = shop.sync_status()
    assert status == {'pending': 0, 'products': 'UNSYNCED', 'orders': 'UNSYNCED', 'customers': 'UNSYNCED'}


def test_config_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv('SIGMA_VIE_API_URL', 'http://api.example/api/')
    monkeypatch.setenv('SIGMA_VIE_CACHE_DIR', str(tmp_path))
    config = ClientConfig()
    assert config.api_url == 'http://api.example/api'
    assert config.cache_dir == str(tmp_path)
    assert config.customer_poll_seconds == 30
    assert config.timeout is None
    front = Storefront(config=config, session=MemoryStore())
    assert front.gateway.base_url == 'http://api.example/api'
    front.close()
