# background work for the sync layer: the job runner, the retry outbox and pollers

import concurrent.futures
import enum
import logging
import threading

from sigmavie.client import events
from sigmavie.utils import new_id, now_ms

logger = logging.getLogger(__name__)

OUTBOX_KEY = 'sigma_vie_outbox'


class SyncState(enum.Enum):
    UNSYNCED = 'UNSYNCED'
    SYNCING = 'SYNCING'
    SYNCED = 'SYNCED'


# background fetches on a small thread pool; anything with submit(fn) can stand in for it
class ThreadRunner:
    def __init__(self, max_workers=2):
        self._pool = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers,
                                                           thread_name_prefix='sigmavie-sync')
        self._futures = []
        self._lock = threading.Lock()

    def submit(self, fn, *args, **kwargs):
        future = self._pool.submit(self._guard, fn, *args, **kwargs)
        with self._lock:
            self._futures = [f for f in self._futures if not f.done()]
            self._futures.append(future)
        return future

    @staticmethod
    def _guard(fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception:
            logger.exception('background sync job failed')
            return None

    def wait(self, timeout=None):
        with self._lock:
            pending = list(self._futures)
        concurrent.futures.wait(pending, timeout=timeout)

    def shutdown(self):
        self._pool.shutdown(wait=True)


# writes that could not reach the server, kept in the local store and replayed with backoff.
# a success or a 4xx settles an entry, anything retryable reschedules it
class Outbox:
    def __init__(self, store, gateway, base_delay=2, max_delay=300):
        self.store = store
        self.gateway = gateway
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._lock = threading.RLock()

    def entries(self):
        return self.store.get(OUTBOX_KEY, [])

    def pending_count(self):
        return len(self.entries())

    def enqueue(self, kind, method, path, payload, now=None, order_ids=None):
        now = now if now is not None else now_ms()
        entry = {
            'id': new_id('SYNC', now),
            'kind': kind,
            'method': method,
            'path': path,
            'payload': payload,
            'orderIds': list(order_ids or []),
            'attempts': 0,
            'nextAttemptAt': now,
            'createdAt': now,
        }
        with self._lock:
            entries = self.entries()
            entries.append(entry)
            self.store.set(OUTBOX_KEY, entries)
        logger.info('queued %s %s for retry (%s)', method, path, kind)
        return entry

    def holds(self, order_id):
        return any(order_id in (e.get('orderIds') or []) for e in self.entries())

    def backoff(self, attempts):
        return min(self.base_delay * (2 ** (attempts - 1)), self.max_delay) * 1000

    def flush(self, now=None):
        # returns the settled entries, each with its SyncResult under 'result'
        now = now if now is not None else now_ms()
        settled = []
        with self._lock:
            remaining = []
            # orders with an earlier entry still queued; their later entries wait behind it
            held = set()
            for entry in self.entries():
                order_ids = set(entry.get('orderIds') or [])
                if entry['nextAttemptAt'] > now or order_ids & held:
                    held |= order_ids
                    remaining.append(entry)
                    continue
                result = self.gateway.send(entry['method'], entry['path'], entry['payload'])
                if result.retryable:
                    entry['attempts'] += 1
                    entry['nextAttemptAt'] = now + self.backoff(entry['attempts'])
                    held |= order_ids
                    remaining.append(entry)
                    continue
                if not result.success:
                    logger.error('server rejected queued %s %s: %s',
                                 entry['method'], entry['path'], result.message)
                    events.emit(events.SYNC_REJECTED, self, entry=entry, message=result.message)
                settled.append(dict(entry, result=result))
            self.store.set(OUTBOX_KEY, remaining)
        return settled

    def discard(self, kinds=None):
        with self._lock:
            if kinds is None:
                self.store.set(OUTBOX_KEY, [])
            else:
                self.store.set(OUTBOX_KEY, [e for e in self.entries() if e['kind'] not in kinds])


class Poller:
    def __init__(self, interval, fn, name='sigmavie-poller'):
        self.interval = interval
        self.fn = fn
        self.name = name
        self._stop = threading.Event()
        self._thread = None

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.fn()
            except Exception:
                logger.exception('%s tick failed', self.name)

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()
