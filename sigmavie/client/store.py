# key-value cache the client keeps next to the ui, one json blob per key
# LocalStore survives restarts (one file per key), MemoryStore lives as long as the process

import copy
import json
import logging
import os
import re
import tempfile
import threading

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r'[^A-Za-z0-9_.-]')


class KeyValueStore:
    def __init__(self):
        self._lock = threading.RLock()

    def get(self, key, default=None):
        with self._lock:
            raw = self._read(key)
            if raw is None:
                # first access seeds the default into the slot
                if default is not None:
                    self._write(key, json.dumps(default, ensure_ascii=False))
                return copy.deepcopy(default)
            try:
                return json.loads(raw)
            except ValueError:
                logger.warning('cache slot %s is corrupt, using the default', key)
                return copy.deepcopy(default)

    def set(self, key, value):
        payload = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._write(key, payload)

    def remove(self, key):
        with self._lock:
            self._delete(key)

    def has(self, key):
        with self._lock:
            return self._read(key) is not None

    def keys(self, prefix=''):
        with self._lock:
            return sorted(k for k in self._keys() if k.startswith(prefix))

    def _read(self, key):
        raise NotImplementedError

    def _write(self, key, payload):
        raise NotImplementedError

    def _delete(self, key):
        raise NotImplementedError

    def _keys(self):
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self):
        super().__init__()
        self._data = {}

    def _read(self, key):
        return self._data.get(key)

    def _write(self, key, payload):
        self._data[key] = payload

    def _delete(self, key):
        self._data.pop(key, None)

    def _keys(self):
        return list(self._data)


class LocalStore(KeyValueStore):
    SUFFIX = '.json'

    def __init__(self, root):
        super().__init__()
        self.root = root
        os.makedirs(root, exist_ok=True)

    def _path(self, key):
        return os.path.join(self.root, _UNSAFE.sub('_', key) + self.SUFFIX)

    def _read(self, key):
        try:
            with open(self._path(key), encoding='utf-8') as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def _write(self, key, payload):
        fd, tmp = tempfile.mkstemp(dir=self.root, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                fh.write(payload)
            os.replace(tmp, self._path(key))
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def _delete(self, key):
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def _keys(self):
        return [name[:-len(self.SUFFIX)] for name in os.listdir(self.root) if name.endswith(self.SUFFIX)]
