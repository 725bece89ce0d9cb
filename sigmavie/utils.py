# small helpers shared by the server and the client
# timestamps travel as integer milliseconds, the same unit the storefront always used

import random
import time


def now_ms():
    return int(time.time() * 1000)


def new_id(prefix, now=None):
    # time based ids with a random tail so two ids in the same millisecond differ
    stamp = now if now is not None else now_ms()
    return f'{prefix}-{stamp}-{random.randint(0, 999999):06d}'


def new_product_id(now=None):
    return now if now is not None else now_ms()
