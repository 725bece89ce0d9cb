# local-first client for the storefront api
from sigmavie.client.storefront import Storefront

__all__ = ['Storefront']
