# sigma vie storefront: the rest api (server) and the local-first sync layer (client)

__version__ = '0.1.0'
