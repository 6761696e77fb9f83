"""Storefront API: accounts, catalog, cart and order pipeline."""
