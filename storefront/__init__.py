"""Storefront client state: cart store, durable storage, auth and checkout flows."""
