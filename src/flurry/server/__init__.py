"""ASGI adapter: turns scopes into request contexts and dispatches them."""
