"""HTTP value types used by the ASGI adapter and the test client."""
