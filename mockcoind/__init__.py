"""In-memory mock Bitcoin Core node served over JSON-RPC for integration tests."""

__version__ = "0.1.0"
__all__ = ["address", "chain", "handle", "rpc", "state"]