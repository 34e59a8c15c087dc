"""Running a mock node behind a local JSON-RPC HTTP endpoint."""

from __future__ import annotations

import copy
import http.client
import json
import logging
import threading
import time
from dataclasses import replace
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

from mockcoind.chain import COIN_VALUE, Block, Network, OutPoint, Transaction
from mockcoind.rpc import BitcoinRpc
from mockcoind.state import Sent, State, TransactionTemplate

_log = logging.getLogger(__name__)


class _RpcRequestHandler(BaseHTTPRequestHandler):
    def do_POST(self) -> None:
        body = self.rfile.read(int(self.headers.get("Content-Length") or 0))
        response = self.server.rpc.handle_request(body)  # type: ignore[attr-defined]
        payload = b"" if response is None else json.dumps(response).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: Any) -> None:
        _log.debug(format, *args)


def _wait_until_ready(port: int) -> None:
    for attempt in range(401):
        connection = http.client.HTTPConnection("127.0.0.1", port, timeout=1)
        try:
            connection.request("GET", "/")
            connection.getresponse().read()
            return
        except OSError as error:
            if attempt == 400:
                raise RuntimeError(f"Server failed to start: {error}") from error
        finally:
            connection.close()
        time.sleep(0.025)


class Builder:
    """Configures and starts a mock node."""

    def __init__(
        self,
        fail_lock_unspent: bool = False,
        network: Network = Network.BITCOIN,
        version: int = 240000,
    ) -> None:
        self._fail_lock_unspent = fail_lock_unspent
        self._network = network
        self._version = version

    def fail_lock_unspent(self, fail_lock_unspent: bool) -> Builder:
        """Make ``lockunspent`` report failure."""
        return Builder(fail_lock_unspent, self._network, self._version)

    def network(self, network: Network) -> Builder:
        return Builder(self._fail_lock_unspent, network, self._version)

    def version(self, version: int) -> Builder:
        """Node version reported by ``getnetworkinfo``."""
        return Builder(self._fail_lock_unspent, self._network, version)

    def build(self) -> Handle:
        """Start the HTTP server and wait until it accepts requests."""
        state = State(self._network, self._version, self._fail_lock_unspent)
        lock = threading.RLock()
        server = HTTPServer(("127.0.0.1", 0), _RpcRequestHandler)
        server.rpc = BitcoinRpc(state, lock)  # type: ignore[attr-defined]
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        handle = Handle(server, thread, server.server_address[1], state, lock)
        try:
            _wait_until_ready(handle._port)
        except RuntimeError:
            handle.close()
            raise
        return handle


def builder() -> Builder:
    """A builder with the default settings: mainnet, version 240000."""
    return Builder()


def spawn() -> Handle:
    """Start a mock node with the default settings."""
    return builder().build()


class Handle:
    """A running mock node; close it, or use it as a context manager."""

    def __init__(
        self,
        server: HTTPServer,
        thread: threading.Thread,
        port: int,
        state: State,
        lock: threading.RLock,
    ) -> None:
        self._server: HTTPServer | None = server
        self._thread = thread
        self._port = port
        self._state = state
        self._lock = lock

    def url(self) -> str:
        return f"http://127.0.0.1:{self._port}"

    def wallets(self) -> set[str]:
        with self._lock:
            return set(self._state.wallets)

    def mine_blocks(self, n: int) -> list[Block]:
        return self.mine_blocks_with_subsidy(n, 50 * COIN_VALUE)

    def mine_blocks_with_subsidy(self, n: int, subsidy: int) -> list[Block]:
        with self._lock:
            return [copy.deepcopy(self._state.push_block(subsidy)) for _ in range(n)]

    def broadcast_tx(self, template: TransactionTemplate) -> bytes:
        with self._lock:
            return self._state.broadcast_tx(template)

    def invalidate_tip(self) -> bytes:
        with self._lock:
            return self._state.pop_block()

    def get_utxo_amount(self, outpoint: OutPoint) -> int | None:
        with self._lock:
            return self._state.utxos.get(outpoint)

    def tx(self, bi: int, ti: int) -> Transaction:
        with self._lock:
            return copy.deepcopy(self._state.blocks[self._state.hashes[bi]].txdata[ti])

    def mempool(self) -> list[Transaction]:
        with self._lock:
            return copy.deepcopy(self._state.mempool)

    def descriptors(self) -> list[str]:
        with self._lock:
            return list(self._state.descriptors)

    def import_descriptor(self, desc: str) -> None:
        with self._lock:
            self._state.descriptors.append(desc)

    def sent(self) -> list[Sent]:
        with self._lock:
            return [replace(sent, locked=list(sent.locked)) for sent in self._state.sent]

    def lock(self, output: OutPoint) -> None:
        with self._lock:
            self._state.locked.add(output)

    def network(self) -> str:
        """Chain name as passed to a client's ``--chain`` option."""
        network = self._state.network
        return "mainnet" if network is Network.BITCOIN else str(network)

    def loaded_wallets(self) -> set[str]:
        with self._lock:
            return set(self._state.loaded_wallets)

    def close(self) -> None:
        """Stop the HTTP server; further calls do nothing."""
        server, self._server = self._server, None
        if server is not None:
            server.shutdown()
            server.server_close()
            self._thread.join()

    def __enter__(self) -> Handle:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()