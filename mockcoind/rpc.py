"""JSON-RPC method handlers that imitate a Bitcoin Core node."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any

from mockcoind.address import random_p2tr_address
from mockcoind.chain import COIN_VALUE, OutPoint, Transaction, TxIn, TxOut
from mockcoind.state import Sent, State

_ZERO_HASH_HEX = "00" * 32
_MAX_U16 = 0xFFFF
_MAX_U32 = 0xFFFFFFFF
_MAX_U64 = 0xFFFFFFFFFFFFFFFF


@dataclass(frozen=True)
class _Method:
    handler: str
    required: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()

    @property
    def params(self) -> tuple[str, ...]:
        return self.required + self.optional


_METHODS = {
    "getblockchaininfo": _Method("get_blockchain_info"),
    "getnetworkinfo": _Method("get_network_info"),
    "getbalances": _Method("get_balances"),
    "getblockhash": _Method("get_block_hash", ("height",)),
    "getblockheader": _Method("get_block_header", ("block_hash", "verbose")),
    "getblock": _Method("get_block", ("blockhash", "verbosity")),
    "getblockcount": _Method("get_block_count"),
    "getwalletinfo": _Method("get_wallet_info"),
    "createrawtransaction": _Method(
        "create_raw_transaction", ("utxos", "outs"), ("locktime", "replaceable")
    ),
    "createwallet": _Method(
        "create_wallet",
        ("name",),
        ("disable_private_keys", "blank", "passphrase", "avoid_reuse"),
    ),
    "signrawtransactionwithwallet": _Method(
        "sign_raw_transaction_with_wallet", ("tx",), ("utxos", "sighash_type")
    ),
    "sendrawtransaction": _Method("send_raw_transaction", ("tx",)),
    "sendtoaddress": _Method(
        "send_to_address",
        ("address", "amount"),
        (
            "comment",
            "comment_to",
            "subtract_fee",
            "replaceable",
            "confirmation_target",
            "estimate_mode",
        ),
    ),
    "gettransaction": _Method("get_transaction", ("txid",), ("include_watchonly",)),
    "getrawtransaction": _Method(
        "get_raw_transaction", ("txid",), ("verbose", "blockhash")
    ),
    "listunspent": _Method(
        "list_unspent",
        (),
        ("minconf", "maxconf", "address", "include_unsafe", "query_options"),
    ),
    "listlockunspent": _Method("list_lock_unspent"),
    "getrawchangeaddress": _Method("get_raw_change_address", (), ("address_type",)),
    "getdescriptorinfo": _Method("get_descriptor_info", ("desc",)),
    "importdescriptors": _Method("import_descriptors", ("req",)),
    "getnewaddress": _Method("get_new_address", (), ("label", "address_type")),
    "listtransactions": _Method(
        "list_transactions", (), ("label", "count", "skip", "include_watchonly")
    ),
    "lockunspent": _Method("lock_unspent", ("unlock",), ("outputs",)),
    "listdescriptors": _Method("list_descriptors"),
    "loadwallet": _Method("load_wallet", ("wallet",)),
    "listwallets": _Method("list_wallets"),
}


class RpcError(Exception):
    """An error reported to the JSON-RPC caller."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"{message} ({code})")
        self.code = code
        self.message = message
        self.data = data

    @classmethod
    def not_found(cls) -> RpcError:
        return cls(-8, "Server error")

    @classmethod
    def invalid_params(cls, detail: str) -> RpcError:
        return cls(-32602, f"Invalid params: {detail}")

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def _hash_hex(raw: bytes) -> str:
    return raw[::-1].hex()


def _parse_hash(value: Any, name: str) -> bytes:
    if not isinstance(value, str) or len(value) != 64:
        raise RpcError.invalid_params(f"{name} must be a 64 character hex string")
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        raise RpcError.invalid_params(f"{name} is not valid hex") from None
    return raw[::-1]


def _parse_int(value: Any, name: str, maximum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= maximum:
        raise RpcError.invalid_params(f"{name} must be an integer between 0 and {maximum}")
    return value


def _parse_outpoint(value: Any) -> OutPoint:
    if not isinstance(value, dict) or "txid" not in value or "vout" not in value:
        raise RpcError.invalid_params("outpoint must have txid and vout")
    return OutPoint(
        _parse_hash(value["txid"], "txid"), _parse_int(value["vout"], "vout", _MAX_U32)
    )


def _decode_tx(hex_tx: Any) -> Transaction:
    if not isinstance(hex_tx, str):
        raise RpcError(-22, "TX decode failed")
    try:
        return Transaction.deserialize(bytes.fromhex(hex_tx))
    except ValueError:
        raise RpcError(-22, "TX decode failed") from None


def _btc(sats: int) -> float:
    return sats / COIN_VALUE


def _btc_to_sats(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise RpcError.invalid_params("amount must be a number")
    sats = amount * COIN_VALUE
    if sats != sats or sats <= 0:
        return 0
    return min(int(sats), _MAX_U64)


def _require_absent(name: str, value: Any) -> None:
    if value is not None:
        raise RpcError.invalid_params(f"{name} param not supported")


def _wallet_tx_info(txid: bytes, confirmations: int) -> dict[str, Any]:
    return {
        "txid": _hash_hex(txid),
        "confirmations": confirmations,
        "time": 0,
        "timereceived": 0,
        "blockhash": None,
        "blockindex": None,
        "blockheight": None,
        "blocktime": None,
        "walletconflicts": [],
        "bip125-replaceable": "unknown",
    }


def _bind(method: _Method, params: Any) -> dict[str, Any]:
    names = method.params
    if params is None:
        arguments: dict[str, Any] = {}
    elif isinstance(params, list):
        if len(params) > len(names):
            raise RpcError.invalid_params(
                f"expected at most {len(names)} arguments, got {len(params)}"
            )
        arguments = dict(zip(names, params))
    elif isinstance(params, dict):
        unknown = sorted(key for key in params if key not in names)
        if unknown:
            raise RpcError.invalid_params(f"unexpected argument {unknown[0]!r}")
        arguments = dict(params)
    else:
        raise RpcError.invalid_params("params must be an array or an object")
    missing = [name for name in method.required if name not in arguments]
    if missing:
        raise RpcError.invalid_params(f"missing required argument {missing[0]!r}")
    return arguments


class BitcoinRpc:
    """Answers Bitcoin Core RPC calls from a shared :class:`State`."""

    def __init__(self, state: State, lock: threading.Lock | threading.RLock) -> None:
        self._state = state
        self._lock = lock

    def get_blockchain_info(self) -> dict[str, Any]:
        with self._lock:
            return {
                "chain": self._state.network.chain,
                "blocks": 0,
                "headers": 0,
                "bestblockhash": _hash_hex(self._state.hashes[0]),
                "difficulty": 0.0,
                "mediantime": 0,
                "verificationprogress": 0.0,
                "initialblockdownload": False,
                "chainwork": "",
                "size_on_disk": 0,
                "pruned": False,
                "pruneheight": None,
                "automatic_pruning": None,
                "prune_target_size": None,
                "softforks": {},
                "warnings": "",
            }

    def get_network_info(self) -> dict[str, Any]:
        with self._lock:
            version = self._state.version
        return {
            "version": version,
            "subversion": "",
            "protocolversion": 0,
            "localservices": "",
            "localrelay": False,
            "timeoffset": 0,
            "connections": 0,
            "connections_in": None,
            "connections_out": None,
            "networkactive": True,
            "networks": [],
            "relayfee": 0.0,
            "incrementalfee": 0.0,
            "localaddresses": [],
            "warnings": "",
        }

    def get_balances(self) -> dict[str, Any]:
        unspent = self.list_unspent()
        trusted = sum(round(entry["amount"] * COIN_VALUE) for entry in unspent)
        return {
            "mine": {
                "trusted": _btc(trusted),
                "untrusted_pending": 0.0,
                "immature": 0.0,
            },
            "watchonly": None,
        }

    def get_block_hash(self, height: Any) -> str:
        height = _parse_int(height, "height", _MAX_U64)
        with self._lock:
            if height >= len(self._state.hashes):
                raise RpcError.not_found()
            return _hash_hex(self._state.hashes[height])

    def get_block_header(self, block_hash: Any, verbose: Any) -> Any:
        raw = _parse_hash(block_hash, "block_hash")
        with self._lock:
            if verbose:
                try:
                    height = self._state.hashes.index(raw)
                except ValueError:
                    raise RpcError.not_found() from None
                return {
                    "bits": "",
                    "chainwork": "",
                    "confirmations": 0,
                    "difficulty": 0.0,
                    "hash": _hash_hex(raw),
                    "height": height,
                    "mediantime": None,
                    "merkleroot": _ZERO_HASH_HEX,
                    "nTx": 0,
                    "nextblockhash": None,
                    "nonce": 0,
                    "previousblockhash": None,
                    "time": 0,
                    "version": 1,
                    "versionHex": "00000000",
                }
            block = self._state.blocks.get(raw)
            if block is None:
                raise RpcError.not_found()
            return block.header.serialize().hex()

    def get_block(self, blockhash: Any, verbosity: Any) -> str:
        if verbosity != 0 or isinstance(verbosity, bool):
            raise RpcError.invalid_params(f"Verbosity level {verbosity} is unsupported")
        raw = _parse_hash(blockhash, "blockhash")
        with self._lock:
            block = self._state.blocks.get(raw)
            if block is None:
                raise RpcError.not_found()
            return block.serialize().hex()

    def get_block_count(self) -> int:
        with self._lock:
            return max(len(self._state.hashes) - 1, 0)

    def get_wallet_info(self) -> dict[str, Any]:
        with self._lock:
            if not self._state.loaded_wallets:
                raise RpcError.not_found()
            wallet_name = min(self._state.loaded_wallets)
        return {
            "walletname": wallet_name,
            "walletversion": 0,
            "balance": 0.0,
            "unconfirmed_balance": 0.0,
            "immature_balance": 0.0,
            "txcount": 0,
            "keypoololdest": None,
            "keypoolsize": 0,
            "keypoolsize_hd_internal": 0,
            "unlocked_until": None,
            "paytxfee": 0.0,
            "hdseedid": None,
            "private_keys_enabled": False,
            "avoid_reuse": None,
            "scanning": None,
        }

    def create_raw_transaction(
        self, utxos: Any, outs: Any, locktime: Any = None, replaceable: Any = None
    ) -> str:
        _require_absent("locktime", locktime)
        _require_absent("replaceable", replaceable)
        if not isinstance(utxos, list) or not isinstance(outs, dict):
            raise RpcError.invalid_params("expected a list of inputs and a map of outputs")
        tx = Transaction(
            version=0,
            lock_time=0,
            inputs=[TxIn(_parse_outpoint(utxo)) for utxo in utxos],
            outputs=[TxOut(_btc_to_sats(amount)) for amount in outs.values()],
        )
        return tx.serialize().hex()

    def create_wallet(
        self,
        name: Any,
        disable_private_keys: Any = None,
        blank: Any = None,
        passphrase: Any = None,
        avoid_reuse: Any = None,
    ) -> dict[str, Any]:
        if not isinstance(name, str):
            raise RpcError.invalid_params("wallet name must be a string")
        with self._lock:
            self._state.wallets.add(name)
        return {"name": name, "warning": None}

    def sign_raw_transaction_with_wallet(
        self, tx: Any, utxos: Any = None, sighash_type: Any = None
    ) -> dict[str, Any]:
        _require_absent("utxos", utxos)
        _require_absent("sighash_type", sighash_type)
        transaction = _decode_tx(tx)
        for txin in transaction.inputs:
            txin.witness = (bytes(64),)
        return {"hex": transaction.serialize().hex(), "complete": True, "errors": None}

    def send_raw_transaction(self, tx: Any) -> str:
        transaction = _decode_tx(tx)
        with self._lock:
            self._state.mempool.append(transaction)
        return _hash_hex(transaction.txid())

    def send_to_address(
        self,
        address: Any,
        amount: Any,
        comment: Any = None,
        comment_to: Any = None,
        subtract_fee: Any = None,
        replaceable: Any = None,
        confirmation_target: Any = None,
        estimate_mode: Any = None,
    ) -> str:
        _require_absent("comment", comment)
        _require_absent("comment_to", comment_to)
        _require_absent("subtract_fee", subtract_fee)
        _require_absent("replaceable", replaceable)
        _require_absent("confirmation_target", confirmation_target)
        _require_absent("estimate_mode", estimate_mode)
        if not isinstance(address, str):
            raise RpcError.invalid_params("address must be a string")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise RpcError.invalid_params("amount must be a number")
        with self._lock:
            locked = sorted(self._state.locked)
            self._state.sent.append(Sent(float(amount), address, locked))
        return _ZERO_HASH_HEX

    def get_transaction(self, txid: Any, include_watchonly: Any = None) -> dict[str, Any]:
        raw = _parse_hash(txid, "txid")
        with self._lock:
            tx = self._state.transactions.get(raw)
            if tx is None:
                raise RpcError.not_found()
            result = _wallet_tx_info(raw, 0)
            result.update(
                {"amount": 0.0, "fee": None, "details": [], "hex": tx.serialize().hex()}
            )
            return result

    def get_raw_transaction(
        self, txid: Any, verbose: Any = None, blockhash: Any = None
    ) -> Any:
        if blockhash is not None:
            raise RpcError.invalid_params("Blockhash param is unsupported")
        raw = _parse_hash(txid, "txid")
        with self._lock:
            tx = self._state.transactions.get(raw)
            if tx is None:
                raise RpcError.not_found()
            if not verbose:
                return tx.serialize().hex()
        return {
            "in_active_chain": True,
            "hex": "",
            "txid": _ZERO_HASH_HEX,
            "hash": _ZERO_HASH_HEX,
            "size": 0,
            "vsize": 0,
            "version": 0,
            "locktime": 0,
            "vin": [],
            "vout": [],
            "blockhash": None,
            "confirmations": 1,
            "time": None,
            "blocktime": None,
        }

    def list_unspent(
        self,
        minconf: Any = None,
        maxconf: Any = None,
        address: Any = None,
        include_unsafe: Any = None,
        query_options: Any = None,
    ) -> list[dict[str, Any]]:
        _require_absent("minconf", minconf)
        _require_absent("maxconf", maxconf)
        _require_absent("address", address)
        _require_absent("include_unsafe", include_unsafe)
        _require_absent("query_options", query_options)
        with self._lock:
            return [
                {
                    "txid": _hash_hex(outpoint.txid),
                    "vout": outpoint.vout,
                    "address": None,
                    "label": None,
                    "redeemScript": None,
                    "witnessScript": None,
                    "scriptPubKey": "",
                    "amount": _btc(amount),
                    "confirmations": 0,
                    "spendable": True,
                    "solvable": True,
                    "desc": None,
                    "safe": True,
                }
                for outpoint, amount in sorted(self._state.utxos.items())
                if outpoint not in self._state.locked
            ]

    def list_lock_unspent(self) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {"txid": _hash_hex(outpoint.txid), "vout": outpoint.vout}
                for outpoint in sorted(self._state.locked)
            ]

    def get_raw_change_address(self, address_type: Any = None) -> str:
        with self._lock:
            network = self._state.network
        return random_p2tr_address(network)

    def get_descriptor_info(self, desc: Any) -> dict[str, Any]:
        return {
            "descriptor": desc,
            "checksum": "",
            "isrange": False,
            "issolvable": False,
            "hasprivatekeys": True,
        }

    def import_descriptors(self, req: Any) -> list[dict[str, Any]]:
        if not isinstance(req, list) or not all(
            isinstance(item, dict) and isinstance(item.get("desc"), str) for item in req
        ):
            raise RpcError.invalid_params("expected a list of descriptor requests")
        with self._lock:
            self._state.descriptors.extend(item["desc"] for item in req)
        return [{"success": True, "warnings": [], "error": None}]

    def get_new_address(self, label: Any = None, address_type: Any = None) -> str:
        with self._lock:
            network = self._state.network
        return random_p2tr_address(network)

    def list_transactions(
        self,
        label: Any = None,
        count: Any = None,
        skip: Any = None,
        include_watchonly: Any = None,
    ) -> list[dict[str, Any]]:
        limit = _MAX_U16 if count is None else _parse_int(count, "count", _MAX_U16)
        with self._lock:
            state = self._state
            confirmed = sorted(state.transactions.items())[:limit]
            pending = [(tx.txid(), tx) for tx in state.mempool]
            entries = []
            for txid, tx in confirmed + pending:
                entry = _wallet_tx_info(txid, state.get_confirmations(tx))
                entry.update(
                    {
                        "address": None,
                        "category": "immature",
                        "amount": 0.0,
                        "label": None,
                        "vout": 0,
                        "fee": 0.0,
                        "abandoned": None,
                        "trusted": None,
                        "comment": None,
                    }
                )
                entries.append(entry)
            return entries

    def lock_unspent(self, unlock: Any, outputs: Any = None) -> bool:
        if unlock:
            raise RpcError.invalid_params("unlocking outputs is not supported")
        outpoints = [_parse_outpoint(output) for output in outputs or []]
        with self._lock:
            if self._state.fail_lock_unspent:
                return False
            for outpoint in outpoints:
                if outpoint not in self._state.utxos:
                    raise RpcError.invalid_params(f"output {outpoint} is not unspent")
                self._state.locked.add(outpoint)
        return True

    def list_descriptors(self) -> dict[str, Any]:
        with self._lock:
            descriptors = list(self._state.descriptors)
        return {
            "wallet_name": "ord",
            "descriptors": [
                {
                    "desc": desc,
                    "timestamp": "now",
                    "active": True,
                    "internal": None,
                    "range": None,
                    "next": None,
                }
                for desc in descriptors
            ],
        }

    def load_wallet(self, wallet: Any) -> dict[str, Any]:
        with self._lock:
            if wallet not in self._state.wallets:
                raise RpcError.not_found()
            self._state.loaded_wallets.add(wallet)
        return {"name": wallet, "warning": None}

    def list_wallets(self) -> list[str]:
        with self._lock:
            return sorted(self._state.loaded_wallets)

    def dispatch(self, method: str, params: Any = None) -> Any:
        """Call the handler for RPC ``method`` with positional or named ``params``."""
        spec = _METHODS.get(method)
        if spec is None:
            raise RpcError(-32601, "Method not found")
        arguments = _bind(spec, params)
        handler = getattr(self, spec.handler)
        return handler(**arguments)

    def handle_request(self, payload: Any) -> Any:
        """Answer a JSON-RPC request or batch; returns ``None`` for notifications only."""
        if isinstance(payload, (str, bytes, bytearray)):
            try:
                payload = json.loads(payload)
            except ValueError:
                return _error_response(None, RpcError(-32700, "Parse error"))
        if isinstance(payload, list):
            if not payload:
                return _error_response(None, RpcError(-32600, "Invalid request"))
            responses = [
                response
                for response in (self._handle_one(item) for item in payload)
                if response is not None
            ]
            return responses or None
        return self._handle_one(payload)

    def _handle_one(self, request: Any) -> dict[str, Any] | None:
        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            return _error_response(None, RpcError(-32600, "Invalid request"))
        is_notification = "id" not in request
        request_id = request.get("id")
        try:
            result = self.dispatch(request["method"], request.get("params"))
        except RpcError as error:
            return None if is_notification else _error_response(request_id, error)
        if is_notification:
            return None
        return {"jsonrpc": "2.0", "result": result, "id": request_id}


def _error_response(request_id: Any, error: RpcError) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "error": error.to_dict(), "id": request_id}