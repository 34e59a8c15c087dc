"""Taproot (P2TR) addresses: secp256k1 key tweaking and bech32m encoding."""

from __future__ import annotations

import hashlib
import secrets

from mockcoind.chain import Network

_P = 2**256 - 2**32 - 977
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32M_CONST = 0x2BC830A3

_Point = tuple[int, int] | None


def _point_add(a: _Point, b: _Point) -> _Point:
    if a is None:
        return b
    if b is None:
        return a
    if a[0] == b[0] and (a[1] + b[1]) % _P == 0:
        return None
    if a == b:
        slope = 3 * a[0] * a[0] * pow(2 * a[1], -1, _P) % _P
    else:
        slope = (b[1] - a[1]) * pow(b[0] - a[0], -1, _P) % _P
    x = (slope * slope - a[0] - b[0]) % _P
    return x, (slope * (a[0] - x) - a[1]) % _P


def _point_mul(k: int, point: _Point) -> _Point:
    result: _Point = None
    addend = point
    while k:
        if k & 1:
            result = _point_add(result, addend)
        addend = _point_add(addend, addend)
        k >>= 1
    return result


def _lift_x(x: int) -> tuple[int, int]:
    if x >= _P:
        raise ValueError("x-only key is not a field element")
    y_squared = (pow(x, 3, _P) + 7) % _P
    y = pow(y_squared, (_P + 1) // 4, _P)
    if y * y % _P != y_squared:
        raise ValueError("x-only key is not on the curve")
    return x, y if y % 2 == 0 else _P - y


def _tagged_hash(tag: str, data: bytes) -> bytes:
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def _polymod(values: list[int]) -> int:
    generators = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = (checksum & 0x1FFFFFF) << 5 ^ value
        for bit, generator in enumerate(generators):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _to_five_bit(data: bytes) -> list[int]:
    accumulator = 0
    bits = 0
    out = []
    for byte in data:
        accumulator = (accumulator << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            out.append((accumulator >> bits) & 31)
    if bits:
        out.append((accumulator << (5 - bits)) & 31)
    return out


def bech32m_encode(hrp: str, witver: int, program: bytes) -> str:
    """Encode a segwit v1+ output program as a bech32m address."""
    if not 1 <= witver <= 16:
        raise ValueError("bech32m encodes witness versions 1 to 16")
    if not 2 <= len(program) <= 40:
        raise ValueError("witness program must be 2 to 40 bytes")
    hrp = hrp.lower()
    data = [witver] + _to_five_bit(program)
    polymod = _polymod(_hrp_expand(hrp) + data + [0] * 6) ^ _BECH32M_CONST
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_CHARSET[d] for d in data + checksum)


def taproot_output_key(internal_key: bytes) -> bytes:
    """Tweak an x-only internal key with an empty script tree."""
    if len(internal_key) != 32:
        raise ValueError("internal key must be 32 bytes")
    point = _lift_x(int.from_bytes(internal_key, "big"))
    tweak = int.from_bytes(_tagged_hash("TapTweak", internal_key), "big")
    if tweak >= _N:
        raise ValueError("tweak out of range")
    output = _point_add(point, _point_mul(tweak, _G))
    if output is None:
        raise ValueError("tweaked key is the point at infinity")
    return output[0].to_bytes(32, "big")


def p2tr_address(network: Network, internal_key: bytes) -> str:
    """Key-path-only taproot address for ``internal_key`` on ``network``."""
    return bech32m_encode(network.hrp, 1, taproot_output_key(internal_key))


def random_p2tr_address(network: Network) -> str:
    """Taproot address for a freshly generated random key pair."""
    secret_key = secrets.randbelow(_N - 1) + 1
    public = _point_mul(secret_key, _G)
    assert public is not None
    return p2tr_address(network, public[0].to_bytes(32, "big"))