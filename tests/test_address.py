import re

import pytest

from mockcoind.address import (
    bech32m_encode,
    p2tr_address,
    random_p2tr_address,
    taproot_output_key,
)
from mockcoind.chain import Network

GENERATOR_X = bytes.fromhex(
    "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
)
INTERNAL_KEY = bytes.fromhex(
    "cc8a4bc64d897bddc5fbc2f670f7a8ba0b386779106cf1223c6fc5d7cd6fc115"
)
CHARSET_PATTERN = "[qpzry9x8gf2tvdw0s3jn54khce6mua7l]+"


def test_bech32m_encode_reference_vector():
    assert (
        bech32m_encode("bc", 1, GENERATOR_X)
        == "bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0"
    )


def test_bech32m_encode_lowercases_hrp():
    assert bech32m_encode("BC", 1, GENERATOR_X) == bech32m_encode("bc", 1, GENERATOR_X)


def test_bech32m_rejects_version_zero():
    with pytest.raises(ValueError):
        bech32m_encode("bc", 0, GENERATOR_X)


def test_bech32m_rejects_short_program():
    with pytest.raises(ValueError):
        bech32m_encode("bc", 1, b"\x01")


def test_taproot_output_key_reference_vector():
    assert taproot_output_key(INTERNAL_KEY) == bytes.fromhex(
        "a60869f0dbcf1dc659c9cecbaf8050135ea9e8cdc487053f1dc6880949dc684c"
    )


def test_p2tr_address_is_bech32m_of_output_key():
    for network in Network:
        assert p2tr_address(network, INTERNAL_KEY) == bech32m_encode(
            network.hrp, 1, taproot_output_key(INTERNAL_KEY)
        )


def test_taproot_output_key_rejects_wrong_length():
    with pytest.raises(ValueError):
        taproot_output_key(INTERNAL_KEY[:31])


def test_taproot_output_key_rejects_non_field_element():
    with pytest.raises(ValueError):
        taproot_output_key(b"\xff" * 32)


@pytest.mark.parametrize("network", list(Network))
def test_random_address_has_network_prefix(network):
    address = random_p2tr_address(network)
    assert address.startswith(network.hrp + "1p")
    assert re.fullmatch(CHARSET_PATTERN, address[len(network.hrp) + 1 :])
    assert len(address) == len(p2tr_address(network, INTERNAL_KEY))


def test_random_addresses_differ():
    first = random_p2tr_address(Network.REGTEST)
    second = random_p2tr_address(Network.REGTEST)
    assert first != second