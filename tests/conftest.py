from __future__ import annotations

import pytest

from aether.sigil.signature import LocalSigner

# EIP-155 example key: 0x46 repeated 32 times.
EIP155_KEY = "0x" + "46" * 32
EIP155_ADDRESS = "0x9d8A62f656a8d1615C1294fd71e9CFb3E4855A4F"


@pytest.fixture
def signer() -> LocalSigner:
    return LocalSigner(EIP155_KEY)
