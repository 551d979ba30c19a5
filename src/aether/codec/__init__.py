"""Binary codecs: RLP and the Solidity contract ABI."""
