"""
Contract Bindings Module
========================

Fixed PRIOR testnet addresses and typed method descriptors.

A ``ContractMethod`` turns a function name and typed arguments into the
exact calldata the node expects (4-byte selector followed by ABI-encoded
arguments). The router's swap functions carry explicit selectors because
the deployed contract does not expose a verified ABI.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from eth_abi import encode, decode
from web3 import Web3


NETWORK_NAME = "PRIOR TESTNET"


@dataclass(frozen=True)
class Token:
    """Token metadata. ``address`` is None for the native coin."""
    symbol: str
    decimals: int
    address: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.address is None


NATIVE = Token("ETH", 18)
PRIOR = Token("PRIOR", 18, "0xc19Ec2EEBB009b2422514C51F9118026f1cD89ba")
USDC = Token("USDC", 6, "0x109694D75363A75317A8136D80f50F871E81044e")
USDT = Token("USDT", 6, "0x014397DaEa96CaC46DbEdcbce50A42D5e0152B2E")

ROUTER_ADDRESS = "0x0f1DADEcc263eB79AE3e4db0d57c49a8b6178B0B"
FAUCET_ADDRESS = "0xCa602D9E45E1Ed25105Ee43643ea936B8e2Fd6B7"


@dataclass(frozen=True)
class ContractMethod:
    """A contract function: name, argument types and (optional) output types."""
    name: str
    input_types: Tuple[str, ...] = ()
    output_types: Tuple[str, ...] = ()
    selector_override: Optional[bytes] = None

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        if self.selector_override is not None:
            return self.selector_override
        return bytes(Web3.keccak(text=self.signature)[:4])

    def encode_call(self, *args: Any) -> bytes:
        """
        Encode calldata for this method.

        Raises:
            ValueError: If the argument count does not match the signature
        """
        if len(args) != len(self.input_types):
            raise ValueError(
                f"{self.signature} takes {len(self.input_types)} argument(s), got {len(args)}"
            )
        return self.selector + encode(list(self.input_types), list(args))

    def decode_output(self, data: bytes) -> Any:
        """Decode return data. Single outputs are unwrapped."""
        values = decode(list(self.output_types), bytes(data))
        if len(values) == 1:
            return values[0]
        return values


@dataclass(frozen=True)
class ContractCall:
    """A method bound to a contract address with concrete arguments."""
    to: str
    method: ContractMethod
    args: Tuple[Any, ...] = ()

    @property
    def data(self) -> bytes:
        return self.method.encode_call(*self.args)

    def describe(self) -> str:
        return f"{self.method.name}@{self.to[:8]}"


class ContractBinding:
    """
    Typed binding to a deployed contract.

    Usage:
        token = ContractBinding(PRIOR.address, ERC20_METHODS)
        call = token.call("approve", ROUTER_ADDRESS, 10**15)
    """

    def __init__(self, address: str, methods: Iterable[ContractMethod]):
        self.address = Web3.to_checksum_address(address)
        self.methods: Dict[str, ContractMethod] = {m.name: m for m in methods}

    def call(self, name: str, *args: Any) -> ContractCall:
        if name not in self.methods:
            raise AttributeError(f"Contract {self.address} has no method '{name}'")
        return ContractCall(self.address, self.methods[name], tuple(args))


ERC20_METHODS = (
    ContractMethod("balanceOf", ("address",), ("uint256",)),
    ContractMethod("approve", ("address", "uint256"), ("bool",)),
)

ROUTER_METHODS = (
    ContractMethod("swapPriorToUSDC", ("uint256",), selector_override=bytes.fromhex("f3b68002")),
    ContractMethod("swapPriorToUSDT", ("uint256",), selector_override=bytes.fromhex("03b530a3")),
)

FAUCET_METHODS = (
    ContractMethod("claimTokens"),
    ContractMethod("lastClaimTime", ("address",), ("uint256",)),
    ContractMethod("claimCooldown", (), ("uint256",)),
)

# Router function for each swap output token
SWAP_FUNCTIONS = {
    USDC.symbol: "swapPriorToUSDC",
    USDT.symbol: "swapPriorToUSDT",
}


def erc20(token: Token) -> ContractBinding:
    if token.is_native:
        raise ValueError(f"{token.symbol} is the native coin, not an ERC20 token")
    return ContractBinding(token.address, ERC20_METHODS)


def router() -> ContractBinding:
    return ContractBinding(ROUTER_ADDRESS, ROUTER_METHODS)


def faucet() -> ContractBinding:
    return ContractBinding(FAUCET_ADDRESS, FAUCET_METHODS)


def swap_call(target: Token, amount_wei: int) -> ContractCall:
    """Build the router call that swaps ``amount_wei`` PRIOR into ``target``."""
    if target.symbol not in SWAP_FUNCTIONS:
        raise ValueError(f"No swap route from PRIOR to {target.symbol}")
    return router().call(SWAP_FUNCTIONS[target.symbol], amount_wei)
