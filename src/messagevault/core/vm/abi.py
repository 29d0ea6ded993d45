"""
Contract ABI plumbing.

Contracts are dataclasses deriving from ``Contract``. Methods reachable from
other contracts are marked with ``@external`` and a Solidity-style function
signature; the 4-byte selector table is derived from those signatures.

Calling convention for external methods:
- view functions receive only their ABI arguments
- state-changing functions receive ``caller`` (msg.sender) first
- payable functions additionally receive ``value`` as a keyword argument
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from .exceptions import UnsupportedOperation

if TYPE_CHECKING:
    from .state import ChainState

logger = logging.getLogger(__name__)


def split_types(type_list: str) -> List[str]:
    """Split a comma separated ABI type list, respecting tuple parentheses."""
    types: List[str] = []
    depth = 0
    current = ""
    for char in type_list:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        current += char
    if current:
        types.append(current)
    return types


@dataclass(frozen=True)
class AbiFunction:
    """One entry of a contract's selector table."""

    name: str  # Python method name
    signature: str  # e.g. "sendMessageToWallet(string)"
    outputs: Tuple[str, ...] = ()
    payable: bool = False
    view: bool = False

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    @property
    def inputs(self) -> Tuple[str, ...]:
        params = self.signature[self.signature.index("(") + 1:-1]
        return tuple(split_types(params))

    def encode_call(self, args: Sequence[Any]) -> bytes:
        return self.selector + encode(list(self.inputs), list(args))

    def decode_args(self, data: bytes) -> Tuple[Any, ...]:
        return tuple(decode(list(self.inputs), data))

    def encode_result(self, result: Any) -> bytes:
        if not self.outputs:
            return b""
        if len(self.outputs) == 1:
            return encode(list(self.outputs), [result])
        return encode(list(self.outputs), list(result))

    def decode_result(self, data: bytes) -> Any:
        if not self.outputs:
            return None
        values = decode(list(self.outputs), data)
        return values[0] if len(self.outputs) == 1 else values


def external(
    signature: str,
    returns: Iterable[str] = (),
    payable: bool = False,
    view: bool = False,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Expose a contract method under a Solidity function signature."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        fn.__abi__ = AbiFunction(  # type: ignore[attr-defined]
            name=fn.__name__,
            signature=signature,
            outputs=tuple(returns),
            payable=payable,
            view=view,
        )
        return fn

    return decorator


def encode_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """ABI-encode calldata for ``signature`` without a contract class."""
    return AbiFunction(name="", signature=signature).encode_call(args)


class Contract:
    """
    Base class for contracts hosted by ChainState.

    Subclasses are dataclasses with an ``address`` field. The host binds the
    contract to itself on deployment; until then ``chain`` is unavailable.
    """

    address: str
    _chain: Optional["ChainState"] = None

    _abi_tables: ClassVar[Dict[type, Dict[bytes, AbiFunction]]] = {}

    def bind(self, chain: "ChainState", address: str) -> None:
        self._chain = chain
        self.address = address

    @property
    def chain(self) -> "ChainState":
        if self._chain is None:
            raise RuntimeError(f"{type(self).__name__} is not deployed")
        return self._chain

    def _emit(self, event: str, **args: Any) -> None:
        self.chain.emit(self.address, event, args)

    def receive(self, caller: str, value: int) -> None:
        """Handle a plain value transfer. Contracts accept none by default."""
        raise UnsupportedOperation(f"{type(self).__name__} cannot receive value")

    # ==================== Selector table ====================

    @classmethod
    def abi_table(cls) -> Dict[bytes, AbiFunction]:
        table = Contract._abi_tables.get(cls)
        if table is None:
            table = {}
            for klass in reversed(cls.__mro__):
                for attr in vars(klass).values():
                    abi_fn = getattr(attr, "__abi__", None)
                    if isinstance(abi_fn, AbiFunction):
                        table[abi_fn.selector] = abi_fn
            Contract._abi_tables[cls] = table
        return table

    @classmethod
    def function_by_selector(cls, selector: bytes) -> AbiFunction:
        abi_fn = cls.abi_table().get(bytes(selector))
        if abi_fn is None:
            raise UnsupportedOperation(
                f"{cls.__name__} has no function for selector 0x{bytes(selector).hex()}"
            )
        return abi_fn

    @classmethod
    def function_by_name(cls, name: str) -> AbiFunction:
        for abi_fn in cls.abi_table().values():
            if abi_fn.name == name:
                return abi_fn
        raise UnsupportedOperation(f"{cls.__name__} has no external function {name!r}")

    # ==================== Persistence ====================

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in dataclasses.fields(self)}  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contract":
        return cls(**data)  # type: ignore[call-arg]
