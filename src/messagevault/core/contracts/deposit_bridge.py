"""
Bridge between an account and its EntryPoint deposit.

The deposit itself lives in the EntryPoint's ledger; the account only
forwards value into it, asks for withdrawals and reads it back. EntryPoint
implementations differ in their read surface, so the balance read is an
ordered list of strategies: a strategy signalling UnsupportedOperation hands
over to the next one, any other failure propagates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Tuple

from ..vm.abi import AbiFunction
from ..vm.exceptions import UnsupportedOperation

if TYPE_CHECKING:
    from ..vm.state import ChainState

logger = logging.getLogger(__name__)

DEPOSIT_INFO_ABI = "(uint256,bool,uint112,uint32,uint48)"

BALANCE_OF = AbiFunction(name="balance_of", signature="balanceOf(address)", outputs=("uint256",), view=True)
GET_DEPOSIT_INFO = AbiFunction(
    name="get_deposit_info",
    signature="getDepositInfo(address)",
    outputs=(DEPOSIT_INFO_ABI,),
    view=True,
)
DEPOSIT_TO = AbiFunction(name="deposit_to", signature="depositTo(address)", payable=True)
WITHDRAW_TO = AbiFunction(name="withdraw_to", signature="withdrawTo(address,uint256)")

BalanceQuery = Callable[["ChainState", str, str], int]


def _query_balance_of(chain: "ChainState", account: str, entry_point: str) -> int:
    data = chain.static_call_raw(account, entry_point, BALANCE_OF.encode_call([account]))
    return int(BALANCE_OF.decode_result(data))


def _query_deposit_info(chain: "ChainState", account: str, entry_point: str) -> int:
    data = chain.static_call_raw(account, entry_point, GET_DEPOSIT_INFO.encode_call([account]))
    deposit_info = GET_DEPOSIT_INFO.decode_result(data)
    return int(deposit_info[0])


BALANCE_QUERIES: Tuple[Tuple[str, BalanceQuery], ...] = (
    ("balanceOf", _query_balance_of),
    ("getDepositInfo", _query_deposit_info),
)


def query_deposit_balance(chain: "ChainState", account: str, entry_point: str) -> int:
    """
    Read ``account``'s deposit from ``entry_point``.

    Raises:
        UnsupportedOperation: If no strategy is supported by the EntryPoint
        VMExecutionError: If a supported query fails
    """
    for name, query in BALANCE_QUERIES[:-1]:
        try:
            return query(chain, account, entry_point)
        except UnsupportedOperation:
            logger.debug(
                "Deposit query unsupported, falling back",
                extra={
                    "event": "deposit.query_fallback",
                    "query": name,
                    "entry_point": entry_point,
                },
            )
    _, last_query = BALANCE_QUERIES[-1]
    return last_query(chain, account, entry_point)


def forward_deposit(chain: "ChainState", account: str, entry_point: str, value: int) -> None:
    """Credit ``value`` of the account's native balance to its EntryPoint deposit."""
    chain.call(account, entry_point, DEPOSIT_TO.encode_call([account]), value=value)


def request_withdrawal(
    chain: "ChainState",
    account: str,
    entry_point: str,
    recipient: str,
    amount: int,
) -> None:
    """Ask the EntryPoint to pay ``amount`` of the account's deposit to ``recipient``."""
    chain.call(account, entry_point, WITHDRAW_TO.encode_call([recipient, amount]))
