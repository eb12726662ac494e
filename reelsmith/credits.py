"""Credit ledger contract, pricing and charge-before-action guard."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, runtime_checkable

from typing_extensions import Protocol

from .engine.approvals import make_id
from .engine.errors import InsufficientCreditsError, ToolExecutionError
from .tools.args import BatchArgs, SegmentationArgs, ToolArgs
from .tools.registry import GENERATE_CONCEPTS, GENERATE_IMAGES, GENERATE_SEGMENTATION, GENERATE_VIDEOS

logger = logging.getLogger("reelsmith.credits")

IMAGE_GENERATION = "IMAGE_GENERATION"
VIDEO_GENERATION = "VIDEO_GENERATION"
TEXT_OPERATIONS = "TEXT_OPERATIONS"

# Credits per unit of work, keyed by operation type then model.
PRICING: Dict[str, Dict[str, float]] = {
    IMAGE_GENERATION: {"imagen": 20, "recraft": 10},
    VIDEO_GENERATION: {"veo2": 250, "runwayml": 25, "kling": 200, "veo3": 750},
    TEXT_OPERATIONS: {"perplexity": 10, "concept-gen": 10, "segmentation": 30},
}


def get_required_credits(operation_type: str, model_name: str, units: int = 1) -> float:
    try:
        price = PRICING[operation_type][model_name]
    except KeyError:
        raise ValueError(f"No pricing for {operation_type}/{model_name}") from None
    return price * units


@dataclass
class CreditCheck:
    has_enough_credits: bool
    current_balance: float
    required_credits: float

    @property
    def shortfall(self) -> float:
        return max(self.required_credits - self.current_balance, 0.0)


@runtime_checkable
class CreditLedger(Protocol):
    async def check_credits(self, user_id: str, required: float) -> CreditCheck: ...

    async def deduct_credits(self, user_id: str, amount: float, description: str) -> str: ...

    async def refund_credits(self, user_id: str, transaction_id: str) -> float: ...


@dataclass
class _Transaction:
    transaction_id: str
    user_id: str
    amount: float
    description: str
    refunded: bool = False


class InMemoryCreditLedger:
    """Balances held in process memory; unknown users start at ``default_balance``."""

    def __init__(self, default_balance: float = 0.0, balances: Optional[Dict[str, float]] = None) -> None:
        self.default_balance = default_balance
        self._balances: Dict[str, float] = dict(balances or {})
        self._transactions: Dict[str, _Transaction] = {}
        self._lock = asyncio.Lock()

    def balance(self, user_id: str) -> float:
        return self._balances.get(user_id, self.default_balance)

    async def check_credits(self, user_id: str, required: float) -> CreditCheck:
        async with self._lock:
            current = self.balance(user_id)
        return CreditCheck(
            has_enough_credits=current >= required,
            current_balance=current,
            required_credits=required,
        )

    async def deduct_credits(self, user_id: str, amount: float, description: str) -> str:
        async with self._lock:
            current = self.balance(user_id)
            if current < amount:
                raise InsufficientCreditsError(required=amount, balance=current)
            self._balances[user_id] = current - amount
            transaction = _Transaction(make_id("txn"), user_id, amount, description)
            self._transactions[transaction.transaction_id] = transaction
        logger.info("credits_deducted user_id=%s amount=%s txn=%s", user_id, amount, transaction.transaction_id)
        return transaction.transaction_id

    async def refund_credits(self, user_id: str, transaction_id: str) -> float:
        async with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None or transaction.user_id != user_id:
                raise KeyError(f"Unknown transaction '{transaction_id}'")
            if transaction.refunded:
                return 0.0
            transaction.refunded = True
            self._balances[user_id] = self.balance(user_id) + transaction.amount
        logger.info("credits_refunded user_id=%s amount=%s txn=%s", user_id, transaction.amount, transaction_id)
        return transaction.amount


def quote(tool_name: str, args: ToolArgs) -> Optional[Tuple[str, str, float]]:
    """Return ``(operation_type, model, credits)`` for a gated tool call, or None if free."""
    if tool_name in (GENERATE_IMAGES, GENERATE_VIDEOS) and isinstance(args, BatchArgs):
        operation = IMAGE_GENERATION if tool_name == GENERATE_IMAGES else VIDEO_GENERATION
        segments = list(getattr(args, "segments", []))
        if args.is_retry:
            wanted = set(args.retry_segment_ids)
            segments = [seg for seg in segments if seg.id in wanted]
        return operation, args.model, get_required_credits(operation, args.model, len(segments))
    if tool_name == GENERATE_CONCEPTS:
        return TEXT_OPERATIONS, "concept-gen", get_required_credits(TEXT_OPERATIONS, "concept-gen")
    if tool_name == GENERATE_SEGMENTATION and isinstance(args, SegmentationArgs):
        return TEXT_OPERATIONS, "segmentation", get_required_credits(TEXT_OPERATIONS, "segmentation")
    return None


class ChargeGuard:
    """Deducts credits before a gated action and refunds when it produced nothing."""

    def __init__(self, ledger: CreditLedger, user_id: str) -> None:
        self.ledger = ledger
        self.user_id = user_id

    async def run(self, tool_name: str, args: ToolArgs, action: Callable[[], Awaitable[Any]]) -> Any:
        try:
            priced = quote(tool_name, args)
        except ValueError as exc:
            raise ToolExecutionError(tool_name, str(exc)) from exc
        if priced is None or priced[2] <= 0:
            return await action()

        operation, model, amount = priced
        check = await self.ledger.check_credits(self.user_id, amount)
        if not check.has_enough_credits:
            raise InsufficientCreditsError(required=amount, balance=check.current_balance)
        transaction_id = await self.ledger.deduct_credits(
            self.user_id, amount, f"{operation}/{model} via {tool_name}"
        )

        try:
            result = await action()
        except BaseException:
            await self.ledger.refund_credits(self.user_id, transaction_id)
            raise

        if isinstance(result, dict) and result.get("successCount") == 0:
            await self.ledger.refund_credits(self.user_id, transaction_id)
        return result
