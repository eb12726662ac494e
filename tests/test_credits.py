"""Credit pricing, ledger and charge guard."""

from __future__ import annotations

import pytest

from reelsmith.credits import (
    ChargeGuard,
    CreditLedger,
    InMemoryCreditLedger,
    get_required_credits,
    quote,
)
from reelsmith.engine.errors import InsufficientCreditsError, ToolExecutionError
from reelsmith.tools.args import ConceptArgs, ImageBatchArgs, WebInfoArgs


def _images(model: str = "imagen", **extra) -> ImageBatchArgs:
    return ImageBatchArgs.model_validate(
        {"model": model, "segments": [{"id": "1", "visual": "a"}, {"id": "2", "visual": "b"}], **extra}
    )


def test_pricing_table():
    assert get_required_credits("VIDEO_GENERATION", "veo3") == 750
    assert get_required_credits("IMAGE_GENERATION", "recraft", units=3) == 30
    with pytest.raises(ValueError):
        get_required_credits("IMAGE_GENERATION", "dalle")


def test_quote_counts_only_retried_segments():
    assert quote("generate_image_with_approval", _images()) == ("IMAGE_GENERATION", "imagen", 40)
    retry = _images(isRetry=True, retrySegmentIds=["2"])
    assert quote("generate_image_with_approval", retry)[2] == 20
    assert quote("generate_concepts_with_approval", ConceptArgs(prompt="x"))[2] == 10
    assert quote("get_web_info", WebInfoArgs(prompt="x")) is None


def test_in_memory_ledger_satisfies_protocol():
    assert isinstance(InMemoryCreditLedger(), CreditLedger)


@pytest.mark.asyncio
async def test_deduct_and_refund_once():
    ledger = InMemoryCreditLedger(balances={"u": 50})

    txn = await ledger.deduct_credits("u", 30, "test")
    assert ledger.balance("u") == 20

    assert await ledger.refund_credits("u", txn) == 30
    assert await ledger.refund_credits("u", txn) == 0.0
    assert ledger.balance("u") == 50


@pytest.mark.asyncio
async def test_deduct_beyond_balance_raises():
    ledger = InMemoryCreditLedger(default_balance=5)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await ledger.deduct_credits("u", 10, "test")

    assert exc_info.value.required == 10
    assert ledger.balance("u") == 5


@pytest.mark.asyncio
async def test_guard_refunds_when_action_raises():
    ledger = InMemoryCreditLedger(balances={"u": 100})
    guard = ChargeGuard(ledger, "u")

    async def boom():
        raise ToolExecutionError("generate_image_with_approval", "down")

    with pytest.raises(ToolExecutionError):
        await guard.run("generate_image_with_approval", _images(), boom)

    assert ledger.balance("u") == 100


@pytest.mark.asyncio
async def test_guard_keeps_charge_on_partial_success():
    ledger = InMemoryCreditLedger(balances={"u": 100})
    guard = ChargeGuard(ledger, "u")

    async def partial():
        return {"successCount": 1, "failureCount": 1}

    await guard.run("generate_image_with_approval", _images(), partial)

    assert ledger.balance("u") == 60


@pytest.mark.asyncio
async def test_guard_rejects_unpriced_model():
    guard = ChargeGuard(InMemoryCreditLedger(balances={"u": 100}), "u")

    async def never():
        raise AssertionError("must not run")

    with pytest.raises(ToolExecutionError, match="No pricing"):
        await guard.run("generate_image_with_approval", _images(model="dalle"), never)
