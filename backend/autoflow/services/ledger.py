# autoflow/services/ledger.py
from __future__ import annotations
import asyncio
import math
import uuid
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Protocol, Tuple, TypeVar

import httpx

from autoflow.core.config import settings
from autoflow.core.errors import (
    AccountingError,
    GenerationError,
    InsufficientCreditsError,
    LedgerUnavailableError,
    PipelineError,
)
from autoflow.models.state import CreditLedgerState

logger = logging.getLogger("ledger")
logger.setLevel(logging.INFO)

T = TypeVar("T")

CREDITS = "credits"
BATCH_CREDITS = "batch_credits"

# flat pricing
CREDIT_COSTS = {
    "WORKFLOW_GENERATION": 1,
    "WORKFLOW_DEBUG": 1,
    "TEMPLATE_DOWNLOAD": 0,
}
BATCH_RUN_COST = 1
ENTERPRISE_MIN_COST = 12
ENTERPRISE_MAX_COST = 18

# analytics only, never used for pricing
TOKEN_THRESHOLDS = {
    "SIMPLE": 2000,
    "MEDIUM": 5000,
    "COMPLEX": 10000,
}


def estimate_generation_cost(prompt: str) -> int:
    return CREDIT_COSTS["WORKFLOW_GENERATION"]


def credits_from_tokens(total_tokens: int) -> int:
    return CREDIT_COSTS["WORKFLOW_GENERATION"]


def debug_cost() -> int:
    return CREDIT_COSTS["WORKFLOW_DEBUG"]


def enterprise_cost(estimated_total_nodes: Optional[int]) -> int:
    nodes = estimated_total_nodes or 0
    return min(ENTERPRISE_MAX_COST, max(ENTERPRISE_MIN_COST, math.ceil(nodes / 5)))


def complexity_label(total_tokens: int) -> str:
    if total_tokens <= TOKEN_THRESHOLDS["SIMPLE"]:
        return "simple"
    if total_tokens <= TOKEN_THRESHOLDS["MEDIUM"]:
        return "medium"
    if total_tokens <= TOKEN_THRESHOLDS["COMPLEX"]:
        return "complex"
    return "very complex"


# -------- balances / store contract -------- #

@dataclass
class LedgerBalance:
    credits_remaining: int = 0
    bonus_credits: int = 0
    batch_credits: int = 0
    subscription_tier: str = "free"
    use_bonus_first: bool = False

    @property
    def total_credits(self) -> int:
        return self.credits_remaining + self.bonus_credits

    def available(self, currency: str = CREDITS) -> int:
        return self.batch_credits if currency == BATCH_CREDITS else self.total_credits

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["total_credits"] = self.total_credits
        return d


@dataclass
class DeductionReceipt:
    amount: int
    currency: str
    regular_used: int = 0
    bonus_used: int = 0
    balance_after: int = 0


@dataclass
class LedgerTransaction:
    id: str
    amount: int
    currency: str
    operation_type: str
    description: str
    balance_after: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LedgerStore(Protocol):
    async def get_balance(self) -> LedgerBalance: ...

    async def reserve(self, amount: int, currency: str = CREDITS) -> bool: ...

    async def deduct(self, amount: int, metadata: Dict[str, Any], currency: str = CREDITS) -> DeductionReceipt: ...

    async def add_credits(self, amount: int, currency: str = CREDITS, description: str = "") -> LedgerBalance: ...

    async def transactions(self) -> List[LedgerTransaction]: ...


def split_deduction(balance: LedgerBalance, amount: int) -> Tuple[int, int]:
    """
    Decide how many regular vs bonus credits pay for ``amount``,
    honouring the account's use_bonus_first preference.
    """
    if balance.use_bonus_first:
        bonus = min(balance.bonus_credits, amount)
        return amount - bonus, bonus
    regular = min(balance.credits_remaining, amount)
    return regular, amount - regular


class InMemoryLedgerStore:
    """
    Authoritative balance for one account held in process memory.
    Check-and-decrement happens under a single asyncio lock, so two concurrent
    deductions can never both succeed against a balance that covers only one.
    """

    def __init__(
        self,
        credits: int = 0,
        bonus_credits: int = 0,
        batch_credits: int = 0,
        subscription_tier: str = "free",
        use_bonus_first: bool = False,
    ):
        self._balance = LedgerBalance(
            credits_remaining=credits,
            bonus_credits=bonus_credits,
            batch_credits=batch_credits,
            subscription_tier=subscription_tier,
            use_bonus_first=use_bonus_first,
        )
        self._lock = asyncio.Lock()
        self._transactions: List[LedgerTransaction] = []

    async def get_balance(self) -> LedgerBalance:
        async with self._lock:
            return LedgerBalance(**asdict(self._balance))

    async def reserve(self, amount: int, currency: str = CREDITS) -> bool:
        async with self._lock:
            return self._balance.available(currency) >= amount

    async def deduct(self, amount: int, metadata: Dict[str, Any], currency: str = CREDITS) -> DeductionReceipt:
        async with self._lock:
            available = self._balance.available(currency)
            if available < amount:
                raise InsufficientCreditsError(amount, available, currency)

            if currency == BATCH_CREDITS:
                self._balance.batch_credits -= amount
                receipt = DeductionReceipt(amount, currency, balance_after=self._balance.batch_credits)
                description = f"Batch generation ({metadata.get('workflow_count', 0)} workflows)"
            else:
                regular, bonus = split_deduction(self._balance, amount)
                self._balance.credits_remaining -= regular
                self._balance.bonus_credits -= bonus
                receipt = DeductionReceipt(amount, currency, regular, bonus, self._balance.total_credits)
                description = f"{metadata.get('description', 'Workflow operation')} ({regular} regular + {bonus} bonus)"

            self._transactions.append(
                LedgerTransaction(
                    id=str(uuid.uuid4()),
                    amount=-amount,
                    currency=currency,
                    operation_type=str(metadata.get("operation_type", "generation")),
                    description=description,
                    balance_after=receipt.balance_after,
                    metadata=dict(metadata),
                )
            )
            return receipt

    async def add_credits(self, amount: int, currency: str = CREDITS, description: str = "") -> LedgerBalance:
        async with self._lock:
            if currency == BATCH_CREDITS:
                self._balance.batch_credits += amount
                after = self._balance.batch_credits
            elif currency == "bonus_credits":
                self._balance.bonus_credits += amount
                after = self._balance.total_credits
            else:
                self._balance.credits_remaining += amount
                after = self._balance.total_credits
            self._transactions.append(
                LedgerTransaction(
                    id=str(uuid.uuid4()),
                    amount=amount,
                    currency=currency,
                    operation_type="purchase",
                    description=description,
                    balance_after=after,
                )
            )
            return LedgerBalance(**asdict(self._balance))

    async def transactions(self) -> List[LedgerTransaction]:
        async with self._lock:
            return list(reversed(self._transactions))


class HttpLedgerStore:
    """
    Ledger held by an external accounting service; atomicity is that service's job.
    """

    def __init__(self, base_url: str, account_id: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.account_id = account_id
        self.timeout = timeout

    async def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"X-Account-Id": self.account_id}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, json=payload, headers=headers)

    async def get_balance(self) -> LedgerBalance:
        resp = await self._call("GET", "/balance")
        resp.raise_for_status()
        data = resp.json()
        return LedgerBalance(
            credits_remaining=data.get("credits_remaining", 0) or 0,
            bonus_credits=data.get("bonus_credits", 0) or 0,
            batch_credits=data.get("batch_credits", 0) or 0,
            subscription_tier=data.get("subscription_tier") or "free",
            use_bonus_first=bool(data.get("use_bonus_first", False)),
        )

    async def reserve(self, amount: int, currency: str = CREDITS) -> bool:
        resp = await self._call("POST", "/reserve", {"amount": amount, "currency": currency})
        if resp.status_code == 402:
            return False
        resp.raise_for_status()
        return bool(resp.json().get("ok", False))

    async def deduct(self, amount: int, metadata: Dict[str, Any], currency: str = CREDITS) -> DeductionReceipt:
        resp = await self._call(
            "POST", "/deduct", {"amount": amount, "currency": currency, "metadata": metadata}
        )
        if resp.status_code == 402:
            body = resp.json() if resp.content else {}
            raise InsufficientCreditsError(amount, body.get("available", 0), currency)
        resp.raise_for_status()
        data = resp.json()
        return DeductionReceipt(
            amount=amount,
            currency=currency,
            regular_used=data.get("regular_used", 0),
            bonus_used=data.get("bonus_used", 0),
            balance_after=data.get("balance_after", 0),
        )

    async def add_credits(self, amount: int, currency: str = CREDITS, description: str = "") -> LedgerBalance:
        resp = await self._call("POST", "/credit", {"amount": amount, "currency": currency, "description": description})
        resp.raise_for_status()
        return await self.get_balance()

    async def transactions(self) -> List[LedgerTransaction]:
        resp = await self._call("GET", "/transactions")
        resp.raise_for_status()
        out: List[LedgerTransaction] = []
        for t in resp.json():
            out.append(
                LedgerTransaction(
                    id=t["id"],
                    amount=t["amount"],
                    currency=t.get("currency", CREDITS),
                    operation_type=t.get("operation_type", ""),
                    description=t.get("description", ""),
                    balance_after=t.get("balance_after", 0),
                    metadata=t.get("metadata") or {},
                )
            )
        return out


# -------- policy -------- #

def has_enough_credits(balance: LedgerBalance, required: int, currency: str = CREDITS) -> bool:
    return balance.available(currency) >= required


def low_balance_warning(total_credits: int, threshold: int = settings.LOW_BALANCE_THRESHOLD) -> Optional[str]:
    if total_credits <= 0:
        return "You're out of credits! Purchase more to continue generating workflows."
    if total_credits < threshold:
        return f"You only have {total_credits} credit{'s' if total_credits != 1 else ''} remaining. Consider purchasing more."
    return None


async def fetch_balance(store: LedgerStore) -> LedgerBalance:
    try:
        return await store.get_balance()
    except PipelineError:
        raise
    except Exception as e:
        logger.error("Ledger balance lookup failed: %s", e)
        raise LedgerUnavailableError(f"ledger unavailable: {e}") from e


@dataclass
class MeteredOutcome(Generic[T]):
    value: T
    ledger: CreditLedgerState
    warnings: List[str] = field(default_factory=list)


class CreditPolicy:
    """
    ESTIMATE -> CHECK -> INVOKE -> DEDUCT(actual) -> LOW_BALANCE_CHECK.

    Generation failures never cost credits. A failed deduction after a
    successful generation keeps the artifact and surfaces a warning.
    """

    def __init__(self, store: LedgerStore, low_balance_threshold: int = settings.LOW_BALANCE_THRESHOLD):
        self.store = store
        self.low_balance_threshold = low_balance_threshold

    async def check(self, estimated_cost: int, currency: str = CREDITS) -> CreditLedgerState:
        balance = await fetch_balance(self.store)
        state = CreditLedgerState(
            currency=currency,
            balance=balance.total_credits,
            batch_balance=balance.batch_credits,
            estimated_cost=estimated_cost,
        )
        if not has_enough_credits(balance, estimated_cost, currency):
            logger.info("Credit check failed: need %s %s, have %s", estimated_cost, currency, balance.available(currency))
            raise InsufficientCreditsError(estimated_cost, balance.available(currency), currency)
        try:
            reserved = await self.store.reserve(estimated_cost, currency)
        except PipelineError:
            raise
        except Exception as e:
            logger.error("Ledger reservation failed: %s", e)
            raise LedgerUnavailableError(f"ledger unavailable: {e}") from e
        if not reserved:
            raise InsufficientCreditsError(estimated_cost, balance.available(currency), currency)
        logger.info("Credit check passed: need %s %s, have %s", estimated_cost, currency, balance.available(currency))
        return state

    async def settle(self, state: CreditLedgerState, actual_cost: int, metadata: Dict[str, Any]) -> List[str]:
        """
        Deduct the actual cost after a successful operation. Never raises:
        problems come back as warnings and on ``state.deduction_status``.
        """
        warnings: List[str] = []
        state.actual_cost = actual_cost
        try:
            receipt = await self.store.deduct(actual_cost, metadata, state.currency)
        except Exception as e:
            err = AccountingError(f"Failed to deduct {actual_cost} {state.currency}: {e}")
            logger.error("❌ %s", err)
            state.deduction_status = "failed"
            warnings.append(
                f"Workflow generated but failed to deduct {state.currency.replace('_', ' ')}. "
                f"Please contact support. ({err})"
            )
            return warnings

        state.deduction_status = "success"
        if state.currency == BATCH_CREDITS:
            state.batch_balance = receipt.balance_after
        else:
            state.balance = receipt.balance_after
            if 0 < state.balance < self.low_balance_threshold:
                warnings.append(low_balance_warning(state.balance, self.low_balance_threshold))
        logger.info(
            "✅ Deducted %s %s (%s regular + %s bonus), balance now %s",
            actual_cost, state.currency, receipt.regular_used, receipt.bonus_used, receipt.balance_after,
        )
        return warnings

    async def run_metered(
        self,
        operation: Callable[[], Awaitable[Tuple[T, int]]],
        estimated_cost: int,
        metadata: Dict[str, Any],
        currency: str = CREDITS,
    ) -> MeteredOutcome[T]:
        """
        Run ``operation`` behind the credit gate. The operation returns
        ``(value, actual_cost)``; pipeline errors it raises pass through
        untouched, anything else is reported as a GenerationError.
        """
        state = await self.check(estimated_cost, currency)
        try:
            value, actual_cost = await operation()
        except PipelineError:
            raise
        except Exception as e:
            logger.exception("Generator call failed: %s", e)
            raise GenerationError(str(e) or e.__class__.__name__) from e

        warnings = await self.settle(state, actual_cost, metadata)
        return MeteredOutcome(value=value, ledger=state, warnings=warnings)
