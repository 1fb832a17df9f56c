"""
Entitlement waiting for store test sessions.

After a purchase in a store test session, the session's own transaction
list is usually updated at once, but the entitlement view the app queries
lags behind by an unpredictable number of attempts. ``EntitlementWaiter``
polls the entitlement view until the purchased product shows up and then
reports, without failing, when the two views still disagree.
"""

import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import (
    AbstractSet,
    Any,
    AsyncIterator,
    Coroutine,
    FrozenSet,
    Hashable,
    List,
    Optional,
    Set,
)

from .exceptions import VerificationError
from .location import LocationLoggerAdapter, SourceLocation
from .metrics import MetricsMiddleware
from .outcome import PollOutcome
from .poller import ConvergencePoller, PollConfig

logger = logging.getLogger(__name__)


class ProductType(str, Enum):
    """Kind of product a transaction was made for."""

    AUTO_RENEWABLE = "auto_renewable"
    NON_RENEWABLE = "non_renewable"
    CONSUMABLE = "consumable"
    NON_CONSUMABLE = "non_consumable"


class TransactionState(str, Enum):
    """State of a transaction as recorded by the test session."""

    PURCHASED = "purchased"
    PENDING = "pending"
    FAILED = "failed"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class Transaction:
    """A transaction as seen through the entitlement view."""

    product_id: str
    product_type: ProductType


@dataclass(frozen=True)
class SessionTransaction:
    """A transaction as recorded by the test session itself."""

    product_identifier: str
    state: TransactionState


@dataclass(frozen=True)
class VerificationResult:
    """An entitlement entry that may have failed verification."""

    transaction: Transaction
    error: Optional[str] = None

    @property
    def is_verified(self) -> bool:
        return self.error is None

    def payload_value(self) -> Transaction:
        """
        Get the verified transaction.

        Raises:
            VerificationError: If the transaction failed verification.
        """
        if self.error is not None:
            raise VerificationError(self.error, product_id=self.transaction.product_id)
        return self.transaction

    def unsafe_payload_value(self) -> Transaction:
        """The transaction, whether or not it was verified."""
        return self.transaction


class StoreTestSession(ABC):
    """
    The store test session a waiter talks to.

    Implementations wrap whatever store sandbox the tests run against.
    """

    @abstractmethod
    def current_entitlements(self) -> AsyncIterator[VerificationResult]:
        """Iterate over the current entitlements."""
        pass

    @abstractmethod
    async def all_transactions(self) -> List[SessionTransaction]:
        """List every transaction the session knows about."""
        pass

    @abstractmethod
    async def buy_product(
        self, identifier: str, options: AbstractSet[Hashable] = frozenset()
    ) -> None:
        """Purchase a product."""
        pass


class EntitlementWaiter:
    """
    Waits for purchases to show up in a store session's entitlements.
    """

    def __init__(
        self,
        session: StoreTestSession,
        config: Optional[PollConfig] = None,
        metrics: Optional[MetricsMiddleware] = None,
    ):
        """
        Initialize the waiter.

        Args:
            session: The store test session to query and purchase through.
            config: Poll configuration shared by every wait.
            metrics: Optional metrics middleware passed to the poller.
        """
        self.session = session
        self.config = config or PollConfig()
        self._metrics = metrics

    async def current_auto_renewable_transactions(self) -> List[Transaction]:
        """
        Get verified auto-renewable transactions among current entitlements.

        Entries that fail verification are logged and skipped.
        """
        transactions: List[Transaction] = []
        async for result in self.session.current_entitlements():
            try:
                transaction = result.payload_value()
            except VerificationError as e:
                logger.warning(
                    "current_auto_renewable_transactions transaction error, skipping: "
                    f"{result.unsafe_payload_value().product_id} {e}"
                )
                continue
            if transaction.product_type is ProductType.AUTO_RENEWABLE:
                transactions.append(transaction)
        return transactions

    async def active_auto_renewable_product_ids(self) -> List[str]:
        return [t.product_id for t in await self.current_auto_renewable_transactions()]

    async def purchased_transaction_product_ids(self) -> Set[str]:
        return {
            t.product_identifier
            for t in await self.session.all_transactions()
            if t.state is TransactionState.PURCHASED
        }

    def check_purchase_consistency(
        self, location: Optional[SourceLocation] = None
    ) -> Coroutine[Any, Any, bool]:
        """
        Compare active entitlements to the session's purchased transactions.

        The two views update on their own schedules, so a mismatch is only
        logged as a warning.

        Returns:
            Coroutine resolving to True if both views report the same product ids.
        """
        if location is None:
            location = SourceLocation.from_caller()
        return self._check_purchase_consistency(location)

    async def _check_purchase_consistency(self, location: SourceLocation) -> bool:
        active = await self.active_auto_renewable_product_ids()
        purchased = await self.purchased_transaction_product_ids()
        if set(active) == purchased:
            return True

        LocationLoggerAdapter(logger, location).warning(
            f"WARNING: active_product_ids[{','.join(active)}] != "
            f"purchased_transaction_product_ids[{','.join(sorted(purchased))}]"
        )
        return False

    def spin_until_active_product_ids_contains(
        self,
        identifier: str,
        max_tries: Optional[int] = None,
        location: Optional[SourceLocation] = None,
    ) -> Coroutine[Any, Any, PollOutcome]:
        """
        Wait until ``identifier`` is among the active auto-renewable products.

        Args:
            identifier: Product id to wait for.
            max_tries: Override for the configured attempt budget.
            location: Call site for diagnostics, captured when omitted.

        Returns:
            Coroutine resolving to Converged, or TimedOut in skip mode.

        Raises:
            ConvergenceTimeoutError: On timeout in strict mode.
        """
        if location is None:
            location = SourceLocation.from_caller()
        config = self.config
        if max_tries is not None:
            config = dataclasses.replace(config, max_tries=max_tries)
        return self._spin_until_contains(identifier, config, location)

    async def _spin_until_contains(
        self, identifier: str, config: PollConfig, location: SourceLocation
    ) -> PollOutcome:
        async def contains_identifier() -> bool:
            return identifier in await self.active_auto_renewable_product_ids()

        outcome = await ConvergencePoller(config, self._metrics).spin(contains_identifier, location)
        await self._check_purchase_consistency(location)
        return outcome

    def buy_product_and_wait(
        self,
        identifier: str,
        options: FrozenSet[Hashable] = frozenset(),
        location: Optional[SourceLocation] = None,
    ) -> Coroutine[Any, Any, PollOutcome]:
        """
        Buy a product, then wait until it shows up in the entitlements.

        Purchase errors propagate unchanged.
        """
        if location is None:
            location = SourceLocation.from_caller()
        return self._buy_product_and_wait(identifier, options, location)

    async def _buy_product_and_wait(
        self, identifier: str, options: FrozenSet[Hashable], location: SourceLocation
    ) -> PollOutcome:
        await self.session.buy_product(identifier, options)
        return await self.spin_until_active_product_ids_contains(identifier, location=location)
