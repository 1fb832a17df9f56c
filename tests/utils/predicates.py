"""Scripted predicates and a fake store session for tests."""

from typing import AbstractSet, Callable, Dict, Hashable, List, Optional

from async_convergence.entitlements import (
    ProductType,
    SessionTransaction,
    StoreTestSession,
    Transaction,
    TransactionState,
    VerificationResult,
)


class ScriptedPredicate:
    """Async predicate whose result is a function of the 0-indexed call number."""

    def __init__(self, script: Callable[[int], bool]):
        self.script = script
        self.calls = 0

    async def __call__(self) -> bool:
        attempt = self.calls
        self.calls += 1
        return self.script(attempt)

    @classmethod
    def false_then_true(cls, false_count: int) -> "ScriptedPredicate":
        return cls(lambda i: i >= false_count)

    @classmethod
    def never_true(cls) -> "ScriptedPredicate":
        return cls(lambda i: False)

    @classmethod
    def always_true(cls) -> "ScriptedPredicate":
        return cls(lambda i: True)

    @classmethod
    def alternating(cls, first: bool = True) -> "ScriptedPredicate":
        return cls(lambda i: (i % 2 == 0) == first)

    @classmethod
    def raising_on(cls, attempt: int, error: Exception, before: bool = True) -> "ScriptedPredicate":
        def script(i: int) -> bool:
            if i == attempt:
                raise error
            return before

        return cls(script)


class FakeStoreSession(StoreTestSession):
    """
    Store session whose entitlement view lags behind its transaction list.

    ``visibility(n)`` decides whether a purchase shows up on the n-th
    entitlement query after it was made.
    """

    def __init__(
        self,
        catalog: Optional[Dict[str, ProductType]] = None,
        propagation_delay: int = 0,
        visibility: Optional[Callable[[int], bool]] = None,
        unverified: AbstractSet[str] = frozenset(),
        purchase_error: Optional[Exception] = None,
    ):
        self.catalog = catalog or {}
        self.visibility = visibility or (lambda n: n >= propagation_delay)
        self.unverified = unverified
        self.purchase_error = purchase_error
        self.transactions: List[SessionTransaction] = []
        self.purchase_options: List[AbstractSet[Hashable]] = []
        self.entitlement_queries = 0
        self._purchased_at: Dict[str, int] = {}

    async def buy_product(
        self, identifier: str, options: AbstractSet[Hashable] = frozenset()
    ) -> None:
        if self.purchase_error is not None:
            raise self.purchase_error
        self.purchase_options.append(options)
        self.transactions.append(SessionTransaction(identifier, TransactionState.PURCHASED))
        self._purchased_at[identifier] = self.entitlement_queries

    async def all_transactions(self) -> List[SessionTransaction]:
        return list(self.transactions)

    async def current_entitlements(self):
        query = self.entitlement_queries
        self.entitlement_queries += 1
        for identifier, purchased_at in self._purchased_at.items():
            if not self.visibility(query - purchased_at):
                continue
            product_type = self.catalog.get(identifier, ProductType.AUTO_RENEWABLE)
            error = "signature mismatch" if identifier in self.unverified else None
            yield VerificationResult(Transaction(identifier, product_type), error=error)
