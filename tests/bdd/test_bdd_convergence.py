"""BDD tests for convergence polling."""

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from async_convergence import (
    ConvergenceTimeoutError,
    Converged,
    EntitlementWaiter,
    PollConfig,
    TimedOut,
    poll_until_consistent,
    spin_until_condition,
)
from tests.utils.predicates import FakeStoreSession, ScriptedPredicate

FAST = 0.001


@scenario("features/convergence.feature", "Condition settles after a propagation delay")
def test_settles_after_delay():
    """Test convergence after a run of stale reads."""
    pass


@scenario("features/convergence.feature", "Oscillating condition never converges")
def test_oscillating_condition():
    """Test an alternating condition is rejected."""
    pass


@scenario("features/convergence.feature", "Timeout is inconclusive in skip mode")
def test_skip_mode_timeout():
    """Test skip-mode timeouts."""
    pass


@pytest.mark.timeout(30)
@scenario("features/convergence.feature", "Timeout is a hard error in strict mode")
def test_strict_mode_timeout():
    """Test strict-mode timeouts."""
    pass


@scenario("features/convergence.feature", "Condition errors are never retried")
def test_condition_errors():
    """Test predicate errors propagate."""
    pass


@pytest.mark.timeout(30)
@scenario("features/convergence.feature", "Purchase becomes active after a delay")
def test_purchase_becomes_active():
    """Test waiting for a purchase to propagate."""
    pass


@pytest.fixture
def poll_context():
    """Context for convergence scenarios."""
    return {
        "predicate": None,
        "session": None,
        "waiter": None,
        "identifier": None,
        "outcome": None,
        "error": None,
        "condition_error": None,
    }


def run_async(coro, loop):
    """Run async code in sync context."""
    return loop.run_until_complete(coro)


# Given steps
@given(parsers.parse("a condition that is false for {count:d} checks and then true"))
def false_then_true(poll_context, count):
    poll_context["predicate"] = ScriptedPredicate.false_then_true(count)


@given("a condition that alternates between true and false")
def alternating(poll_context):
    poll_context["predicate"] = ScriptedPredicate.alternating()


@given("a condition that is never true")
def never_true(poll_context):
    poll_context["predicate"] = ScriptedPredicate.never_true()


@given(parsers.parse("a condition that fails on attempt {attempt:d}"))
def failing_condition(poll_context, attempt):
    error = RuntimeError("entitlement query failed")
    poll_context["condition_error"] = error
    poll_context["predicate"] = ScriptedPredicate.raising_on(attempt, error)


@given(parsers.parse("a store session whose entitlements lag {delay:d} queries behind purchases"))
def lagging_store(poll_context, delay):
    session = FakeStoreSession(propagation_delay=delay)
    poll_context["session"] = session
    poll_context["waiter"] = EntitlementWaiter(
        session, PollConfig(max_tries=40, sleep_duration=FAST)
    )


# When steps
@when(
    parsers.parse(
        "I poll it with up to {max_tries:d} tries requiring {consistency:d} consecutive successes"
    )
)
def poll_condition(poll_context, bdd_loop, max_tries, consistency):
    async def _poll():
        try:
            poll_context["outcome"] = await poll_until_consistent(
                poll_context["predicate"],
                max_tries=max_tries,
                minimum_consecutive_consistency=consistency,
                sleep_duration=FAST,
            )
        except Exception as e:
            poll_context["error"] = e

    run_async(_poll(), bdd_loop)


@when(parsers.parse("I spin on it with up to {max_tries:d} tries in {mode} mode"))
def spin_condition(poll_context, bdd_loop, max_tries, mode):
    async def _spin():
        try:
            poll_context["outcome"] = await spin_until_condition(
                poll_context["predicate"],
                max_tries=max_tries,
                skip_on_timeout=(mode == "skip"),
                sleep_duration=FAST,
            )
        except Exception as e:
            poll_context["error"] = e

    run_async(_spin(), bdd_loop)


@when(parsers.parse('I buy "{identifier}" and wait'))
def buy_and_wait(poll_context, bdd_loop, identifier):
    poll_context["identifier"] = identifier
    poll_context["outcome"] = run_async(
        poll_context["waiter"].buy_product_and_wait(identifier), bdd_loop
    )


# Then steps
@then(parsers.parse("the poll converges at attempt {attempt:d}"))
def converges_at(poll_context, attempt):
    assert poll_context["error"] is None
    assert isinstance(poll_context["outcome"], Converged)
    assert poll_context["outcome"].attempt == attempt


@then("the poll times out")
def times_out(poll_context):
    assert poll_context["error"] is None
    assert isinstance(poll_context["outcome"], TimedOut)


@then(parsers.parse("the condition was checked {count:d} times"))
def checked_times(poll_context, count):
    assert poll_context["predicate"].calls == count


@then("the outcome is inconclusive")
def inconclusive(poll_context):
    assert poll_context["error"] is None
    assert isinstance(poll_context["outcome"], TimedOut)
    assert not poll_context["outcome"].converged


@then(parsers.parse("the inconclusive message mentions {count:d} tries"))
def message_mentions(poll_context, count):
    message = poll_context["outcome"].message
    assert f"after {count} tries" in message
    assert "known flake" in message


@then("an exceeded timeout error is raised")
def exceeded_timeout(poll_context):
    assert isinstance(poll_context["error"], ConvergenceTimeoutError)
    assert poll_context["outcome"] is None


@then("the condition error is raised")
def condition_error(poll_context):
    assert poll_context["error"] is poll_context["condition_error"]


@then("the purchase is active")
def purchase_active(poll_context, bdd_loop):
    ids = run_async(poll_context["waiter"].active_auto_renewable_product_ids(), bdd_loop)
    assert poll_context["identifier"] in ids
