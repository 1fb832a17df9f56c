"""Pytest configuration for BDD tests."""

import asyncio

import pytest


@pytest.fixture
def bdd_loop():
    """Create an event loop for running async steps from sync step functions."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


# BDD-specific configuration
def pytest_bdd_step_error(request, feature, scenario, step, step_func, step_func_args, exception):
    """Enhanced error reporting for BDD steps."""
    print(f"\n{'='*60}")
    print(f"STEP FAILED: {step.keyword} {step.name}")
    print(f"Feature: {feature.name}")
    print(f"Scenario: {scenario.name}")
    print(f"Error: {exception}")
    print(f"{'='*60}\n")


# Automatically mark all BDD tests
def pytest_collection_modifyitems(items):
    """Automatically add markers to BDD tests."""
    for item in items:
        if "bdd" in str(item.fspath):
            item.add_marker(pytest.mark.bdd)
