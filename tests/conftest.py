"""Shared fixtures for the StackShift test suite."""

import pytest

from stackshift.config import FUNCTIONAL_SPEC_NAME, REVERSE_ENGINEERING_DIR, TECH_DEBT_NAME
from stackshift.stackshift_logging import observability_hooks, performance_monitor

FUNCTIONAL_SPEC = """# Splitwise Lite Functional Specification

## Purpose

Splitwise Lite helps small teams track shared expenses and settle balances quickly with minimal friction.

## Core Values

- Simplicity first
- Privacy by default
- Reliable data

## Technical Stack

Languages: TypeScript, Python
Frameworks: React, FastAPI
Databases: PostgreSQL
Infrastructure: AWS, Docker
Build Tools: Vite, Poetry

## Code Quality

All code is linted and reviewed before merge.

## Testing

Every feature ships with unit and integration tests.

## Security

Secrets never leave the server and all input is validated.

## Performance

- Page load: under 2 seconds
- API latency: p95 below 300ms

## Scalability

Supports 10,000 concurrent users per region.

## Governance

Product decisions are made by the product owner after team review.

## Features

### Expense Tracking

Users record shared expenses with amounts, payers and participants.

As a member, I want to add an expense, so that the group balance stays accurate.

**Acceptance Criteria:**
- [x] Expense form validates amounts
- [x] Expenses appear in the group ledger

### Settlements

Members settle outstanding balances with one another.

As a member, I want to record a payment, so that my balance is cleared.

**Acceptance Criteria:**
- [ ] Payment reduces the balance
- [ ] Settled balances are archived

**Technical Requirements:**
- REST endpoint POST /settlements
- database table settlements

Dependencies: Expense Tracking

## Non-Functional Requirements

The service must stay available during business hours.
"""

TECH_DEBT = """# Technical Debt Analysis

## Settlements

What exists:
- payment model

What's missing:
- settlement UI
"""


@pytest.fixture(autouse=True)
def reset_observability():
    """Isolate global metrics and hooks between tests."""
    performance_monitor.clear()
    saved_hooks = {event: list(callbacks) for event, callbacks in observability_hooks.hooks.items()}
    yield
    performance_monitor.clear()
    observability_hooks.hooks.clear()
    observability_hooks.hooks.update(saved_hooks)


@pytest.fixture
def functional_spec_text():
    return FUNCTIONAL_SPEC


@pytest.fixture
def tech_debt_text():
    return TECH_DEBT


@pytest.fixture
def project_dir(tmp_path):
    """A project with both reverse-engineering documents in place."""
    docs = tmp_path / REVERSE_ENGINEERING_DIR
    docs.mkdir(parents=True)
    (docs / FUNCTIONAL_SPEC_NAME).write_text(FUNCTIONAL_SPEC, encoding="utf-8")
    (docs / TECH_DEBT_NAME).write_text(TECH_DEBT, encoding="utf-8")
    return tmp_path
