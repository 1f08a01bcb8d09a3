"""bootstrap() and BloodBankService.from_config wiring."""

from dataclasses import replace
from datetime import date

import pytest

from blood_config.loader import parse_config
from blood_config.schema import AuditFailureMode
from blood_kernel.db.engine import get_engine, reset_engine
from blood_kernel.db.triggers import triggers_installed
from blood_services import KernelServices, bootstrap


@pytest.fixture
def config(tmp_path):
    base = parse_config({
        "config_id": "bootstrap-test",
        "audit": {"pepper": "bootstrap-pepper", "failure_mode": "fail_closed"},
        "inventory": {"default_donation_source": "Rambam", "suggestion_limit": 2},
    })
    return replace(
        base, database=replace(base.database, url=f"sqlite:///{tmp_path / 'boot.db'}")
    )


@pytest.fixture
def booted(config, deterministic_clock, captured_logs):
    bank = bootstrap(config, clock=deterministic_clock)
    yield bank
    reset_engine()


def test_schema_and_triggers_created(booted):
    assert triggers_installed(get_engine())
    assert booted.verify_audit_chain().valid


def test_settings_flow_from_config(booted):
    assert booted.failure_mode is AuditFailureMode.FAIL_CLOSED

    unit = booted.add_donation("A+", date(2024, 1, 1), "123456789", "Dana")
    assert unit.donation_source == "Rambam"

    for bt in ("O+", "O-", "A-", "B+"):
        booted.add_donation(bt, date(2024, 1, 1), "123456789", "Dana")
    selection = booted.select_for_routine("AB+", 10)
    assert len(selection.suggestions) == 2


def test_ready_logged(booted, captured_logs):
    ready = [r for r in captured_logs() if r["message"] == "blood_bank_ready"]
    assert ready[0]["config_id"] == "bootstrap-test"
    assert ready[0]["audit_failure_mode"] == "fail_closed"


def test_kernel_services_share_session(db_engine, session):
    kernel = KernelServices(session, pepper="p")

    assert kernel.session is session
    assert kernel.inventory.session is session
    assert kernel.allocation.session is session
