"""
Module: blood_kernel.db.triggers
Responsibility: Installing and removing database-level immutability
    triggers (layer 2 of 2).  This is the database-level complement to the
    ORM-level listeners in db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/, or outer layers.

Invariants enforced:
    - audit_entries rows: no UPDATE, no DELETE.
    - issuances rows: no UPDATE, no DELETE.
    - blood_units rows: no DELETE; identity, type, date, donor and source
      columns never change; status may only move available -> issued.

Failure modes:
    - SQLite RAISE(ABORT) / PostgreSQL RAISE EXCEPTION on any violation,
      surfaced by SQLAlchemy as IntegrityError or a DBAPIError subclass.

Audit relevance:
    These triggers catch raw SQL and bulk statements that never pass
    through the ORM.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

_UNIT_FROZEN_COLUMNS = (
    "id",
    "abo",
    "rh",
    "donation_date",
    "donor_id",
    "donor_name",
    "donation_source",
    "created_at",
)

_SQLITE_FROZEN_CHANGED = " OR ".join(
    f"NEW.{col} IS NOT OLD.{col}" for col in _UNIT_FROZEN_COLUMNS
)
_PG_FROZEN_CHANGED = " OR ".join(
    f"NEW.{col} IS DISTINCT FROM OLD.{col}" for col in _UNIT_FROZEN_COLUMNS
)

SQLITE_TRIGGERS: dict[str, str] = {
    "trg_audit_entries_no_update": """
        CREATE TRIGGER IF NOT EXISTS trg_audit_entries_no_update
        BEFORE UPDATE ON audit_entries
        BEGIN SELECT RAISE(ABORT, 'audit_entries are immutable'); END
    """,
    "trg_audit_entries_no_delete": """
        CREATE TRIGGER IF NOT EXISTS trg_audit_entries_no_delete
        BEFORE DELETE ON audit_entries
        BEGIN SELECT RAISE(ABORT, 'audit_entries cannot be deleted'); END
    """,
    "trg_issuances_no_update": """
        CREATE TRIGGER IF NOT EXISTS trg_issuances_no_update
        BEFORE UPDATE ON issuances
        BEGIN SELECT RAISE(ABORT, 'issuances are immutable'); END
    """,
    "trg_issuances_no_delete": """
        CREATE TRIGGER IF NOT EXISTS trg_issuances_no_delete
        BEFORE DELETE ON issuances
        BEGIN SELECT RAISE(ABORT, 'issuances cannot be deleted'); END
    """,
    "trg_blood_units_no_delete": """
        CREATE TRIGGER IF NOT EXISTS trg_blood_units_no_delete
        BEFORE DELETE ON blood_units
        BEGIN SELECT RAISE(ABORT, 'blood_units cannot be deleted'); END
    """,
    "trg_blood_units_frozen_columns": f"""
        CREATE TRIGGER IF NOT EXISTS trg_blood_units_frozen_columns
        BEFORE UPDATE ON blood_units
        WHEN {_SQLITE_FROZEN_CHANGED}
        BEGIN SELECT RAISE(ABORT, 'blood unit identity is immutable'); END
    """,
    "trg_blood_units_status_transition": """
        CREATE TRIGGER IF NOT EXISTS trg_blood_units_status_transition
        BEFORE UPDATE OF status ON blood_units
        WHEN NEW.status IS NOT OLD.status
             AND NOT (OLD.status = 'available' AND NEW.status = 'issued')
        BEGIN SELECT RAISE(ABORT, 'illegal blood unit status transition'); END
    """,
}

_PG_FUNCTIONS = f"""
CREATE OR REPLACE FUNCTION blood_reject_change() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION '% rows are immutable', TG_TABLE_NAME;
END;
$$ LANGUAGE plpgsql;

CREATE OR REPLACE FUNCTION blood_unit_guard() RETURNS trigger AS $$
BEGIN
    IF {_PG_FROZEN_CHANGED} THEN
        RAISE EXCEPTION 'blood unit identity is immutable';
    END IF;
    IF NEW.status IS DISTINCT FROM OLD.status
       AND NOT (OLD.status = 'available' AND NEW.status = 'issued') THEN
        RAISE EXCEPTION 'illegal blood unit status transition';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

POSTGRES_TRIGGERS: dict[str, str] = {
    "trg_audit_entries_no_update": (
        "CREATE TRIGGER trg_audit_entries_no_update BEFORE UPDATE ON audit_entries "
        "FOR EACH ROW EXECUTE FUNCTION blood_reject_change()"
    ),
    "trg_audit_entries_no_delete": (
        "CREATE TRIGGER trg_audit_entries_no_delete BEFORE DELETE ON audit_entries "
        "FOR EACH ROW EXECUTE FUNCTION blood_reject_change()"
    ),
    "trg_issuances_no_update": (
        "CREATE TRIGGER trg_issuances_no_update BEFORE UPDATE ON issuances "
        "FOR EACH ROW EXECUTE FUNCTION blood_reject_change()"
    ),
    "trg_issuances_no_delete": (
        "CREATE TRIGGER trg_issuances_no_delete BEFORE DELETE ON issuances "
        "FOR EACH ROW EXECUTE FUNCTION blood_reject_change()"
    ),
    "trg_blood_units_no_delete": (
        "CREATE TRIGGER trg_blood_units_no_delete BEFORE DELETE ON blood_units "
        "FOR EACH ROW EXECUTE FUNCTION blood_reject_change()"
    ),
    "trg_blood_units_guard": (
        "CREATE TRIGGER trg_blood_units_guard BEFORE UPDATE ON blood_units "
        "FOR EACH ROW EXECUTE FUNCTION blood_unit_guard()"
    ),
}

_PG_TRIGGER_TABLES = {
    "trg_audit_entries_no_update": "audit_entries",
    "trg_audit_entries_no_delete": "audit_entries",
    "trg_issuances_no_update": "issuances",
    "trg_issuances_no_delete": "issuances",
    "trg_blood_units_no_delete": "blood_units",
    "trg_blood_units_guard": "blood_units",
}


def _trigger_set(engine: Engine) -> dict[str, str]:
    if engine.dialect.name == "postgresql":
        return POSTGRES_TRIGGERS
    return SQLITE_TRIGGERS


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the immutability triggers for the engine's dialect.

    Preconditions: Tables must exist (call after create_all).
    Postconditions: Every trigger in the dialect's set is present.
    """
    with engine.begin() as conn:
        if engine.dialect.name == "postgresql":
            conn.execute(text(_PG_FUNCTIONS))
            for name, ddl in POSTGRES_TRIGGERS.items():
                conn.execute(
                    text(f"DROP TRIGGER IF EXISTS {name} ON {_PG_TRIGGER_TABLES[name]}")
                )
                conn.execute(text(ddl))
        else:
            for ddl in SQLITE_TRIGGERS.values():
                conn.execute(text(ddl))


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove the immutability triggers.

    WARNING: Only for tests and migrations that must touch historical
    rows.  Re-install immediately afterwards.
    """
    with engine.begin() as conn:
        if engine.dialect.name == "postgresql":
            for name, table in _PG_TRIGGER_TABLES.items():
                conn.execute(text(f"DROP TRIGGER IF EXISTS {name} ON {table}"))
        else:
            for name in SQLITE_TRIGGERS:
                conn.execute(text(f"DROP TRIGGER IF EXISTS {name}"))


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names of installed immutability triggers, sorted."""
    expected = sorted(_trigger_set(engine))
    with engine.connect() as conn:
        if engine.dialect.name == "postgresql":
            rows = conn.execute(
                text("SELECT tgname FROM pg_trigger WHERE NOT tgisinternal")
            )
        else:
            rows = conn.execute(
                text("SELECT name FROM sqlite_master WHERE type = 'trigger'")
            )
        present = {row[0] for row in rows}
    return [name for name in expected if name in present]


def triggers_installed(engine: Engine) -> bool:
    return len(get_installed_triggers(engine)) == len(_trigger_set(engine))
