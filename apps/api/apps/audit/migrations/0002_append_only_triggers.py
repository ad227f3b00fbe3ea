"""
Database-level immutability for audit_entry.

Installs triggers that reject UPDATE and DELETE (and TRUNCATE on
PostgreSQL) so that raw SQL cannot rewrite the ledger either.

Generated manually.
"""
from django.db import migrations


SQLITE_INSTALL = [
    """
    CREATE TRIGGER audit_entry_no_update
    BEFORE UPDATE ON audit_entry
    BEGIN
        SELECT RAISE(ABORT, 'audit_entry is append-only: UPDATE rejected');
    END;
    """,
    """
    CREATE TRIGGER audit_entry_no_delete
    BEFORE DELETE ON audit_entry
    BEGIN
        SELECT RAISE(ABORT, 'audit_entry is append-only: DELETE rejected');
    END;
    """,
]

SQLITE_REMOVE = [
    'DROP TRIGGER IF EXISTS audit_entry_no_update;',
    'DROP TRIGGER IF EXISTS audit_entry_no_delete;',
]

POSTGRES_INSTALL = [
    """
    CREATE OR REPLACE FUNCTION audit_entry_reject_mutation() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION USING MESSAGE = 'audit_entry is append-only: ' || TG_OP || ' rejected';
    END;
    $$ LANGUAGE plpgsql;
    """,
    """
    CREATE TRIGGER audit_entry_no_update_delete
    BEFORE UPDATE OR DELETE ON audit_entry
    FOR EACH ROW EXECUTE FUNCTION audit_entry_reject_mutation();
    """,
    """
    CREATE TRIGGER audit_entry_no_truncate
    BEFORE TRUNCATE ON audit_entry
    FOR EACH STATEMENT EXECUTE FUNCTION audit_entry_reject_mutation();
    """,
]

POSTGRES_REMOVE = [
    'DROP TRIGGER IF EXISTS audit_entry_no_truncate ON audit_entry;',
    'DROP TRIGGER IF EXISTS audit_entry_no_update_delete ON audit_entry;',
    'DROP FUNCTION IF EXISTS audit_entry_reject_mutation();',
]


def _statements_for(vendor, install):
    if vendor == 'sqlite':
        return SQLITE_INSTALL if install else SQLITE_REMOVE
    if vendor == 'postgresql':
        return POSTGRES_INSTALL if install else POSTGRES_REMOVE
    raise RuntimeError(f'No append-only triggers defined for database vendor {vendor!r}')


def install_triggers(apps, schema_editor):
    for statement in _statements_for(schema_editor.connection.vendor, install=True):
        schema_editor.execute(statement)


def remove_triggers(apps, schema_editor):
    for statement in _statements_for(schema_editor.connection.vendor, install=False):
        schema_editor.execute(statement)


class Migration(migrations.Migration):

    dependencies = [
        ('audit', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(install_triggers, remove_triggers),
    ]
