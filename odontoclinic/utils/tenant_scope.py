# /odontoclinic/utils/tenant_scope.py
"""
Application-level row security.

While a principal is attached (see ``tenant_context``), every ORM statement
that touches a tenant table gets the predicates listed in ``TENANT_RULES``:

* SELECTs receive ``with_loader_criteria`` options, which also propagate to
  the lazy/eager loads those SELECTs trigger;
* ORM-enabled UPDATE and DELETE statements get the predicates in their WHERE;
* objects flushed through the unit of work are stamped with the caller's
  clinic, and writing a row for another clinic raises ``TenantScopeError``.

Anything the listeners cannot inspect (textual SQL, Core statements against
``Table`` objects, ORM bulk INSERT into a tenant table) is refused rather than
run unfiltered.

Sharp edge: ``Session.get()`` / ``Query.get()`` may answer from the identity
map without emitting SQL, and so without the tenant predicate. Code that needs
scoping looks rows up with ``filter_by(...).first()`` instead.
"""
from dataclasses import dataclass
from typing import FrozenSet, Optional

from sqlalchemy import and_, event, false, inspect as sa_inspect
from sqlalchemy.orm import Session, attributes, with_loader_criteria

from odontoclinic.extensions import db
from odontoclinic.utils.tenant_context import Role, get_current_principal


class TenantScopeError(Exception):
    """An operation could not be confined to the caller's clinic."""


@dataclass(frozen=True)
class TenantRule:
    table: str
    column: str
    principal_attr: str = 'clinic_id'
    roles: Optional[FrozenSet[str]] = None  # None: every role

    def applies_to(self, principal) -> bool:
        return self.roles is None or principal.role in self.roles


TENANT_RULES = (
    # A clinic only ever sees itself
    TenantRule('clinics', 'id'),
    TenantRule('users', 'clinica_id'),
    TenantRule('patients', 'clinica_id'),
    TenantRule('practitioners', 'clinica_id'),
    TenantRule('procedures', 'clinica_id'),
    TenantRule('appointments', 'clinica_id'),
    TenantRule('appointment_procedures', 'clinica_id'),
    TenantRule('odontogram_entries', 'clinica_id'),
    TenantRule('payments', 'clinica_id'),
    TenantRule('anamnesis_questions', 'clinica_id'),
    TenantRule('anamnesis_answers', 'clinica_id'),
    TenantRule('payables', 'clinica_id'),
    # Role narrowing
    TenantRule('patients', 'id', 'own_record_id', frozenset({Role.PATIENT})),
    TenantRule('appointments', 'practitioner_id', 'own_record_id', frozenset({Role.PRACTITIONER})),
    TenantRule('appointments', 'patient_id', 'own_record_id', frozenset({Role.PATIENT})),
)

TENANT_TABLES = frozenset(rule.table for rule in TENANT_RULES)


def rules_for(principal, table):
    return [rule for rule in TENANT_RULES if rule.table == table and rule.applies_to(principal)]


def _predicate(model, rule, principal):
    value = getattr(principal, rule.principal_attr)
    # A rule with nothing to match against admits no rows
    if value is None:
        return false()
    return getattr(model, rule.column) == value


def scope_predicates(principal, model):
    """SQL predicates confining ``model`` to what ``principal`` may see."""
    return [_predicate(model, rule, principal) for rule in rules_for(principal, model.__table__.name)]


def _tenant_models():
    for mapper in db.Model.registry.mappers:
        if mapper.local_table.name in TENANT_TABLES:
            yield mapper.class_


def _loader_criteria(principal):
    options = []
    for model in _tenant_models():
        predicates = scope_predicates(principal, model)
        if predicates:
            options.append(with_loader_criteria(model, and_(*predicates), include_aliases=True))
    return options


def _scope_orm_execute(execute_state):
    principal = get_current_principal()
    if principal is None:
        return

    if not execute_state.is_orm_statement:
        raise TenantScopeError('Statement cannot be scoped to a clinic')

    if execute_state.is_select:
        # Column refreshes and relationship loads inherit the criteria of the
        # statement that loaded their parent
        if execute_state.is_column_load or execute_state.is_relationship_load:
            return
        execute_state.statement = execute_state.statement.options(*_loader_criteria(principal))
        return

    mapper = execute_state.bind_mapper
    if mapper is None or mapper.local_table.name not in TENANT_TABLES:
        return
    if execute_state.is_insert:
        raise TenantScopeError(f'Bulk INSERT into {mapper.local_table.name} cannot be scoped to a clinic')
    if execute_state.is_update or execute_state.is_delete:
        execute_state.statement = execute_state.statement.where(
            *scope_predicates(principal, mapper.class_)
        )


def _stamp_new_row(obj, mapper, rule, principal):
    expected = getattr(principal, rule.principal_attr)
    if expected is None:
        raise TenantScopeError(f'Principal has no record to scope {rule.table} rows to')
    primary_keys = {column.key for column in mapper.primary_key}
    if rule.column in primary_keys:
        raise TenantScopeError(f'Cannot create {rule.table} rows under a tenant principal')
    current = getattr(obj, rule.column)
    if current is None:
        setattr(obj, rule.column, expected)
    elif current != expected:
        raise TenantScopeError(f'Refusing to write a {rule.table} row outside the caller scope')


def _scope_flush(session, flush_context, instances):
    principal = get_current_principal()
    if principal is None:
        return

    for obj in session.new:
        mapper = sa_inspect(obj).mapper
        for rule in rules_for(principal, mapper.local_table.name):
            _stamp_new_row(obj, mapper, rule, principal)

    for obj in session.dirty:
        mapper = sa_inspect(obj).mapper
        for rule in rules_for(principal, mapper.local_table.name):
            history = attributes.get_history(obj, rule.column)
            if history.has_changes() and getattr(obj, rule.column) != getattr(principal, rule.principal_attr):
                raise TenantScopeError(f'Refusing to move a {rule.table} row outside the caller scope')


def init_app(app):
    """Registers the scoping listeners on every ORM session."""
    if not event.contains(Session, 'do_orm_execute', _scope_orm_execute):
        event.listen(Session, 'do_orm_execute', _scope_orm_execute)
    if not event.contains(Session, 'before_flush', _scope_flush):
        event.listen(Session, 'before_flush', _scope_flush)
