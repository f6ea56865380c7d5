"""Wiring of stores, adapters and services into one portal."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from coop_loans.config import PortalConfig
from coop_loans.notify.email import EmailSender, ResendEmailSender
from coop_loans.notify.notifier import Notifier, StoreNotifier
from coop_loans.services.audit import AuditTrail
from coop_loans.services.eligibility import EligibilityEvaluator
from coop_loans.services.guarantors import GuarantorWorkflow
from coop_loans.services.lifecycle import LoanLifecycle
from coop_loans.services.members import StoreMemberDirectory
from coop_loans.services.payments import DeductionProcessor, LedgerService
from coop_loans.store.base import DocumentStore
from coop_loans.store.memory import InMemoryDocumentStore


@dataclass
class Portal:
    """Every service of the loan portal, sharing one store and clock."""

    config: PortalConfig
    store: DocumentStore
    members: StoreMemberDirectory
    evaluator: EligibilityEvaluator
    guarantors: GuarantorWorkflow
    lifecycle: LoanLifecycle
    ledger: LedgerService
    deductions: DeductionProcessor
    audit: AuditTrail
    email_sender: EmailSender
    notifier: Notifier


def build_portal(
    config: PortalConfig | None = None,
    store: DocumentStore | None = None,
    email_sender: EmailSender | None = None,
    notifier: Notifier | None = None,
    sinks: list[Any] | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> Portal:
    """Assemble a portal.

    Parameters
    ----------
    config : PortalConfig | None
        Configuration; defaults are used when omitted.
    store : DocumentStore | None
        Document store; an in-memory store when omitted.
    email_sender : EmailSender | None
        Email adapter; Resend over HTTP when omitted.
    notifier : Notifier | None
        In-app notifier; notifications are written to ``store`` when omitted.
    sinks : list[Any] | None
        Audit event sinks.
    clock : Callable[[], datetime]
        Source of "now" for every service.

    Returns
    -------
    Portal
        The wired services.
    """
    config = config or PortalConfig()
    store = store if store is not None else InMemoryDocumentStore()
    email_sender = email_sender or ResendEmailSender(config.email)
    notifier = notifier or StoreNotifier(store, clock=clock)
    audit = AuditTrail(sinks=sinks, clock=clock)

    members = StoreMemberDirectory(store, clock=clock)
    evaluator = EligibilityEvaluator(members)
    guarantors = GuarantorWorkflow(
        store,
        email_sender,
        notifier,
        workflow_config=config.workflow,
        email_config=config.email,
        audit=audit,
        clock=clock,
    )
    lifecycle = LoanLifecycle(
        store,
        guarantors,
        evaluator,
        email_sender,
        notifier,
        workflow_config=config.workflow,
        audit=audit,
        clock=clock,
    )
    ledger = LedgerService(store, clock=clock)
    deductions = DeductionProcessor(lifecycle, members, ledger, notifier, audit=audit, clock=clock)

    return Portal(
        config=config,
        store=store,
        members=members,
        evaluator=evaluator,
        guarantors=guarantors,
        lifecycle=lifecycle,
        ledger=ledger,
        deductions=deductions,
        audit=audit,
        email_sender=email_sender,
        notifier=notifier,
    )
