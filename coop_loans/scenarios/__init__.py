"""Scenario runners."""

from coop_loans.scenarios.loan_walkthrough import LoanWalkthroughScenario, SimulatedClock

__all__ = ["LoanWalkthroughScenario", "SimulatedClock"]
