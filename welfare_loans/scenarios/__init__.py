"""Scenarios for generating realistic welfare fund histories."""

from welfare_loans.scenarios.repayment import RepaymentScenario

__all__ = ["RepaymentScenario"]
