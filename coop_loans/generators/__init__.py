"""Sample-data generators."""

from coop_loans.generators.member import MemberGenerator, as_guarantor

__all__ = ["MemberGenerator", "as_guarantor"]
