"""
Matching Rules Module
"""

from .bank_rules import BankStatementMatchingRules, bank_rules
from .contact_rules import ContactMatchingRules, contact_rules

__all__ = ["BankStatementMatchingRules", "bank_rules", "ContactMatchingRules", "contact_rules"]
