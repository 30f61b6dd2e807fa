"""Payment Gate: internal payment status ledger and the paid-before-assigned precondition."""

from jadwa.payments.gate import PaymentGate, parse_amount

__all__ = ["PaymentGate", "parse_amount"]
