"""
Payroll Kernel

Shared foundation for the payroll, leave and termination engines:
- Typed exceptions with machine-readable codes
- Structured JSON logging with request-scoped context
- Deterministic clock, workflow, money and calendar primitives
- Hash-chained audit trail with pluggable persistence
"""

__version__ = "0.1.0"
