"""
Café Modules.

Orchestration over the café kernel:
- Scheduling: shifts, breaks, clock events, trades, drops, time off
- Payroll: hours aggregation, statutory deductions, pay computation, runs

Each module contains:
- Domain models (frozen DTOs and status enums)
- ORM models
- Workflows (state machines)
- Services that own their transaction boundary
"""
