"""
CorpTax Engines - pure calculation layer.

Each engine is a deterministic function of its inputs: no clock, no
database, no file access.  Rule packs and credit ledgers arrive as
already-fetched snapshots.

Engines:
    rates           Rate resolution with surcharge marginal relief
    reconciliation  Book profit to taxable income
    mat             Minimum Alternate Tax evaluation
    mat_credit      MAT credit carry-forward, expiry, FIFO utilization
    computation     Normal tax and net payable
    schedule        Quarterly advance tax installments
    interest        Section 234B / 234C interest
    allocation      Payment allocation across installments
    revision        Revision variance and advisory
"""

from corptax_engines.allocation import PaymentAllocation, PaymentAllocator
from corptax_engines.computation import TaxComputationEngine, TaxComputationResult
from corptax_engines.interest import InterestCalculator
from corptax_engines.mat import MatEvaluator, MatOutcome
from corptax_engines.rates import RateResolver, Regime, ResolvedRates
from corptax_engines.reconciliation import ReconciliationBuilder, ReconciliationInput
from corptax_engines.schedule import ScheduleGenerator, UpfrontCreditPolicy

__all__ = [
    "InterestCalculator",
    "MatEvaluator",
    "MatOutcome",
    "PaymentAllocation",
    "PaymentAllocator",
    "RateResolver",
    "ReconciliationBuilder",
    "ReconciliationInput",
    "Regime",
    "ResolvedRates",
    "ScheduleGenerator",
    "TaxComputationEngine",
    "TaxComputationResult",
    "UpfrontCreditPolicy",
]
