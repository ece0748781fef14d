"""
CorpTax Modules.

Thin orchestration layers over the CorpTax Kernel and Engines.
Each module contains:
- Domain models (the nouns)
- ORM persistence
- Workflows (state machines)
- Configuration schemas (policy and settings)
- A service owning the transaction boundary

Modules:
- Advance Tax: Assessments, installments, interest, revisions, MAT credit

Actual processing logic lives in the engines.
"""

from corptax_modules import advance_tax

__all__ = ["advance_tax"]
