"""
NF-e XML → Receiving Draft → Human review

A deterministic, testable pipeline that turns Brazilian electronic fiscal
invoices (NF-e) into goods-receiving drafts with supplier and catalog-item
matching, an installment payment plan, and strict deduplication on the
44-digit access key.
"""

__version__ = "0.1.0"
