"""
Ingestion layer — tenant-scoped async reads from the record store.

Submodules:
  data_provider — DataProvider: sales, transactions, trust metrics, pricing,
                  customer behavior and inventory movements per tenant
"""
