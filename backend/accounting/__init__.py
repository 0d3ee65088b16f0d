# accounting/__init__.py
"""
Accounting app - Double-entry bookkeeping for LedgerHub.

This app provides:
- Account: Chart of Accounts with hierarchy
- JournalEntry: Double-entry journal entries (DRAFT -> POSTED -> VOID)
- JournalLine: Debit/credit lines
- JournalEntryAudit: Audit trail of entry changes
- store: Tenant/company scoped persistence
- commands: Posting engine and account registry operations
"""
