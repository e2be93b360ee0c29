"""Task lifecycle: time ledger, state machine, storage, forwarding and scheduled jobs."""
