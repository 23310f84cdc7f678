"""ccxt worker: protocol loop (main) and operation catalog (operations)."""
