"""Entity fetch functions over the primary API and the live store."""
