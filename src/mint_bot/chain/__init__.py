"""Remote ledger access: chain presets, the JSON-RPC client and nonce allocation."""
