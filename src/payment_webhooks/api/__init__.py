"""HTTP surface: the gateway callback and health probes."""
