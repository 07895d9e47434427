"""Tournament scheduling engine: pairings, advancement, pitch allocation and standings."""
