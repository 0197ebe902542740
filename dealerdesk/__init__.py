"""DealerDesk dealership back office."""
