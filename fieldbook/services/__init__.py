"""Services package - scheduling rules over the storage layer."""
