"""Request handling services: classification, triggering, aggregation."""
