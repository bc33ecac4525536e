"""Message ingestion: Gmail clients, cache and the fetch pipeline."""
