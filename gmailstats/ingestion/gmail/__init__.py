"""Gmail API client."""

from gmailstats.ingestion.gmail.service import GmailService

__all__ = ["GmailService"]
