"""Gmail service implementation for listing messages and reading sender headers."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from gmailstats.ingestion.common.errors import DetailFetchError, ListingError
from gmailstats.ingestion.common.kvstore import KeyValueStore
from gmailstats.ingestion.common.models import MAX_PAGE_SIZE, MessagePage, validate_page_size

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
TOKEN_TYPE_TAG = "oauth_token"
class GmailService:
    """Thin wrapper over the Gmail v1 API.

    ``list_messages`` is the listing collaborator and ``get_message`` the
    detail collaborator of the fetch pipeline. The OAuth token is kept in a
    key/value store under the ``oauth_token`` type tag, keyed by user id.
    """

    def __init__(
        self,
        credentials_path: str,
        token_store: KeyValueStore | None = None,
        user_id: str = "me",
        num_retries: int = 0,
    ) -> None:
        self.credentials_path = Path(credentials_path)
        self.token_store = token_store
        self.user_id = user_id
        self.num_retries = num_retries
        self._creds: Optional[Credentials] = None
        self._auth_lock = threading.Lock()
        self._local = threading.local()

    @property
    def service(self):
        # httplib2 transports are not thread safe; build one client per thread.
        service = getattr(self._local, "service", None)
        if service is None:
            service = build("gmail", "v1", credentials=self.credentials, cache_discovery=False)
            self._local.service = service
        return service

    @property
    def credentials(self) -> Credentials:
        with self._auth_lock:
            if self._creds is None:
                self._creds = self._authorize()
            return self._creds

    def _load_credentials(self) -> Optional[Credentials]:
        if self.token_store is None:
            return None
        raw = self.token_store.get(TOKEN_TYPE_TAG, self.user_id)
        if not raw:
            return None
        return Credentials.from_authorized_user_info(json.loads(raw), SCOPES)

    def _store_credentials(self, creds: Credentials) -> None:
        if self.token_store is not None:
            self.token_store.put(TOKEN_TYPE_TAG, self.user_id, creds.to_json())

    def _authorize(self) -> Credentials:
        creds = self._load_credentials()
        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                logger.info("Refreshing expired Gmail token for %s", self.user_id)
                try:
                    creds.refresh(Request())
                except GoogleAuthError as exc:
                    logger.warning("Token refresh failed (%s); starting a new OAuth flow", exc)
                    creds = None
            if not creds or not creds.valid:
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(self.credentials_path), SCOPES
                )
                creds = flow.run_local_server(port=0)
            self._store_credentials(creds)
        return creds

    def list_messages(
        self,
        query: str,
        page_token: str | None = None,
        max_results: int = MAX_PAGE_SIZE,
    ) -> MessagePage:
        validate_page_size(max_results)
        params: Dict[str, Any] = {
            "userId": self.user_id,
            "q": query,
            "maxResults": max_results,
        }
        if page_token:
            params["pageToken"] = page_token
        try:
            response = (
                self.service.users()
                .messages()
                .list(**params)
                .execute(num_retries=self.num_retries)
            )
        except HttpError as exc:
            raise ListingError(query, 0, str(exc)) from exc
        ids = [ref["id"] for ref in response.get("messages", [])]
        return MessagePage(ids=ids, next_page_token=response.get("nextPageToken"))

    def get_message(self, message_id: str) -> Dict[str, Any]:
        try:
            message_data = (
                self.service.users()
                .messages()
                .get(
                    userId=self.user_id,
                    id=message_id,
                    format="metadata",
                    metadataHeaders=["From"],
                )
                .execute(num_retries=self.num_retries)
            )
        except HttpError as exc:
            raise DetailFetchError(message_id, str(exc)) from exc
        payload = message_data.get("payload", {})
        headers: List[Dict[str, str]] = [
            {"name": h.get("name", ""), "value": h.get("value", "")}
            for h in payload.get("headers", [])
        ]
        return {"id": message_data.get("id", message_id), "headers": headers}
