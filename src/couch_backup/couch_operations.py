"""
Document store operations utility for the backup system.

This module provides utilities for interacting with a CouchDB-compatible
HTTP API: probing and creating databases, reading views, documents and
change feeds, and streaming revisions between databases.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .exceptions import (
    DocumentConflictError,
    RevisionUnavailableError,
    StoreRequestError,
)

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}
MISSING_STATUS_CODES = {404, 410}


class CouchOperations:
    """Utility class for document store operations."""

    def __init__(
        self,
        root_url: str,
        connect_timeout: float = 10.0,
        read_timeout: float = 120.0,
        chunk_size: int = 64 * 1024,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize store operations.

        Args:
            root_url: Root endpoint of the deployment, credentials included
            connect_timeout: Seconds to wait for a connection
            read_timeout: Seconds to wait between bytes of a response
            chunk_size: Chunk size used when streaming revisions
            session: Optional preconfigured requests session
        """
        self.root_url = root_url.rstrip("/")
        self.timeout = (connect_timeout, read_timeout)
        self.chunk_size = chunk_size
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "CouchOperations":
        """Build operations from a BackupSystemConfig."""
        return cls(
            config.couch.root_url,
            connect_timeout=config.http.connect_timeout_seconds,
            read_timeout=config.http.read_timeout_seconds,
            chunk_size=config.http.stream_chunk_size,
        )

    def url(self, database: str, *parts: str) -> str:
        """Build a URL for a database or a document path inside it."""
        segments = [quote(database, safe="")]
        for part in parts:
            # Design document paths keep their slashes
            if part.startswith("_design/"):
                segments.append(quote(part, safe="/"))
            else:
                segments.append(quote(part, safe=""))
        return "/".join([self.root_url] + segments)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise StoreRequestError(f"{method} {url} failed: {e}", url=url) from e
        self._raise_for_status(method, url, response)
        return response

    @staticmethod
    def _raise_for_status(method: str, url: str, response: requests.Response) -> None:
        if response.ok:
            return
        try:
            detail = response.json()
        except ValueError:
            detail = response.text[:500]
        message = f"{method} {url} -> {response.status_code}: {detail}"
        if response.status_code == 409:
            raise DocumentConflictError(message, status_code=409, url=url)
        raise StoreRequestError(message, status_code=response.status_code, url=url)

    def database_exists(self, database: str) -> bool:
        """
        Probe whether a database exists.

        Any transport error or non-2xx answer counts as absent.
        """
        url = self.url(database)
        try:
            response = self.session.head(url, timeout=self.timeout)
        except requests.RequestException:
            return False
        return 200 <= response.status_code < 300

    def create_database(self, database: str) -> bool:
        """
        Create a database.

        Returns:
            True if the database was created, False if it already existed

        Raises:
            StoreRequestError: If the store refused to create it
        """
        url = self.url(database)
        try:
            response = self.session.put(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise StoreRequestError(f"PUT {url} failed: {e}", url=url) from e
        if response.status_code == 412:
            return False
        self._raise_for_status("PUT", url, response)
        return True

    def delete_database(self, database: str) -> bool:
        """
        Delete a database.

        Returns:
            True if the database was deleted, False if it did not exist
        """
        url = self.url(database)
        try:
            self._request("DELETE", url)
        except StoreRequestError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def query_view(
        self, database: str, view_path: str, include_docs: bool = True
    ) -> List[Dict[str, Any]]:
        """Return the rows of a view."""
        params = {"include_docs": "true" if include_docs else "false"}
        response = self._request(
            "GET", self.url(database, view_path), params=params, headers=JSON_HEADERS
        )
        return response.json().get("rows", [])

    def get_document(self, database: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document, or None if it does not exist."""
        url = self.url(database, doc_id)
        try:
            response = self._request("GET", url, headers=JSON_HEADERS)
        except StoreRequestError as e:
            if e.status_code == 404:
                return None
            raise
        return response.json()

    def put_document(self, database: str, doc_id: str, doc: Dict[str, Any]) -> str:
        """
        Write a document. The write carries doc["_rev"] when present.

        Returns:
            The new revision

        Raises:
            DocumentConflictError: If the revision in doc is stale
        """
        response = self._request(
            "PUT", self.url(database, doc_id), json=doc, headers=JSON_HEADERS
        )
        return response.json().get("rev")

    def post_document(self, database: str, doc: Dict[str, Any]) -> str:
        """Create a document with a store-assigned id."""
        response = self._request(
            "POST", self.url(database), json=doc, headers=JSON_HEADERS
        )
        return response.json().get("id")

    def get_changes(
        self,
        database: str,
        since: Any = "0",
        style: str = "main_only",
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Fetch the change feed of a database since a sequence token."""
        params: Dict[str, Any] = {"since": since, "style": style}
        if limit:
            params["limit"] = limit
        response = self._request(
            "GET", self.url(database, "_changes"), params=params, headers=JSON_HEADERS
        )
        return response.json()

    def get_revision_history(self, database: str, doc_id: str) -> List[str]:
        """Return the revisions of a document still available in the store, newest first."""
        url = self.url(database, doc_id)
        try:
            response = self._request(
                "GET", url, params={"revs_info": "true"}, headers=JSON_HEADERS
            )
        except StoreRequestError as e:
            if e.status_code in MISSING_STATUS_CODES:
                raise RevisionUnavailableError(str(e), status_code=e.status_code, url=url) from e
            raise
        return [
            info["rev"]
            for info in response.json().get("_revs_info", [])
            if info.get("status") == "available"
        ]

    def stream_revision(
        self, source_db: str, doc_id: str, rev: str, target_db: str, target_key: str
    ) -> None:
        """
        Copy one revision of a document, attachments inlined, into another database.

        The source body is piped into the target request chunk by chunk. The
        target write uses new_edits=false so the stored revision keeps its
        source revision id and a repeated copy is a no-op.

        Raises:
            RevisionUnavailableError: If the source no longer holds the revision
            StoreRequestError: For any other failure on either side
        """
        source_url = self.url(source_db, doc_id)
        target_url = self.url(target_db, target_key)
        try:
            with self.session.get(
                source_url,
                params={"rev": rev, "attachments": "true"},
                headers={"Accept": "application/json"},
                stream=True,
                timeout=self.timeout,
            ) as source:
                if source.status_code in MISSING_STATUS_CODES:
                    raise RevisionUnavailableError(
                        f"GET {source_url} -> {source.status_code}: revision {rev} is gone",
                        status_code=source.status_code,
                        url=source_url,
                    )
                self._raise_for_status("GET", source_url, source)
                target = self.session.put(
                    target_url,
                    params={"new_edits": "false"},
                    data=source.iter_content(chunk_size=self.chunk_size),
                    headers=JSON_HEADERS,
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            raise StoreRequestError(
                f"Copy {source_url} -> {target_url} failed: {e}", url=target_url
            ) from e
        self._raise_for_status("PUT", target_url, target)
