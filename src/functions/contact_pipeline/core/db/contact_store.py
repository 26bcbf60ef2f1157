"""
Supabase access for contacts and their derived theses.

Each stage has an eligibility predicate expressed as column filters:

- enrichment: name is set and bio is null
- extraction: bio is set and no row exists in the theses table
- embedding: bio is set and bio_embedding is null

All page fetches are ordered by ``id`` and resume strictly after a cursor
so repeated calls walk the table once per pass.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from src.shared.batch import retry_on_network_error

from ..contracts import ContactRecord, Stage

PAGE_SIZE = 1000
CONTACT_COLUMNS = "id,name,company,title,bio,investor_notes,website,contact_type,is_investor"
OWNER_COLUMN = "owned_by_profile"

logger = logging.getLogger(__name__)


class ContactStore:
    """Reads eligible contacts and writes stage results back to Supabase."""

    def __init__(
        self,
        client: Any,
        *,
        contacts_table: str = "contacts",
        theses_table: str = "theses",
        dry_run: bool = False,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.client = client
        self.contacts_table = contacts_table
        self.theses_table = theses_table
        self.dry_run = dry_run
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _execute(self, query: Any) -> Any:
        return retry_on_network_error(
            query.execute,
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
        )

    def _contacts(self, columns: str, owner_id: Optional[str]) -> Any:
        query = self.client.table(self.contacts_table).select(columns)
        if owner_id:
            query = query.eq(OWNER_COLUMN, owner_id)
        return query

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def fetch_eligible(
        self,
        stage: Stage,
        owner_id: Optional[str],
        limit: int,
        after_id: Optional[str] = None,
    ) -> List[ContactRecord]:
        """Return up to ``limit`` contacts still needing ``stage``, ordered by id.

        Raises:
            Exception: Propagates storage errors once network retries are exhausted
        """
        if limit <= 0:
            return []
        if stage is Stage.EXTRACTION:
            return self._fetch_extraction_candidates(owner_id, limit, after_id)

        query = self._contacts(CONTACT_COLUMNS, owner_id)
        if stage is Stage.ENRICHMENT:
            query = query.not_.is_("name", "null").neq("name", "").is_("bio", "null")
        else:
            query = query.not_.is_("bio", "null").is_("bio_embedding", "null")
        if after_id is not None:
            query = query.gt("id", after_id)

        response = self._execute(query.order("id").limit(limit))
        rows = response.data or []
        logger.debug("Fetched %d %s candidates after %s", len(rows), stage.value, after_id)
        return [
            ContactRecord.from_row(row, has_embedding=False if stage is Stage.EMBEDDING else None)
            for row in rows
        ]

    def _fetch_extraction_candidates(
        self,
        owner_id: Optional[str],
        limit: int,
        after_id: Optional[str],
    ) -> List[ContactRecord]:
        chunk_size = limit * 2
        cursor = after_id
        selected: List[ContactRecord] = []

        while len(selected) < limit:
            query = self._contacts(CONTACT_COLUMNS, owner_id).not_.is_("bio", "null")
            if cursor is not None:
                query = query.gt("id", cursor)
            rows = self._execute(query.order("id").limit(chunk_size)).data or []
            if not rows:
                break

            with_thesis = self._ids_with_thesis(str(row["id"]) for row in rows)
            for row in rows:
                if str(row["id"]) in with_thesis:
                    continue
                selected.append(ContactRecord.from_row(row, has_thesis=False))
                if len(selected) == limit:
                    break

            if len(rows) < chunk_size:
                break
            cursor = str(rows[-1]["id"])

        logger.debug("Fetched %d extraction candidates after %s", len(selected), after_id)
        return selected

    def _ids_with_thesis(self, contact_ids: Iterable[str]) -> Set[str]:
        ids = list(contact_ids)
        if not ids:
            return set()
        response = self._execute(
            self.client.table(self.theses_table).select("contact_id").in_("contact_id", ids)
        )
        return {str(row["contact_id"]) for row in response.data or []}

    def _ids_with_embedding(self, contact_ids: List[str]) -> Set[str]:
        if not contact_ids:
            return set()
        response = self._execute(
            self.client.table(self.contacts_table)
            .select("id")
            .in_("id", contact_ids)
            .not_.is_("bio_embedding", "null")
        )
        return {str(row["id"]) for row in response.data or []}

    def fetch_by_ids(self, contact_ids: List[str]) -> List[ContactRecord]:
        """Load contacts by id, preserving the requested order.

        Unknown ids are dropped. Thesis and embedding presence are resolved so
        callers can apply the stage eligibility predicates in memory.
        """
        if not contact_ids:
            return []
        response = self._execute(
            self.client.table(self.contacts_table).select(CONTACT_COLUMNS).in_("id", contact_ids)
        )
        rows = {str(row["id"]): row for row in response.data or []}
        with_thesis = self._ids_with_thesis(rows.keys())
        with_embedding = self._ids_with_embedding(list(rows.keys()))
        return [
            ContactRecord.from_row(
                rows[contact_id],
                has_thesis=contact_id in with_thesis,
                has_embedding=contact_id in with_embedding,
            )
            for contact_id in contact_ids
            if contact_id in rows
        ]

    def fetch_enrollable_ids(self, owner_id: Optional[str], page_size: int = PAGE_SIZE) -> List[str]:
        """Full scan of named contact ids, paged with ``range``."""
        ids: List[str] = []
        offset = 0
        while True:
            query = self._contacts("id", owner_id).not_.is_("name", "null").neq("name", "")
            response = self._execute(query.order("id").range(offset, offset + page_size - 1))
            rows = response.data or []
            ids.extend(str(row["id"]) for row in rows)
            if len(rows) < page_size:
                break
            offset += page_size
        logger.info("Enrolled %d contacts for owner %s", len(ids), owner_id or "*")
        return ids

    def has_pending_work(self, owner_id: Optional[str]) -> bool:
        """Return True if any stage has at least one eligible contact."""
        for stage in Stage:
            if self.fetch_eligible(stage, owner_id, limit=1):
                logger.debug("Pending %s work found for owner %s", stage.value, owner_id)
                return True
        return False

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def update_contact(self, contact_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        if self.dry_run:
            logger.info("[dry-run] Would update contact %s: %s", contact_id, sorted(fields))
            return
        self._execute(self.client.table(self.contacts_table).update(fields).eq("id", contact_id))

    def upsert_thesis(self, row: Dict[str, Any]) -> None:
        if self.dry_run:
            logger.info("[dry-run] Would upsert thesis for contact %s", row.get("contact_id"))
            return
        self._execute(
            self.client.table(self.theses_table).upsert(row, on_conflict="contact_id")
        )
