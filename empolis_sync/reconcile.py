"""
Metadata reconciliation for a single help file.

For each local FileRecord, find the matching document in the Empolis index,
compare its Title and Keywords_txt with the values extracted from the HTML
file, and write the metadata back only if it differs. Comparison ignores
case; written values keep the record's casing.
"""

import logging
from typing import Optional

from .errors import ApiError, NotFound, ValidationError
from .gateway import ACCEPTED, ApiGateway, ExactQuery
from .logging_config import log_pretty
from .types import (
    KEYWORDS_KEY,
    TITLE_KEY,
    DataSourceSelection,
    Failed,
    FileRecord,
    Outcome,
    RemoteMetadata,
    Skipped,
    Updated,
)

logger = logging.getLogger(__name__)

# Attribute holding a document's store path; exact-match searchable
DOWNLOAD_LINK = "DownloadLink"

NOT_IN_INDEX = "not found in index"
NOT_IN_STORE = "not found in store"
ALREADY_CORRECT = "already correct"


def _fold(value) -> str:
    if value is None:
        return ""
    return str(value).casefold()


def plan_update(current: RemoteMetadata, record: FileRecord) -> Optional[RemoteMetadata]:
    """
    Decide what to write for a record.

    Returns:
        The complete new metadata, or None if the current metadata is
        already correct
    """
    desired_title = record.title
    desired_keywords = record.keywords
    existing_keywords = current.get(KEYWORDS_KEY)

    title_matches = _fold(current.get(TITLE_KEY)) == _fold(desired_title)
    keywords_match = _fold(existing_keywords) == _fold(desired_keywords)
    no_keywords = not existing_keywords and not desired_keywords

    if title_matches and (keywords_match or no_keywords):
        return None

    new_metadata = {**current, TITLE_KEY: desired_title}
    # Never overwrite existing keywords with an empty value
    if desired_keywords:
        new_metadata[KEYWORDS_KEY] = desired_keywords
    return new_metadata


class Reconciler:
    """Brings the remote metadata of one document in line with its FileRecord."""

    def __init__(self, gateway: ApiGateway):
        self._gateway = gateway

    async def reconcile(self, record: FileRecord, data_source: DataSourceSelection) -> Outcome:
        """
        Reconcile one record.

        Per-record API and validation errors become a Failed outcome.
        AuthError and ServiceUnavailable propagate: they affect every
        record, so the caller should stop.
        """
        logger.info("Processing %s", record.filename)
        try:
            return await self._reconcile(record, data_source)
        except (ApiError, ValidationError) as e:
            logger.error("Failed to reconcile %s: %s", record.filename, e)
            return Failed(e)

    async def _reconcile(self, record: FileRecord, data_source: DataSourceSelection) -> Outcome:
        download_link = data_source.download_link(record.filename)
        matches = await self._gateway.search(
            ExactQuery(DOWNLOAD_LINK, download_link),
            max_results=1,
        )
        if not matches:
            logger.warning("No search results for %r in the index", download_link)
            return Skipped(NOT_IN_INDEX)

        store_path = matches[0].get(DOWNLOAD_LINK)
        if not store_path:
            raise ApiError(None, f"Search result for {record.filename} has no {DOWNLOAD_LINK}")

        try:
            current = await self._gateway.get_metadata(store_path)
        except NotFound:
            logger.warning("%s is in the index but not in the store", store_path)
            return Skipped(NOT_IN_STORE)

        new_metadata = plan_update(current, record)
        if new_metadata is None:
            logger.info("%s already has the correct title and keywords", record.filename)
            return Skipped(ALREADY_CORRECT)

        log_pretty(logger, new_metadata, f"New metadata for {record.filename}")
        status = await self._gateway.edit_metadata(new_metadata)
        if status != ACCEPTED:
            raise ApiError(status, f"Metadata edit for {record.filename} was not accepted")

        logger.info("%s metadata modified successfully", record.filename)
        return Updated(new_metadata)
