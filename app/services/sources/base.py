"""Interface every source platform client implements."""

from typing import Iterable

from app.core.exceptions import BulkExportNotSupported
from app.schemas.sync_schemas import BulkOperation, PageResult
from app.services.credentials import SourceCredentials


class SourceClient:
    """
    Read-only access to a seller's catalog on a source platform.

    Page numbers are 1-indexed. Every call is bounded by the per-request
    timeout configured on the client and raises SourceAPIError (or
    CredentialError on 401/403) on failure.
    """

    platform: str = None
    supports_bulk_export: bool = False

    def __init__(self, credentials: SourceCredentials):
        self.credentials = credentials

    def check_connection(self) -> bool:
        raise NotImplementedError

    def count_products(self):
        """Total catalog size as reported by the platform, or None."""
        return None

    def fetch_page(self, page_number: int, page_size: int) -> PageResult:
        raise NotImplementedError

    def submit_bulk_export(self, query: str = None) -> BulkOperation:
        raise BulkExportNotSupported(
            f"{self.platform} does not support bulk export")

    def get_bulk_operation(self, job_id: str) -> BulkOperation:
        raise BulkExportNotSupported(
            f"{self.platform} does not support bulk export")

    def download_bulk_result(self, url: str) -> Iterable[str]:
        raise BulkExportNotSupported(
            f"{self.platform} does not support bulk export")
