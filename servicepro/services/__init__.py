"""Initialize services package."""

from .company_service import CompanySettingsService
from .conversion_service import ConversionService
from .invoice_service import InvoiceService
from .job_service import JobService
from .offline_store import OfflineStore
from .quote_service import QuoteService
from .sequence_service import SequenceService
from .sync_scheduler import run_pending_sync, start_sync_scheduler, stop_sync_scheduler
from .sync_service import SyncService
