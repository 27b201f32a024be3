from unittest.mock import patch

import pytest
from sqlalchemy import text, update
from sqlmodel import Session

from servicepro.core.config import settings
from servicepro.core.errors import SequenceAllocationError, SettingsNotConfiguredError
from servicepro.models.company import CompanySettings
from servicepro.models.quotes import Quote
from servicepro.services import SequenceService
from servicepro.services.sequence_service import format_number, parse_number


def add_quote(session: Session, quote_number: str) -> None:
    session.add(Quote(quote_number=quote_number, title="Existing"))
    session.commit()


class TestNumberFormat:
    def test_format_pads_to_width(self):
        assert format_number("QUO-", 7, pad=4) == "QUO-0007"
        assert format_number("QUO-", 12345, pad=4) == "QUO-12345"

    def test_parse_number(self):
        assert parse_number("QUO-", "QUO-1042") == 1042
        assert parse_number("QUO-", "QUO-DRAFT-1700000000000") is None
        assert parse_number("INV-", "QUO-1042") is None


class TestSequenceService:
    """Test cases for document number allocation."""

    def test_first_numbers(self, db: Session, company_settings: CompanySettings):
        service = SequenceService(db)

        assert service.next_number("quote") == "QUO-1000"
        assert service.next_number("quote") == "QUO-1001"
        assert service.next_number("invoice") == "INV-1000"
        assert service.next_number("job") == "JOB-1000"

    def test_counter_advances_in_callers_transaction(self, db: Session, company_settings: CompanySettings):
        SequenceService(db).next_number("quote")
        db.rollback()

        assert SequenceService(db).next_number("quote") == "QUO-1000"

    def test_existing_numbers_win_over_counter(self, db: Session, company_settings: CompanySettings):
        add_quote(db, "QUO-1005")

        service = SequenceService(db)
        assert service.next_number("quote") == "QUO-1006"
        db.commit()
        assert company_settings.next_quote_number == 1007

    def test_highest_number_by_length(self, db: Session, company_settings: CompanySettings):
        add_quote(db, "QUO-9999")
        add_quote(db, "QUO-10000")

        assert SequenceService(db).next_number("quote") == "QUO-10001"

    def test_unparseable_numbers_are_ignored(self, db: Session, company_settings: CompanySettings):
        add_quote(db, "QUO-DRAFT-1700000000000")

        assert SequenceService(db).next_number("quote") == "QUO-1000"

    def test_lookup_failure_uses_counter(self, db: Session, company_settings: CompanySettings, monkeypatch):
        service = SequenceService(db)

        def broken(column, prefix):
            db.execute(text("SELECT quote_number FROM missing_quotes"))

        monkeypatch.setattr(service, "_highest_existing", broken)

        with patch.object(db, "begin_nested", wraps=db.begin_nested) as savepoint:
            assert service.next_number("quote") == "QUO-1000"

        savepoint.assert_called_once()
        db.commit()
        db.refresh(company_settings)
        assert company_settings.next_quote_number == 1001

    def test_concurrent_allocation_retries(self, db: Session, company_settings: CompanySettings, monkeypatch):
        service = SequenceService(db)
        original = service._highest_existing
        raced = []

        def racing(column, prefix):
            # Another writer takes numbers up to 1009 between our read and write
            if not raced:
                raced.append(True)
                db.exec(update(CompanySettings).values(next_quote_number=1010))
            return original(column, prefix)

        monkeypatch.setattr(service, "_highest_existing", racing)

        assert service.next_number("quote") == "QUO-1010"

    def test_gives_up_after_max_attempts(self, db: Session, company_settings: CompanySettings, monkeypatch):
        service = SequenceService(db)
        original = service._highest_existing

        def always_racing(column, prefix):
            db.exec(
                update(CompanySettings).values(
                    next_quote_number=CompanySettings.next_quote_number + 1
                )
            )
            return original(column, prefix)

        monkeypatch.setattr(service, "_highest_existing", always_racing)
        monkeypatch.setattr(settings, "SEQUENCE_MAX_ATTEMPTS", 3)

        with pytest.raises(SequenceAllocationError):
            service.next_number("quote")

    def test_without_settings(self, db: Session):
        with pytest.raises(SettingsNotConfiguredError):
            SequenceService(db).next_number("quote")

    def test_unknown_document_type(self, db: Session, company_settings: CompanySettings):
        with pytest.raises(ValueError):
            SequenceService(db).next_number("receipt")
